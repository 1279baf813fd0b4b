"""Error taxonomy for peersync.

Per-peer errors raised during a sync cycle are caught by the orchestrator and
recorded as failed outcomes. Configuration errors abort startup.
"""


class SyncError(Exception):
    """Base class for all peersync errors."""


class NotFoundError(SyncError):
    """No record is stored under the requested key."""

    def __init__(self, key: str):
        super().__init__(f"No record stored under key '{key}'")
        self.key = key


class WriteFailureError(SyncError):
    """The record store could not durably persist a payload."""


class PeerError(SyncError):
    """Base class for transport failures talking to a peer."""

    def __init__(self, peer_name: str, message: str):
        super().__init__(f"{peer_name}: {message}")
        self.peer_name = peer_name


class PeerUnreachableError(PeerError):
    """Connection failure, timeout, or server-side error. Retryable."""


class PeerProtocolError(PeerError):
    """The peer answered, but not with a usable response."""


class MalformedRemoteDataError(SyncError):
    """A payload could not be parsed into a Record."""


class UnsupportedPolicyError(SyncError):
    """The configured conflict-resolution policy does not exist."""

    def __init__(self, policy: str, supported: list[str]):
        super().__init__(
            f"Unsupported conflict policy '{policy}' "
            f"(supported: {', '.join(supported)})"
        )
        self.policy = policy
