"""Conflict resolution between local and remote versions of a record."""

from typing import Callable

from ..errors import UnsupportedPolicyError
from .models import Record

ResolutionPolicy = Callable[[Record | None, Record], Record]

DEFAULT_POLICY = "latest-timestamp"


def resolve_latest_timestamp(local: Record | None, remote: Record) -> Record:
    """Pick the record with the strictly greater timestamp.

    Remote wins when there is no local record and on exact ties, since local
    state is assumed stale by default.

    Args:
        local: Locally stored record, or None if absent.
        remote: Freshly fetched record.

    Returns:
        The winning record (one of the inputs, unmodified).
    """
    if local is None:
        return remote
    if local.timestamp > remote.timestamp:
        return local
    return remote


RESOLUTION_POLICIES: dict[str, ResolutionPolicy] = {
    DEFAULT_POLICY: resolve_latest_timestamp,
}


class ConflictResolver:
    """Applies a named resolution policy.

    The policy is looked up at construction so a bad configuration fails
    before any sync cycle starts.
    """

    def __init__(self, policy: str = DEFAULT_POLICY):
        try:
            self._resolve = RESOLUTION_POLICIES[policy]
        except KeyError:
            raise UnsupportedPolicyError(policy, sorted(RESOLUTION_POLICIES)) from None
        self.policy = policy

    def resolve(self, local: Record | None, remote: Record) -> Record:
        """Return the winner between local and remote."""
        return self._resolve(local, remote)
