"""Data model for synchronized records and sync outcomes."""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..errors import MalformedRemoteDataError


@dataclass(frozen=True)
class Peer:
    """A named remote synchronization endpoint."""

    name: str
    endpoint: str  # URL of the peer's record resource

    @property
    def key(self) -> str:
        """Record key this peer's data is stored under."""
        return self.name


@dataclass(frozen=True)
class Record:
    """A single logical unit of synchronized state."""

    key: str
    payload: bytes  # Canonical bytes, persisted verbatim
    timestamp: int | float  # Seconds since the epoch, or a logical counter


def _parse_timestamp(value: Any) -> int | float:
    """Normalize a payload timestamp to epoch seconds.

    Integers are kept as int so large values (nanosecond epochs, counters)
    compare exactly.
    """
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool):
        raise ValueError("timestamp must be a number or ISO-8601 string")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("timestamp must be finite")
        return value
    if isinstance(value, str):
        # fromisoformat only accepts a Z suffix from 3.11
        if value[-1:] in ("Z", "z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.timestamp()
    raise ValueError("timestamp must be a number or ISO-8601 string")


def parse_record(key: str, payload: bytes) -> Record:
    """Parse a raw payload into a Record.

    The payload must be a UTF-8 JSON object with a ``timestamp`` field holding
    either a number or an ISO-8601 string.

    Args:
        key: Key the record belongs to.
        payload: Raw bytes as fetched or stored.

    Returns:
        Record carrying the original bytes.

    Raises:
        MalformedRemoteDataError: If the payload cannot be interpreted.
    """
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedRemoteDataError(f"Payload for '{key}' is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedRemoteDataError(f"Payload for '{key}' is not a JSON object")
    if "timestamp" not in data:
        raise MalformedRemoteDataError(f"Payload for '{key}' has no timestamp field")

    try:
        timestamp = _parse_timestamp(data["timestamp"])
    except (ValueError, OverflowError) as e:
        raise MalformedRemoteDataError(f"Payload for '{key}' has a bad timestamp: {e}") from e

    return Record(key=key, payload=bytes(payload), timestamp=timestamp)


@dataclass(frozen=True)
class SyncOutcome:
    """Result of one sync attempt for one peer."""

    peer_name: str
    succeeded: bool
    error_detail: str | None = None
    resolution: str | None = None  # "local" or "remote"
    attempts: int = 0
    digest: str | None = None

    def __post_init__(self) -> None:
        if self.succeeded == (self.error_detail is not None):
            raise ValueError("error_detail must be set iff the outcome failed")

    @classmethod
    def success(cls, peer_name: str, **kwargs: Any) -> "SyncOutcome":
        return cls(peer_name=peer_name, succeeded=True, **kwargs)

    @classmethod
    def failure(cls, peer_name: str, error: Exception | str, **kwargs: Any) -> "SyncOutcome":
        return cls(peer_name=peer_name, succeeded=False, error_detail=str(error), **kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "peer": self.peer_name,
            "succeeded": self.succeeded,
            "error": self.error_detail,
            "resolution": self.resolution,
            "attempts": self.attempts,
            "digest": self.digest,
        }


@dataclass(frozen=True)
class CycleReport:
    """Outcomes of one full pass over the configured peers."""

    outcomes: tuple[SyncOutcome, ...]
    started_at: datetime
    finished_at: datetime

    @property
    def duration(self) -> float:
        """Cycle duration in seconds."""
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def succeeded(self) -> list[SyncOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[SyncOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": round(self.duration, 3),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass(frozen=True)
class IntegrityResult:
    """Result of verifying a stored record against an expected digest.

    A mismatch is a normal result, not an error.
    """

    key: str
    matched: bool
    digest: str
    expected: str = field(default="")

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "matched": self.matched,
            "digest": self.digest,
            "expected": self.expected,
        }
