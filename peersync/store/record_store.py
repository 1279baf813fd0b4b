"""Durable key-to-payload persistence.

Each record is one file under the storage root. Writes go through a temporary
file that is fsynced and then atomically renamed over the target, so a reader
sees either the old payload or the new one, never a partial write.
"""

import fcntl
import logging
import os
import re
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from ..errors import NotFoundError, WriteFailureError

logger = logging.getLogger(__name__)

KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")
RECORD_SUFFIX = ".rec"
LOCK_SUFFIX = ".lock"

# Receives the current payload (None if absent), returns the payload to store
# or None to leave the record untouched.
MergeFn = Callable[[bytes | None], bytes | None]


def validate_key(key: str) -> str:
    """Check that a key is safe to use as a file name.

    Args:
        key: Record key.

    Returns:
        The key, unchanged.

    Raises:
        ValueError: If the key contains path separators or other unsafe characters.
    """
    if not isinstance(key, str) or not KEY_PATTERN.match(key):
        raise ValueError(f"Invalid record key: {key!r}")
    return key


@dataclass(frozen=True)
class StoreStats:
    """Aggregate numbers for the analytics surface."""

    record_count: int
    total_bytes: int
    root: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_count": self.record_count,
            "total_bytes": self.total_bytes,
            "root": self.root,
        }


class RecordStore(ABC):
    """Abstract key-to-payload store with overwrite semantics."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def write(self, key: str, payload: bytes) -> None:
        """Persist a payload, replacing any previous one under the key."""
        pass

    @abstractmethod
    def read(self, key: str) -> bytes:
        pass

    @abstractmethod
    def list(self) -> list[str]:
        pass

    @abstractmethod
    def size(self, key: str) -> int:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    def update(self, key: str, merge: MergeFn) -> bytes | None:
        """Read, merge and conditionally write a record.

        This base version does not lock, implementations shared between
        writers must override it.

        Returns:
            The payload written, or None if the record was left untouched.
        """
        try:
            current = self.read(key)
        except NotFoundError:
            current = None
        new = merge(current)
        if new is not None:
            self.write(key, new)
        return new

    def get_stats(self) -> StoreStats:
        """Get record count and total payload size."""
        keys = self.list()
        total = 0
        for key in keys:
            try:
                total += self.size(key)
            except NotFoundError:
                # Deleted between list() and size()
                continue
        return StoreStats(record_count=len(keys), total_bytes=total, root="")


class FileRecordStore(RecordStore):
    """Record store backed by one file per key under a root directory."""

    def __init__(self, root: str | Path):
        """Initialize the store.

        Args:
            root: Directory holding the records. Created on first write.
        """
        self.root = Path(root).expanduser()
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.root / f"{validate_key(key)}{RECORD_SUFFIX}"

    def _lock_for(self, key: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def write(self, key: str, payload: bytes) -> None:
        path = self._path(key)
        data = bytes(payload)

        with self._lock_for(key):
            tmp_path = self.root / f".{key}.{uuid.uuid4().hex}.tmp"
            try:
                self.root.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, path)
                self._fsync_dir()
            except OSError as e:
                tmp_path.unlink(missing_ok=True)
                raise WriteFailureError(f"Failed to write record '{key}': {e}") from e

        logger.debug(f"Wrote record {key} ({len(data)} bytes)")

    def _fsync_dir(self) -> None:
        """Flush the directory entry so the rename itself is durable."""
        if os.name != "posix":
            return
        fd = os.open(self.root, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)

    def update(self, key: str, merge: MergeFn) -> bytes | None:
        """Read, merge and conditionally write a record atomically.

        The whole sequence holds the per-key thread lock and an exclusive
        flock on a per-key lock file, so it is serialized against other
        threads and against other processes sharing the storage root.

        Args:
            key: Record key.
            merge: Called with the current payload (None if absent). Returns
                the payload to store, or None to keep the current one.

        Returns:
            The payload written, or None if the record was left untouched.

        Raises:
            WriteFailureError: If the lock or the write fails.
        """
        lock_path = self.root / f".{validate_key(key)}{LOCK_SUFFIX}"

        with self._lock_for(key):
            try:
                self.root.mkdir(parents=True, exist_ok=True)
                fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
            except OSError as e:
                raise WriteFailureError(f"Failed to lock record '{key}': {e}") from e

            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                return super().update(key, merge)
            finally:
                # Closing the descriptor releases the flock
                os.close(fd)

    def read(self, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            raise NotFoundError(key) from None

    def list(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            p.name[: -len(RECORD_SUFFIX)]
            for p in self.root.iterdir()
            if p.is_file()
            and p.name.endswith(RECORD_SUFFIX)
            and KEY_PATTERN.match(p.name[: -len(RECORD_SUFFIX)])
        )

    def size(self, key: str) -> int:
        try:
            return self._path(key).stat().st_size
        except FileNotFoundError:
            raise NotFoundError(key) from None

    def delete(self, key: str) -> None:
        with self._lock_for(key):
            try:
                self._path(key).unlink()
            except FileNotFoundError:
                raise NotFoundError(key) from None
        logger.info(f"Deleted record {key}")

    def get_stats(self) -> StoreStats:
        stats = super().get_stats()
        return StoreStats(
            record_count=stats.record_count,
            total_bytes=stats.total_bytes,
            root=str(self.root),
        )
