"""Storage layer for peersync nodes.

Provides:
- Durable single-key record persistence with atomic overwrite
- Content hashing for integrity checks
"""

from .hasher import compute_digest
from .record_store import FileRecordStore, RecordStore, StoreStats, validate_key

__all__ = [
    "compute_digest",
    "FileRecordStore",
    "RecordStore",
    "StoreStats",
    "validate_key",
]
