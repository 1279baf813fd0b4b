"""Integrity verification over persisted records."""

import hmac
import logging

from ..store import RecordStore, compute_digest
from .models import IntegrityResult

logger = logging.getLogger(__name__)


class IntegrityVerifier:
    """Checks stored payloads against expected digests. Never writes."""

    def __init__(self, store: RecordStore, algorithm: str = "sha256"):
        self._store = store
        self._algorithm = algorithm

    def digest(self, key: str) -> str:
        """Compute the digest of the record currently stored under a key.

        Raises:
            NotFoundError: If no record exists under the key.
        """
        return compute_digest(self._store.read(key), self._algorithm)

    def verify(self, key: str, expected_digest: str) -> IntegrityResult:
        """Verify a stored record against an expected digest.

        Args:
            key: Record key.
            expected_digest: Hex digest the payload should have.

        Returns:
            IntegrityResult with the computed digest, matched or not.

        Raises:
            NotFoundError: If no record exists under the key.
        """
        digest = self.digest(key)
        expected = expected_digest.strip().lower()
        matched = hmac.compare_digest(digest.encode(), expected.encode("utf-8"))

        if not matched:
            logger.warning(f"Integrity mismatch for {key}: expected {expected}, got {digest}")

        return IntegrityResult(key=key, matched=matched, digest=digest, expected=expected)
