"""Content hashing for integrity checks."""

import hashlib

DEFAULT_ALGORITHM = "sha256"


def compute_digest(payload: bytes, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Compute a hex digest over a byte payload.

    Args:
        payload: Bytes to hash.
        algorithm: Any algorithm name accepted by hashlib.

    Returns:
        Lowercase hex digest.

    Raises:
        TypeError: If payload is not bytes-like.
        ValueError: If the algorithm is unknown.
    """
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise TypeError(f"payload must be bytes, not {type(payload).__name__}")

    hasher = hashlib.new(algorithm)
    hasher.update(payload)
    return hasher.hexdigest()
