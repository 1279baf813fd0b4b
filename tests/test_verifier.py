"""Tests for the integrity verifier."""

import pytest

from peersync.errors import NotFoundError
from peersync.store import FileRecordStore, compute_digest
from peersync.sync import IntegrityVerifier


@pytest.fixture
def store(tmp_path):
    store = FileRecordStore(tmp_path / "records")
    store.write("NodeA", b'{"timestamp": 100, "value": "x"}')
    return store


@pytest.fixture
def verifier(store):
    return IntegrityVerifier(store)


class TestIntegrityVerifier:
    """Tests for IntegrityVerifier.verify."""

    def test_true_digest_matches(self, store, verifier):
        digest = compute_digest(store.read("NodeA"))

        result = verifier.verify("NodeA", digest)

        assert result.matched
        assert result.digest == digest
        assert result.key == "NodeA"

    def test_flipped_byte_mismatches(self, store, verifier):
        """Test flipping a single stored byte breaks the match."""
        original = store.read("NodeA")
        digest = compute_digest(original)
        tampered = bytearray(original)
        tampered[0] ^= 0x01
        store.write("NodeA", bytes(tampered))

        result = verifier.verify("NodeA", digest)

        assert not result.matched
        assert result.digest == compute_digest(bytes(tampered))
        assert result.expected == digest

    def test_mismatch_always_returns_digest(self, verifier):
        result = verifier.verify("NodeA", "0" * 64)

        assert not result.matched
        assert len(result.digest) == 64

    def test_case_and_whitespace_insensitive(self, store, verifier):
        digest = compute_digest(store.read("NodeA"))

        assert verifier.verify("NodeA", f"  {digest.upper()}\n").matched

    def test_non_ascii_expected_digest(self, verifier):
        assert not verifier.verify("NodeA", "ü" * 64).matched

    def test_missing_record_raises(self, verifier):
        """Test a missing record is an error, not a mismatch."""
        with pytest.raises(NotFoundError):
            verifier.verify("missing", "0" * 64)

    def test_verify_does_not_modify_store(self, store, verifier):
        before = store.read("NodeA")

        verifier.verify("NodeA", "deadbeef")

        assert store.read("NodeA") == before
        assert store.list() == ["NodeA"]

    def test_digest(self, store, verifier):
        assert verifier.digest("NodeA") == compute_digest(store.read("NodeA"))

    def test_to_dict(self, verifier):
        data = verifier.verify("NodeA", "abc").to_dict()

        assert data["key"] == "NodeA"
        assert data["matched"] is False
        assert data["expected"] == "abc"
