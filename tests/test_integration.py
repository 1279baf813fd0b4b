"""End-to-end sync between two nodes over the HTTP peer protocol."""

import httpx
import pytest

pytest.importorskip("fastapi")

from peersync.config import Config, NodeConfig
from peersync.server import create_app
from peersync.store import FileRecordStore, compute_digest
from peersync.sync import (
    ConflictResolver,
    HttpPeerClient,
    IntegrityVerifier,
    Peer,
    SyncOrchestrator,
)


@pytest.fixture
def remote_store(tmp_path):
    return FileRecordStore(tmp_path / "remote")


@pytest.fixture
def local_store(tmp_path):
    return FileRecordStore(tmp_path / "local")


@pytest.fixture
def http_client(remote_store):
    """Peer client whose requests are served in-process by the remote node's app."""
    app = create_app(Config(node=NodeConfig(name="remote")), remote_store)
    return HttpPeerClient(timeout=5.0, transport=httpx.ASGITransport(app=app))


PEERS = [
    Peer("NodeA", "http://remote/records/NodeA"),
    Peer("NodeB", "http://remote/records/NodeB"),
    Peer("NodeC", "http://remote/records/NodeC"),
]


class TestTwoNodeSync:
    """Tests for a full cycle against a real server app."""

    @pytest.mark.asyncio
    async def test_cycle_pulls_and_verifies(self, remote_store, local_store, http_client):
        remote_store.write("NodeA", b'{"timestamp": 100, "value": "x"}')
        remote_store.write("NodeC", b'{"timestamp": 300, "value": "z"}')
        local_store.write("NodeC", b'{"timestamp": 400, "value": "mine"}')

        async with http_client:
            orchestrator = SyncOrchestrator(
                local_store, http_client, ConflictResolver(), retry_backoff_seconds=0
            )
            report = await orchestrator.run_cycle(PEERS)

        # NodeB has nothing on the remote: 404 is a protocol error, not retried
        assert [o.peer_name for o in report.outcomes] == ["NodeA", "NodeB", "NodeC"]
        assert [o.succeeded for o in report.outcomes] == [True, False, True]
        assert report.outcomes[1].attempts == 1
        assert "404" in report.outcomes[1].error_detail

        assert local_store.read("NodeA") == b'{"timestamp": 100, "value": "x"}'
        assert local_store.read("NodeC") == b'{"timestamp": 400, "value": "mine"}'

        verifier = IntegrityVerifier(local_store)
        digest = compute_digest(b'{"timestamp": 100, "value": "x"}')
        assert verifier.verify("NodeA", digest).matched

    @pytest.mark.asyncio
    async def test_local_win_is_pushed_to_remote(self, remote_store, local_store, http_client):
        remote_store.write("NodeA", b'{"timestamp": 1, "value": "old"}')
        local_store.write("NodeA", b'{"timestamp": 2, "value": "new"}')

        async with http_client:
            orchestrator = SyncOrchestrator(
                local_store,
                http_client,
                ConflictResolver(),
                push_on_local_win=True,
            )
            report = await orchestrator.run_cycle(PEERS[:1])

        assert report.all_succeeded
        assert remote_store.read("NodeA") == b'{"timestamp": 2, "value": "new"}'
