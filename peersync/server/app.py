"""FastAPI application exposing a node's records to its peers."""

import asyncio
import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import Response

from ..config import Config
from ..errors import MalformedRemoteDataError, NotFoundError, WriteFailureError
from ..store import RecordStore, compute_digest, validate_key
from ..sync import ConflictResolver, IntegrityVerifier, parse_record

logger = logging.getLogger(__name__)


def create_app(config: Config, store: RecordStore) -> FastAPI:
    """Create the peer-facing FastAPI application.

    Args:
        config: Application configuration.
        store: Record store to serve and update.

    Returns:
        Configured FastAPI application.

    Raises:
        UnsupportedPolicyError: If the configured policy does not exist.
    """
    app = FastAPI(
        title="peersync",
        description="Record exchange endpoint for peersync nodes",
        version="0.1.0",
    )

    resolver = ConflictResolver(config.sync.policy)
    verifier = IntegrityVerifier(store)

    app.state.config = config
    app.state.store = store

    def _check_key(key: str) -> str:
        try:
            return validate_key(key)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from None

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "node": config.node.name,
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/records")
    def list_records() -> dict[str, Any]:
        """List stored record keys."""
        return {"keys": store.list()}

    @app.get("/records/{key}")
    def get_record(key: str) -> Response:
        """Serve the raw payload stored under a key."""
        _check_key(key)
        try:
            payload = store.read(key)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from None
        return Response(content=payload, media_type="application/octet-stream")

    @app.put("/records/{key}")
    async def put_record(key: str, request: Request) -> dict[str, Any]:
        """Accept a pushed record if it wins against the local copy."""
        _check_key(key)
        body = await request.body()

        try:
            remote = parse_record(key, body)
        except MalformedRemoteDataError as e:
            raise HTTPException(status_code=422, detail=str(e)) from None

        winner = remote

        def merge(current: bytes | None) -> bytes | None:
            # Runs under the store's per-key lock
            nonlocal winner
            local = None
            if current is not None:
                try:
                    local = parse_record(key, current)
                except MalformedRemoteDataError as e:
                    logger.warning(f"Local record {key} is unreadable, treating as absent: {e}")
            winner = resolver.resolve(local, remote)
            return remote.payload if winner is remote else None

        try:
            await asyncio.to_thread(store.update, key, merge)
        except WriteFailureError as e:
            logger.error(f"Failed to store pushed record {key}: {e}")
            raise HTTPException(status_code=500, detail=str(e)) from None

        accepted = winner is remote
        if accepted:
            logger.info(f"Accepted pushed record {key} (ts={remote.timestamp})")

        return {
            "key": key,
            "accepted": accepted,
            "digest": compute_digest(winner.payload),
        }

    @app.get("/api/stats")
    def api_stats() -> dict[str, Any]:
        """Record count and aggregate size."""
        return store.get_stats().to_dict()

    @app.get("/api/verify/{key}")
    def api_verify(key: str, digest: str) -> dict[str, Any]:
        """Verify a stored record against an expected digest."""
        _check_key(key)
        try:
            return verifier.verify(key, digest).to_dict()
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from None

    return app
