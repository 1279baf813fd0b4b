"""Sync orchestrator: fetch, resolve and persist one record per peer.

One peer's failure never aborts a cycle. Every peer gets exactly one
SyncOutcome, reported in configured order, whether peers are processed
sequentially or concurrently.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Awaitable, Sequence, TypeVar

from ..errors import (
    MalformedRemoteDataError,
    PeerError,
    PeerUnreachableError,
    WriteFailureError,
)
from ..store import RecordStore, compute_digest
from .models import CycleReport, Peer, Record, SyncOutcome, parse_record
from .peer_client import PeerClient
from .resolver import ConflictResolver

if TYPE_CHECKING:
    from ..config import Config

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncOrchestrator:
    """Runs synchronization cycles over a fixed set of peers.

    Supports:
    - Bounded fetch retries with exponential backoff (unreachable peers only)
    - Per-call timeouts, treated as unreachable
    - Sequential (default) or concurrent per-peer pipelines
    - Optionally pushing the local record back when it wins
    """

    def __init__(
        self,
        store: RecordStore,
        client: PeerClient,
        resolver: ConflictResolver,
        timeout: float = 10.0,
        retry_max_attempts: int = 3,
        retry_backoff_seconds: float = 1.0,
        concurrent: bool = False,
        push_on_local_win: bool = False,
    ):
        """Initialize the orchestrator.

        Args:
            store: Record store holding local state.
            client: Transport used to reach peers.
            resolver: Conflict resolver, already bound to a policy.
            timeout: Upper bound in seconds for each fetch/push call.
            retry_max_attempts: Fetch attempts per peer per cycle (at least 1).
            retry_backoff_seconds: Initial delay between attempts, doubled each retry.
            concurrent: Process peers concurrently instead of one after another.
            push_on_local_win: Push the local record to the peer when local wins.
        """
        self.store = store
        self.client = client
        self.resolver = resolver
        self.timeout = timeout
        self.retry_max_attempts = max(1, retry_max_attempts)
        self.retry_backoff_seconds = retry_backoff_seconds
        self.concurrent = concurrent
        self.push_on_local_win = push_on_local_win
        self._cycle_lock = asyncio.Lock()
        self._last_report: CycleReport | None = None

    @classmethod
    def from_config(
        cls,
        config: "Config",
        store: RecordStore,
        client: PeerClient,
    ) -> "SyncOrchestrator":
        """Build an orchestrator from configuration.

        Raises:
            UnsupportedPolicyError: If the configured policy does not exist.
        """
        return cls(
            store=store,
            client=client,
            resolver=ConflictResolver(config.sync.policy),
            timeout=config.sync.timeout_seconds,
            retry_max_attempts=config.sync.retry_max_attempts,
            retry_backoff_seconds=config.sync.retry_backoff_seconds,
            concurrent=config.sync.concurrent,
            push_on_local_win=config.sync.push_on_local_win,
        )

    @property
    def last_report(self) -> CycleReport | None:
        """Report of the most recently completed cycle."""
        return self._last_report

    async def run_cycle(self, peers: Sequence[Peer]) -> CycleReport:
        """Run one synchronization cycle.

        Args:
            peers: Peers in configured order. Names must be unique.

        Returns:
            CycleReport with one outcome per peer, in the given order.
        """
        names = [p.name for p in peers]
        if len(set(names)) != len(names):
            raise ValueError(f"Peer names must be unique: {names}")

        async with self._cycle_lock:
            started_at = datetime.now(timezone.utc)

            if self.concurrent:
                outcomes = await asyncio.gather(*(self._sync_peer(p) for p in peers))
            else:
                outcomes = [await self._sync_peer(p) for p in peers]

            report = CycleReport(
                outcomes=tuple(outcomes),
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )
            self._last_report = report

        logger.info(
            f"Cycle finished in {report.duration:.2f}s: "
            f"{len(report.succeeded)} succeeded, {len(report.failed)} failed"
        )
        return report

    async def _call(self, peer: Peer, awaitable: Awaitable[T]) -> T:
        """Await a peer call, bounded by the per-call timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            raise PeerUnreachableError(
                peer.name, f"No response within {self.timeout}s"
            ) from None

    async def _fetch_with_retry(self, peer: Peer) -> tuple[bytes | None, int, Exception | None]:
        """Fetch with exponential backoff.

        Returns:
            Tuple of (payload, attempts, error). Exactly one of payload/error is set.
        """
        backoff = self.retry_backoff_seconds
        error: Exception | None = None

        for attempt in range(1, self.retry_max_attempts + 1):
            try:
                payload = await self._call(peer, self.client.fetch(peer))
                return payload, attempt, None
            except PeerUnreachableError as e:
                error = e
                logger.warning(
                    f"Peer {peer.name} unreachable, "
                    f"attempt {attempt}/{self.retry_max_attempts}: {e}"
                )
            except PeerError as e:
                # Protocol errors won't fix themselves, don't retry
                return None, attempt, e

            if attempt < self.retry_max_attempts:
                await asyncio.sleep(backoff)
                backoff *= 2

        return None, self.retry_max_attempts, error

    def _parse_local(self, key: str, payload: bytes | None) -> Record | None:
        """Parse the stored payload, or None if there is no usable one."""
        if payload is None:
            return None
        try:
            return parse_record(key, payload)
        except MalformedRemoteDataError as e:
            logger.warning(f"Local record {key} is unreadable, treating as absent: {e}")
            return None

    def _store_winner(self, remote: Record) -> Record:
        """Resolve against the stored record and persist the winner.

        Runs inside the store's per-key update so a concurrent writer (the
        server accepting a push, another process) cannot interleave.
        """
        winner = remote

        def merge(current: bytes | None) -> bytes | None:
            nonlocal winner
            local = self._parse_local(remote.key, current)
            winner = self.resolver.resolve(local, remote)
            return remote.payload if winner is remote else None

        self.store.update(remote.key, merge)
        return winner

    async def _sync_peer(self, peer: Peer) -> SyncOutcome:
        """Fetch, resolve and persist a single peer's record."""
        attempts = 0
        try:
            payload, attempts, error = await self._fetch_with_retry(peer)
            if error is not None:
                return SyncOutcome.failure(peer.name, error, attempts=attempts)

            remote = parse_record(peer.key, payload)
            winner = await asyncio.to_thread(self._store_winner, remote)

            if winner is remote:
                resolution = "remote"
                logger.debug(f"Stored remote {peer.key} (ts={remote.timestamp})")
            else:
                resolution = "local"
                logger.debug(
                    f"Kept local {peer.key} (ts={winner.timestamp} > {remote.timestamp})"
                )
                if self.push_on_local_win:
                    await self._call(peer, self.client.push(peer, winner.payload))
                    logger.info(f"Pushed local {peer.key} back to {peer.name}")

            return SyncOutcome.success(
                peer.name,
                resolution=resolution,
                attempts=attempts,
                digest=compute_digest(winner.payload),
            )

        except (PeerError, MalformedRemoteDataError, WriteFailureError) as e:
            logger.warning(f"Sync with {peer.name} failed: {e}")
            return SyncOutcome.failure(peer.name, e, attempts=attempts)
        except Exception as e:
            logger.error(f"Unexpected error syncing {peer.name}: {e}", exc_info=True)
            return SyncOutcome.failure(peer.name, f"Unexpected error: {e!r}", attempts=attempts)

    async def run_forever(
        self,
        peers: Sequence[Peer],
        interval_seconds: float,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Run cycles at a fixed interval until stopped.

        Args:
            peers: Peers in configured order.
            interval_seconds: Seconds between the end of one cycle and the next.
            stop_event: Event to signal the loop should stop.
        """
        logger.info(f"Starting sync loop over {len(peers)} peers, {interval_seconds}s interval")

        while not (stop_event and stop_event.is_set()):
            report = await self.run_cycle(peers)
            for outcome in report.failed:
                logger.warning(f"Peer {outcome.peer_name} failed: {outcome.error_detail}")

            if stop_event:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
                    break  # Stop event was set
                except asyncio.TimeoutError:
                    pass  # Normal timeout, continue loop
            else:
                await asyncio.sleep(interval_seconds)

        logger.info("Sync loop stopped")
