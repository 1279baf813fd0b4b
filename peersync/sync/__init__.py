"""Sync engine for peersync nodes.

Pulls one record per configured peer, resolves conflicts against the local
copy, persists the winner, and verifies stored records on demand.
"""

from .models import CycleReport, IntegrityResult, Peer, Record, SyncOutcome, parse_record
from .orchestrator import SyncOrchestrator
from .peer_client import HttpPeerClient, PeerClient
from .resolver import (
    DEFAULT_POLICY,
    RESOLUTION_POLICIES,
    ConflictResolver,
    resolve_latest_timestamp,
)
from .verifier import IntegrityVerifier

__all__ = [
    "CycleReport",
    "IntegrityResult",
    "Peer",
    "Record",
    "SyncOutcome",
    "parse_record",
    "SyncOrchestrator",
    "HttpPeerClient",
    "PeerClient",
    "DEFAULT_POLICY",
    "RESOLUTION_POLICIES",
    "ConflictResolver",
    "resolve_latest_timestamp",
    "IntegrityVerifier",
]
