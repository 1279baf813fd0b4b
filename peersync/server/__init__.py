"""HTTP server letting other peersync nodes fetch and push records.

Provides the read/write endpoint that HttpPeerClient talks to, plus
read-only stats and verification routes, using FastAPI.
"""

from .app import create_app

__all__ = ["create_app"]
