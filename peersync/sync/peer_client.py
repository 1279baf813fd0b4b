"""Transport adapter for fetching and pushing records to peers.

The client is deliberately stateless with respect to sync logic: it performs
exactly one request per call and never retries. Retries belong to the
orchestrator.
"""

import logging
from abc import ABC, abstractmethod

import httpx

from ..errors import PeerProtocolError, PeerUnreachableError
from .models import Peer

logger = logging.getLogger(__name__)


class PeerClient(ABC):
    """Fetches a peer's record and pushes a local record to a peer."""

    @abstractmethod
    async def fetch(self, peer: Peer) -> bytes:
        """Read the peer's record payload.

        Raises:
            PeerUnreachableError: Connection failure or timeout.
            PeerProtocolError: Malformed or unexpected response.
        """
        pass

    @abstractmethod
    async def push(self, peer: Peer, payload: bytes) -> None:
        """Write a payload to the peer.

        Raises:
            PeerUnreachableError: Connection failure or timeout.
            PeerProtocolError: Malformed or unexpected response.
        """
        pass

    async def aclose(self) -> None:
        """Release any held connections."""

    async def __aenter__(self) -> "PeerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class HttpPeerClient(PeerClient):
    """Peer client speaking plain HTTP.

    ``fetch`` is ``GET <endpoint>`` and ``push`` is ``PUT <endpoint>`` with the
    raw payload as body.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests).
        """
        self.timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self, peer: Peer, method: str, content: bytes | None = None
    ) -> httpx.Response:
        headers = {}
        if content is not None:
            headers["Content-Type"] = "application/octet-stream"

        try:
            response = await self._client.request(
                method, peer.endpoint, content=content, headers=headers
            )
        except httpx.TimeoutException as e:
            raise PeerUnreachableError(peer.name, f"Request timed out: {e!r}") from e
        except httpx.NetworkError as e:
            raise PeerUnreachableError(peer.name, f"Connection failed: {e!r}") from e
        except (httpx.RemoteProtocolError, httpx.DecodingError, httpx.UnsupportedProtocol) as e:
            raise PeerProtocolError(peer.name, f"Bad response: {e!r}") from e
        except httpx.TransportError as e:
            raise PeerUnreachableError(peer.name, f"Transport error: {e!r}") from e
        except httpx.InvalidURL as e:
            raise PeerProtocolError(peer.name, f"Invalid endpoint {peer.endpoint!r}: {e}") from e

        if response.status_code >= 500:
            raise PeerUnreachableError(peer.name, f"Server error HTTP {response.status_code}")
        if not response.is_success:
            raise PeerProtocolError(
                peer.name, f"HTTP {response.status_code}: {response.text[:200]}"
            )

        return response

    async def fetch(self, peer: Peer) -> bytes:
        response = await self._request(peer, "GET")
        logger.debug(f"Fetched {len(response.content)} bytes from {peer.name}")
        return response.content

    async def push(self, peer: Peer, payload: bytes) -> None:
        await self._request(peer, "PUT", content=payload)
        logger.debug(f"Pushed {len(payload)} bytes to {peer.name}")
