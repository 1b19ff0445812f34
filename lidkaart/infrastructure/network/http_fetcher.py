"""
httpx-backed network fetcher.

Performs intercepted requests against the network and converts the
result into CachedResponse entities. Transport level failures (DNS,
refused connections, timeouts) become NetworkUnavailableException;
any HTTP response, whatever its status, is returned as-is.
"""

import logging
from typing import Dict, Mapping, Optional

import httpx

from ...core.exceptions import NetworkUnavailableException
from ...domain.cache.entities import CachedResponse, InterceptedRequest
from ...domain.cache.repository_interfaces import Fetcher

logger = logging.getLogger(__name__)

# Headers that describe a single hop or the raw wire encoding; the body we
# hand back is already decoded so they no longer apply.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "content-length",
        "content-encoding",
        "host",
    }
)


def strip_hop_by_hop(headers: Mapping[str, str]) -> Dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}


class HttpxFetcher(Fetcher):
    """Fetcher using a shared httpx.AsyncClient."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout, follow_redirects=False
        )

    async def fetch(self, request: InterceptedRequest) -> CachedResponse:
        try:
            response = await self._client.request(
                request.method,
                request.url,
                headers=strip_hop_by_hop(request.headers),
                content=request.body or None,
            )
        except httpx.TransportError as e:
            logger.info(f"Network unavailable for {request.method} {request.url}: {e}")
            raise NetworkUnavailableException(request.url, original_error=e)

        return CachedResponse(
            status_code=response.status_code,
            headers=strip_hop_by_hop(response.headers),
            body=response.content,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
