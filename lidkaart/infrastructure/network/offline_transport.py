"""
httpx transport adapter.

Routes a Python client's outbound requests through the offline cache
policy engine, the same way a service worker intercepts a page's
fetches. The engine's own fetcher must use a plain network transport.
"""

import httpx

from ...core.exceptions import NetworkUnavailableException
from ...domain.cache.domain_services import infer_destination
from ...domain.cache.entities import InterceptedRequest
from ...domain.cache.value_objects import RequestDestination


class OfflineCacheTransport(httpx.AsyncBaseTransport):
    """
    AsyncBaseTransport that answers requests via the policy engine.

    The destination may be given per request with
    ``extensions={"destination": "image"}``; otherwise it is inferred from
    headers and the URL.
    """

    def __init__(self, engine):
        self.engine = engine

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        body = await request.aread()
        headers = dict(request.headers)
        url = str(request.url)

        explicit = request.extensions.get("destination")
        destination = (
            RequestDestination.parse(explicit)
            if explicit is not None
            else infer_destination(url, headers)
        )

        intercepted = InterceptedRequest(
            method=request.method,
            url=url,
            headers=headers,
            body=body,
            destination=destination,
            mode=headers.get("sec-fetch-mode"),
        )

        try:
            response = await self.engine.handle(intercepted)
        except NetworkUnavailableException as e:
            raise httpx.ConnectError(e.message, request=request) from e

        return httpx.Response(
            status_code=response.status_code,
            headers=response.headers,
            content=response.body,
            request=request,
        )

    async def aclose(self) -> None:
        await self.engine.close()
