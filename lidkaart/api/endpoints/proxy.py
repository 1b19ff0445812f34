"""
Edge proxy endpoint.

Every request not served by another router is rewritten onto the
upstream membership API and handed to the offline cache policy engine.
"""

from fastapi import APIRouter, Depends, Request, Response, status
import structlog

from ...core.exceptions import NetworkUnavailableException, OfflineCacheHTTPException
from ...domain.cache.domain_services import infer_destination
from ...domain.cache.entities import CachedResponse, InterceptedRequest
from ...services.offline import OfflineCachePolicyEngine
from ..dependencies import get_engine

logger = structlog.get_logger()
router = APIRouter(tags=["proxy"])

PROXIED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


async def to_intercepted_request(request: Request, origin: str) -> InterceptedRequest:
    """
    Build the engine's view of an incoming request.

    The upstream path is taken from ``raw_path`` so percent-escapes such
    as ``%2F`` inside a member id survive the rewrite.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.url.path
    url = origin.rstrip("/") + path
    if request.url.query:
        url = f"{url}?{request.url.query}"

    headers = dict(request.headers)
    return InterceptedRequest(
        method=request.method,
        url=url,
        headers=headers,
        body=await request.body(),
        destination=infer_destination(url, headers),
        mode=headers.get("sec-fetch-mode"),
    )


def to_response(response: CachedResponse) -> Response:
    return Response(
        content=response.body,
        status_code=response.status_code,
        headers=response.headers,
    )


@router.api_route("/{path:path}", methods=PROXIED_METHODS, include_in_schema=False)
async def proxy(
    path: str,
    request: Request,
    engine: OfflineCachePolicyEngine = Depends(get_engine),
) -> Response:
    """Forward a request through the policy engine."""
    intercepted = await to_intercepted_request(request, engine.config.origin)
    try:
        response = await engine.handle(intercepted)
    except NetworkUnavailableException as e:
        logger.warning(
            "Upstream unreachable", method=intercepted.method, url=intercepted.url
        )
        raise OfflineCacheHTTPException(e, status_code=status.HTTP_502_BAD_GATEWAY)
    return to_response(response)
