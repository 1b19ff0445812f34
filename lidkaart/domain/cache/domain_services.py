"""
Cache Domain Services

Domain services encapsulating the caching policy rules:
request classification and the degraded offline answer for
card verification requests.
"""

import logging
from datetime import datetime
from typing import Optional, Mapping
from urllib.parse import urlsplit

from .entities import (
    CachedResponse,
    InterceptedRequest,
    OfflineError,
    VerificationResult,
)
from .value_objects import CacheStrategy, RequestDestination, VerifyPathPattern

logger = logging.getLogger(__name__)


_SCRIPT_SUFFIXES = (".js", ".mjs")
_STYLE_SUFFIXES = (".css",)
_IMAGE_SUFFIXES = (
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".webp",
    ".ico",
    ".avif",
)
_DOCUMENT_SUFFIXES = (".html", ".htm")


def infer_destination(
    url: str,
    headers: Optional[Mapping[str, str]] = None,
) -> RequestDestination:
    """
    Determine the fetch destination of a request.

    ``Sec-Fetch-Dest`` wins when the client sent it; navigations count as
    documents. Otherwise the path suffix decides, and extension-less paths
    are documents only when the client accepts HTML.
    """
    lowered = {k.lower(): v for k, v in (headers or {}).items()}

    explicit = lowered.get("sec-fetch-dest")
    if explicit:
        return RequestDestination.parse(explicit)

    if lowered.get("sec-fetch-mode") == "navigate":
        return RequestDestination.DOCUMENT

    path = urlsplit(url).path.lower()
    if path.endswith(_SCRIPT_SUFFIXES):
        return RequestDestination.SCRIPT
    if path.endswith(_STYLE_SUFFIXES):
        return RequestDestination.STYLE
    if path.endswith(_IMAGE_SUFFIXES):
        return RequestDestination.IMAGE
    if path.endswith(_DOCUMENT_SUFFIXES):
        return RequestDestination.DOCUMENT

    last_segment = path.rsplit("/", 1)[-1]
    if "." not in last_segment and "text/html" in lowered.get("accept", ""):
        return RequestDestination.DOCUMENT

    return RequestDestination.OTHER


class RequestClassificationService:
    """
    Picks the handling strategy for an intercepted request.

    Priority order: verification endpoint, static assets, everything else.
    Only GET requests over http(s) are eligible for caching.
    """

    CACHEABLE_SCHEMES = ("http", "https")

    def __init__(self, verify_pattern: VerifyPathPattern):
        self.verify_pattern = verify_pattern

    def is_cacheable(self, request: InterceptedRequest) -> bool:
        return request.method == "GET" and request.scheme in self.CACHEABLE_SCHEMES

    def is_verification(self, request: InterceptedRequest) -> bool:
        return self.verify_pattern.matches_path(request.path)

    def classify(self, request: InterceptedRequest) -> CacheStrategy:
        if not self.is_cacheable(request):
            return CacheStrategy.NETWORK_ONLY

        if self.is_verification(request):
            return CacheStrategy.NETWORK_FIRST

        if request.destination.is_static_asset or request.is_navigation:
            return CacheStrategy.STALE_WHILE_REVALIDATE

        return CacheStrategy.NETWORK_ONLY


class OfflineVerificationService:
    """
    Builds the answer for a verification request that could not reach
    the network.
    """

    def degrade(
        self, cached: CachedResponse, moment: Optional[datetime] = None
    ) -> CachedResponse:
        """
        Turn the last cached verification into a NIET_ACTUEEL payload.

        Returns the synthetic 503 when the cached body is not a JSON
        object.
        """
        try:
            payload = cached.json()
        except ValueError as e:
            logger.warning(f"Cached verification payload unusable: {e}")
            return self.unavailable()
        if not isinstance(payload, dict):
            logger.warning("Cached verification payload is not a JSON object")
            return self.unavailable()

        result = VerificationResult.offline_from(payload, moment)
        return CachedResponse.json_response(result.to_payload())

    def unavailable(self) -> CachedResponse:
        """Synthetic 503 used when no cached verification exists."""
        return OfflineError().to_response()
