"""
Caching Strategies

Request handling strategies applied by the offline cache policy engine.
Implements network-first, stale-while-revalidate and network-only.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional

import structlog

from ...constants import get_current_timestamp
from ...core.exceptions import CacheStoreException, NetworkUnavailableException
from ...domain.cache.domain_services import OfflineVerificationService
from ...domain.cache.entities import CachedResponse, InterceptedRequest
from ...domain.cache.repository_interfaces import CacheStore, Fetcher
from ...domain.cache.value_objects import CacheNamespace, CacheStrategy
from ...monitoring.cache_metrics import CacheMetricsCollector
from .background import BackgroundTaskSink

logger = structlog.get_logger()

Clock = Callable[[], datetime]


class CachingStrategy(ABC):
    """Abstract base class for caching strategies."""

    kind: CacheStrategy

    def __init__(self, fetcher: Fetcher, metrics: CacheMetricsCollector):
        self.fetcher = fetcher
        self.metrics = metrics

    @abstractmethod
    async def respond(self, request: InterceptedRequest) -> CachedResponse:
        """
        Produce the response for an intercepted request.

        Args:
            request: Request classified for this strategy

        Returns:
            Response to hand back to the caller
        """
        pass

    def _record(self, outcome: str) -> None:
        self.metrics.record_request(self.kind.value, outcome)


class NetworkOnlyStrategy(CachingStrategy):
    """Pass-through without caching; network errors reach the caller."""

    kind = CacheStrategy.NETWORK_ONLY

    async def respond(self, request: InterceptedRequest) -> CachedResponse:
        try:
            response = await self.fetcher.fetch(request)
        except NetworkUnavailableException:
            self._record("network_error")
            raise
        self._record("network")
        return response


class NetworkFirstStrategy(CachingStrategy):
    """
    Network-first for card verification.

    Live responses of any status are stored and returned untouched. When
    the network is gone the last stored verification is replayed as
    NIET_ACTUEEL/offline, or the synthetic 503 is returned.
    """

    kind = CacheStrategy.NETWORK_FIRST

    def __init__(
        self,
        fetcher: Fetcher,
        store: CacheStore,
        namespace: CacheNamespace,
        metrics: CacheMetricsCollector,
        offline_service: Optional[OfflineVerificationService] = None,
        clock: Clock = get_current_timestamp,
    ):
        super().__init__(fetcher, metrics)
        self.store = store
        self.namespace = namespace
        self.offline_service = offline_service or OfflineVerificationService()
        self.clock = clock

    async def respond(self, request: InterceptedRequest) -> CachedResponse:
        try:
            response = await self.fetcher.fetch(request)
        except NetworkUnavailableException as e:
            logger.info(
                "Verification fetch failed, using offline fallback",
                url=request.url,
                error=e.message,
            )
            return await self._offline_response(request)

        await self._store_copy(request, response)
        self._record("network")
        return response

    async def _store_copy(
        self, request: InterceptedRequest, response: CachedResponse
    ) -> None:
        try:
            await self.store.put(self.namespace, request.key, response.clone())
        except CacheStoreException as e:
            logger.warning(
                "Failed to cache verification response",
                url=request.url,
                error=e.message,
                details=e.details,
            )

    async def _offline_response(self, request: InterceptedRequest) -> CachedResponse:
        try:
            cached = await self.store.get(self.namespace, request.key)
        except CacheStoreException as e:
            logger.warning(
                "Cache read failed on offline path",
                url=request.url,
                error=e.message,
            )
            cached = None

        if cached is None:
            self._record("offline_unavailable")
            self.metrics.record_offline_fallback("none")
            return self.offline_service.unavailable()

        self._record("offline_cache")
        self.metrics.record_offline_fallback("cache")
        return self.offline_service.degrade(cached, self.clock())


class StaleWhileRevalidateStrategy(CachingStrategy):
    """
    Stale-while-revalidate for static assets.

    The cache lookup and the network fetch start together. A cached entry
    is returned at once while the fetch keeps running detached; a fresh
    2xx response is written back by a background task nobody awaits.
    """

    kind = CacheStrategy.STALE_WHILE_REVALIDATE

    def __init__(
        self,
        fetcher: Fetcher,
        store: CacheStore,
        namespace: CacheNamespace,
        metrics: CacheMetricsCollector,
        sink: BackgroundTaskSink,
    ):
        super().__init__(fetcher, metrics)
        self.store = store
        self.namespace = namespace
        self.sink = sink

    async def respond(self, request: InterceptedRequest) -> CachedResponse:
        fetch_task = asyncio.ensure_future(self._fetch_and_revalidate(request))
        cached = await self._lookup(request)

        if cached is not None:
            self.sink.spawn(
                f"revalidate {request.key}",
                self._revalidate(request, fetch_task),
                kind="revalidate",
            )
            self._record("cache")
            return cached

        try:
            response = await fetch_task
        except NetworkUnavailableException:
            self._record("network_error")
            raise
        self._record("network")
        return response

    async def _lookup(self, request: InterceptedRequest) -> Optional[CachedResponse]:
        try:
            return await self.store.get(self.namespace, request.key)
        except CacheStoreException as e:
            logger.warning(
                "Static cache read failed, falling through to network",
                url=request.url,
                error=e.message,
            )
            return None

    async def _revalidate(
        self, request: InterceptedRequest, fetch_task: asyncio.Future
    ) -> None:
        try:
            await fetch_task
        except NetworkUnavailableException as e:
            logger.debug(
                "Revalidation skipped, network unavailable",
                url=request.url,
                error=e.message,
            )
            self._record("revalidate_network_error")

    async def _fetch_and_revalidate(
        self, request: InterceptedRequest
    ) -> CachedResponse:
        response = await self.fetcher.fetch(request)
        if response.ok:
            self.sink.spawn(
                f"cache-put {request.key}",
                self.store.put(self.namespace, request.key, response.clone()),
                kind="cache_put",
            )
        return response
