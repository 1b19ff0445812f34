"""
Offline Cache Policy Engine

Intercepts outbound requests, classifies them and applies a caching
strategy; manages cache namespaces across the install and activate
phases of an engine instance.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ...constants import SKIP_WAITING_MESSAGE, get_current_timestamp
from ...core.config import Settings
from ...core.exceptions import (
    CacheStoreException,
    EngineStateException,
    InstallationError,
    NetworkUnavailableException,
)
from ...domain.cache.domain_services import (
    OfflineVerificationService,
    RequestClassificationService,
)
from ...domain.cache.entities import CachedResponse, InterceptedRequest
from ...domain.cache.repository_interfaces import CacheStore, Fetcher
from ...domain.cache.value_objects import (
    CacheNamespace,
    CacheStrategy,
    EngineState,
    RequestDestination,
    RequestKey,
    VerifyPathPattern,
)
from ...monitoring.cache_metrics import CacheMetricsCollector
from .background import BackgroundTaskSink
from .strategies import (
    CachingStrategy,
    Clock,
    NetworkFirstStrategy,
    NetworkOnlyStrategy,
    StaleWhileRevalidateStrategy,
)

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)


@dataclass
class EngineConfig:
    """Policy configuration of one engine instance."""

    origin: str
    dynamic_namespace: CacheNamespace
    static_namespace: CacheNamespace
    verify_pattern: VerifyPathPattern
    static_assets: List[str] = field(default_factory=list)
    sync_tag: str = "card-refresh"

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            origin=settings.UPSTREAM_URL,
            dynamic_namespace=settings.dynamic_namespace,
            static_namespace=settings.static_namespace,
            verify_pattern=settings.verify_pattern,
            static_assets=settings.static_assets_list,
            sync_tag=settings.CARD_REFRESH_SYNC_TAG,
        )

    @property
    def current_namespaces(self) -> Tuple[str, str]:
        return (self.dynamic_namespace.name, self.static_namespace.name)

    def resolve(self, url: str) -> str:
        """Absolute URL of a manifest entry."""
        return urljoin(self.origin.rstrip("/") + "/", url)


class OfflineCachePolicyEngine:
    """
    Request interceptor applying the offline caching policy.

    Lifecycle: ``install()`` seeds the static namespace, ``activate()``
    purges stale namespaces and claims clients. Until activation every
    request goes straight to the network.
    """

    def __init__(
        self,
        store: CacheStore,
        fetcher: Fetcher,
        config: EngineConfig,
        metrics: Optional[CacheMetricsCollector] = None,
        clock: Clock = get_current_timestamp,
    ):
        self.store = store
        self.fetcher = fetcher
        self.config = config
        self.metrics = metrics or CacheMetricsCollector()
        self.sink = BackgroundTaskSink(on_error=self._on_background_error)
        self.classifier = RequestClassificationService(config.verify_pattern)

        self.state = EngineState.PARSED
        self.skip_waiting_requested = False
        self.controlling = False
        self._lifecycle_lock = asyncio.Lock()

        self._strategies: Dict[CacheStrategy, CachingStrategy] = {
            CacheStrategy.NETWORK_FIRST: NetworkFirstStrategy(
                fetcher,
                store,
                config.dynamic_namespace,
                self.metrics,
                offline_service=OfflineVerificationService(),
                clock=clock,
            ),
            CacheStrategy.STALE_WHILE_REVALIDATE: StaleWhileRevalidateStrategy(
                fetcher, store, config.static_namespace, self.metrics, self.sink
            ),
            CacheStrategy.NETWORK_ONLY: NetworkOnlyStrategy(fetcher, self.metrics),
        }

    # Lifecycle

    async def install(self) -> int:
        """
        Pre-populate the static namespace from the asset manifest.

        All-or-nothing: one failing asset aborts installation, nothing is
        written and the engine becomes redundant. A redundant engine may
        run install again.

        Returns:
            Number of cached assets

        Raises:
            InstallationError: If any asset cannot be fetched
            EngineStateException: If the engine is already installed or installing
        """
        async with self._lifecycle_lock:
            if self.state not in (EngineState.PARSED, EngineState.REDUNDANT):
                raise EngineStateException("install", self.state.value)

            with tracer.start_as_current_span("offline_engine.install") as span:
                span.set_attribute("assets", len(self.config.static_assets))
                self.state = EngineState.INSTALLING
                logger.info(
                    "Installing offline cache engine",
                    namespace=self.config.static_namespace.name,
                    assets=len(self.config.static_assets),
                )

                try:
                    results = await asyncio.gather(
                        *(
                            self._fetch_asset(asset)
                            for asset in self.config.static_assets
                        ),
                        return_exceptions=True,
                    )
                    for result in results:
                        if isinstance(result, BaseException):
                            raise result
                    entries = list(results)
                    await self._seed_static(entries)
                except InstallationError as e:
                    self.state = EngineState.REDUNDANT
                    span.set_status(Status(StatusCode.ERROR, e.message))
                    logger.error(
                        "Offline cache installation failed",
                        error=e.message,
                        details=e.details,
                    )
                    raise

                self.state = EngineState.INSTALLED
                self.skip_waiting()
                logger.info("Static assets cached successfully", assets=len(entries))
                return len(entries)

    async def _fetch_asset(self, asset: str) -> Tuple[RequestKey, CachedResponse]:
        url = self.config.resolve(asset)
        request = InterceptedRequest(
            method="GET", url=url, destination=RequestDestination.OTHER
        )
        try:
            response = await self.fetcher.fetch(request)
        except NetworkUnavailableException as e:
            raise InstallationError(url, original_error=e)
        if not response.ok:
            raise InstallationError(url, status_code=response.status_code)
        return request.key, response.clone()

    async def _seed_static(self, entries: List[Tuple[RequestKey, CachedResponse]]) -> None:
        try:
            await self.store.put_all(self.config.static_namespace, entries)
        except CacheStoreException as e:
            raise InstallationError(self.config.static_namespace.name, original_error=e)

    def skip_waiting(self) -> None:
        """Replace a previously running instance without waiting for clients."""
        self.skip_waiting_requested = True

    def post_message(self, message: Dict[str, Any]) -> bool:
        """Handle a client message; returns True when it was understood."""
        if message.get("type") == SKIP_WAITING_MESSAGE:
            logger.info("Received SKIP_WAITING message")
            self.skip_waiting()
            return True
        logger.debug("Ignoring unknown engine message", message_type=message.get("type"))
        return False

    async def activate(self) -> List[str]:
        """
        Purge stale namespaces, then claim clients.

        Returns:
            Names of the deleted namespaces

        Raises:
            EngineStateException: If the engine is not installed
        """
        async with self._lifecycle_lock:
            if self.state != EngineState.INSTALLED:
                raise EngineStateException("activate", self.state.value)

            with tracer.start_as_current_span("offline_engine.activate") as span:
                self.state = EngineState.ACTIVATING
                deleted = await self._purge_stale_namespaces()
                span.set_attribute("deleted_namespaces", len(deleted))

                self.claim_clients()
                self.state = EngineState.ACTIVATED
                logger.info(
                    "Offline cache engine activated",
                    current=list(self.config.current_namespaces),
                    deleted=deleted,
                )
                return deleted

    async def _purge_stale_namespaces(self) -> List[str]:
        current = set(self.config.current_namespaces)
        try:
            names = await self.store.list_namespaces()
        except CacheStoreException as e:
            logger.warning("Could not list cache namespaces", error=e.message)
            return []

        stale = [name for name in names if name not in current]
        results = await asyncio.gather(
            *(self.store.delete_namespace(name) for name in stale),
            return_exceptions=True,
        )

        deleted = []
        for name, result in zip(stale, results):
            if isinstance(result, CacheStoreException):
                logger.warning(
                    "Failed to delete stale namespace", namespace=name, error=result.message
                )
                continue
            if isinstance(result, BaseException):
                raise result
            logger.info("Deleted old cache namespace", namespace=name)
            deleted.append(name)
        self.metrics.record_invalidation("namespace_purge", len(deleted))
        return deleted

    def claim_clients(self) -> None:
        """Take control of every client session without a reload."""
        self.controlling = True

    # Interception

    async def handle(self, request: InterceptedRequest) -> CachedResponse:
        """
        Produce the response for an intercepted request.

        Raises:
            NetworkUnavailableException: For uncached requests that could
                not reach the network
        """
        strategy = (
            self.classifier.classify(request)
            if self.controlling
            else CacheStrategy.NETWORK_ONLY
        )

        with tracer.start_as_current_span("offline_engine.handle") as span:
            span.set_attribute("http.method", request.method)
            span.set_attribute("http.url", request.url)
            span.set_attribute("cache.strategy", strategy.value)
            span.set_attribute("cache.controlled", self.controlling)
            try:
                response = await self._strategies[strategy].respond(request)
            except NetworkUnavailableException as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                raise
            span.set_attribute("http.status_code", response.status_code)
            return response

    def classify(self, request: InterceptedRequest) -> CacheStrategy:
        return self.classifier.classify(request)

    # Background sync

    async def sync(self, tag: str) -> int:
        """
        Handle a background sync signal.

        The card refresh tag drops every cached verification so the next
        lookup is a real network round-trip.

        Returns:
            Number of invalidated entries
        """
        with tracer.start_as_current_span("offline_engine.sync") as span:
            span.set_attribute("sync.tag", tag)
            if tag != self.config.sync_tag:
                logger.info("Ignoring unknown sync tag", tag=tag)
                return 0

            deleted = await self.store.delete_matching(
                self.config.dynamic_namespace, self.config.verify_pattern.matches_key
            )
            span.set_attribute("sync.deleted", deleted)
            self.metrics.record_invalidation("card_refresh", deleted)
            logger.info("Invalidated cached verifications", tag=tag, deleted=deleted)
            return deleted

    # Housekeeping

    def _on_background_error(self, kind: str, error: BaseException) -> None:
        self.metrics.record_background_failure(kind)

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "controlling": self.controlling,
            "skip_waiting": self.skip_waiting_requested,
            "namespaces": {
                "dynamic": self.config.dynamic_namespace.name,
                "static": self.config.static_namespace.name,
            },
            "background_tasks": self.sink.pending,
            "background_failures": self.sink.failures,
        }

    async def close(self) -> None:
        """Let pending background writes finish, then release resources."""
        await self.sink.wait_idle()
        await self.fetcher.close()
        await self.store.close()
