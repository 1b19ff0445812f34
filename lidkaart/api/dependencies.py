"""
Engine wiring for the HTTP adapter.

Builds the cache store, fetcher and policy engine from settings and
exposes the running engine to route handlers.
"""

import logging

from fastapi import Request

from ..core.config import Settings
from ..domain.cache.repository_interfaces import CacheStore
from ..infrastructure.cache import InMemoryCacheStore, RedisCacheStore
from ..infrastructure.network import HttpxFetcher
from ..services.offline import EngineConfig, OfflineCachePolicyEngine

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> CacheStore:
    """Create the configured cache store backend."""
    if settings.CACHE_BACKEND == "redis":
        logger.info(f"Using Redis cache store at {settings.REDIS_URL}")
        return RedisCacheStore.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            key_prefix=settings.CACHE_PREFIX,
        )
    logger.info("Using in-memory cache store")
    return InMemoryCacheStore()


def build_engine(settings: Settings) -> OfflineCachePolicyEngine:
    """Create a policy engine fronting the configured upstream."""
    return OfflineCachePolicyEngine(
        store=build_store(settings),
        fetcher=HttpxFetcher(timeout=settings.UPSTREAM_TIMEOUT_SECONDS),
        config=EngineConfig.from_settings(settings),
    )


def get_engine(request: Request) -> OfflineCachePolicyEngine:
    """FastAPI dependency returning the application's engine."""
    return request.app.state.engine
