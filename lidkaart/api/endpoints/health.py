"""
Health check endpoints for the Lidkaart edge cache.

Provides liveness and readiness for load balancers together with the
Prometheus exposition of the cache metrics.
"""

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
from typing import Dict, Any
import logging
import time
from datetime import datetime, timezone

from ...core.config import get_settings
from ...core.exceptions import CacheStoreException
from ...domain.cache.value_objects import EngineState
from ...services.offline import OfflineCachePolicyEngine
from ..dependencies import get_engine

# Track process start time for uptime calculation
PROCESS_START_TIME = time.time()

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["health"])
metrics_router = APIRouter(tags=["metrics"])


@router.get("/")
async def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint.

    Returns a simple health status for load balancers and monitoring systems.
    """
    settings = get_settings()
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.OTEL_SERVICE_NAME,
        "version": settings.OTEL_SERVICE_VERSION,
        "environment": settings.ENVIRONMENT,
        "uptime_seconds": round(time.time() - PROCESS_START_TIME, 2),
    }


@router.get("/ready")
async def readiness_check(
    engine: OfflineCachePolicyEngine = Depends(get_engine),
):
    """
    Readiness check endpoint.

    Ready once the engine controls requests and the cache store answers.
    """
    checks: Dict[str, Any] = {"engine": engine.status()}

    try:
        store_ok = await engine.store.ping()
        checks["cache_store"] = {"status": "healthy" if store_ok else "unhealthy"}
    except CacheStoreException as e:
        logger.warning(f"Cache store readiness check failed: {e.message}")
        store_ok = False
        checks["cache_store"] = {"status": "unhealthy", "error": e.message}

    ready = store_ok and engine.state == EngineState.ACTIVATED
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "not_ready",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": checks,
        },
    )


@metrics_router.get("/metrics")
async def metrics(
    engine: OfflineCachePolicyEngine = Depends(get_engine),
) -> Response:
    """Prometheus exposition of the cache metrics."""
    return Response(content=engine.metrics.export(), media_type=CONTENT_TYPE_LATEST)
