"""
Engine lifecycle endpoints.

Lets the hosting environment drive install/activate, dispatch background
sync tags and post client messages, mirroring the events a browser
delivers to a service worker.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from ...core.exceptions import (
    CacheStoreException,
    EngineStateException,
    InstallationError,
    OfflineCacheHTTPException,
)
from ...services.offline import OfflineCachePolicyEngine
from ..dependencies import get_engine

router = APIRouter(prefix="/_sw", tags=["lifecycle"])


class EngineMessage(BaseModel):
    """Client message posted to the engine."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="Message type, e.g. SKIP_WAITING")


@router.get("/state")
async def engine_state(
    engine: OfflineCachePolicyEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Current lifecycle state of the engine."""
    return engine.status()


@router.post("/install")
async def install(
    engine: OfflineCachePolicyEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Pre-cache the static asset manifest."""
    try:
        cached = await engine.install()
    except InstallationError as e:
        raise OfflineCacheHTTPException(e, status_code=status.HTTP_502_BAD_GATEWAY)
    except EngineStateException as e:
        raise OfflineCacheHTTPException(e, status_code=status.HTTP_409_CONFLICT)
    return {"state": engine.state.value, "cached_assets": cached}


@router.post("/activate")
async def activate(
    engine: OfflineCachePolicyEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Purge stale namespaces and take control of clients."""
    try:
        deleted = await engine.activate()
    except EngineStateException as e:
        raise OfflineCacheHTTPException(e, status_code=status.HTTP_409_CONFLICT)
    return {"state": engine.state.value, "deleted_namespaces": deleted}


@router.post("/sync/{tag}")
async def sync(
    tag: str,
    engine: OfflineCachePolicyEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Dispatch a background sync tag."""
    try:
        deleted = await engine.sync(tag)
    except CacheStoreException as e:
        # 503 lets the caller retry the sync later
        raise OfflineCacheHTTPException(e, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return {"tag": tag, "invalidated": deleted}


@router.post("/message")
async def post_message(
    message: EngineMessage,
    engine: OfflineCachePolicyEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Post a client message (``{"type": "SKIP_WAITING"}``)."""
    handled = engine.post_message(message.model_dump())
    return {"handled": handled, "skip_waiting": engine.skip_waiting_requested}
