"""
Lidkaart Edge - Main FastAPI Application

Edge proxy in front of the membership API applying the offline cache
policy to every request:
- NetworkFirst for public card verification (offline = NIET_ACTUEEL)
- StaleWhileRevalidate for static assets
- NetworkOnly for everything else
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
import structlog

from .constants import APP_NAME, APP_VERSION
from .core.config import Settings, get_settings
from .core.exceptions import InstallationError
from .core.logging import configure_logging
from .core.telemetry import configure_tracing, shutdown_tracing
from .api.dependencies import build_engine
from .api.endpoints.health import router as health_router, metrics_router
from .api.endpoints.lifecycle import router as lifecycle_router
from .api.endpoints.proxy import router as proxy_router
from .services.offline import OfflineCachePolicyEngine

# Configure structured logging
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: install and activate the engine, then clean up."""
    settings: Settings = app.state.settings
    engine: OfflineCachePolicyEngine = app.state.engine

    logger.info(
        "Starting Lidkaart edge cache",
        version=APP_VERSION,
        environment=settings.ENVIRONMENT,
        upstream=settings.UPSTREAM_URL,
        cache_backend=settings.CACHE_BACKEND,
    )

    if settings.AUTO_INSTALL:
        try:
            await engine.install()
            await engine.activate()
        except InstallationError as e:
            # Keep serving: an uninstalled engine passes requests through
            logger.error(
                "Offline cache engine not installed, running pass-through",
                error=e.message,
                details=e.details,
            )

    yield

    logger.info("Shutting down Lidkaart edge cache")
    try:
        await engine.close()
    except Exception as e:
        logger.error("Error during engine shutdown", error=str(e))
    finally:
        shutdown_tracing()


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[OfflineCachePolicyEngine] = None,
) -> FastAPI:
    """Create the edge application, optionally around a prepared engine."""
    settings = settings or get_settings()
    configure_logging(settings)
    configure_tracing(settings)

    app = FastAPI(
        title=f"{APP_NAME} API",
        description="Offline cache policy engine for the digital membership card",
        version=APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine or build_engine(settings)
    app.state.startup_time = datetime.now(timezone.utc)

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(lifecycle_router)
    # Catch-all: must stay last
    app.include_router(proxy_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "lidkaart.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
