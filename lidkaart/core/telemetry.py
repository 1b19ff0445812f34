"""
Lidkaart OpenTelemetry Setup

Tracer provider configuration for the edge cache. Spans are created by
the policy engine and the cache stores through ``trace.get_tracer``; exporting
is only enabled when an OTLP endpoint is configured.
"""

import os
import logging
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .config import Settings

logger = logging.getLogger(__name__)

_provider: Optional[TracerProvider] = None


def configure_tracing(settings: Settings) -> TracerProvider:
    """Install a tracer provider carrying the service resource attributes."""
    global _provider
    if _provider is not None:
        return _provider

    resource = Resource.create(
        {
            "service.name": settings.OTEL_SERVICE_NAME,
            "service.version": settings.OTEL_SERVICE_VERSION,
            "deployment.environment": settings.ENVIRONMENT,
        }
    )
    provider = TracerProvider(resource=resource)

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter,
        )

        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
        logger.info(f"OTLP span export enabled: {endpoint}")

    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def shutdown_tracing() -> None:
    """Flush and shut down the tracer provider."""
    global _provider
    if _provider is not None:
        _provider.shutdown()
        _provider = None
