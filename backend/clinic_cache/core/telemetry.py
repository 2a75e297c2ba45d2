"""
OpenTelemetry Tracing Setup

Tracer provider with service resource attributes. Spans emitted by the
cache, session and invalidation services and by the instrumented Redis
client are exported through the given span exporter.
"""

import logging
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter

from .config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

SERVICE_VERSION = "0.1.0"


def create_resource(settings: Optional[Settings] = None) -> Resource:
    settings = settings or default_settings
    return Resource.create(
        {
            "service.name": settings.OTEL_SERVICE_NAME,
            "service.version": SERVICE_VERSION,
            "deployment.environment": settings.ENVIRONMENT,
        }
    )


def configure_tracing(
    settings: Optional[Settings] = None,
    exporter: Optional[SpanExporter] = None,
    set_global: bool = True,
) -> TracerProvider:
    """
    Build the tracer provider.

    Args:
        settings: Settings providing service name and environment
        exporter: Span exporter; without one spans are recorded but not exported
        set_global: Install the provider as the global tracer provider

    Returns:
        Configured TracerProvider
    """
    provider = TracerProvider(resource=create_resource(settings))
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))

    if set_global:
        trace.set_tracer_provider(provider)
        logger.info(
            "OpenTelemetry tracing configured",
            extra={"exporter": type(exporter).__name__ if exporter else None},
        )
    return provider
