"""
Distributed Tracing with OpenTelemetry.

Off unless TRACING_ENABLED is set. When on, HTTP requests and database
queries are instrumented automatically and realtime-mirror calls get
their own spans through mirror_span.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import UUID

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, StatusCode

from app.config import settings

# Routes left out of request tracing
EXCLUDED_URLS = "health,metrics"

tracer = trace.get_tracer("keyhub")


def setup_tracing() -> None:
    """Install an OTLP-exporting tracer provider."""
    if not settings.tracing_enabled:
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.api_version,
            "deployment.environment": settings.environment,
            "keyhub.mirror.enabled": settings.mirror_enabled,
        }
    )

    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)


def instrument_fastapi(app: Any) -> None:
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)


def instrument_sqlalchemy(engine: Any) -> None:
    """Trace queries on an async engine (instrumented through its sync core)."""
    if not settings.tracing_enabled:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


@contextmanager
def mirror_span(operation: str, key_id: UUID) -> Iterator[Span]:
    """
    Span around one realtime-mirror call.

    Usage:
        with mirror_span("push", record.id) as span:
            ...
            mark_failed(span, error.message)
    """
    with tracer.start_as_current_span(f"mirror.{operation}") as span:
        span.set_attribute("keyhub.mirror.operation", operation)
        span.set_attribute("keyhub.key_id", str(key_id))
        yield span


def mark_failed(span: Span, description: str) -> None:
    """Flag a span whose failure was handled rather than raised."""
    span.set_status(StatusCode.ERROR, description)
