"""OpenTelemetry tracing for feed aggregation and batch resolution.

A single feed fetch fans out into many secondary lookups; spans make that
fan-out visible. ``feed.user`` and ``feed.social`` wrap a fetch and
``batch.resolve`` wraps each batched lookup set.

Spans are created against the global tracer provider. Exporters are attached
only when ``settings.enable_tracing`` is set: OTLP over gRPC when
``settings.otlp_endpoint`` is configured, the console otherwise.

Usage:
    ```python
    from decentra.telemetry import get_tracer, traced_span

    tracer = get_tracer(__name__)

    with traced_span(tracer, "feed.user", {"feed.limit": 10}) as span:
        ...
    ```
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode, Tracer
from opentelemetry.trace.span import Span

from decentra.config import settings
from decentra.logging import get_log_context, logger
from decentra.result import Result

_tracer_provider: TracerProvider | None = None


def initialize_telemetry() -> None:
    """Install the global tracer provider once per process.

    Raises:
        ValueError: If the OTLP exporter cannot be built for the endpoint
    """
    global _tracer_provider

    if _tracer_provider is not None:
        return

    resource = Resource.create(
        {
            "service.name": os.getenv("OTEL_SERVICE_NAME", "decentra-client"),
            "service.version": "0.1.0",
            "deployment.environment": settings.environment.value,
            "decentra.backend": settings.backend_canister_id,
        }
    )
    provider = TracerProvider(resource=resource)

    if settings.enable_tracing and settings.otlp_endpoint:
        try:
            exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        except Exception as e:
            raise ValueError(f"Invalid OTLP endpoint: {settings.otlp_endpoint}") from e
        provider.add_span_processor(BatchSpanProcessor(exporter))
        logger.info(f"Exporting spans to {settings.otlp_endpoint}")
    elif settings.enable_tracing:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.debug("Exporting spans to the console")

    trace.set_tracer_provider(provider)
    _tracer_provider = provider


def get_tracer(name: str) -> Tracer:
    initialize_telemetry()
    return trace.get_tracer(name)


def add_span_attributes(span: Span, attributes: dict[str, Any]) -> None:
    """Set attributes on ``span``, skipping ``None`` and stringifying containers."""
    for key, value in attributes.items():
        if value is None:
            continue
        if isinstance(value, (list, dict)):
            value = str(value)
        span.set_attribute(key, value)


def mark_result(span: Span, result: Result[Any, Any]) -> None:
    """Flag ``span`` as failed when an operation returned ``Err``."""
    if not result.ok:
        span.set_status(Status(StatusCode.ERROR, str(result.error)))


@contextmanager
def traced_span(
    tracer: Tracer, name: str, attributes: dict[str, Any] | None = None
) -> Iterator[Span]:
    """Start a span carrying the current session log context.

    Unexpected exceptions are recorded on the span and re-raised.
    """
    with tracer.start_as_current_span(name, record_exception=False) as span:
        add_span_attributes(
            span,
            {f"session.{key}": value for key, value in get_log_context().items()},
        )
        add_span_attributes(span, attributes or {})
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise


__all__ = [
    "initialize_telemetry",
    "get_tracer",
    "add_span_attributes",
    "mark_result",
    "traced_span",
]
