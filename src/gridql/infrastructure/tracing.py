"""OpenTelemetry tracing for queries, function calls and formulas."""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Any, Callable, Generator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode

# Span attributes hold query text and formulas; keep them bounded
MAX_ATTRIBUTE_LENGTH = 512

_tracer: trace.Tracer | None = None


def setup_tracing(
    service_name: str = "gridql",
    otlp_endpoint: str | None = None,
    console_export: bool = False,
) -> trace.Tracer:
    """
    Set up OpenTelemetry tracing.

    Args:
        service_name: Name of the service for tracing
        otlp_endpoint: OTLP collector endpoint (e.g., "http://localhost:4317")
        console_export: Whether to also export to console (for debugging)

    Returns:
        Configured tracer instance
    """
    global _tracer

    from gridql import __version__

    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name, "service.version": __version__})
    )
    if otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer("gridql")
    return _tracer


def get_tracer() -> trace.Tracer:
    """Get the global tracer instance."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer("gridql")
    return _tracer


def span_value(value: Any) -> Any:
    """
    Convert a value to something a span attribute accepts.

    Args:
        value: Attribute value (query text, counts, names)

    Returns:
        Numbers and booleans unchanged, anything else as text of at most
        ``MAX_ATTRIBUTE_LENGTH`` characters
    """
    if isinstance(value, (bool, int, float)):
        return value
    text = str(value)
    if len(text) > MAX_ATTRIBUTE_LENGTH:
        return text[:MAX_ATTRIBUTE_LENGTH] + "..."
    return text


def mark_error(span: trace.Span, error: Exception) -> None:
    """
    Record a returned (not raised) engine error on a span.

    Args:
        span: The active span
        error: The error placed on the query or function result
    """
    span.set_attribute("error.kind", getattr(error, "kind", type(error).__name__))
    span.set_status(Status(StatusCode.ERROR, str(error)))


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """
    Context manager for creating a trace span.

    Exceptions escaping the block are recorded on the span and re-raised.

    Args:
        name: Name of the span
        attributes: Optional attributes to add to the span; None values are skipped

    Yields:
        The created span
    """
    with get_tracer().start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, span_value(value))
        yield span


def trace_function(
    name: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator for tracing a function.

    Args:
        name: Optional span name (defaults to the function's qualified name)
        attributes: Optional attributes to add to the span

    Returns:
        A decorator that runs the wrapped function inside a span
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        span_name = name or func.__qualname__

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with trace_span(span_name, attributes):
                return func(*args, **kwargs)

        return wrapper

    return decorator
