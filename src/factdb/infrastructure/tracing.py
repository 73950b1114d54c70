"""OpenTelemetry tracing configuration.

Spans are named ``factdb.<operation>`` and their attributes are namespaced
the same way, so a transaction shows up as::

    factdb.transact  {factdb.database: "tutorial", factdb.tx_id: 1008, factdb.datoms: 7}
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter


SPAN_PREFIX = "factdb"

_tracer: trace.Tracer | None = None


def setup_tracing(
    service_name: str = "factdb",
    otlp_endpoint: str | None = None,
    console_export: bool = False,
) -> trace.Tracer:
    """
    Install a tracer provider for the fact database.

    Args:
        service_name: Name of the service for tracing
        otlp_endpoint: OTLP collector endpoint (e.g., "http://localhost:4317")
        console_export: Print finished spans, for a REPL session

    Returns:
        Configured tracer instance
    """
    global _tracer

    from factdb import __version__

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
    _tracer = trace.get_tracer(service_name)
    return _tracer


def get_tracer() -> trace.Tracer:
    """Get the global tracer instance."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(SPAN_PREFIX)
    return _tracer


@contextmanager
def trace_span(
    operation: str,
    database: str | None = None,
    **attributes: Any,
) -> Generator[DatabaseSpan, None, None]:
    """
    Context manager for tracing one database operation.

    Args:
        operation: Operation name, e.g. ``transact``
        database: Name of the database the operation runs against
        **attributes: Span attributes, namespaced under ``factdb.``

    Yields:
        The span, wrapped so later attributes get the same namespace
    """
    with get_tracer().start_as_current_span(f"{SPAN_PREFIX}.{operation}") as span:
        wrapped = DatabaseSpan(span)
        if database is not None:
            wrapped.set("database", database)
        for key, value in attributes.items():
            wrapped.set(key, value)
        yield wrapped


class DatabaseSpan:
    """A span whose attribute keys live under the ``factdb.`` namespace."""

    def __init__(self, span: trace.Span) -> None:
        self.span = span

    def set(self, key: str, value: Any) -> None:
        self.span.set_attribute(f"{SPAN_PREFIX}.{key}", value)
