"""Infrastructure layer - cross-cutting concerns."""

from factdb.infrastructure.config import FactDBConfig, get_config
from factdb.infrastructure.logging import get_logger, setup_logging
from factdb.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from factdb.infrastructure.tracing import get_tracer, setup_tracing, trace_span

__all__ = [
    "FactDBConfig",
    "get_config",
    "setup_logging",
    "get_logger",
    "setup_metrics",
    "get_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
    "trace_span",
]
