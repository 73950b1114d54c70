"""Prometheus metrics for the fact database."""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)


class MetricsRegistry:
    """Registry of all fact database metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Transaction metrics
        self.transactions_total = Counter(
            "factdb_transactions_total",
            "Total number of transactions",
            ["status"],  # committed, rejected
            registry=self._registry,
        )

        self.datoms_written_total = Counter(
            "factdb_datoms_written_total",
            "Total datoms written, including retractions of replaced values",
            registry=self._registry,
        )

        self.transaction_latency_seconds = Histogram(
            "factdb_transaction_latency_seconds",
            "Transaction latency in seconds",
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
            registry=self._registry,
        )

        # Query metrics
        self.queries_total = Counter(
            "factdb_queries_total",
            "Total number of queries evaluated",
            ["status"],  # success, error
            registry=self._registry,
        )

        self.query_latency_seconds = Histogram(
            "factdb_query_latency_seconds",
            "Query latency in seconds",
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
            registry=self._registry,
        )

        self.query_result_size = Histogram(
            "factdb_query_result_size",
            "Number of results returned by a query",
            buckets=(0, 1, 10, 100, 1000, 10000, 100000),
            registry=self._registry,
        )

        # Store gauges
        self.attributes_declared = Gauge(
            "factdb_attributes_declared",
            "Number of declared attributes",
            ["database"],
            registry=self._registry,
        )

        self.entities = Gauge(
            "factdb_entities",
            "Number of entities holding at least one fact",
            ["database"],
            registry=self._registry,
        )

        self.info = Info(
            "factdb",
            "Fact database information",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up the Prometheus scrape endpoint.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from factdb import __version__
    _metrics.info.info({"version": __version__})

    start_http_server(port, registry=registry or REGISTRY)

    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
