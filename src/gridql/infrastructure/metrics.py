"""Prometheus metrics for the query engine and function sandbox."""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    start_http_server,
)


class MetricsRegistry:
    """Registry of all gridql metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Query metrics
        self.queries_total = Counter(
            "gridql_queries_total",
            "Total number of queries executed",
            ["status"],  # success, error
            registry=self._registry,
        )

        self.query_latency_seconds = Histogram(
            "gridql_query_latency_seconds",
            "Query latency in seconds",
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self._registry,
        )

        self.query_rows_returned = Histogram(
            "gridql_query_rows_returned",
            "Rows returned per query",
            buckets=(0, 1, 10, 100, 1000, 10000, 100000),
            registry=self._registry,
        )

        # Function metrics
        self.function_calls_total = Counter(
            "gridql_function_calls_total",
            "Total number of sandboxed function calls",
            ["status"],  # success, error, timeout
            registry=self._registry,
        )

        self.function_latency_seconds = Histogram(
            "gridql_function_latency_seconds",
            "Function call latency in seconds",
            buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self._registry,
        )

        self.function_timeouts_total = Counter(
            "gridql_function_timeouts_total",
            "Total number of function calls stopped by the wall-clock budget",
            registry=self._registry,
        )

        self.projection_errors_total = Counter(
            "gridql_projection_errors_total",
            "Function projection cells set to null after an error",
            registry=self._registry,
        )

        self.compile_cache_total = Counter(
            "gridql_compile_cache_total",
            "Compiled-unit cache lookups",
            ["result"],  # hit, miss
            registry=self._registry,
        )

        # Engine info
        self.info = Info(
            "gridql_engine",
            "Query engine information",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up Prometheus metrics server.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from gridql import __version__
    _metrics.info.info({
        "version": __version__,
    })

    # Start HTTP server for Prometheus scraping
    start_http_server(port, registry=registry or REGISTRY)

    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
