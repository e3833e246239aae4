"""
Shared metrics configuration for the geolocation caching proxy.
"""

from typing import Dict, Any, Optional
import time
from contextlib import contextmanager

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)


class MetricsCollector:
    """Centralized metrics collector for services.

    Every collector owns its own registry unless one is supplied, so several
    service instances (tests, workers) never collide on metric names.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        if self.service_name == "geoproxy":
            self._setup_proxy_metrics()

    def _setup_proxy_metrics(self):
        """Set up caching proxy metrics."""
        self._metrics["queries_total"] = Counter(
            "geoproxy_queries_total",
            "The total number of queries processed",
            registry=self.registry
        )

        self._metrics["queries_forwarded_total"] = Counter(
            "geoproxy_queries_forwarded_total",
            "The total number of queries forwarded to the upstream lookup service",
            registry=self.registry
        )

        self._metrics["queries_cached_total"] = Counter(
            "geoproxy_queries_cached_total",
            "The total number of queries that have been cached locally",
            registry=self.registry
        )

        self._metrics["queries_in_cache"] = Gauge(
            "geoproxy_queries_in_cache",
            "The current number of unique queries in the cache",
            registry=self.registry
        )

        self._metrics["cache_hits_total"] = Counter(
            "geoproxy_cache_hits_total",
            "The total number of times the cache has served a request",
            registry=self.registry
        )

        self._metrics["cache_misses_total"] = Counter(
            "geoproxy_cache_misses_total",
            "The total number of lookups not answered from the cache",
            registry=self.registry
        )

        self._metrics["cache_evictions_total"] = Counter(
            "geoproxy_cache_evictions_total",
            "The total number of expired records removed from the cache",
            registry=self.registry
        )

        self._metrics["successful_queries_total"] = Counter(
            "geoproxy_successful_queries_total",
            "The total number of successfully fulfilled queries",
            registry=self.registry
        )

        self._metrics["failed_queries_total"] = Counter(
            "geoproxy_failed_queries_total",
            "The total number of failed queries",
            registry=self.registry
        )

        self._metrics["handler_requests_total"] = Counter(
            "geoproxy_handler_requests_total",
            "Total number of requests by HTTP status code",
            ["code"],
            registry=self.registry
        )

        self._metrics["upstream_request_duration_seconds"] = Histogram(
            "geoproxy_upstream_request_duration_seconds",
            "Upstream lookup duration in seconds",
            ["operation"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def render(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry)

    def _child(self, metric_name: str, labels: Dict[str, Any]):
        metric = self._metrics[metric_name]
        if labels:
            return metric.labels(**labels)
        return metric

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            if operation_name in self._metrics:
                self._child(operation_name, labels).observe(duration)

    def increment_counter(self, metric_name: str, amount: float = 1, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._child(metric_name, labels).inc(amount)

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            self._child(metric_name, labels).set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            self._child(metric_name, labels).observe(value)

    def sample(self, metric_name: str, **labels) -> Optional[float]:
        """Current value of a counter or gauge, mainly for introspection."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return None
        for family in metric.collect():
            for sample in family.samples:
                if sample.name.endswith("_created"):
                    continue
                if all(sample.labels.get(k) == str(v) for k, v in labels.items()):
                    return sample.value
        return None


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
