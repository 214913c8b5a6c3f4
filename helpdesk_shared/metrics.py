"""
Shared metrics configuration for the helpdesk portal.
"""

from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram


class NullMetrics:
    """No-op collector used when no metrics sink is configured."""

    def increment_counter(self, metric_name: str, **labels) -> None:
        return None

    def observe_histogram(self, metric_name: str, value: float, **labels) -> None:
        return None


class MetricsCollector:
    """Prometheus collector for cache and request gateway metrics."""

    def __init__(self, service_name: str = "portal", registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up cache and HTTP metrics."""
        self._metrics["portal_cache_requests_total"] = Counter(
            "portal_cache_requests_total",
            "Cache lookups by namespace and result",
            ["namespace", "result"],
            registry=self.registry
        )

        self._metrics["portal_http_attempts_total"] = Counter(
            "portal_http_attempts_total",
            "Request gateway attempts by outcome",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["portal_http_request_duration_seconds"] = Histogram(
            "portal_http_request_duration_seconds",
            "Request gateway call duration in seconds, retries included",
            ["method"],
            registry=self.registry
        )

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).observe(value)

    def sample(self, metric_name: str, **labels) -> Optional[float]:
        """Read back the current value of a labelled sample (``_total`` for counters)."""
        return self.registry.get_sample_value(metric_name, labels or None)


def get_metrics_collector(service_name: str = "portal",
                          registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for the portal."""
    return MetricsCollector(service_name, registry)
