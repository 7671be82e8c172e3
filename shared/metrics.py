"""
Shared metrics configuration for the credential refresh service.
"""

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, generate_latest
from typing import Dict, Any, Optional


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
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

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_credential_metrics()

    def _setup_credential_metrics(self):
        """Set up credential refresh metrics."""
        self._metrics["credential_lookups_total"] = Counter(
            "credential_lookups_total",
            "Credential lookups by outcome",
            ["result"],
            registry=self.registry
        )

        self._metrics["credential_refresh_total"] = Counter(
            "credential_refresh_total",
            "Credential refreshes by status",
            ["status"],
            registry=self.registry
        )

        self._metrics["credential_refresh_duration_seconds"] = Histogram(
            "credential_refresh_duration_seconds",
            "Issuer refresh duration in seconds",
            registry=self.registry
        )

        self._metrics["credential_lock_acquire_total"] = Counter(
            "credential_lock_acquire_total",
            "Refresh lock acquisition attempts by outcome",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["credential_observer_failures_total"] = Counter(
            "credential_observer_failures_total",
            "Change observers that raised while handling an event",
            registry=self.registry
        )

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

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

    def record_lookup(self, result: str):
        self._metrics["credential_lookups_total"].labels(result=result).inc()

    def record_refresh(self, status: str, duration: Optional[float] = None):
        self._metrics["credential_refresh_total"].labels(status=status).inc()
        if duration is not None:
            self._metrics["credential_refresh_duration_seconds"].observe(duration)

    def record_lock_attempt(self, outcome: str):
        self._metrics["credential_lock_acquire_total"].labels(outcome=outcome).inc()

    def record_observer_failure(self):
        self._metrics["credential_observer_failures_total"].inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
