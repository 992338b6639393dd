"""Prometheus metrics utilities."""

from functools import lru_cache

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    push_to_gateway,
    start_http_server,
)


REGISTRY = CollectorRegistry()

DEPLOY_OUTCOMES = Counter(
    "sre_deploy_outcomes_total",
    "Deploy-and-rollback runs by final outcome",
    ["service", "outcome"],
    registry=REGISTRY,
)

DEPLOY_DURATION = Histogram(
    "sre_deploy_duration_seconds",
    "Wall time of a deploy-and-rollback run",
    ["service"],
    buckets=[5, 15, 30, 60, 120, 300, 600],
    registry=REGISTRY,
)

PROBE_ATTEMPTS = Counter(
    "sre_probe_attempts_total",
    "Health probe attempts",
    ["service", "result"],  # result: healthy or unhealthy
    registry=REGISTRY,
)

ROLLBACKS = Counter(
    "sre_rollbacks_total",
    "Traffic rollbacks issued after a failed probe",
    ["service", "status"],
    registry=REGISTRY,
)

HTTP_REQUESTS = Counter(
    "sre_demo_http_requests_total",
    "Requests served by the demo service",
    ["path", "status"],
    registry=REGISTRY,
)


class MetricsClient:
    """Client for recording metrics."""

    def __init__(
        self,
        enabled: bool = True,
        pushgateway_url: str | None = None,
        port: int = 9090,
    ):
        self.enabled = enabled
        self.pushgateway_url = pushgateway_url
        self.port = port
        self._started = False

    def start_server(self) -> None:
        """Start the Prometheus metrics server for the demo service."""
        if self.enabled and not self._started:
            start_http_server(self.port, registry=REGISTRY)
            self._started = True

    def record_deploy(self, service: str, outcome: str, duration: float) -> None:
        """Record a finished deploy run.

        Args:
            service: Cloud Run service name
            outcome: Final outcome value
            duration: Run duration in seconds
        """
        if not self.enabled:
            return

        DEPLOY_OUTCOMES.labels(service=service, outcome=outcome).inc()
        DEPLOY_DURATION.labels(service=service).observe(duration)

    def record_probe_attempt(self, service: str, healthy: bool) -> None:
        if self.enabled:
            result = "healthy" if healthy else "unhealthy"
            PROBE_ATTEMPTS.labels(service=service, result=result).inc()

    def record_rollback(self, service: str, succeeded: bool) -> None:
        if self.enabled:
            status = "succeeded" if succeeded else "failed"
            ROLLBACKS.labels(service=service, status=status).inc()

    def record_http_request(self, path: str, status: int) -> None:
        if self.enabled:
            HTTP_REQUESTS.labels(path=path, status=str(status)).inc()

    def push(self, job: str = "sre-workflow-deploy") -> bool:
        """Push the pipeline registry to a Pushgateway.

        Pipeline runs are short-lived, so their metrics are pushed rather
        than scraped.

        Args:
            job: Pushgateway job label

        Returns:
            True if metrics were pushed
        """
        if not self.enabled or not self.pushgateway_url:
            return False
        push_to_gateway(self.pushgateway_url, job=job, registry=REGISTRY)
        return True


@lru_cache
def get_metrics_client(
    enabled: bool = True, pushgateway_url: str | None = None, port: int = 9090
) -> MetricsClient:
    """Get cached metrics client.

    Args:
        enabled: Whether metrics are enabled
        pushgateway_url: Optional Pushgateway address
        port: Metrics server port

    Returns:
        MetricsClient instance
    """
    return MetricsClient(enabled=enabled, pushgateway_url=pushgateway_url, port=port)
