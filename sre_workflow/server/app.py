"""FastAPI application for the SRE workflow demo service.

The service is the artifact that the CI/CD pipelines build, sign and
deploy. Its ``/health`` endpoint is what the deploy pipeline probes.
"""

import time
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from sre_workflow.common.config import Settings, get_settings
from sre_workflow.common.logging import get_logger
from sre_workflow.common.metrics import MetricsClient, get_metrics_client
from sre_workflow.server.stats import MEMORY_USAGE_PLACEHOLDER_MB, ServerStats

logger = get_logger(__name__)

LANDING_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>SRE Workflow Demo</title>
    <meta charset="UTF-8">
</head>
<body>
    <h1>SRE Workflow Demo Application</h1>
    <p>Demo application for validating the SRE CI/CD workflow.</p>
    <ul>
        <li><a href="/health">Health Check</a> - liveness check</li>
        <li><a href="/metrics">Metrics</a> - monitoring metrics</li>
    </ul>
    <p>Container image: signed and deployed by digest</p>
</body>
</html>"""


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str


class MetricsResponse(BaseModel):
    request_count: int
    uptime_seconds: float
    memory_usage_mb: int


def rfc3339_now() -> str:
    """Current UTC time in RFC3339 form, e.g. ``2024-01-01T00:00:00Z``."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def create_app(
    settings: Settings | None = None,
    stats: ServerStats | None = None,
    metrics: MetricsClient | None = None,
) -> FastAPI:
    """Build the demo application.

    Args:
        settings: Application settings (defaults to environment)
        stats: Request statistics holder (defaults to a fresh one)
        metrics: Prometheus metrics client

    Returns:
        Configured FastAPI app. ``app.state.stats`` exposes the counter.
    """
    settings = settings or get_settings()
    stats = stats or ServerStats()
    metrics = metrics or get_metrics_client(enabled=settings.metrics_enabled)

    app = FastAPI(
        title="SRE Workflow Demo",
        description="Demo service for the SRE CI/CD workflow",
        version=settings.app_version,
    )
    app.state.stats = stats

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        client = request.client.host if request.client else None
        logger.info(
            "Request served",
            method=request.method,
            path=request.url.path,
            client=client,
            status=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        metrics.record_http_request(request.url.path, response.status_code)
        return response

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        stats.increment()
        return HealthResponse(
            status="healthy",
            timestamp=rfc3339_now(),
            version=settings.app_version,
        )

    @app.get("/metrics", response_model=MetricsResponse)
    def service_metrics() -> MetricsResponse:
        count = stats.increment()
        return MetricsResponse(
            request_count=count,
            uptime_seconds=stats.uptime_seconds,
            memory_usage_mb=MEMORY_USAGE_PLACEHOLDER_MB,
        )

    @app.get("/", response_class=HTMLResponse)
    def root() -> HTMLResponse:
        stats.increment()
        return HTMLResponse(content=LANDING_PAGE)

    return app
