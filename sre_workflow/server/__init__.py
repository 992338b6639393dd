"""Demo HTTP service.

This module provides the FastAPI application that the CI/CD
pipelines build, sign, deploy and health-probe.
"""

from sre_workflow.server.app import (
    HealthResponse,
    MetricsResponse,
    create_app,
)
from sre_workflow.server.launcher import run_server
from sre_workflow.server.stats import ServerStats

__all__ = [
    "HealthResponse",
    "MetricsResponse",
    "create_app",
    "run_server",
    "ServerStats",
]
