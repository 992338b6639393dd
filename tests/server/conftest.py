"""Pytest fixtures for demo server tests."""

import pytest
from fastapi.testclient import TestClient

from sre_workflow.common.config import Settings
from sre_workflow.common.metrics import MetricsClient
from sre_workflow.server.app import create_app
from sre_workflow.server.stats import ServerStats


@pytest.fixture
def settings():
    return Settings(app_version="2.3.4", metrics_enabled=False, _env_file=None)


@pytest.fixture
def stats():
    return ServerStats()


@pytest.fixture
def client(settings, stats):
    """Test client around a fresh app instance."""
    app = create_app(settings, stats=stats, metrics=MetricsClient(enabled=False))
    return TestClient(app)
