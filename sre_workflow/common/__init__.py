"""Common utilities module."""

from sre_workflow.common.config import Settings, get_settings
from sre_workflow.common.logging import setup_logging, get_logger
from sre_workflow.common.metrics import MetricsClient, get_metrics_client

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "get_logger",
    "MetricsClient",
    "get_metrics_client",
]
