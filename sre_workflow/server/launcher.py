"""uvicorn launcher for the demo service."""

import uvicorn

from sre_workflow.common.config import Settings, get_settings
from sre_workflow.common.logging import get_logger, setup_logging
from sre_workflow.common.metrics import get_metrics_client
from sre_workflow.server.app import create_app

logger = get_logger(__name__)

# Keep-alive for idle connections, in seconds.
IDLE_TIMEOUT = 60


def run_server(
    settings: Settings | None = None,
    host: str = "0.0.0.0",
    port: int | None = None,
) -> None:
    """Run the demo service until interrupted.

    Args:
        settings: Application settings (defaults to environment)
        host: Bind address
        port: Bind port, overriding ``PORT``
    """
    settings = settings or get_settings()
    port = port or settings.port

    metrics = get_metrics_client(
        enabled=settings.metrics_enabled, port=settings.metrics_port
    )
    metrics.start_server()

    app = create_app(settings, metrics=metrics)

    logger.info(
        "Starting SRE workflow demo server",
        host=host,
        port=port,
        version=settings.app_version,
        metrics_port=settings.metrics_port if settings.metrics_enabled else None,
    )
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
        access_log=False,
        timeout_keep_alive=IDLE_TIMEOUT,
    )


def main() -> None:
    """Container entrypoint."""
    settings = get_settings()
    setup_logging(
        level=settings.log_level,
        format_type=settings.log_format,
        service_name=settings.service_name,
    )
    run_server(settings)


if __name__ == "__main__":
    main()
