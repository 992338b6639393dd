"""SRE Workflow CLI.

Command-line interface used by the GitHub Actions workflows and for
running the demo service locally or in the container.
"""

import json

import click
from pydantic import ValidationError

from sre_workflow.common.config import get_settings
from sre_workflow.common.logging import get_logger, setup_logging
from sre_workflow.common.metrics import get_metrics_client
from sre_workflow.deploy.cancellation import CancellationToken, cancel_on_signals
from sre_workflow.deploy.commands import CommandRunner
from sre_workflow.deploy.config import DeployConfig
from sre_workflow.deploy.errors import (
    DeployLockError,
    DigestResolutionError,
    ImageReferenceError,
    PublishError,
)
from sre_workflow.deploy.gate import evaluate_gate, load_event
from sre_workflow.deploy.models import DeployOutcome, DeployReport, ImageReference
from sre_workflow.deploy.platform import CloudRunPlatform
from sre_workflow.deploy.procedure import DeployAndRollback
from sre_workflow.deploy.publish import Publisher
from sre_workflow.deploy.registry import REGISTRIES, get_registry
from sre_workflow.deploy.report import write_outputs, write_summary

logger = get_logger(__name__)


def parse_image(value: str) -> ImageReference:
    try:
        return ImageReference.parse(value)
    except ImageReferenceError as e:
        raise click.BadParameter(str(e), param_hint="--image") from e


def finish(report: DeployReport, as_json: bool) -> int:
    """Publish a report everywhere it is consumed and return its exit code."""
    write_outputs(report)
    write_summary(report)

    settings = get_settings()
    metrics = get_metrics_client(
        enabled=settings.metrics_enabled, pushgateway_url=settings.pushgateway_url
    )
    try:
        metrics.push()
    except OSError as e:
        logger.warning("Could not push metrics", error=str(e))

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        click.echo(f"[{report.severity.upper()}] {report.summary()}")
    return report.exit_code


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """SRE workflow: demo service and deploy pipeline tooling."""
    settings = get_settings()
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        format_type=settings.log_format,
        service_name=settings.service_name,
    )


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", type=int, default=None, help="Bind port (default: $PORT or 8080)")
def serve(host: str, port: int | None) -> None:
    """Run the demo HTTP service."""
    from sre_workflow.server.launcher import run_server

    run_server(get_settings(), host=host, port=port)


@cli.command()
@click.option("--image", "-i", required=True, help="Image reference tagged with the commit SHA")
@click.option("--service", "-s", required=True, help="Cloud Run service name")
@click.option("--region", "-r", default=None, help="Cloud Run region")
@click.option("--project", "-p", default=None, help="GCP project ID")
@click.option("--config", "-c", "config_file", help="Deploy configuration file (YAML)")
@click.option("--health-path", default=None, help="Health endpoint path")
@click.option("--attempts", type=int, default=None, help="Health probe attempts")
@click.option("--timeout", type=float, default=None, help="Probe timeout in seconds")
@click.option("--delay", type=float, default=None, help="Delay between probe attempts")
@click.option("--event-path", default=None, help="GitHub event payload (default: $GITHUB_EVENT_PATH)")
@click.option("--trunk", default=None, help="Trunk branch allowed to deploy")
@click.option(
    "--registry",
    "registry_kind",
    type=click.Choice(sorted(REGISTRIES)),
    default="gcloud",
    help="Digest resolution backend",
)
@click.option("--lock-dir", default=None, help="Directory for deploy lock files")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_context
def deploy(
    ctx: click.Context,
    image: str,
    service: str,
    region: str | None,
    project: str | None,
    config_file: str | None,
    health_path: str | None,
    attempts: int | None,
    timeout: float | None,
    delay: float | None,
    event_path: str | None,
    trunk: str | None,
    registry_kind: str,
    lock_dir: str | None,
    as_json: bool,
) -> None:
    """Deploy an image by digest and roll back if it is unhealthy."""
    settings = get_settings()
    image_ref = parse_image(image)

    try:
        config = DeployConfig.from_sources(
            settings,
            service,
            config_file=config_file,
            probe_overrides={
                "path": health_path,
                "attempts": attempts,
                "timeout_seconds": timeout,
                "delay_seconds": delay,
            },
            region=region,
            project=project,
            trunk_branch=trunk,
            lock_dir=lock_dir,
        )
    except (ValidationError, ValueError, OSError) as e:
        raise click.ClickException(f"Invalid deploy configuration: {e}") from e

    decision = evaluate_gate(load_event(event_path), config.trunk_branch)
    if not decision.proceed:
        logger.info("Deploy skipped", reason=decision.reason)
        report = DeployReport(
            service=config.service,
            outcome=DeployOutcome.SKIPPED,
            image=str(image_ref),
            error=decision.reason,
        )
        ctx.exit(finish(report, as_json))

    runner = CommandRunner()
    procedure = DeployAndRollback(
        config=config,
        registry=get_registry(registry_kind, runner=runner, project=config.project),
        platform=CloudRunPlatform(config.region, project=config.project, runner=runner),
        metrics=get_metrics_client(
            enabled=settings.metrics_enabled,
            pushgateway_url=settings.pushgateway_url,
        ),
        token=CancellationToken(),
    )

    with cancel_on_signals(procedure.token):
        try:
            report = procedure.run(image_ref)
        except DeployLockError as e:
            click.echo(f"Error: {e}", err=True)
            ctx.exit(1)

    ctx.exit(finish(report, as_json))


@cli.command("resolve-digest")
@click.argument("image")
@click.option(
    "--registry",
    "registry_kind",
    type=click.Choice(sorted(REGISTRIES)),
    default="gcloud",
    help="Digest resolution backend",
)
@click.option("--project", "-p", default=None, help="GCP project ID")
def resolve_digest(image: str, registry_kind: str, project: str | None) -> None:
    """Print IMAGE pinned to its content digest."""
    registry = get_registry(registry_kind, project=project or get_settings().gcp_project_id)
    try:
        pinned = registry.resolve(parse_image(image))
    except DigestResolutionError as e:
        raise click.ClickException(str(e)) from e
    click.echo(pinned.pinned)


@cli.command()
@click.option("--image", "-i", required=True, help="Target image reference with tag")
@click.option("--context", default=".", help="Docker build context")
@click.option("--dockerfile", "-f", default=None, help="Dockerfile path")
@click.option("--key", "key_ref", default=None, help="cosign key or KMS URI (default: keyless)")
@click.option("--sbom/--no-sbom", default=True, help="Generate and attest an SBOM")
@click.option("--sbom-dir", default=None, help="Directory for the SBOM file")
@click.option(
    "--registry",
    "registry_kind",
    type=click.Choice(sorted(REGISTRIES)),
    default="gcloud",
    help="Digest resolution backend",
)
def publish(
    image: str,
    context: str,
    dockerfile: str | None,
    key_ref: str | None,
    sbom: bool,
    sbom_dir: str | None,
    registry_kind: str,
) -> None:
    """Build, push and sign an image by digest."""
    runner = CommandRunner()
    publisher = Publisher(
        registry=get_registry(
            registry_kind, runner=runner, project=get_settings().gcp_project_id
        ),
        runner=runner,
        key_ref=key_ref,
    )
    try:
        result = publisher.publish(
            parse_image(image),
            context=context,
            dockerfile=dockerfile,
            sbom=sbom,
            sbom_dir=sbom_dir,
        )
    except (PublishError, DigestResolutionError) as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Published {result.image}")
    click.echo(f"  Digest: {result.pinned}")
    click.echo(f"  Signed: {result.signed}")
    if result.sbom_path:
        click.echo(f"  SBOM: {result.sbom_path}")


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"sre-workflow v{get_settings().app_version}")


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
