"""Clients for the managed run platform (Cloud Run).

Services are described (URL, latest revision, traffic split), deployed
with all traffic routed to the new revision, and given explicit splits
for rollback.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from sre_workflow.common.logging import get_logger
from sre_workflow.deploy.commands import CommandRunner
from sre_workflow.deploy.errors import CommandError
from sre_workflow.deploy.models import Revision

logger = get_logger(__name__)


@dataclass
class ServiceStatus:
    """Observed state of a service.

    Attributes:
        name: Service name
        url: Public URL
        latest_revision: Most recent ready revision
        traffic: Traffic targets in platform order
    """

    name: str
    url: str | None = None
    latest_revision: str | None = None
    traffic: list[Revision] = field(default_factory=list)

    def serving_revision(self) -> Revision | None:
        """Revision holding the largest non-zero share of traffic.

        Ties go to the target listed last.
        """
        serving = None
        for revision in self.traffic:
            if revision.percent <= 0:
                continue
            if serving is None or revision.percent >= serving.percent:
                serving = revision
        return serving

    def percent(self, revision: str | None) -> int:
        """Traffic share of a revision, 0 if it has no target."""
        return sum(r.percent for r in self.traffic if r.name == revision)


class RunPlatform(ABC):
    """Serverless run platform."""

    @abstractmethod
    def describe(self, service: str) -> ServiceStatus:
        """Fetch the current state of a service."""

    @abstractmethod
    def deploy(self, service: str, image: str) -> ServiceStatus:
        """Deploy an image and route all traffic to the new revision.

        Args:
            service: Service name
            image: Digest-pinned image reference

        Returns:
            Service state after the deploy
        """

    @abstractmethod
    def set_traffic(self, service: str, split: dict[str, int]) -> ServiceStatus:
        """Set an explicit traffic split by revision name."""


class CloudRunPlatform(RunPlatform):
    """Cloud Run through the ``gcloud run`` CLI."""

    def __init__(
        self,
        region: str,
        project: str | None = None,
        runner: CommandRunner | None = None,
    ):
        self.region = region
        self.project = project
        self.runner = runner or CommandRunner()

    def _scope(self) -> list[str]:
        args = [f"--region={self.region}", "--format=json"]
        if self.project:
            args.append(f"--project={self.project}")
        return args

    def describe(self, service: str) -> ServiceStatus:
        data = self.runner.run_json(
            ["gcloud", "run", "services", "describe", service, *self._scope()]
        )
        return parse_service(data, service)

    def deploy(self, service: str, image: str) -> ServiceStatus:
        if "@" not in image:
            raise ValueError(f"Refusing to deploy unpinned image: {image}")

        data = self.runner.run_json(
            [
                "gcloud",
                "run",
                "deploy",
                service,
                f"--image={image}",
                "--quiet",
                *self._scope(),
            ]
        )
        status = parse_service(data, service)

        # The revision exists from here on; later failures are left to the
        # caller's traffic check instead of being raised as a failed deploy.
        if not status.latest_revision or not status.url:
            try:
                status = self.describe(service)
            except CommandError as e:
                logger.warning(
                    "Could not describe service after deploy",
                    service=service,
                    error=str(e),
                )
                return status

        if status.latest_revision and status.percent(status.latest_revision) < 100:
            # Traffic pinned by an earlier rollback stays pinned across deploys.
            try:
                status = self.route_to_latest(service)
            except CommandError as e:
                logger.warning(
                    "Could not route traffic to latest revision",
                    service=service,
                    error=str(e),
                )
        return status

    def route_to_latest(self, service: str) -> ServiceStatus:
        """Send all traffic to the latest ready revision."""
        data = self.runner.run_json(
            [
                "gcloud",
                "run",
                "services",
                "update-traffic",
                service,
                "--to-latest",
                "--quiet",
                *self._scope(),
            ]
        )
        return parse_service(data, service)

    def set_traffic(self, service: str, split: dict[str, int]) -> ServiceStatus:
        targets = ",".join(f"{name}={percent}" for name, percent in split.items())
        data = self.runner.run_json(
            [
                "gcloud",
                "run",
                "services",
                "update-traffic",
                service,
                f"--to-revisions={targets}",
                "--quiet",
                *self._scope(),
            ]
        )
        return parse_service(data, service)


def parse_service(data: Any, service: str) -> ServiceStatus:
    """Build a ServiceStatus from a Cloud Run service resource.

    Args:
        data: Parsed ``--format=json`` output
        service: Service name, used when metadata is missing

    Returns:
        ServiceStatus
    """
    if isinstance(data, list):
        data = data[0] if data else {}
    data = data or {}

    status = data.get("status", {})
    latest = status.get("latestReadyRevisionName") or status.get(
        "latestCreatedRevisionName"
    )

    traffic = []
    for target in status.get("traffic", []):
        name = target.get("revisionName")
        if not name and target.get("latestRevision"):
            name = latest
        if not name:
            continue
        traffic.append(Revision(name=name, percent=int(target.get("percent", 0))))

    return ServiceStatus(
        name=data.get("metadata", {}).get("name", service),
        url=status.get("url"),
        latest_revision=latest,
        traffic=traffic,
    )
