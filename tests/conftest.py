"""Shared fixtures: in-memory doubles for the registry, Cloud Run and HTTP."""

import pytest
import requests

from sre_workflow.common.metrics import MetricsClient
from sre_workflow.deploy.config import DeployConfig, ProbeConfig
from sre_workflow.deploy.errors import CommandError
from sre_workflow.deploy.models import ImageReference, Revision
from sre_workflow.deploy.platform import RunPlatform, ServiceStatus
from sre_workflow.deploy.probe import HealthProber
from sre_workflow.deploy.procedure import DeployAndRollback
from sre_workflow.deploy.registry import Registry

IMAGE = "asia-northeast1-docker.pkg.dev/demo-project/sre/app:abc123"
DIGEST = "sha256:deadbeef"
SERVICE_URL = "https://sre-demo-xyz-an.a.run.app"


class FakeRegistry(Registry):
    """Registry with a fixed tag -> digest table."""

    def __init__(self, digests: dict[str, str] | None = None):
        self.digests = {IMAGE: DIGEST} if digests is None else digests
        self.lookups: list[str] = []

    def lookup_digest(self, image: ImageReference) -> str:
        self.lookups.append(image.tagged)
        if image.tagged not in self.digests:
            raise CommandError(
                f"gcloud exited with status 1: image not found: {image.tagged}",
                argv=["gcloud"],
                returncode=1,
            )
        return self.digests[image.tagged]


class FakePlatform(RunPlatform):
    """Cloud Run double that shifts all traffic to each new revision.

    With ``pin_traffic`` the existing split is kept and the new revision
    is added at 0%, as after an explicit traffic assignment.
    """

    def __init__(
        self,
        traffic: list[Revision] | None = None,
        new_revision: str = "rev-2",
        url: str | None = SERVICE_URL,
        deploy_error: Exception | None = None,
        traffic_error: Exception | None = None,
        pin_traffic: bool = False,
    ):
        self.traffic = list(traffic or [])
        self.new_revision = new_revision
        self.url = url
        self.deploy_error = deploy_error
        self.traffic_error = traffic_error
        self.pin_traffic = pin_traffic
        self.deployed_images: list[str] = []
        self.traffic_calls: list[dict[str, int]] = []

    def _status(self, service: str) -> ServiceStatus:
        latest = self.deployed_images and self.new_revision or None
        return ServiceStatus(
            name=service,
            url=self.url,
            latest_revision=latest,
            traffic=list(self.traffic),
        )

    def describe(self, service: str) -> ServiceStatus:
        return self._status(service)

    def deploy(self, service: str, image: str) -> ServiceStatus:
        if self.deploy_error:
            raise self.deploy_error
        self.deployed_images.append(image)
        if self.pin_traffic:
            self.traffic = self.traffic + [Revision(self.new_revision, 0)]
            return self._status(service)
        others = [Revision(r.name, 0) for r in self.traffic if r.name != self.new_revision]
        self.traffic = [Revision(self.new_revision, 100)] + others
        return self._status(service)

    def set_traffic(self, service: str, split: dict[str, int]) -> ServiceStatus:
        self.traffic_calls.append(dict(split))
        if self.traffic_error:
            raise self.traffic_error
        self.traffic = [Revision(name, percent) for name, percent in split.items()]
        return self._status(service)

    def percent(self, revision: str) -> int:
        return next((r.percent for r in self.traffic if r.name == revision), 0)


class FakeResponse:
    def __init__(self, status_code: int):
        self.status_code = status_code


class FakeSession:
    """requests.Session double returning scripted statuses or errors.

    The last scripted item repeats once the script runs out.
    """

    def __init__(self, script: list):
        self.script = list(script)
        self.calls: list[tuple[str, float]] = []

    def get(self, url: str, timeout: float | None = None):
        self.calls.append((url, timeout))
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return FakeResponse(item)


@pytest.fixture
def deploy_config(tmp_path):
    """Deploy configuration with fast probes and a private lock dir."""
    return DeployConfig(
        service="sre-demo",
        region="asia-northeast1",
        project="demo-project",
        lock_timeout_seconds=0,
        lock_dir=str(tmp_path / "locks"),
        probe=ProbeConfig(path="/health", timeout_seconds=2, attempts=3, delay_seconds=0),
    )


@pytest.fixture
def disabled_metrics():
    return MetricsClient(enabled=False)


@pytest.fixture
def make_prober():
    """Factory for probers backed by a scripted session."""

    def factory(config: ProbeConfig, script: list, **kwargs) -> HealthProber:
        return HealthProber(
            config, session=FakeSession(script), sleep=lambda seconds: None, **kwargs
        )

    return factory


@pytest.fixture
def make_procedure(deploy_config, disabled_metrics, make_prober):
    """Factory wiring a procedure to fakes.

    Returns a callable ``(platform, probe_script, registry=None, token=None)``.
    """

    def factory(platform, probe_script, registry=None, token=None):
        return DeployAndRollback(
            config=deploy_config,
            registry=registry or FakeRegistry(),
            platform=platform,
            prober=make_prober(deploy_config.probe, probe_script),
            metrics=disabled_metrics,
            token=token,
        )

    return factory


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection refused")


@pytest.fixture
def image():
    return IMAGE


@pytest.fixture
def fake_registry():
    return FakeRegistry()


@pytest.fixture
def platform_factory():
    """The FakePlatform class, for tests that build their own."""
    return FakePlatform


@pytest.fixture
def two_revision_platform():
    """Service where rev-1 serves all traffic before the deploy."""
    return FakePlatform(traffic=[Revision("rev-1", 100)], new_revision="rev-2")


@pytest.fixture
def first_deploy_platform():
    """Service with no serving revision yet."""
    return FakePlatform(traffic=[], new_revision="rev-1")


@pytest.fixture
def registry_factory():
    """The FakeRegistry class, for tests with their own digest table."""
    return FakeRegistry
