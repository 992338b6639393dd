"""Deploy-and-rollback procedure.

Deploys an already built and signed image to a Cloud Run service by
digest, probes its health endpoint, and moves traffic back to the
previously serving revision when the probe fails.

Steps run strictly in order:

1. resolve the tag to a digest (fatal on failure, nothing mutated)
2. record the revision serving traffic before the deploy
3. deploy the digest with all traffic on the new revision (fatal on
   failure, no traffic shifted)
4. resolve the service URL and check the new revision holds 100%
5. probe the health path with a bounded retry budget
6. on probe failure, set previous=100 / new=0 if there is a previous
"""

import time

from sre_workflow.common.logging import get_logger
from sre_workflow.common.metrics import MetricsClient, get_metrics_client
from sre_workflow.deploy.cancellation import CancellationToken
from sre_workflow.deploy.config import DeployConfig
from sre_workflow.deploy.errors import (
    CommandError,
    DeployCancelled,
    DeployError,
    DigestResolutionError,
    ProbeFailure,
    RollbackFailure,
)
from sre_workflow.deploy.lock import service_lock
from sre_workflow.deploy.models import (
    DeployOutcome,
    DeployReport,
    ImageReference,
    ProbeResult,
)
from sre_workflow.deploy.platform import RunPlatform, ServiceStatus
from sre_workflow.deploy.probe import HealthProber
from sre_workflow.deploy.registry import Registry

logger = get_logger(__name__)


class DeployAndRollback:
    """Runs the deploy-and-rollback procedure for one service.

    Args:
        config: Deploy configuration
        registry: Resolves tags to digests
        platform: Cloud Run client
        prober: Health prober (defaults to one built from config.probe)
        metrics: Metrics client
        token: Cancellation token checked before any mutation
    """

    def __init__(
        self,
        config: DeployConfig,
        registry: Registry,
        platform: RunPlatform,
        prober: HealthProber | None = None,
        metrics: MetricsClient | None = None,
        token: CancellationToken | None = None,
    ):
        self.config = config
        self.registry = registry
        self.platform = platform
        self.metrics = metrics or get_metrics_client()
        self.prober = prober or HealthProber(
            config.probe,
            on_attempt=lambda _, healthy: self.metrics.record_probe_attempt(
                config.service, healthy
            ),
        )
        self.token = token or CancellationToken()
        self.log = logger.bind(service=config.service, region=config.region)

    def run(self, image: ImageReference | str) -> DeployReport:
        """Execute the procedure under the per-service lock.

        Args:
            image: Image reference, usually tagged with the commit SHA

        Returns:
            DeployReport; terminal failures are reported, not raised

        Raises:
            DeployLockError: If another run holds the service lock
        """
        if isinstance(image, str):
            image = ImageReference.parse(image)

        start = time.monotonic()
        lock_key = f"{self.config.project or '-'}/{self.config.region}/{self.config.service}"
        with service_lock(
            lock_key,
            timeout_seconds=self.config.lock_timeout_seconds,
            lock_dir=self.config.lock_dir,
        ):
            report = self._execute(image)

        report.duration_seconds = time.monotonic() - start
        self.metrics.record_deploy(
            self.config.service, report.outcome.value, report.duration_seconds
        )

        log = self.log.bind(
            outcome=report.outcome.value,
            severity=report.severity,
            digest=report.digest,
            new_revision=report.new_revision,
            previous_revision=report.previous_revision,
        )
        if report.outcome == DeployOutcome.ROLLBACK_FAILED:
            log.critical("Deploy finished", summary=report.summary())
        elif report.succeeded:
            log.info("Deploy finished", summary=report.summary())
        else:
            log.error("Deploy finished", summary=report.summary())

        return report

    def _execute(self, image: ImageReference) -> DeployReport:
        report = DeployReport(
            service=self.config.service,
            outcome=DeployOutcome.SUCCEEDED,
            image=str(image),
        )

        try:
            self._check_cancelled()
            pinned = self.registry.resolve(image)
            report.digest = pinned.digest
            report.events.append(f"resolved {image.tagged} to {pinned.digest}")

            previous = self._record_previous()
            report.previous_revision = previous
            report.events.append(f"serving before deploy: {previous or 'none'}")

            self._check_cancelled()
            status = self._deploy(pinned)
        except DeployCancelled as e:
            report.outcome = DeployOutcome.CANCELLED
            report.error = str(e)
            return report
        except DigestResolutionError as e:
            report.outcome = DeployOutcome.DIGEST_RESOLUTION_FAILED
            report.error = str(e)
            return report
        except DeployError as e:
            report.outcome = DeployOutcome.DEPLOY_FAILED
            report.error = str(e)
            return report

        # Traffic now points at the new revision. Cancellation is deferred
        # from here until the probe and any rollback have finished.
        report.new_revision = status.latest_revision
        report.events.append(f"deployed {pinned.pinned} as {status.latest_revision}")

        try:
            report.service_url = self._service_url(status)
            self._verify_traffic(status, report)
            report.probe = self.prober.probe(report.service_url)
            if not report.probe.healthy:
                raise ProbeFailure(
                    f"{report.probe.url} unhealthy after {report.probe.attempts} "
                    f"attempts (last status {report.probe.status_code}, "
                    f"error {report.probe.error})"
                )
            report.events.append(f"probe healthy: {report.probe.url}")
        except ProbeFailure as e:
            report.error = str(e)
            report.events.append(f"probe failed: {e}")
            self.log.error("Health probe failed", error=str(e))
            self._handle_probe_failure(report)

        if self.token.cancelled:
            report.events.append(f"cancellation deferred until completion: {self.token.reason}")

        return report

    def _check_cancelled(self) -> None:
        if self.token.cancelled:
            raise DeployCancelled(f"Cancelled before deploy: {self.token.reason}")

    def _record_previous(self) -> str | None:
        try:
            status = self.platform.describe(self.config.service)
        except CommandError as e:
            raise DeployError(
                f"Could not describe service {self.config.service}: {e}"
            ) from e

        serving = status.serving_revision()
        self.log.info(
            "Recorded serving revision",
            revision=serving.name if serving else None,
            percent=serving.percent if serving else None,
        )
        return serving.name if serving else None

    def _deploy(self, pinned: ImageReference) -> ServiceStatus:
        self.log.info("Deploying image", image=pinned.pinned)
        try:
            status = self.platform.deploy(self.config.service, pinned.pinned)
        except (CommandError, ValueError) as e:
            raise DeployError(f"Deploy of {pinned.pinned} rejected: {e}") from e

        self.log.info("Deployed new revision", revision=status.latest_revision)
        return status

    def _service_url(self, status: ServiceStatus) -> str:
        if status.url:
            return status.url
        try:
            url = self.platform.describe(self.config.service).url
        except CommandError as e:
            raise ProbeFailure(f"Could not resolve service URL: {e}") from e
        if not url:
            raise ProbeFailure("Service has no URL to probe")
        return url

    def _verify_traffic(self, status: ServiceStatus, report: DeployReport) -> None:
        """Require the new revision to hold all traffic before probing.

        Otherwise the probe would answer for whatever revision is still
        serving.
        """
        if status.latest_revision and status.percent(status.latest_revision) >= 100:
            return

        try:
            status = self.platform.describe(self.config.service)
        except CommandError as e:
            raise ProbeFailure(f"Could not verify traffic split: {e}") from e

        if status.latest_revision:
            report.new_revision = status.latest_revision
        percent = status.percent(report.new_revision)
        if not report.new_revision or percent < 100:
            raise ProbeFailure(
                f"New revision {report.new_revision} receives {percent}% "
                f"of traffic, not 100%"
            )

    def _handle_probe_failure(self, report: DeployReport) -> None:
        previous, new = report.previous_revision, report.new_revision

        if previous is None or previous == new:
            report.outcome = DeployOutcome.PROBE_FAILED_NO_PREVIOUS
            report.events.append("no previous revision to roll back to")
            self.log.error(
                "No previous revision, unhealthy revision left serving",
                revision=new,
            )
            return

        try:
            self._rollback(previous, new)
        except RollbackFailure as e:
            report.outcome = DeployOutcome.ROLLBACK_FAILED
            report.error = f"{report.error}; {e}"
            report.events.append(f"rollback failed: {e}")
            self.metrics.record_rollback(self.config.service, succeeded=False)
            return

        report.outcome = DeployOutcome.ROLLED_BACK
        report.events.append(f"rolled back: {previous}=100, {new}=0")
        self.metrics.record_rollback(self.config.service, succeeded=True)

    def _rollback(self, previous: str, new: str | None) -> None:
        split = {previous: 100}
        if new:
            split[new] = 0

        self.log.warning("Rolling back traffic", split=split)
        try:
            self.platform.set_traffic(self.config.service, split)
        except CommandError as e:
            raise RollbackFailure(
                f"Could not shift traffic back to {previous}: {e}"
            ) from e
