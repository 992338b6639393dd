"""Tests for the deploy-and-rollback procedure."""

import pytest

from sre_workflow.deploy.cancellation import CancellationToken
from sre_workflow.deploy.errors import CommandError, DeployLockError
from sre_workflow.deploy.lock import service_lock
from sre_workflow.deploy.models import DeployOutcome, Revision
from sre_workflow.deploy.platform import ServiceStatus

PINNED = "asia-northeast1-docker.pkg.dev/demo-project/sre/app@sha256:deadbeef"


class TestDigestPinning:
    """Deploys only ever receive the digest form."""

    def test_deploy_receives_digest(self, make_procedure, two_revision_platform, image):
        report = make_procedure(two_revision_platform, [200]).run(image)

        assert report.outcome == DeployOutcome.SUCCEEDED
        assert two_revision_platform.deployed_images == [PINNED]
        assert report.digest == "sha256:deadbeef"

    @pytest.mark.parametrize(
        "tag,digest",
        [
            ("abc123", "sha256:deadbeef"),
            ("0f3e9c1", "sha256:0123456789abcdef"),
            ("main-42", "sha512:cafebabe"),
        ],
    )
    def test_no_tag_reaches_deploy(
        self, make_procedure, platform_factory, registry_factory, tag, digest
    ):
        image = f"gcr.io/proj/app:{tag}"
        platform = platform_factory(traffic=[Revision("rev-1", 100)])
        registry = registry_factory({image: digest})

        make_procedure(platform, [200], registry=registry).run(image)

        assert platform.deployed_images == [f"gcr.io/proj/app@{digest}"]
        assert all(tag not in deployed for deployed in platform.deployed_images)

    def test_pinned_input_skips_lookup(self, make_procedure, two_revision_platform, fake_registry):
        make_procedure(two_revision_platform, [200], registry=fake_registry).run(PINNED)

        assert fake_registry.lookups == []
        assert two_revision_platform.deployed_images == [PINNED]


class TestHealthyDeploy:
    """Healthy deploys issue no traffic calls."""

    def test_no_rollback_when_healthy(self, make_procedure, two_revision_platform, image):
        report = make_procedure(two_revision_platform, [200]).run(image)

        assert report.succeeded
        assert report.exit_code == 0
        assert two_revision_platform.traffic_calls == []
        assert two_revision_platform.percent("rev-2") == 100
        assert report.new_revision == "rev-2"
        assert report.previous_revision == "rev-1"
        assert report.probe.healthy

    def test_healthy_after_retry(self, make_procedure, two_revision_platform, image, connection_error):
        report = make_procedure(two_revision_platform, [connection_error, 503, 200]).run(image)

        assert report.outcome == DeployOutcome.SUCCEEDED
        assert report.probe.attempts == 3
        assert two_revision_platform.traffic_calls == []

    def test_first_deploy_healthy(self, make_procedure, first_deploy_platform, image):
        report = make_procedure(first_deploy_platform, [200]).run(image)

        assert report.outcome == DeployOutcome.SUCCEEDED
        assert report.previous_revision is None


class TestRollback:
    """Failed probes roll traffic back to the recorded revision."""

    def test_exactly_one_rollback_call(self, make_procedure, two_revision_platform, image):
        report = make_procedure(two_revision_platform, [500]).run(image)

        assert report.outcome == DeployOutcome.ROLLED_BACK
        assert report.recovered
        assert two_revision_platform.traffic_calls == [{"rev-1": 100, "rev-2": 0}]
        assert two_revision_platform.percent("rev-1") == 100
        assert two_revision_platform.percent("rev-2") == 0

    def test_previous_recorded_before_deploy(self, make_procedure, platform_factory, image):
        """Test the bulk-traffic revision is used, whatever its list position."""
        platform = platform_factory(
            traffic=[Revision("rev-a", 0), Revision("rev-c", 10), Revision("rev-b", 90)],
            new_revision="rev-d",
        )

        report = make_procedure(platform, [500]).run(image)

        assert report.previous_revision == "rev-b"
        assert platform.traffic_calls == [{"rev-b": 100, "rev-d": 0}]

    def test_first_deploy_no_traffic_call(self, make_procedure, first_deploy_platform, image):
        """Test a first deploy with a failing probe reports failure, nothing to target."""
        report = make_procedure(first_deploy_platform, [500]).run(image)

        assert report.outcome == DeployOutcome.PROBE_FAILED_NO_PREVIOUS
        assert not report.succeeded
        assert first_deploy_platform.traffic_calls == []
        assert first_deploy_platform.percent("rev-1") == 100

    def test_same_revision_reused(self, make_procedure, platform_factory, image):
        """Test no self-rollback when the platform kept the serving revision."""
        platform = platform_factory(traffic=[Revision("rev-1", 100)], new_revision="rev-1")

        report = make_procedure(platform, [500]).run(image)

        assert report.outcome == DeployOutcome.PROBE_FAILED_NO_PREVIOUS
        assert platform.traffic_calls == []

    def test_rollback_failure(self, make_procedure, platform_factory, image):
        platform = platform_factory(
            traffic=[Revision("rev-1", 100)],
            traffic_error=CommandError("gcloud exited with status 1: PERMISSION_DENIED"),
        )

        report = make_procedure(platform, [500]).run(image)

        assert report.outcome == DeployOutcome.ROLLBACK_FAILED
        assert not report.recovered
        assert report.severity == "critical"
        assert "PERMISSION_DENIED" in report.error
        assert len(platform.traffic_calls) == 1

    def test_missing_url_counts_as_probe_failure(self, make_procedure, platform_factory, image):
        platform = platform_factory(traffic=[Revision("rev-1", 100)], url=None)

        report = make_procedure(platform, [200]).run(image)

        assert report.outcome == DeployOutcome.ROLLED_BACK
        assert report.probe is None
        assert platform.traffic_calls == [{"rev-1": 100, "rev-2": 0}]


class TestFatalErrors:
    """Errors before the traffic shift abort without mutation."""

    def test_unknown_tag(self, make_procedure, two_revision_platform, registry_factory):
        report = make_procedure(
            two_revision_platform, [200], registry=registry_factory({})
        ).run("gcr.io/proj/app:missing")

        assert report.outcome == DeployOutcome.DIGEST_RESOLUTION_FAILED
        assert report.exit_code == 1
        assert two_revision_platform.deployed_images == []
        assert two_revision_platform.traffic_calls == []

    def test_deploy_rejected(self, make_procedure, platform_factory, image):
        platform = platform_factory(
            traffic=[Revision("rev-1", 100)],
            deploy_error=CommandError("gcloud exited with status 1: quota exceeded"),
        )

        report = make_procedure(platform, [200]).run(image)

        assert report.outcome == DeployOutcome.DEPLOY_FAILED
        assert "quota exceeded" in report.error
        assert platform.traffic_calls == []
        assert report.probe is None


class TestConcurrencyAndCancellation:
    """Serialization and cancellation behaviour."""

    def test_cancelled_before_deploy(self, make_procedure, two_revision_platform, image):
        token = CancellationToken()
        token.cancel("received SIGTERM")

        report = make_procedure(two_revision_platform, [200], token=token).run(image)

        assert report.outcome == DeployOutcome.CANCELLED
        assert two_revision_platform.deployed_images == []
        assert two_revision_platform.traffic_calls == []

    def test_cancel_during_probe_still_rolls_back(
        self, make_procedure, two_revision_platform, image, deploy_config, make_prober
    ):
        """Test a cancellation after the deploy waits for the rollback."""
        procedure = make_procedure(two_revision_platform, [500])
        procedure.prober = make_prober(
            deploy_config.probe,
            [500],
            on_attempt=lambda n, healthy: procedure.token.cancel("received SIGINT"),
        )

        report = procedure.run(image)

        assert report.outcome == DeployOutcome.ROLLED_BACK
        assert two_revision_platform.traffic_calls == [{"rev-1": 100, "rev-2": 0}]
        assert any("cancellation deferred" in event for event in report.events)

    def test_concurrent_run_rejected(self, make_procedure, two_revision_platform, image, deploy_config):
        procedure = make_procedure(two_revision_platform, [200])
        key = f"{deploy_config.project}/{deploy_config.region}/{deploy_config.service}"

        with service_lock(key, timeout_seconds=0, lock_dir=deploy_config.lock_dir):
            with pytest.raises(DeployLockError):
                procedure.run(image)

        assert two_revision_platform.deployed_images == []


class TestTrafficVerification:
    """The probe only runs once the new revision holds all traffic."""

    def test_pinned_traffic_is_not_reported_healthy(self, make_procedure, platform_factory, image):
        """Test a revision left at 0% after an earlier rollback is not a success."""
        platform = platform_factory(
            traffic=[Revision("rev-1", 100), Revision("rev-2", 0)],
            new_revision="rev-3",
            pin_traffic=True,
        )
        procedure = make_procedure(platform, [200])

        report = procedure.run(image)

        assert report.outcome == DeployOutcome.ROLLED_BACK
        assert not report.succeeded
        assert "receives 0% of traffic" in report.error
        assert report.probe is None
        assert procedure.prober.session.calls == []
        assert platform.traffic_calls == [{"rev-1": 100, "rev-3": 0}]

    def test_describe_failure_after_deploy_takes_rollback_path(
        self, make_procedure, platform_factory, image
    ):
        """Test an incomplete deploy result is never reported as a rejected deploy."""
        FakePlatform = platform_factory

        class FlakyPlatform(FakePlatform):
            def deploy(self, service, image):
                super().deploy(service, image)
                return ServiceStatus(name=service)

            def describe(self, service):
                if self.deployed_images:
                    raise CommandError("gcloud exited with status 1: transient 503")
                return super().describe(service)

        platform = FlakyPlatform(traffic=[Revision("rev-1", 100)])

        report = make_procedure(platform, [200]).run(image)

        assert report.outcome != DeployOutcome.DEPLOY_FAILED
        assert report.outcome == DeployOutcome.ROLLED_BACK
        assert platform.deployed_images == [PINNED]
        assert platform.traffic_calls == [{"rev-1": 100}]
