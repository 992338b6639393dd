"""Data types shared by the deploy and publish pipelines."""

import re
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any

from sre_workflow.deploy.errors import ImageReferenceError

DIGEST_PATTERN = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[a-fA-F0-9]+$")
TAG_PATTERN = re.compile(r"^[\w][\w.-]{0,127}$")


@dataclass(frozen=True)
class ImageReference:
    """Container image reference.

    Attributes:
        repository: Repository path, e.g. ``proj/repo/app``
        registry: Registry host, e.g. ``asia-northeast1-docker.pkg.dev``
        tag: Mutable tag (usually the commit SHA)
        digest: Immutable content digest, e.g. ``sha256:...``
    """

    repository: str
    registry: str | None = None
    tag: str | None = None
    digest: str | None = None

    @classmethod
    def parse(cls, value: str) -> "ImageReference":
        """Parse ``[registry/]repository[:tag][@digest]``.

        A reference with neither tag nor digest gets the ``latest`` tag,
        matching docker's behaviour.

        Raises:
            ImageReferenceError: If the reference is malformed
        """
        value = value.strip()
        if not value:
            raise ImageReferenceError("Empty image reference")

        remainder, _, digest = value.partition("@")
        if digest and not DIGEST_PATTERN.match(digest):
            raise ImageReferenceError(f"Invalid digest in '{value}': {digest}")

        tag = None
        last_slash = remainder.rfind("/")
        colon = remainder.rfind(":")
        if colon > last_slash:
            remainder, tag = remainder[:colon], remainder[colon + 1 :]
            if not TAG_PATTERN.match(tag):
                raise ImageReferenceError(f"Invalid tag in '{value}': {tag}")

        registry = None
        first, sep, rest = remainder.partition("/")
        if sep and ("." in first or ":" in first or first == "localhost"):
            registry, remainder = first, rest

        if not remainder or remainder.startswith("/") or remainder.endswith("/"):
            raise ImageReferenceError(f"Invalid repository in '{value}'")

        if tag is None and not digest:
            tag = "latest"

        return cls(
            repository=remainder,
            registry=registry,
            tag=tag,
            digest=digest or None,
        )

    @property
    def name(self) -> str:
        """Registry and repository without tag or digest."""
        if self.registry:
            return f"{self.registry}/{self.repository}"
        return self.repository

    @property
    def is_pinned(self) -> bool:
        return self.digest is not None

    @property
    def pinned(self) -> str:
        """Digest form ``name@sha256:...`` used for deploy and signing.

        Raises:
            ImageReferenceError: If the digest has not been resolved
        """
        if not self.digest:
            raise ImageReferenceError(f"Image '{self}' is not pinned to a digest")
        return f"{self.name}@{self.digest}"

    @property
    def tagged(self) -> str:
        return f"{self.name}:{self.tag}" if self.tag else self.name

    def with_digest(self, digest: str) -> "ImageReference":
        if not DIGEST_PATTERN.match(digest):
            raise ImageReferenceError(f"Invalid digest: {digest}")
        return replace(self, digest=digest)

    def __str__(self) -> str:
        value = self.tagged
        if self.digest:
            value = f"{value}@{self.digest}"
        return value


@dataclass(frozen=True)
class Revision:
    """A Cloud Run revision and its share of traffic."""

    name: str
    percent: int = 0


@dataclass
class ProbeResult:
    """Outcome of a health probe.

    Attributes:
        url: Probed URL
        healthy: True if an attempt returned HTTP 2xx
        attempts: Number of attempts made
        status_code: Status of the last attempt, if any response arrived
        error: Last transport error message, if any
    """

    url: str
    healthy: bool
    attempts: int
    status_code: int | None = None
    error: str | None = None


class DeployOutcome(str, Enum):
    """Final outcome of a deploy-and-rollback run."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"
    DIGEST_RESOLUTION_FAILED = "digest_resolution_failed"
    DEPLOY_FAILED = "deploy_failed"
    ROLLED_BACK = "rolled_back"
    PROBE_FAILED_NO_PREVIOUS = "probe_failed_no_previous"
    ROLLBACK_FAILED = "rollback_failed"


# Higher is worse. ROLLBACK_FAILED leaves unhealthy traffic with no
# automated remedy.
EXIT_CODES: dict[DeployOutcome, int] = {
    DeployOutcome.SUCCEEDED: 0,
    DeployOutcome.SKIPPED: 0,
    DeployOutcome.CANCELLED: 1,
    DeployOutcome.DIGEST_RESOLUTION_FAILED: 1,
    DeployOutcome.DEPLOY_FAILED: 1,
    DeployOutcome.ROLLED_BACK: 2,
    DeployOutcome.PROBE_FAILED_NO_PREVIOUS: 2,
    DeployOutcome.ROLLBACK_FAILED: 3,
}

SEVERITIES: dict[DeployOutcome, str] = {
    DeployOutcome.SUCCEEDED: "info",
    DeployOutcome.SKIPPED: "info",
    DeployOutcome.CANCELLED: "warning",
    DeployOutcome.DIGEST_RESOLUTION_FAILED: "error",
    DeployOutcome.DEPLOY_FAILED: "error",
    DeployOutcome.ROLLED_BACK: "error",
    DeployOutcome.PROBE_FAILED_NO_PREVIOUS: "error",
    DeployOutcome.ROLLBACK_FAILED: "critical",
}


@dataclass
class DeployReport:
    """Everything known about a deploy run when it finished."""

    service: str
    outcome: DeployOutcome
    image: str | None = None
    digest: str | None = None
    new_revision: str | None = None
    previous_revision: str | None = None
    service_url: str | None = None
    probe: ProbeResult | None = None
    error: str | None = None
    duration_seconds: float = 0.0
    events: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.outcome in (DeployOutcome.SUCCEEDED, DeployOutcome.SKIPPED)

    @property
    def recovered(self) -> bool:
        """True when a failed probe was followed by a successful rollback."""
        return self.outcome == DeployOutcome.ROLLED_BACK

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.outcome]

    @property
    def severity(self) -> str:
        return SEVERITIES[self.outcome]

    def summary(self) -> str:
        """One-line human readable summary."""
        if self.outcome == DeployOutcome.ROLLED_BACK:
            return (
                f"ProbeFailure (rolled back): traffic restored to "
                f"{self.previous_revision}"
            )
        if self.outcome == DeployOutcome.ROLLBACK_FAILED:
            return (
                f"RollbackFailure: {self.new_revision} is still serving "
                f"unhealthy traffic"
            )
        if self.outcome == DeployOutcome.PROBE_FAILED_NO_PREVIOUS:
            return (
                f"ProbeFailure (not rolled back): no previous revision, "
                f"{self.new_revision} left serving"
            )
        if self.outcome == DeployOutcome.SUCCEEDED:
            return f"Deployed {self.digest} as {self.new_revision}"
        if self.error:
            return f"{self.outcome.value}: {self.error}"
        return self.outcome.value

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        data["severity"] = self.severity
        data["exit_code"] = self.exit_code
        data["summary"] = self.summary()
        return data
