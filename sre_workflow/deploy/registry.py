"""Registry clients that resolve image tags to content digests."""

from abc import ABC, abstractmethod

from sre_workflow.common.logging import get_logger
from sre_workflow.deploy.commands import CommandRunner
from sre_workflow.deploy.errors import CommandError, DigestResolutionError, ImageReferenceError
from sre_workflow.deploy.models import ImageReference

logger = get_logger(__name__)


class Registry(ABC):
    """Resolves mutable tags to immutable digests."""

    def resolve(self, image: ImageReference) -> ImageReference:
        """Pin an image reference to its digest.

        Already pinned references are returned unchanged without a lookup.

        Args:
            image: Tagged or pinned reference

        Returns:
            Reference carrying the digest

        Raises:
            DigestResolutionError: If the lookup fails
        """
        if image.is_pinned:
            return image

        try:
            digest = self.lookup_digest(image)
            pinned = image.with_digest(digest)
        except (CommandError, ImageReferenceError) as e:
            raise DigestResolutionError(
                f"Could not resolve digest for {image}: {e}"
            ) from e

        logger.info("Resolved image digest", image=str(image), digest=digest)
        return pinned

    @abstractmethod
    def lookup_digest(self, image: ImageReference) -> str:
        """Return the ``sha256:...`` digest for a tagged reference."""


class ArtifactRegistry(Registry):
    """Google Artifact Registry via ``gcloud artifacts docker images``."""

    def __init__(self, runner: CommandRunner | None = None, project: str | None = None):
        self.runner = runner or CommandRunner()
        self.project = project

    def lookup_digest(self, image: ImageReference) -> str:
        argv = [
            "gcloud",
            "artifacts",
            "docker",
            "images",
            "describe",
            image.tagged,
            "--format=json",
        ]
        if self.project:
            argv.append(f"--project={self.project}")

        data = self.runner.run_json(argv)
        summary = data.get("image_summary") if isinstance(data, dict) else None
        digest = summary.get("digest") if isinstance(summary, dict) else None
        if not digest:
            raise DigestResolutionError(
                f"Registry response for {image} has no image_summary.digest"
            )
        return digest


class DockerRegistry(Registry):
    """Any OCI registry via ``docker buildx imagetools inspect``."""

    def __init__(self, runner: CommandRunner | None = None):
        self.runner = runner or CommandRunner()

    def lookup_digest(self, image: ImageReference) -> str:
        data = self.runner.run_json(
            [
                "docker",
                "buildx",
                "imagetools",
                "inspect",
                image.tagged,
                "--format",
                "{{json .Manifest}}",
            ]
        )
        digest = data.get("digest") if isinstance(data, dict) else None
        if not digest:
            raise DigestResolutionError(
                f"Manifest for {image} has no digest field"
            )
        return digest


REGISTRIES = {
    "gcloud": ArtifactRegistry,
    "docker": DockerRegistry,
}


def get_registry(
    kind: str = "gcloud",
    runner: CommandRunner | None = None,
    project: str | None = None,
) -> Registry:
    """Get a registry client by name.

    Args:
        kind: 'gcloud' or 'docker'
        runner: Command runner to use
        project: GCP project (gcloud only)

    Returns:
        Registry instance

    Raises:
        KeyError: If the kind is unknown
    """
    if kind not in REGISTRIES:
        available = ", ".join(REGISTRIES)
        raise KeyError(f"Registry '{kind}' not found. Available: {available}")
    if kind == "gcloud":
        return ArtifactRegistry(runner=runner, project=project)
    return DockerRegistry(runner=runner)
