"""Build, push, sign and attest a container image.

Signing and attestation always target the digest, never the tag.
"""

import tempfile
from dataclasses import dataclass
from pathlib import Path

from sre_workflow.common.logging import get_logger
from sre_workflow.deploy.commands import CommandRunner
from sre_workflow.deploy.errors import CommandError, PublishError
from sre_workflow.deploy.models import ImageReference
from sre_workflow.deploy.registry import Registry

logger = get_logger(__name__)

# Builds and pushes can be slow; signing should not be.
BUILD_TIMEOUT = 1800
PUSH_TIMEOUT = 900
SIGN_TIMEOUT = 120


@dataclass
class PublishResult:
    """Outcome of a publish run.

    Attributes:
        image: Tagged reference that was built and pushed
        pinned: Digest-pinned reference that was signed
        signed: True once cosign signed the digest
        sbom_path: SBOM file produced by syft, if any
    """

    image: str
    pinned: str
    signed: bool = False
    sbom_path: str | None = None


class Publisher:
    """Runs the publish steps in order.

    Args:
        registry: Registry used to resolve the pushed digest
        runner: Command runner
        key_ref: cosign key path or KMS URI; None signs keylessly
    """

    def __init__(
        self,
        registry: Registry,
        runner: CommandRunner | None = None,
        key_ref: str | None = None,
    ):
        self.registry = registry
        self.runner = runner or CommandRunner()
        self.key_ref = key_ref

    def publish(
        self,
        image: ImageReference | str,
        context: str = ".",
        dockerfile: str | None = None,
        sbom: bool = True,
        sbom_dir: str | None = None,
    ) -> PublishResult:
        """Build, push, sign and optionally attest an SBOM.

        Args:
            image: Tagged target reference, e.g. ``.../app:<sha>``
            context: Docker build context
            dockerfile: Dockerfile path, if not ``<context>/Dockerfile``
            sbom: Generate and attest an SPDX SBOM
            sbom_dir: Where to write the SBOM (default: temp dir)

        Returns:
            PublishResult

        Raises:
            PublishError: If a build, push, sign or SBOM step fails
            DigestResolutionError: If the pushed digest cannot be resolved
        """
        if isinstance(image, str):
            image = ImageReference.parse(image)
        if image.is_pinned:
            raise PublishError(f"Publish target must be a tag, got {image}")

        build = ["docker", "build", "-t", image.tagged]
        if dockerfile:
            build += ["-f", dockerfile]
        build.append(context)

        self._step("build", build, BUILD_TIMEOUT)
        self._step("push", ["docker", "push", image.tagged], PUSH_TIMEOUT)

        pinned = self.registry.resolve(image)
        result = PublishResult(image=image.tagged, pinned=pinned.pinned)

        self._step("sign", self._cosign("sign", pinned.pinned), SIGN_TIMEOUT)
        result.signed = True

        if sbom:
            out_dir = Path(sbom_dir or tempfile.mkdtemp(prefix="sbom-"))
            out_dir.mkdir(parents=True, exist_ok=True)
            sbom_path = out_dir / "sbom.spdx.json"

            self._step(
                "sbom",
                ["syft", pinned.pinned, "-o", f"spdx-json={sbom_path}"],
                PUSH_TIMEOUT,
            )
            self._step(
                "attest",
                self._cosign(
                    "attest",
                    pinned.pinned,
                    "--type",
                    "spdxjson",
                    "--predicate",
                    str(sbom_path),
                ),
                SIGN_TIMEOUT,
            )
            result.sbom_path = str(sbom_path)

        logger.info(
            "Published image",
            image=result.image,
            pinned=result.pinned,
            sbom=result.sbom_path,
        )
        return result

    def _cosign(self, verb: str, target: str, *extra: str) -> list[str]:
        argv = ["cosign", verb, "--yes"]
        if self.key_ref:
            argv += ["--key", self.key_ref]
        argv += list(extra)
        argv.append(target)
        return argv

    def _step(self, name: str, argv: list[str], timeout: float) -> None:
        logger.info("Publish step", step=name)
        try:
            self.runner.run(argv, timeout=timeout)
        except CommandError as e:
            raise PublishError(f"Publish step '{name}' failed: {e}") from e
