"""Exception hierarchy for the deploy and publish pipelines."""

from collections.abc import Sequence


class SREWorkflowError(Exception):
    """Base class for pipeline errors."""


class ImageReferenceError(SREWorkflowError, ValueError):
    """Raised when an image reference string cannot be parsed."""


class CommandError(SREWorkflowError):
    """An external tool failed, timed out, or produced unusable output.

    Attributes:
        argv: Command line that was run
        returncode: Exit status (None if the process never completed)
        stderr: Captured standard error
    """

    def __init__(
        self,
        message: str,
        argv: Sequence[str] = (),
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class DigestResolutionError(SREWorkflowError):
    """Registry lookup failed. Raised before anything is mutated."""


class DeployError(SREWorkflowError):
    """The platform rejected the deploy. No traffic was shifted."""


class ProbeFailure(SREWorkflowError):
    """The health probe did not succeed within its attempts."""


class RollbackFailure(SREWorkflowError):
    """Traffic could not be reverted after a failed probe.

    The unhealthy revision is still serving and needs an operator.
    """


class DeployCancelled(SREWorkflowError):
    """The run was cancelled before any mutation."""


class DeployLockError(SREWorkflowError):
    """Another run holds the deploy lock for the service."""

    def __init__(self, service: str, timeout_seconds: float):
        self.service = service
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Deploy lock for service '{service}' not acquired "
            f"within {timeout_seconds}s"
        )


class PublishError(SREWorkflowError):
    """A build, push, sign or SBOM step failed."""
