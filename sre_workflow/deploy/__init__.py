"""Deploy pipeline module.

This module provides the deploy-and-rollback procedure for Cloud Run
and the publish steps that produce signed, digest-pinned images.
"""

from sre_workflow.deploy.config import DeployConfig, ProbeConfig
from sre_workflow.deploy.errors import (
    CommandError,
    DeployCancelled,
    DeployError,
    DeployLockError,
    DigestResolutionError,
    ImageReferenceError,
    ProbeFailure,
    PublishError,
    RollbackFailure,
    SREWorkflowError,
)
from sre_workflow.deploy.models import (
    DeployOutcome,
    DeployReport,
    ImageReference,
    ProbeResult,
    Revision,
)
from sre_workflow.deploy.platform import CloudRunPlatform, RunPlatform, ServiceStatus
from sre_workflow.deploy.procedure import DeployAndRollback
from sre_workflow.deploy.publish import Publisher, PublishResult
from sre_workflow.deploy.registry import ArtifactRegistry, DockerRegistry, Registry

__all__ = [
    # Config
    "DeployConfig",
    "ProbeConfig",
    # Errors
    "SREWorkflowError",
    "CommandError",
    "DeployCancelled",
    "DeployError",
    "DeployLockError",
    "DigestResolutionError",
    "ImageReferenceError",
    "ProbeFailure",
    "PublishError",
    "RollbackFailure",
    # Models
    "DeployOutcome",
    "DeployReport",
    "ImageReference",
    "ProbeResult",
    "Revision",
    # Clients
    "ArtifactRegistry",
    "DockerRegistry",
    "Registry",
    "CloudRunPlatform",
    "RunPlatform",
    "ServiceStatus",
    # Procedures
    "DeployAndRollback",
    "Publisher",
    "PublishResult",
]
