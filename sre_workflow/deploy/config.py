"""Deploy pipeline configuration classes.

This module provides Pydantic-based configuration models for
the deploy-and-rollback procedure and its health probe.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from sre_workflow.common.config import Settings


class ProbeConfig(BaseModel):
    """Configuration for the post-deploy health probe.

    Attributes:
        path: Relative URL path that returns 2xx when healthy
        timeout_seconds: Per-attempt request timeout
        attempts: Total attempts before the probe fails
        delay_seconds: Pause between attempts, absorbs cold starts
    """

    path: str = Field(default="/health", description="Health endpoint path")
    timeout_seconds: float = Field(
        default=5.0, gt=0, le=60, description="Per-attempt timeout"
    )
    attempts: int = Field(default=3, ge=1, le=10, description="Probe attempts")
    delay_seconds: float = Field(
        default=5.0, ge=0, le=60, description="Delay between attempts"
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, value: str) -> str:
        """Require a relative path starting with a slash."""
        if "://" in value:
            raise ValueError("path must be relative, not a full URL")
        if not value.startswith("/"):
            value = f"/{value}"
        return value


class DeployConfig(BaseModel):
    """Complete configuration for one deploy-and-rollback run.

    Attributes:
        service: Cloud Run service name (must already exist)
        region: Cloud Run region
        project: GCP project, or None to use the gcloud default
        trunk_branch: Only publish runs on this branch trigger a deploy
        lock_timeout_seconds: Wait for a concurrent run on the same service
        lock_dir: Directory holding per-service lock files
        probe: Health probe settings
    """

    service: str = Field(..., min_length=1, description="Cloud Run service")
    region: str = Field(..., min_length=1, description="Cloud Run region")
    project: str | None = Field(default=None, description="GCP project ID")
    trunk_branch: str = Field(default="main", description="Trunk branch")
    lock_timeout_seconds: float = Field(
        default=600.0, ge=0, description="Deploy lock wait"
    )
    lock_dir: str | None = Field(default=None, description="Lock directory")
    probe: ProbeConfig = Field(default_factory=ProbeConfig)

    @classmethod
    def from_settings(
        cls, settings: Settings, service: str, **overrides
    ) -> "DeployConfig":
        """Build a config from application settings.

        Args:
            settings: Application settings
            service: Cloud Run service name
            **overrides: Explicit values that win over settings

        Returns:
            DeployConfig instance
        """
        return cls.from_sources(settings, service, **overrides)

    @classmethod
    def from_sources(
        cls,
        settings: Settings,
        service: str,
        config_file: str | None = None,
        probe_overrides: dict[str, Any] | None = None,
        **overrides,
    ) -> "DeployConfig":
        """Merge settings, an optional YAML file and explicit values.

        Later sources win: settings, then the file, then ``service`` and
        ``overrides`` (None values are ignored).
        Validation runs once on the merged values, so a file may hold only
        part of the configuration.

        Args:
            settings: Application settings
            service: Cloud Run service name
            config_file: Optional YAML file
            probe_overrides: Explicit probe values
            **overrides: Explicit top-level values

        Returns:
            DeployConfig instance

        Raises:
            ValidationError: If the merged values are invalid
        """
        values: dict[str, Any] = {
            "service": service,
            "region": settings.gcp_region,
            "project": settings.gcp_project_id,
            "trunk_branch": settings.trunk_branch,
            "lock_timeout_seconds": settings.deploy_lock_timeout_seconds,
        }
        probe: dict[str, Any] = {
            "path": settings.health_path,
            "timeout_seconds": settings.probe_timeout_seconds,
            "attempts": settings.probe_attempts,
            "delay_seconds": settings.probe_delay_seconds,
        }

        if config_file:
            file_values = dict(_load_yaml(config_file))
            probe.update(file_values.pop("probe", None) or {})
            values.update(file_values)

        values["service"] = service
        values.update({k: v for k, v in overrides.items() if v is not None})
        probe.update({k: v for k, v in (probe_overrides or {}).items() if v is not None})
        values["probe"] = probe
        return cls.model_validate(values)

    @classmethod
    def from_yaml(cls, path: str) -> "DeployConfig":
        """Load a complete configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            DeployConfig instance
        """
        return cls.model_validate(_load_yaml(path))


def _load_yaml(path: str) -> dict[str, Any]:
    import yaml

    with Path(path).open() as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data
