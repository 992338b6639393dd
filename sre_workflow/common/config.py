"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["dev", "staging", "prod"] = "dev"
    debug: bool = False

    # Demo server
    port: int = Field(default=8080, ge=1, le=65535)
    app_version: str = "1.0.0"
    service_name: str = "sre-workflow-demo"

    # GCP
    gcp_project_id: str | None = None
    gcp_region: str = "asia-northeast1"

    # Deploy pipeline
    trunk_branch: str = "main"
    health_path: str = "/health"
    probe_timeout_seconds: float = Field(default=5.0, gt=0, le=60)
    probe_attempts: int = Field(default=3, ge=1, le=10)
    probe_delay_seconds: float = Field(default=5.0, ge=0, le=60)
    deploy_lock_timeout_seconds: float = Field(default=600.0, ge=0)

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Metrics
    metrics_enabled: bool = True
    metrics_port: int = Field(default=9090, ge=1, le=65535)
    pushgateway_url: str | None = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance
    """
    return Settings()
