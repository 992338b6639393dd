"""Pytest fixtures for end-to-end tests.

These tests drive the ``sre-workflow`` CLI the way the deploy workflow
does, with the registry, Cloud Run and the health endpoint replaced by
in-memory doubles.
"""

import json
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from sre_workflow.common.config import Settings


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "e2e: mark test as end-to-end test")


@pytest.fixture
def e2e_settings() -> Settings:
    return Settings(
        gcp_project_id="demo-project",
        gcp_region="asia-northeast1",
        metrics_enabled=False,
        log_format="console",
        _env_file=None,
    )


@pytest.fixture
def github_env(tmp_path, monkeypatch) -> dict[str, Path]:
    """Point the GitHub Actions output files at a temp directory.

    Returns:
        Paths of the output and step summary files.
    """
    paths = {
        "output": tmp_path / "github_output",
        "summary": tmp_path / "step_summary.md",
    }
    monkeypatch.setenv("GITHUB_OUTPUT", str(paths["output"]))
    monkeypatch.setenv("GITHUB_STEP_SUMMARY", str(paths["summary"]))
    monkeypatch.delenv("GITHUB_EVENT_PATH", raising=False)
    return paths


@pytest.fixture
def write_event(tmp_path) -> Callable[..., str]:
    """Factory writing a ``workflow_run`` event payload to disk."""

    def _write(conclusion: str = "success", branch: str = "main") -> str:
        path = tmp_path / "event.json"
        path.write_text(
            json.dumps(
                {
                    "action": "completed",
                    "workflow_run": {
                        "name": "Publish",
                        "conclusion": conclusion,
                        "head_branch": branch,
                        "head_sha": "abc123",
                    },
                }
            )
        )
        return str(path)

    return _write


@pytest.fixture
def run_deploy(tmp_path, e2e_settings, github_env, make_prober, fake_registry):
    """Run ``sre-workflow deploy`` against a fake platform.

    Returns:
        Callable ``(platform, probe_script, *extra_args, registry=None)``
        returning the click result.
    """

    def _run(platform, probe_script: list, *extra_args: str, registry=None) -> Any:
        def prober(config, on_attempt=None):
            return make_prober(config, probe_script, on_attempt=on_attempt)

        args = [
            "deploy",
            "--image",
            "asia-northeast1-docker.pkg.dev/demo-project/sre/app:abc123",
            "--service",
            "sre-demo",
            "--delay",
            "0",
            "--lock-dir",
            str(tmp_path / "locks"),
            *extra_args,
        ]

        with patch("sre_workflow.cli.get_settings", return_value=e2e_settings), patch(
            "sre_workflow.cli.get_registry", return_value=registry or fake_registry
        ), patch(
            "sre_workflow.cli.CloudRunPlatform", return_value=platform
        ), patch(
            "sre_workflow.deploy.procedure.HealthProber", side_effect=prober
        ):
            from sre_workflow.cli import cli

            return CliRunner().invoke(cli, args, catch_exceptions=False)

    return _run


def read_outputs(path: Path) -> dict[str, str]:
    """Parse a ``GITHUB_OUTPUT`` file into a dict."""
    lines = path.read_text().splitlines()
    return dict(line.split("=", 1) for line in lines if "=" in line)


@pytest.fixture
def outputs(github_env) -> Callable[[], dict[str, str]]:
    return lambda: read_outputs(github_env["output"])


@pytest.fixture(autouse=True)
def restore_logging():
    """Detach log handlers bound to CliRunner's captured stdout."""
    yield
    logging.basicConfig(stream=sys.stderr, force=True)
