"""Typed wrapper around external CLI invocations.

Every tool call in the pipelines (``gcloud``, ``docker``, ``cosign``,
``syft``) goes through :class:`CommandRunner` so that failures surface as
:class:`CommandError` and output is parsed from structured formats only.
"""

import json
import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sre_workflow.common.logging import get_logger
from sre_workflow.deploy.errors import CommandError

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Completed external command."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


class CommandRunner:
    """Runs external commands and checks their exit status.

    Args:
        default_timeout: Timeout in seconds when a call does not set one.
            None waits for the tool's own timeout.
    """

    def __init__(self, default_timeout: float | None = None):
        self.default_timeout = default_timeout

    def run(
        self,
        argv: Sequence[str],
        timeout: float | None = None,
        expected_returncodes: Sequence[int] = (0,),
    ) -> CommandResult:
        """Run a command to completion.

        Args:
            argv: Program and arguments
            timeout: Seconds to wait before killing the process
            expected_returncodes: Exit statuses treated as success

        Returns:
            CommandResult with captured output

        Raises:
            CommandError: If the program is missing, times out, or exits
                with an unexpected status
        """
        argv = tuple(argv)
        if timeout is None:
            timeout = self.default_timeout

        if shutil.which(argv[0]) is None:
            raise CommandError(f"{argv[0]} not found on PATH", argv=argv)

        logger.debug("Running command", argv=" ".join(argv))

        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandError(
                f"{argv[0]} timed out after {timeout}s", argv=argv
            ) from e
        except OSError as e:
            raise CommandError(f"{argv[0]} could not be started: {e}", argv=argv) from e

        result = CommandResult(
            argv=argv,
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )

        if result.returncode not in expected_returncodes:
            stderr = result.stderr.strip()
            raise CommandError(
                f"{argv[0]} exited with status {result.returncode}: {stderr}",
                argv=argv,
                returncode=result.returncode,
                stderr=stderr,
            )

        return result

    def run_json(self, argv: Sequence[str], timeout: float | None = None) -> Any:
        """Run a command whose stdout is a JSON document.

        Raises:
            CommandError: If the command fails or stdout is not valid JSON
        """
        result = self.run(argv, timeout=timeout)
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise CommandError(
                f"Invalid JSON output from {argv[0]}: {e}",
                argv=argv,
                returncode=result.returncode,
                stderr=result.stderr,
            ) from e
