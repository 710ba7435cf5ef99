"""Subprocess-backed command runner.

All subprocess calls capture stdout and stderr.  A spec's environment
bindings are handed to the child process, not rendered into the command.
Timeouts are reported as a ``CommandResult`` with ``timed_out=True`` and the
conventional exit code 124, never raised.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from src.commands.command_spec import CommandSpec
from src.pipeline_shared.constants import TIMEOUT_EXIT_CODE
from src.pipeline_shared.models import CommandResult

logger = logging.getLogger(__name__)


def _decode(output: str | bytes | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


class SubprocessCommandRunner:
    """Runs rendered command specs through ``/bin/sh`` in a project directory.

    Args:
        cwd: Directory every command starts in.  Specs with their own
            working directory ``cd`` relative to it.
        default_timeout: Seconds before a command is killed; ``None`` or
            ``0`` disables the limit.
    """

    def __init__(
        self, cwd: Path | str = ".", default_timeout: float | None = None
    ) -> None:
        self.cwd = Path(cwd)
        self.default_timeout = default_timeout or None

    def execute(
        self, spec: CommandSpec, timeout: float | None = None
    ) -> CommandResult:
        # env bindings may hold credentials; keep them out of the command line
        command = spec.render(include_env=False)
        env = {**os.environ, **spec.env} if spec.env else None
        limit = timeout or self.default_timeout
        logger.debug("Running: %s", command)

        try:
            result = subprocess.run(
                command,
                shell=True,
                cwd=str(self.cwd),
                capture_output=True,
                text=True,
                errors="replace",
                timeout=limit,
                env=env,
            )
        except subprocess.TimeoutExpired as exc:
            logger.warning("Command timed out after %ss: %s", limit, command)
            return CommandResult(
                exit_code=TIMEOUT_EXIT_CODE,
                stdout=_decode(exc.stdout),
                stderr=_decode(exc.stderr),
                timed_out=True,
            )

        if result.returncode != 0:
            logger.debug("Command exited %d: %s", result.returncode, command)
        return CommandResult(
            exit_code=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )
