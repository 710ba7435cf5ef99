"""Checkout and toolchain setup for the project workspace."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Mapping

from src.android_orchestrator.exceptions import PipelineError
from src.commands.command_spec import CommandSpec
from src.pipeline_shared.constants import GRADLE_WRAPPER
from src.pipeline_shared.protocols import CommandRunner, FileSystem
from src.pipeline_shared.utils import tail

logger = logging.getLogger(__name__)

# Answers git's credential "get" request from the bound environment.
GIT_CREDENTIAL_HELPER = (
    '!f() { test "$1" = get || exit 0; '
    'echo "username=${GIT_USERNAME}"; echo "password=${GIT_PASSWORD}"; }; f'
)


def git_credential_env(env: Mapping[str, str] | None) -> dict[str, str]:
    """Return *env* plus config that makes git read ``GIT_USERNAME``/``GIT_PASSWORD``.

    The credential helper is set through ``GIT_CONFIG_COUNT`` variables so
    the command line never carries it; inherited helpers are reset first.
    Without ``GIT_PASSWORD`` the bindings are returned unchanged.
    """
    result = dict(env or {})
    if "GIT_PASSWORD" not in result:
        return result
    result.update({
        "GIT_CONFIG_COUNT": "2",
        "GIT_CONFIG_KEY_0": "credential.helper",
        "GIT_CONFIG_VALUE_0": "",
        "GIT_CONFIG_KEY_1": "credential.helper",
        "GIT_CONFIG_VALUE_1": GIT_CREDENTIAL_HELPER,
    })
    return result


@dataclass(frozen=True)
class CheckoutInfo:
    commit: str
    short_commit: str
    message: str
    author: str
    branch: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class WorkspacePreparer:
    """Runs the checkout and setup stages."""

    def __init__(
        self,
        runner: CommandRunner,
        filesystem: FileSystem,
        timeout: float | None = None,
    ) -> None:
        self.runner = runner
        self.fs = filesystem
        self.timeout = timeout

    def _git(self, *args: str, env: Mapping[str, str] | None = None) -> str:
        spec = CommandSpec.git().add_args(args).add_envs(git_credential_env(env))
        result = self.runner.execute(spec, timeout=self.timeout)
        if not result.ok:
            raise PipelineError(
                f"git {args[0]} failed with exit code {result.exit_code}: "
                f"{tail(result.stderr, 200)}",
                stage_name="Checkout",
                remediation=[
                    "Verify the repository URL and branch name",
                    "Check the git credentials configured for the pipeline",
                ],
                context={"command": " ".join(spec.render_argv())},
            )
        return result.stdout.strip()

    def checkout(
        self,
        git_url: str | None,
        branch: str,
        env: Mapping[str, str] | None = None,
    ) -> CheckoutInfo:
        """Clone or switch to *branch* and return the resulting commit.

        Without a URL the existing checkout is used as-is.
        """
        logger.info("Checking out %s from %s", branch, git_url or "existing workspace")
        if git_url and not self.fs.exists(".git"):
            self._git("clone", "--branch", branch, "--depth", "1", git_url, ".", env=env)
        elif git_url:
            self._git("fetch", "origin", branch, env=env)
            self._git("checkout", branch)

        commit = self._git("rev-parse", "HEAD")
        info = CheckoutInfo(
            commit=commit,
            short_commit=commit[:8],
            message=self._git("log", "-1", "--pretty=%B"),
            author=self._git("log", "-1", "--pretty=%an"),
            branch=branch,
        )
        logger.info("Checked out %s by %s", info.short_commit, info.author)
        return info

    def _tool_version(self, spec: CommandSpec) -> str:
        result = self.runner.execute(spec, timeout=self.timeout)
        if not result.ok:
            return "not installed"
        output = (result.stdout or result.stderr).strip()
        return output.splitlines()[0] if output else "unknown"

    def setup(self) -> dict[str, str]:
        """Make the Gradle wrapper executable and record tool versions."""
        if self.fs.exists(GRADLE_WRAPPER):
            self.runner.execute(CommandSpec.create("chmod").add_arg("+x").add_arg(GRADLE_WRAPPER))
        else:
            logger.warning("Gradle wrapper not found at %s", GRADLE_WRAPPER)

        versions = {
            "node": self._tool_version(CommandSpec.create("node").add_flag("version")),
            "npm": self._tool_version(CommandSpec.npm().add_flag("version")),
            "yarn": self._tool_version(CommandSpec.yarn().add_flag("version")),
            # java prints its version on stderr
            "java": self._tool_version(CommandSpec.create("java").add_arg("-version")),
        }
        for tool, version in versions.items():
            logger.info("%s: %s", tool, version)
        return versions
