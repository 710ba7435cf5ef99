"""Fastlane invocations used for Google Play distribution."""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping

from src.commands.command_spec import CommandSpec, shell_quote
from src.pipeline_shared.constants import FASTLANE_DIR
from src.pipeline_shared.models import CommandResult, PlayStoreTrack
from src.pipeline_shared.protocols import CommandRunner, FileSystem

logger = logging.getLogger(__name__)

_VERSION_CODES_RE = re.compile(r"Result:\s*\[([\d,\s]*)\]")


def rollout_fraction(percentage: float) -> str:
    """Fastlane expects rollout as a fraction, e.g. ``50`` -> ``"0.5"``."""
    return f"{percentage / 100.0:g}"


class FastlaneExecutor:
    """Builds and runs ``bundle exec fastlane`` commands.

    Lane options are rendered as ``key:value`` pairs with shell-quoted
    values.  The Play Store JSON key is passed through ``SUPPLY_JSON_KEY``
    so it never appears on the command line.
    """

    def __init__(
        self,
        runner: CommandRunner,
        filesystem: FileSystem,
        package_name: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.runner = runner
        self.fs = filesystem
        self.package_name = package_name
        self.timeout = timeout

    def command(
        self,
        lane: str,
        options: Mapping[str, Any] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandSpec:
        spec = CommandSpec.fastlane().add_arg(lane)
        for key, value in (options or {}).items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            spec.add_arg(f"{key}:{shell_quote(str(value))}")
        env = dict(env or {})
        if env.get("GOOGLE_PLAY_JSON_KEY"):
            env.setdefault("SUPPLY_JSON_KEY", env["GOOGLE_PLAY_JSON_KEY"])
        return spec.add_envs(env)

    def run_lane(
        self,
        lane: str,
        options: Mapping[str, Any] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        spec = self.command(lane, options, env)
        logger.info("Running: %s", " ".join(spec.render_argv()))
        return self.runner.execute(spec, timeout=self.timeout)

    def supply(
        self,
        artifact_path: str,
        track: PlayStoreTrack,
        rollout_percentage: float = 100.0,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        options: dict[str, Any] = {
            "track": track.value,
            "package_name": self.package_name,
        }
        options["aab" if artifact_path.endswith(".aab") else "apk"] = artifact_path
        if track.supports_rollout and rollout_percentage < 100:
            options["rollout"] = rollout_fraction(rollout_percentage)
        return self.run_lane("supply", options, env)

    def promote(
        self,
        from_track: PlayStoreTrack,
        to_track: PlayStoreTrack,
        rollout_percentage: float = 100.0,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        options: dict[str, Any] = {
            "track": from_track.value,
            "track_promote_to": to_track.value,
            "package_name": self.package_name,
            "skip_upload_aab": True,
            "skip_upload_apk": True,
            "skip_upload_metadata": True,
        }
        if to_track.supports_rollout and rollout_percentage < 100:
            options["rollout"] = rollout_fraction(rollout_percentage)
        return self.run_lane("supply", options, env)

    def track_version_codes(
        self, track: PlayStoreTrack, env: Mapping[str, str] | None = None
    ) -> list[int]:
        """Return the version codes live on *track*.

        Raises:
            RuntimeError: If fastlane exits non-zero.
        """
        spec = (
            CommandSpec.fastlane()
            .add_args(["run", "google_play_track_version_codes"])
            .add_arg(f"track:{track.value}")
        )
        if self.package_name:
            spec.add_arg(f"package_name:{shell_quote(self.package_name)}")
        spec.add_envs(env)
        result = self.runner.execute(spec, timeout=self.timeout)
        if not result.ok:
            raise RuntimeError(
                f"google_play_track_version_codes exited with code {result.exit_code}"
            )
        match = _VERSION_CODES_RE.search(result.stdout)
        if not match:
            return []
        return [int(code) for code in re.findall(r"\d+", match.group(1))]

    def validate(self) -> list[str]:
        errors: list[str] = []
        if not self.package_name:
            errors.append("Package name is required for Play Store deployment")
        if not self.fs.exists(FASTLANE_DIR):
            errors.append(f"Fastlane directory not found: {FASTLANE_DIR}")
        return errors
