"""Gradle-based builder for React Native Android projects."""

from __future__ import annotations

import logging
import os
import time
from typing import Mapping

from src.commands.command_spec import CommandSpec
from src.pipeline_shared.constants import BUILD_OUTPUTS_DIR, GRADLE_WRAPPER
from src.pipeline_shared.models import BuildConfig, BuildResult
from src.pipeline_shared.protocols import CommandRunner, FileSystem
from src.pipeline_shared.utils import tail
from src.stages.gradle import AndroidToolchainConfig, GradleCommands

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class AndroidBuilder:
    """Builds APKs and AABs with the Gradle wrapper.

    Tool failures are reported through :class:`BuildResult`; the exit code,
    the command, and the tail of stderr travel in ``metadata`` so the caller
    can raise a meaningful ``BuildError``.
    """

    def __init__(
        self,
        runner: CommandRunner,
        filesystem: FileSystem,
        toolchain: AndroidToolchainConfig | None = None,
        timeout: float | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.runner = runner
        self.fs = filesystem
        self.toolchain = toolchain or AndroidToolchainConfig()
        self.timeout = timeout
        self.gradle = GradleCommands(runner, self.toolchain, timeout=timeout)
        self._environ = os.environ if environ is None else environ

    def build(
        self, build_config: BuildConfig, env: Mapping[str, str] | None = None
    ) -> BuildResult:
        start = _now_ms()
        logger.info(
            "Building %s (%s) version %s",
            build_config.variant_name,
            build_config.output_type.value,
            build_config.version.version_name,
        )

        if build_config.clean_build and not self.clean():
            return BuildResult.failed("Gradle clean failed", build_config, start)

        spec = self.gradle.command(
            [build_config.gradle_task],
            properties={
                "versionName": build_config.version.version_name,
                "versionCode": build_config.version_code,
            },
            env=env,
        )
        result = self.runner.execute(spec, timeout=self.timeout)
        # argv form keeps credential values out of logs and metadata
        command = " ".join(spec.render_argv())

        if not result.ok:
            if result.timed_out:
                message = f"Build timed out running {build_config.gradle_task}"
            else:
                message = f"Build failed with exit code {result.exit_code}"
            logger.error(message)
            return BuildResult.failed(
                message,
                build_config,
                start,
                metadata={
                    "exit_code": result.exit_code,
                    "command": command,
                    "stderr": tail(result.stderr),
                },
            )

        artifact = self.find_artifact(build_config)
        if artifact is None:
            message = (
                f"Build succeeded but no {build_config.output_type.extension} "
                f"artifact was found under {BUILD_OUTPUTS_DIR}"
            )
            logger.error(message)
            return BuildResult.failed(
                message, build_config, start, metadata={"exit_code": 0, "command": command}
            )

        build_result = BuildResult.succeeded(
            artifact,
            build_config,
            start,
            file_size=self.fs.file_size(artifact),
            metadata={"command": command},
        )
        logger.info(
            "Build completed in %s: %s (%s)",
            build_result.formatted_duration,
            artifact,
            build_result.formatted_file_size,
        )
        return build_result

    def find_artifact(self, build_config: BuildConfig) -> str | None:
        """Return the first signed, non-test artifact for the configured output type.

        The variant's own output directory is searched first, then the
        whole outputs tree.
        """
        output_type = build_config.output_type
        variant_dir = output_type.output_dir(
            build_config.flavor or build_config.environment.value,
            build_config.build_type.value,
        )
        for base in (variant_dir, BUILD_OUTPUTS_DIR):
            candidates = [
                path
                for path in self.fs.glob(base, output_type.file_pattern)
                if "unsigned" not in path and "androidTest" not in path
            ]
            if candidates:
                return candidates[0]
        return None

    def clean(self) -> bool:
        logger.info("Cleaning build...")
        return self.gradle.clean()

    def install_dependencies(self) -> bool:
        if self.fs.exists("yarn.lock"):
            spec = CommandSpec.yarn().add_arg("install").add_flag("frozen-lockfile")
        else:
            spec = CommandSpec.npm().add_arg("ci")
        logger.info("Installing dependencies: %s", spec.render(include_env=False))
        return self.runner.execute(spec, timeout=self.timeout).ok

    def run_lint(self) -> bool:
        logger.info("Running lint...")
        spec = CommandSpec.npm().add_args(["run", "lint"])
        return self.runner.execute(spec, timeout=self.timeout).ok

    def validate_environment(self) -> list[str]:
        errors: list[str] = []
        if not (self._environ.get("ANDROID_HOME") or self._environ.get("ANDROID_SDK_ROOT")):
            errors.append("ANDROID_HOME not set")
        if not self.fs.exists(GRADLE_WRAPPER):
            errors.append("Gradle wrapper not found")
        return errors
