"""Configuration, build-environment, and project-structure checks.

Every ``validate_*`` method returns the full list of findings and never
raises.  The ``require_*`` variants raise a typed error carrying that list
and are used before any stage runs.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping

from src.android_orchestrator.config import PipelineConfig, validate_pipeline_config
from src.android_orchestrator.exceptions import ConfigurationError, EnvironmentSetupError
from src.commands.command_spec import CommandSpec
from src.pipeline_shared.constants import ANDROID_DIR, GRADLE_WRAPPER
from src.pipeline_shared.models import BuildConfig, BuildType
from src.pipeline_shared.protocols import CommandRunner, FileSystem

logger = logging.getLogger(__name__)


class ConfigValidator:
    """Validates pipeline inputs through the runner and filesystem collaborators."""

    def __init__(
        self,
        runner: CommandRunner,
        filesystem: FileSystem,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.runner = runner
        self.fs = filesystem
        self._environ = os.environ if environ is None else environ

    def validate(self, config: PipelineConfig) -> list[str]:
        return validate_pipeline_config(config)

    def validate_build_config(self, build_config: BuildConfig) -> list[str]:
        errors: list[str] = []
        if not (build_config.app_name or "").strip():
            errors.append("appName is required")
        if build_config.version is None:
            errors.append("version is required")
        if build_config.build_type is BuildType.RELEASE and build_config.environment is None:
            errors.append("environment is required for release builds")
        return errors

    def command_exists(self, command: str) -> bool:
        lookup = (
            CommandSpec.create("command")
            .add_arg("-v")
            .add_arg(command)
            .redirect_stdout("/dev/null")
        )
        try:
            return self.runner.execute(lookup).ok
        except OSError as exc:
            logger.debug("Lookup of %s failed: %s", command, exc)
            return False

    def validate_environment(self) -> list[str]:
        errors: list[str] = []
        if not self.command_exists("java"):
            errors.append("Java is not installed or not in PATH")
        if not self.command_exists("node"):
            errors.append("Node.js is not installed or not in PATH")
        if not self.command_exists("npm") and not self.command_exists("yarn"):
            errors.append("Neither npm nor yarn is installed")
        if not self.fs.exists(GRADLE_WRAPPER):
            errors.append(f"Gradle wrapper not found at {GRADLE_WRAPPER}")
        if not (self._environ.get("ANDROID_HOME") or self._environ.get("ANDROID_SDK_ROOT")):
            errors.append("ANDROID_HOME environment variable is not set")
        if not self.command_exists("fastlane"):
            errors.append("Fastlane is not installed")
        return errors

    def validate_project_structure(self) -> list[str]:
        errors: list[str] = []
        if not self.fs.exists("package.json"):
            errors.append("package.json not found in project root")
        if not self.fs.exists(ANDROID_DIR):
            errors.append("android directory not found")
        if not (
            self.fs.exists("android/app/build.gradle")
            or self.fs.exists("android/app/build.gradle.kts")
        ):
            errors.append("android/app/build.gradle(.kts) not found")
        if not self.fs.exists(GRADLE_WRAPPER):
            errors.append(f"{GRADLE_WRAPPER} not found")
        return errors

    def require_valid(self, config: PipelineConfig) -> None:
        errors = self.validate(config)
        if errors:
            raise ConfigurationError(errors)

    def require_valid_build_config(self, build_config: BuildConfig) -> None:
        errors = self.validate_build_config(build_config)
        if errors:
            raise ConfigurationError(errors)

    def require_valid_environment(self) -> None:
        errors = self.validate_environment()
        if errors:
            raise EnvironmentSetupError(errors, stage_name="Validation")
