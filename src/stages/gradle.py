"""Gradle toolchain settings and command helpers."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping

from src.commands.command_spec import CommandSpec
from src.pipeline_shared.constants import (
    ANDROID_DIR,
    DEFAULT_GRADLE_JVM_ARGS,
    DEFAULT_SDK_ROOT,
)
from src.pipeline_shared.models import BuildType, CommandResult
from src.pipeline_shared.protocols import CommandRunner
from src.pipeline_shared.utils import capitalize_first

logger = logging.getLogger(__name__)


@dataclass
class AndroidToolchainConfig:
    """Android SDK and Gradle daemon settings for the build agent."""

    sdk_root: str = ""
    compile_sdk_version: int = 34
    min_sdk_version: int = 24
    target_sdk_version: int = 34
    build_tools_version: str = "34.0.0"
    gradle_jvm_args: str = DEFAULT_GRADLE_JVM_ARGS
    gradle_daemon: bool = True
    parallel_build: bool = True
    configuration_cache: bool = False
    gradle_properties: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.sdk_root:
            self.sdk_root = (
                os.environ.get("ANDROID_HOME")
                or os.environ.get("ANDROID_SDK_ROOT")
                or DEFAULT_SDK_ROOT
            )

    def environment_variables(self) -> dict[str, str]:
        path = os.environ.get("PATH", "")
        return {
            "ANDROID_HOME": self.sdk_root,
            "ANDROID_SDK_ROOT": self.sdk_root,
            "PATH": (
                f"{path}:{self.sdk_root}/cmdline-tools/latest/bin"
                f":{self.sdk_root}/platform-tools"
            ),
        }

    def gradle_args(self) -> list[str]:
        args = ["--daemon" if self.gradle_daemon else "--no-daemon"]
        if self.parallel_build:
            args.append("--parallel")
        if self.configuration_cache:
            args.append("--configuration-cache")
        args.append(f"-Dorg.gradle.jvmargs='{self.gradle_jvm_args}'")
        for key, value in self.gradle_properties.items():
            args.append(f"-P{key}={value}")
        return args

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> AndroidToolchainConfig:
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})


class GradleCommands:
    """Runs Gradle wrapper tasks inside the ``android/`` project."""

    def __init__(
        self,
        runner: CommandRunner,
        toolchain: AndroidToolchainConfig | None = None,
        timeout: float | None = None,
    ) -> None:
        self.runner = runner
        self.toolchain = toolchain or AndroidToolchainConfig()
        self.timeout = timeout

    def command(
        self,
        tasks: list[str],
        *,
        stacktrace: bool = False,
        info: bool = False,
        properties: Mapping[str, Any] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandSpec:
        spec = (
            CommandSpec.gradle()
            .add_args(tasks)
            .add_args(self.toolchain.gradle_args())
            .add_envs(self.toolchain.environment_variables())
            .add_envs(env)
            .set_working_dir(ANDROID_DIR)
        )
        if stacktrace:
            spec.add_flag("stacktrace")
        if info:
            spec.add_flag("info")
        for key, value in (properties or {}).items():
            spec.add_gradle_property(key, value)
        return spec

    def execute(self, tasks: list[str], **options: Any) -> CommandResult:
        spec = self.command(tasks, **options)
        logger.info("Running: ./gradlew %s", " ".join(tasks))
        return self.runner.execute(spec, timeout=self.timeout)

    def clean(self) -> bool:
        return self.execute(["clean"]).ok

    def assemble(self, build_type: BuildType, flavor: str | None = None) -> bool:
        return self.execute([build_type.assemble_task(flavor)]).ok

    def bundle(self, build_type: BuildType, flavor: str | None = None) -> bool:
        return self.execute([build_type.bundle_task(flavor)]).ok

    def test(self, build_type: BuildType, flavor: str | None = None) -> bool:
        return self.execute([build_type.test_task(flavor)]).ok

    def lint(self, flavor: str | None = None) -> bool:
        task = f"lint{capitalize_first(flavor)}" if flavor else "lint"
        return self.execute([task]).ok

    def version_name(self) -> str:
        result = self.execute(["printVersionName", "-q"])
        return result.stdout.strip() if result.ok else ""

    def version_code(self) -> int:
        result = self.execute(["printVersionCode", "-q"])
        text = result.stdout.strip() if result.ok else ""
        return int(text) if text.isdigit() else 0
