"""Platform to builder lookup."""

from __future__ import annotations

from typing import Callable

from src.android_orchestrator.exceptions import EnvironmentSetupError
from src.pipeline_shared.models import Platform
from src.pipeline_shared.protocols import Builder, CommandRunner, FileSystem
from src.stages.android_builder import AndroidBuilder
from src.stages.gradle import AndroidToolchainConfig

BuilderConstructor = Callable[..., Builder]


class BuilderFactory:
    """Creates the builder registered for a platform.

    The table is fixed at construction; only Android is populated by
    default.  Asking for any other platform raises
    :class:`EnvironmentSetupError` at runtime.
    """

    def __init__(
        self, registry: dict[Platform, BuilderConstructor] | None = None
    ) -> None:
        self._registry: dict[Platform, BuilderConstructor] = (
            dict(registry) if registry is not None else {Platform.ANDROID: AndroidBuilder}
        )

    def create_builder(
        self,
        platform: Platform,
        runner: CommandRunner,
        filesystem: FileSystem,
        toolchain: AndroidToolchainConfig | None = None,
        timeout: float | None = None,
    ) -> Builder:
        constructor = self._registry.get(platform)
        if constructor is None:
            available = ", ".join(p.value for p in self._registry) or "none"
            raise EnvironmentSetupError(
                f"No builder registered for platform: {platform.value}. "
                f"Available platforms: {available}"
            )
        return constructor(runner, filesystem, toolchain=toolchain, timeout=timeout)

    def is_supported(self, platform: Platform) -> bool:
        return platform in self._registry

    @property
    def supported_platforms(self) -> list[Platform]:
        return list(self._registry)
