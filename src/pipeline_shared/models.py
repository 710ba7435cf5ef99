"""Shared data models for the Android pipeline.

Everything in this module is a value object: enums, frozen dataclasses, and
pure helpers.  Nothing here touches the filesystem or spawns processes.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from src.pipeline_shared.utils import capitalize_first, format_duration_ms


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


def _invalid(kind: str, value: str, valid: Iterable[str]) -> ValueError:
    return ValueError(
        f"Invalid {kind}: '{value}'. Valid values are: {', '.join(valid)}"
    )


class BuildType(str, Enum):
    """Android build type; maps to Gradle build variants."""
    DEBUG = "debug"
    RELEASE = "release"
    STAGING = "staging"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def requires_signing(self) -> bool:
        return self is not BuildType.DEBUG

    @property
    def is_debuggable(self) -> bool:
        return self is BuildType.DEBUG

    def assemble_task(self, flavor: str | None = None) -> str:
        return f"assemble{capitalize_first(flavor or '')}{self.display_name}"

    def bundle_task(self, flavor: str | None = None) -> str:
        return f"bundle{capitalize_first(flavor or '')}{self.display_name}"

    def test_task(self, flavor: str | None = None) -> str:
        return f"test{capitalize_first(flavor or '')}{self.display_name}UnitTest"

    @classmethod
    def from_string(cls, value: str | BuildType | None) -> BuildType:
        if isinstance(value, BuildType):
            return value
        if not value or not str(value).strip():
            raise ValueError("Build type cannot be null or empty")
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise _invalid("build type", str(value), [m.value for m in cls])


class Environment(str, Enum):
    """Deployment environment; its id doubles as the product flavor."""
    DEVELOPMENT = "dev"
    STAGING = "staging"
    PRODUCTION = "prod"

    @property
    def display_name(self) -> str:
        return self.name.capitalize()

    @property
    def is_production(self) -> bool:
        return self is Environment.PRODUCTION

    @property
    def play_store_deployment_allowed(self) -> bool:
        return self is not Environment.DEVELOPMENT

    @property
    def config_file_name(self) -> str:
        return f".env.{self.value}"

    @property
    def recommended_track(self) -> PlayStoreTrack | None:
        if self is Environment.STAGING:
            return PlayStoreTrack.INTERNAL
        if self is Environment.PRODUCTION:
            return PlayStoreTrack.PRODUCTION
        return None

    def variant_name(self, build_type: BuildType) -> str:
        return f"{self.value}{build_type.display_name}"

    @classmethod
    def from_string(cls, value: str | Environment | None) -> Environment:
        if isinstance(value, Environment):
            return value
        if not value or not str(value).strip():
            return cls.DEVELOPMENT
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized or member.name.lower() == normalized:
                return member
        raise _invalid("environment", str(value), [m.value for m in cls])


class OutputType(str, Enum):
    """Artifact format produced by the build."""
    APK = "apk"
    AAB = "aab"

    @property
    def description(self) -> str:
        return "Android Package" if self is OutputType.APK else "Android App Bundle"

    @property
    def task_prefix(self) -> str:
        return "assemble" if self is OutputType.APK else "bundle"

    @property
    def extension(self) -> str:
        return f".{self.value}"

    @property
    def file_pattern(self) -> str:
        return f"**/*{self.extension}"

    @property
    def is_play_store_preferred(self) -> bool:
        return self is OutputType.AAB

    def output_dir(self, flavor: str | None, build_type: str) -> str:
        variant_dir = f"{flavor}/{build_type}" if flavor else build_type
        return f"android/app/build/outputs/{self.value}/{variant_dir}"

    @classmethod
    def from_string(cls, value: str | OutputType | None) -> OutputType:
        if isinstance(value, OutputType):
            return value
        if not value or not str(value).strip():
            return cls.APK
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise _invalid("output type", str(value), [m.value for m in cls])


_TRACK_INFO: dict[str, tuple[str, int]] = {
    "internal": ("Internal Testing", 100),
    "alpha": ("Closed Testing (Alpha)", 1000),
    "beta": ("Open Testing (Beta)", 10000),
    "production": ("Production", -1),
}


class PlayStoreTrack(str, Enum):
    """Google Play release tracks, in promotion order."""
    INTERNAL = "internal"
    ALPHA = "alpha"
    BETA = "beta"
    PRODUCTION = "production"

    @property
    def description(self) -> str:
        return _TRACK_INFO[self.value][0]

    @property
    def max_testers(self) -> int:
        """Maximum testers allowed on the track, ``-1`` for unlimited."""
        return _TRACK_INFO[self.value][1]

    @property
    def is_testing_track(self) -> bool:
        return self is not PlayStoreTrack.PRODUCTION

    @property
    def supports_rollout(self) -> bool:
        return self is PlayStoreTrack.PRODUCTION

    @property
    def next_track(self) -> PlayStoreTrack | None:
        order = list(PlayStoreTrack)
        idx = order.index(self)
        return order[idx + 1] if idx + 1 < len(order) else None

    @property
    def previous_track(self) -> PlayStoreTrack | None:
        order = list(PlayStoreTrack)
        idx = order.index(self)
        return order[idx - 1] if idx > 0 else None

    def rollout_errors(self, percentage: float) -> list[str]:
        """Return every problem with *percentage* on this track."""
        errors: list[str] = []
        if not 0 <= percentage <= 100:
            errors.append(
                f"rolloutPercentage must be between 0 and 100, got: {percentage:g}"
            )
        elif not self.supports_rollout and percentage != 100:
            errors.append(
                f"Staged rollout is only supported for the "
                f"{PlayStoreTrack.PRODUCTION.value} track; "
                f"{self.value} requires rolloutPercentage 100"
            )
        return errors

    @classmethod
    def from_string(cls, value: str | PlayStoreTrack | None) -> PlayStoreTrack:
        if isinstance(value, PlayStoreTrack):
            return value
        if not value or not str(value).strip():
            return cls.INTERNAL
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise _invalid("Play Store track", str(value), [m.value for m in cls])


class Platform(str, Enum):
    """Target mobile platform."""
    ANDROID = "android"
    IOS = "ios"

    @property
    def build_tool(self) -> str:
        return "gradle" if self is Platform.ANDROID else "xcodebuild"

    @property
    def is_supported(self) -> bool:
        return self is Platform.ANDROID

    @classmethod
    def from_string(cls, value: str | Platform | None) -> Platform:
        if isinstance(value, Platform):
            return value
        if not value or not str(value).strip():
            raise ValueError("Platform cannot be null or empty")
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise _invalid("platform", str(value), [m.value for m in cls])


class StageStatus(str, Enum):
    """Outcome of a single pipeline stage."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


# ---------------------------------------------------------------------------
# AppVersion
# ---------------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class AppVersion:
    """Semantic application version plus the Play Store build number.

    Ordering and equality consider ``major.minor.patch`` and then
    ``build_number``; the pre-release and metadata labels are carried
    along but never compared.
    """

    major: int = 0
    minor: int = 0
    patch: int = 0
    build_number: int = 0
    pre_release: str | None = field(default=None, compare=False)
    metadata: str | None = field(default=None, compare=False)

    @property
    def version_name(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre_release:
            base += f"-{self.pre_release}"
        if self.metadata:
            base += f"+{self.metadata}"
        return base

    @property
    def version_code(self) -> int:
        if self.build_number > 0:
            return self.build_number
        return self.major * 10000 + self.minor * 100 + self.patch

    @classmethod
    def parse(cls, version_string: str, build_number: int = 0) -> AppVersion:
        """Parse ``vMAJOR.MINOR.PATCH[-pre][+meta]``.

        The leading ``v`` is optional and missing minor/patch parts default
        to zero.

        Raises:
            ValueError: If the string is empty or a numeric part is not an
                integer.
        """
        if version_string is None or not str(version_string).strip():
            raise ValueError("Version string cannot be null or empty")

        version = str(version_string).strip()
        pre_release: str | None = None
        metadata: str | None = None

        if "+" in version:
            version, metadata = version.split("+", 1)
        if "-" in version:
            version, pre_release = version.split("-", 1)
        if version[:1] in ("v", "V"):
            version = version[1:]

        parts = version.split(".")
        try:
            numbers = [int(p) for p in parts[:3]]
        except ValueError:
            raise ValueError(f"Invalid version format: {version_string}") from None
        if any(n < 0 for n in numbers):
            raise ValueError(f"Invalid version format: {version_string}")
        numbers += [0] * (3 - len(numbers))

        return cls(
            major=numbers[0],
            minor=numbers[1],
            patch=numbers[2],
            build_number=build_number,
            pre_release=pre_release or None,
            metadata=metadata or None,
        )

    def increment_build_number(self) -> AppVersion:
        return AppVersion(
            self.major, self.minor, self.patch, self.build_number + 1,
            self.pre_release, self.metadata,
        )

    def increment_patch(self) -> AppVersion:
        return AppVersion(self.major, self.minor, self.patch + 1, 0)

    def increment_minor(self) -> AppVersion:
        return AppVersion(self.major, self.minor + 1, 0, 0)

    def increment_major(self) -> AppVersion:
        return AppVersion(self.major + 1, 0, 0, 0)

    def is_newer_than(self, other: AppVersion | None) -> bool:
        if other is None:
            return True
        return self > other

    def __str__(self) -> str:
        return self.version_name


# ---------------------------------------------------------------------------
# BuildConfig
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BuildConfig:
    """Configuration for a single build invocation.

    ``variant_name`` and ``gradle_task`` are the naming contract every
    Gradle invocation relies on, e.g. ``devDebug`` / ``assembleDevDebug``.
    """

    app_name: str
    version: AppVersion = field(default_factory=lambda: AppVersion(1, 0, 0))
    build_type: BuildType = BuildType.DEBUG
    environment: Environment = Environment.DEVELOPMENT
    output_type: OutputType = OutputType.APK
    flavor: str | None = None
    clean_build: bool = True

    @property
    def variant_name(self) -> str:
        prefix = self.flavor or self.environment.value
        return f"{prefix}{self.build_type.display_name}"

    @property
    def gradle_task(self) -> str:
        return f"{self.output_type.task_prefix}{capitalize_first(self.variant_name)}"

    @property
    def version_code(self) -> int:
        return self.version.version_code

    @property
    def is_release(self) -> bool:
        return self.build_type is BuildType.RELEASE

    @classmethod
    def from_pipeline_config(
        cls, config: Any, version: AppVersion | None = None
    ) -> BuildConfig:
        """Derive a build configuration from a ``PipelineConfig``."""
        if version is None:
            version = AppVersion.parse(config.version, config.build_number)
        return cls(
            app_name=config.app_name,
            version=version,
            build_type=config.build_type,
            environment=config.environment,
            output_type=config.output_type,
            flavor=config.flavor,
            clean_build=config.clean_build,
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CommandResult:
    """Raw result of one external command invocation."""
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


@dataclass(frozen=True)
class BuildResult:
    """Result of one build attempt.  A fresh instance is produced per attempt."""
    success: bool = False
    artifact_path: str | None = None
    build_type: BuildType | None = None
    output_type: OutputType | None = None
    variant_name: str | None = None
    version: AppVersion | None = None
    start_time_ms: int = 0
    end_time_ms: int = 0
    file_size: int = 0
    error_message: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> int:
        return self.end_time_ms - self.start_time_ms

    @property
    def formatted_duration(self) -> str:
        return format_duration_ms(self.duration_ms)

    @property
    def formatted_file_size(self) -> str:
        if self.file_size <= 0:
            return "Unknown"
        size = float(self.file_size)
        units = ["B", "KB", "MB", "GB"]
        idx = 0
        while size >= 1024 and idx < len(units) - 1:
            size /= 1024
            idx += 1
        return f"{size:.2f} {units[idx]}"

    @property
    def artifact_file_name(self) -> str | None:
        if not self.artifact_path:
            return None
        return os.path.basename(self.artifact_path)

    @classmethod
    def succeeded(
        cls,
        artifact_path: str,
        config: BuildConfig,
        start_time_ms: int,
        file_size: int = 0,
        metadata: Mapping[str, Any] | None = None,
    ) -> BuildResult:
        return cls(
            success=True,
            artifact_path=artifact_path,
            build_type=config.build_type,
            output_type=config.output_type,
            variant_name=config.variant_name,
            version=config.version,
            start_time_ms=start_time_ms,
            end_time_ms=_now_ms(),
            file_size=file_size,
            metadata=dict(metadata or {}),
        )

    @classmethod
    def failed(
        cls,
        error_message: str,
        config: BuildConfig | None,
        start_time_ms: int,
        metadata: Mapping[str, Any] | None = None,
    ) -> BuildResult:
        return cls(
            success=False,
            error_message=error_message,
            build_type=config.build_type if config else None,
            output_type=config.output_type if config else None,
            variant_name=config.variant_name if config else None,
            version=config.version if config else None,
            start_time_ms=start_time_ms,
            end_time_ms=_now_ms(),
            metadata=dict(metadata or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "artifact_path": self.artifact_path,
            "build_type": self.build_type.value if self.build_type else None,
            "output_type": self.output_type.value if self.output_type else None,
            "variant_name": self.variant_name,
            "version": self.version.version_name if self.version else None,
            "version_code": self.version.version_code if self.version else None,
            "duration_ms": self.duration_ms,
            "file_size": self.file_size,
            "error_message": self.error_message,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class TestResult:
    """Result of one test framework run, or a merge of several.

    When ``passed`` is not given it is derived as
    ``total - failed - skipped`` provided that is not negative.
    """

    __test__ = False  # keep pytest from collecting this class

    framework: str = "Unknown"
    total: int = 0
    passed: int | None = None
    failed: int = 0
    skipped: int = 0
    duration_ms: int = 0
    report_path: str | None = None
    coverage_percent: float | None = None
    failed_test_names: tuple[str, ...] = ()
    error_output: str | None = None

    def __post_init__(self) -> None:
        if self.passed is None:
            derived = 0
            if self.total > 0 and self.failed + self.skipped <= self.total:
                derived = self.total - self.failed - self.skipped
            object.__setattr__(self, "passed", derived)
        if self.coverage_percent is not None and not 0 <= self.coverage_percent <= 100:
            raise ValueError(
                f"coverage_percent must be between 0 and 100, got {self.coverage_percent}"
            )
        object.__setattr__(self, "failed_test_names", tuple(self.failed_test_names))

    @property
    def success(self) -> bool:
        return self.failed == 0 and not self.error_output

    @property
    def pass_rate(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.passed / self.total * 100.0

    @property
    def formatted_duration(self) -> str:
        return format_duration_ms(self.duration_ms)

    @property
    def summary(self) -> str:
        if self.error_output:
            return f"Execution failed: {self.error_output[:100]}"
        if self.success:
            return f"All {self.total} tests passed in {self.formatted_duration}"
        return f"{self.failed}/{self.total} tests failed"

    @property
    def coverage_status(self) -> str:
        if self.coverage_percent is None:
            return "Coverage: N/A"
        if self.coverage_percent >= 80:
            grade = "good"
        elif self.coverage_percent >= 60:
            grade = "fair"
        else:
            grade = "low"
        return f"Coverage: {self.coverage_percent:.1f}% ({grade})"

    @classmethod
    def errored(cls, framework: str, message: str) -> TestResult:
        return cls(framework=framework, error_output=message)

    @classmethod
    def merge(cls, framework: str, results: Iterable[TestResult]) -> TestResult:
        """Combine results by summing counts and concatenating failures."""
        results = list(results)
        if not results:
            return cls(framework=framework)

        errors = [r.error_output for r in results if r.error_output]
        failed_names: list[str] = []
        for r in results:
            failed_names.extend(r.failed_test_names)

        return cls(
            framework=framework,
            total=sum(r.total for r in results),
            passed=sum(r.passed for r in results),
            failed=sum(r.failed for r in results),
            skipped=sum(r.skipped for r in results),
            duration_ms=sum(r.duration_ms for r in results),
            failed_test_names=tuple(failed_names),
            error_output="\n".join(errors) if errors else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "framework": self.framework,
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration_ms": self.duration_ms,
            "coverage_percent": self.coverage_percent,
            "failed_test_names": list(self.failed_test_names),
            "error_output": self.error_output,
            "success": self.success,
        }


@dataclass(frozen=True)
class UploadResult:
    """Result of a distributor upload."""
    success: bool
    track: PlayStoreTrack
    artifact_path: str
    message: str = ""
    exit_code: int = 0
    rollout_percentage: float = 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "track": self.track.value,
            "artifact_path": self.artifact_path,
            "message": self.message,
            "exit_code": self.exit_code,
            "rollout_percentage": self.rollout_percentage,
        }


@dataclass(frozen=True)
class StatusInfo:
    """Release status of one distribution track."""
    track: PlayStoreTrack
    version_codes: tuple[int, ...] = ()
    release_status: str = "unknown"
    error: str | None = None

    @property
    def latest_version_code(self) -> int | None:
        return max(self.version_codes) if self.version_codes else None
