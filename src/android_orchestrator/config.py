"""Pipeline configuration: the frozen config, its validating builder, and YAML loading."""

from __future__ import annotations

import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from src.android_orchestrator.exceptions import ConfigurationError
from src.pipeline_shared.constants import (
    DEFAULT_BUILD_TIMEOUT_MINUTES,
    DEFAULT_DOCKER_IMAGE,
    DEFAULT_DOCKER_REGISTRY,
    DEFAULT_DOCKER_TAG,
    DEFAULT_GIT_BRANCH,
    DEFAULT_JAVA_VERSION,
    DEFAULT_NODE_VERSION,
    DEFAULT_SLACK_CHANNEL,
    DEFAULT_TEST_TIMEOUT_MINUTES,
)
from src.pipeline_shared.models import (
    AppVersion,
    BuildConfig,
    BuildType,
    Environment,
    OutputType,
    Platform,
    PlayStoreTrack,
)
from src.stages.gradle import AndroidToolchainConfig


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for one pipeline run.

    Credentials are referenced by identifier only; secret values are
    resolved by ``SecretsManager`` inside the stage that needs them.
    Instances are normally produced by :class:`PipelineConfigBuilder`,
    which guarantees the configuration is valid.
    """

    app_name: str = ""
    git_url: str | None = None
    git_branch: str = DEFAULT_GIT_BRANCH
    git_credentials_id: str | None = None
    docker_registry: str = DEFAULT_DOCKER_REGISTRY
    docker_image: str = DEFAULT_DOCKER_IMAGE
    docker_tag: str = DEFAULT_DOCKER_TAG
    build_type: BuildType = BuildType.DEBUG
    environment: Environment = Environment.DEVELOPMENT
    output_type: OutputType = OutputType.APK
    platform: Platform = Platform.ANDROID
    node_version: str = DEFAULT_NODE_VERSION
    java_version: str = DEFAULT_JAVA_VERSION
    version: str = "1.0.0"
    build_number: int = 0
    flavor: str | None = None
    keystore_credentials_id: str | None = None
    key_alias: str | None = None
    keystore_password_credentials_id: str | None = None
    play_store_credentials_id: str | None = None
    play_store_track: PlayStoreTrack = PlayStoreTrack.INTERNAL
    rollout_percentage: float = 100.0
    package_name: str | None = None
    release_notes: str | None = None
    deploy: bool = False
    slack_webhook_credentials_id: str | None = None
    slack_channel: str = DEFAULT_SLACK_CHANNEL
    email_recipients: tuple[str, ...] = ()
    run_lint: bool = True
    fail_on_lint: bool = False
    run_unit_tests: bool = True
    run_e2e_tests: bool = False
    emulator_url: str | None = None
    build_timeout: int = DEFAULT_BUILD_TIMEOUT_MINUTES
    test_timeout: int = DEFAULT_TEST_TIMEOUT_MINUTES
    job_name: str | None = None
    clean_build: bool = True

    @property
    def full_docker_image(self) -> str:
        return f"{self.docker_registry}/{self.docker_image}:{self.docker_tag}"

    @property
    def is_release_build(self) -> bool:
        return self.build_type is BuildType.RELEASE

    @property
    def deployment_requested(self) -> bool:
        return self.deploy and self.environment.play_store_deployment_allowed

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.slack_webhook_credentials_id or self.email_recipients)

    @property
    def variant_name(self) -> str:
        return f"{self.flavor or self.environment.value}{self.build_type.display_name}"

    @property
    def display_job_name(self) -> str:
        return self.job_name or self.app_name

    def app_version(self) -> AppVersion:
        return AppVersion.parse(self.version, self.build_number)

    def build_config(self) -> BuildConfig:
        return BuildConfig.from_pipeline_config(self, self.app_version())

    def to_builder(self) -> PipelineConfigBuilder:
        return PipelineConfigBuilder({f.name: getattr(self, f.name) for f in fields(self)})

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if hasattr(value, "value"):
                value = value.value
            elif isinstance(value, tuple):
                value = list(value)
            data[f.name] = value
        return data


def validate_pipeline_config(config: PipelineConfig) -> list[str]:
    """Return every violation in *config*; empty means valid."""
    errors: list[str] = []

    if not (config.app_name or "").strip():
        errors.append("appName is required")
    if not (config.docker_registry or "").strip():
        errors.append("dockerRegistry is required")
    if not (config.docker_image or "").strip():
        errors.append("dockerImage is required")

    if config.is_release_build:
        if not config.keystore_credentials_id:
            errors.append("keystoreCredentialsId is required for release builds")
        if not config.keystore_password_credentials_id:
            errors.append("keystorePasswordCredentialsId is required for release builds")
        if not (config.key_alias or "").strip():
            errors.append("keyAlias is required for release builds")

    if config.deployment_requested and not config.play_store_credentials_id:
        errors.append("playStoreCredentialsId is required for Play Store deployment")

    errors.extend(config.play_store_track.rollout_errors(config.rollout_percentage))

    if config.run_e2e_tests and not (config.emulator_url or "").strip():
        errors.append("emulatorUrl is required when E2E tests are enabled")

    if config.build_timeout <= 0:
        errors.append(f"buildTimeout must be positive, got: {config.build_timeout}")
    if config.test_timeout <= 0:
        errors.append(f"testTimeout must be positive, got: {config.test_timeout}")
    if config.build_number < 0:
        errors.append(f"buildNumber must not be negative, got: {config.build_number}")

    return errors


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

_FIELD_NAMES = {f.name for f in fields(PipelineConfig)}

_ENUM_FIELDS: dict[str, Any] = {
    "build_type": BuildType,
    "environment": Environment,
    "output_type": OutputType,
    "platform": Platform,
    "play_store_track": PlayStoreTrack,
}

_CAMEL_NAMES = {
    "app_name": "appName",
    "build_type": "buildType",
    "output_type": "outputType",
    "play_store_track": "track",
    "rollout_percentage": "rolloutPercentage",
    "build_number": "buildNumber",
    "build_timeout": "buildTimeout",
    "test_timeout": "testTimeout",
}

# Shorter names accepted from YAML and the CLI
_ALIASES = {
    "track": "play_store_track",
    "rollout": "rollout_percentage",
    "run_e2_etests": "run_e2e_tests",
}


def _snake_case(name: str) -> str:
    return re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name).lower()


def normalize_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    """Map camelCase or aliased keys to field names, dropping unknown keys."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        name = _snake_case(str(key))
        name = _ALIASES.get(name, name)
        if name in _FIELD_NAMES:
            result[name] = value
    return result


class PipelineConfigBuilder:
    """Accumulates settings and builds a :class:`PipelineConfig` atomically.

    ``build()`` either returns a fully valid config or raises
    :class:`ConfigurationError` listing every violation found, including
    values that could not be parsed.
    """

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = normalize_keys(values or {})

    def set(self, **values: Any) -> PipelineConfigBuilder:
        self._values.update(normalize_keys(values))
        return self

    def merge(self, values: Mapping[str, Any] | None) -> PipelineConfigBuilder:
        """Apply *values*, ignoring entries that are ``None``."""
        self._values.update(
            {k: v for k, v in normalize_keys(values or {}).items() if v is not None}
        )
        return self

    def _coerce(self, violations: list[str]) -> dict[str, Any]:
        coerced: dict[str, Any] = {}
        for name, value in self._values.items():
            label = _CAMEL_NAMES.get(name, name)
            if name in _ENUM_FIELDS:
                if value is None:
                    continue
                try:
                    coerced[name] = _ENUM_FIELDS[name].from_string(value)
                except ValueError as exc:
                    violations.append(str(exc))
            elif name == "rollout_percentage":
                try:
                    coerced[name] = float(value)
                except (TypeError, ValueError):
                    violations.append(f"{label} must be a number, got: {value!r}")
            elif name in ("build_number", "build_timeout", "test_timeout"):
                try:
                    coerced[name] = int(value)
                except (TypeError, ValueError):
                    violations.append(f"{label} must be an integer, got: {value!r}")
            elif name == "email_recipients":
                if isinstance(value, str):
                    value = value.split(",")
                coerced[name] = tuple(r.strip() for r in value or () if r and r.strip())
            elif name == "version":
                coerced[name] = str(value) if value is not None else ""
            else:
                coerced[name] = value
        return coerced

    def build(self) -> PipelineConfig:
        violations: list[str] = []
        coerced = self._coerce(violations)

        if "version" in coerced:
            try:
                AppVersion.parse(coerced["version"])
            except ValueError as exc:
                violations.append(str(exc))

        candidate = PipelineConfig(**coerced)
        violations.extend(validate_pipeline_config(candidate))
        if violations:
            raise ConfigurationError(violations)
        return candidate


def with_overrides(config: PipelineConfig, **overrides: Any) -> PipelineConfig:
    """Return a validated copy of *config* with *overrides* applied."""
    return config.to_builder().merge(overrides).build()


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


def _read_yaml(path: Path | str | None) -> dict[str, Any]:
    if path is None:
        return {}
    path = Path(path)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError([f"{path} must contain a YAML mapping"])
    return raw


def load_pipeline_config(
    path: Path | str | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> PipelineConfig:
    """Load and validate the pipeline configuration.

    Settings are read from the ``pipeline:`` section when present, otherwise
    from the top level.  A missing file contributes nothing.  Keys may be
    snake_case or camelCase; unknown keys are ignored.  Non-``None``
    *overrides* win over file values.

    Raises:
        ConfigurationError: With every violation when the result is invalid.
    """
    raw = _read_yaml(path)
    section = raw.get("pipeline") if isinstance(raw.get("pipeline"), dict) else raw
    return PipelineConfigBuilder(section).merge(overrides).build()


def load_toolchain_config(path: Path | str | None = None) -> AndroidToolchainConfig:
    """Load the optional ``android:`` section of the config file."""
    raw = _read_yaml(path)
    section = raw.get("android")
    return AndroidToolchainConfig.from_dict(section if isinstance(section, dict) else {})

