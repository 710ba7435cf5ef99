"""Runtime-checkable protocols for stage capabilities and their collaborators.

The orchestrator only ever talks to these contracts, so a Gradle builder, a
Jest runner, or a Slack notifier can be swapped for another implementation
(or a test double) without touching the pipeline itself.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from src.pipeline_shared.models import (
    BuildConfig,
    BuildResult,
    CommandResult,
    PlayStoreTrack,
    StatusInfo,
    TestResult,
    UploadResult,
)


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


@runtime_checkable
class Builder(Protocol):
    """Protocol for platform builders."""

    def build(
        self, build_config: BuildConfig, env: Mapping[str, str] | None = None
    ) -> BuildResult:
        """Build the application.

        Args:
            build_config: Variant, version, and output type to build.
            env: Extra environment bindings, e.g. signing credentials.

        Returns:
            A fresh BuildResult for this attempt.
        """
        ...

    def clean(self) -> bool:
        ...

    def install_dependencies(self) -> bool:
        ...

    def run_lint(self) -> bool:
        ...

    def validate_environment(self) -> list[str]:
        """Return every missing tool or setting; empty when ready."""
        ...


@runtime_checkable
class TestRunner(Protocol):
    """Protocol for test framework runners."""

    def run_tests(self, options: Mapping[str, Any] | None = None) -> TestResult:
        ...

    def is_available(self) -> bool:
        ...

    @property
    def framework_name(self) -> str:
        ...

    def prepare_environment(self) -> None:
        ...

    def cleanup_environment(self) -> None:
        ...


@runtime_checkable
class Distributor(Protocol):
    """Protocol for app distribution targets."""

    def upload(
        self,
        artifact_path: str,
        track: PlayStoreTrack,
        release_notes: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> UploadResult:
        ...

    def promote(
        self,
        from_track: PlayStoreTrack,
        to_track: PlayStoreTrack,
        rollout_percentage: float = 100.0,
    ) -> bool:
        ...

    def get_status(self, track: PlayStoreTrack) -> StatusInfo:
        ...

    def validate_config(self) -> list[str]:
        ...

    def rollback(self, track: PlayStoreTrack, version_code: int) -> bool:
        """Roll back a release.  Implementations may return False when unsupported."""
        ...

    @property
    def target_name(self) -> str:
        ...


@runtime_checkable
class Notifier(Protocol):
    """Protocol for build notification channels."""

    def notify_build_started(
        self, job_name: str, build_number: int, git_branch: str
    ) -> None:
        ...

    def notify_build_success(self, build_result: BuildResult, duration_ms: int) -> None:
        ...

    def notify_build_failure(
        self,
        job_name: str,
        build_number: int,
        error_message: str,
        stage_name: str | None,
    ) -> None:
        ...

    def notify_test_results(self, test_result: TestResult) -> None:
        ...

    def notify_deployment(self, environment: str, version: str, track: str) -> None:
        ...

    def send_message(self, message: str, level: str = "info") -> None:
        ...

    def is_configured(self) -> bool:
        ...

    @property
    def channel_name(self) -> str:
        ...


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@runtime_checkable
class CommandRunner(Protocol):
    """Executes a command specification synchronously."""

    def execute(self, spec: Any, timeout: float | None = None) -> CommandResult:
        """Run *spec* and block until it exits or *timeout* seconds pass.

        A timeout is reported as ``CommandResult(timed_out=True)`` rather
        than raised.
        """
        ...


@runtime_checkable
class FileSystem(Protocol):
    """Minimal filesystem view used by the stage executors."""

    def exists(self, path: str) -> bool:
        ...

    def glob(self, base_dir: str, pattern: str) -> list[str]:
        ...

    def read_text(self, path: str) -> str:
        ...

    def write_text(self, path: str, content: str) -> None:
        ...

    def read_json(self, path: str) -> Any:
        ...

    def write_json(self, path: str, data: Any) -> None:
        ...

    def file_size(self, path: str) -> int:
        ...

    def remove(self, path: str) -> None:
        ...


@runtime_checkable
class CredentialStore(Protocol):
    """Resolves an opaque credential identifier to its secret value."""

    def lookup(self, credential_id: str) -> str | None:
        ...


@runtime_checkable
class Transport(Protocol):
    """Delivers a notification payload to an endpoint."""

    def send(self, endpoint: str, payload: Mapping[str, Any]) -> None:
        ...
