"""Shared test fixtures for the Android pipeline test suite."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from src.android_orchestrator.config import PipelineConfig, PipelineConfigBuilder
from src.commands.command_spec import CommandSpec
from src.commands.filesystem import LocalFileSystem
from src.pipeline_shared.models import CommandResult


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeCommandRunner:
    """Records every spec it is asked to run and answers from scripted rules.

    A rule matches when its fragment occurs in the rendered command line.
    The most recently added matching rule wins; unmatched commands succeed
    with empty output.
    """

    def __init__(self) -> None:
        self.calls: list[CommandSpec] = []
        self.timeouts: list[float | None] = []
        self._rules: list[tuple[str, CommandResult, Callable[[CommandSpec], None] | None]] = []

    def on(
        self,
        fragment: str,
        exit_code: int = 0,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
        effect: Callable[[CommandSpec], None] | None = None,
    ) -> FakeCommandRunner:
        self._rules.append(
            (fragment, CommandResult(exit_code, stdout, stderr, timed_out), effect)
        )
        return self

    def execute(self, spec: CommandSpec, timeout: float | None = None) -> CommandResult:
        self.calls.append(spec)
        self.timeouts.append(timeout)
        rendered = spec.render()
        for fragment, result, effect in reversed(self._rules):
            if fragment in rendered:
                if effect is not None:
                    effect(spec)
                return result
        return CommandResult(0)

    @property
    def rendered(self) -> list[str]:
        return [spec.render() for spec in self.calls]

    def ran(self, fragment: str) -> bool:
        return any(fragment in line for line in self.rendered)

    def find(self, fragment: str) -> CommandSpec:
        for spec in self.calls:
            if fragment in spec.render():
                return spec
        raise AssertionError(f"No command containing {fragment!r} was run")


class RecordingTransport:
    """Transport that keeps every payload instead of delivering it."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.fail = fail

    def send(self, endpoint: str, payload: Any) -> None:
        if self.fail:
            raise ConnectionError("transport down")
        self.sent.append((endpoint, dict(payload)))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def fs(tmp_path: Path) -> LocalFileSystem:
    """A real filesystem rooted at a fresh temporary project directory."""
    return LocalFileSystem(tmp_path)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A minimal React Native project layout."""
    (tmp_path / "package.json").write_text(json.dumps({"name": "demo"}), encoding="utf-8")
    android = tmp_path / "android"
    (android / "app").mkdir(parents=True)
    (android / "app" / "build.gradle").write_text("// gradle", encoding="utf-8")
    (android / "gradlew").write_text("#!/bin/sh\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def make_config() -> Callable[..., PipelineConfig]:
    """Build a valid config; keyword arguments override the defaults."""

    def _make(**overrides: Any) -> PipelineConfig:
        values: dict[str, Any] = {"app_name": "DemoApp", "version": "1.2.3", "build_number": 42}
        values.update(overrides)
        return PipelineConfigBuilder(values).build()

    return _make


@pytest.fixture
def release_values() -> dict[str, Any]:
    return {
        "app_name": "DemoApp",
        "build_type": "release",
        "environment": "prod",
        "keystore_credentials_id": "keystore",
        "keystore_password_credentials_id": "keystore-pass",
        "key_alias": "upload",
    }


@pytest.fixture
def write_artifact(tmp_path: Path) -> Callable[..., Path]:
    """Create a fake build artifact of *size* bytes under the project root."""

    def _write(relative: str, size: int = 2048) -> Path:
        target = tmp_path / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"\0" * size)
        return target

    return _write


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def failing_transport() -> RecordingTransport:
    return RecordingTransport(fail=True)
