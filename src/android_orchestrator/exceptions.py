"""Custom exceptions for the Android pipeline.

Every error carries an advisory remediation list chosen from the failure
signature (exit code, framework, or message keywords).  Remediation text is
for operators only; nothing branches on it.
"""

from __future__ import annotations

import textwrap
from typing import Any, Mapping, Sequence

_BOX_WIDTH = 62


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(
        self,
        message: str,
        stage_name: str | None = None,
        remediation: Sequence[str] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage_name = stage_name
        self.remediation: list[str] = list(remediation or [])
        self.context: dict[str, Any] = dict(context or {})

    def formatted_report(self) -> str:
        """Render a boxed multi-line report of this error."""
        rule = "═" * _BOX_WIDTH

        def row(text: str, indent: int = 2) -> str:
            body = (" " * indent + text)[:_BOX_WIDTH]
            return f"║{body.ljust(_BOX_WIDTH)}║"

        lines = [f"╔{rule}╗", row("PIPELINE ERROR"), f"╠{rule}╣"]
        lines.append(row(f"Type: {type(self).__name__}"))
        if self.stage_name:
            lines.append(row(f"Stage: {self.stage_name}"))

        lines += [f"╠{rule}╣", row("Message:")]
        for line in textwrap.wrap(self.message or "", 56) or [""]:
            lines.append(row(line, indent=4))

        if self.remediation:
            lines += [f"╠{rule}╣", row("Remediation:")]
            for idx, step in enumerate(self.remediation, 1):
                for line in textwrap.wrap(f"{idx}. {step}", 56):
                    lines.append(row(line, indent=4))

        if self.context:
            lines += [f"╠{rule}╣", row("Context:")]
            for key, value in self.context.items():
                lines.append(row(f"{key}: {str(value)[:45]}", indent=4))

        lines.append(f"╚{rule}╝")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "stage": self.stage_name,
            "message": self.message,
            "remediation": list(self.remediation),
            "context": {k: str(v) for k, v in self.context.items()},
        }


class ConfigurationError(PipelineError):
    """Raised when the pipeline configuration has one or more violations."""

    def __init__(self, violations: Sequence[str], stage_name: str = "Validation") -> None:
        self.violations: list[str] = list(violations)
        count = len(self.violations)
        message = f"Configuration has {count} error(s): " + "; ".join(self.violations)
        super().__init__(
            message,
            stage_name=stage_name,
            remediation=[
                "Fix every listed setting in the pipeline configuration",
                "Run 'android-pipeline validate' to re-check before building",
            ],
            context={"violations": count},
        )


class EnvironmentSetupError(PipelineError):
    """Raised when a required tool, SDK, or credential is unavailable."""

    def __init__(self, findings: Sequence[str] | str, stage_name: str = "Setup") -> None:
        if isinstance(findings, str):
            findings = [findings]
        self.findings: list[str] = list(findings)
        super().__init__(
            "; ".join(self.findings) or "Build environment is not ready",
            stage_name=stage_name,
            remediation=[
                "Install the missing tools on the build agent or use the pipeline Docker image",
                "Export ANDROID_HOME (or ANDROID_SDK_ROOT) for the Android SDK",
            ],
        )


def _build_remediation(exit_code: int) -> list[str]:
    if exit_code == 1:
        return [
            "Check Gradle build logs for compilation errors",
            "Verify all dependencies are correctly specified",
            'Run "./gradlew clean" and try again',
        ]
    if exit_code == 137:
        return [
            "Build was killed due to memory issues",
            "Increase Java heap size: -Xmx4g",
            "Consider using Gradle daemon memory settings",
        ]
    if exit_code == 124:
        return [
            "Build exceeded its timeout",
            "Raise build_timeout or enable the Gradle build cache",
        ]
    return [
        "Review build logs for detailed error messages",
        "Verify environment variables are set correctly",
        "Ensure all SDK components are installed",
    ]


class BuildError(PipelineError):
    """Raised when a build command exits non-zero or produces no artifact."""

    def __init__(
        self, message: str, command: str | None = None, exit_code: int = -1
    ) -> None:
        self.command = command
        self.exit_code = exit_code
        context: dict[str, Any] = {"exit_code": exit_code}
        if command:
            context["command"] = command
        super().__init__(
            message,
            stage_name="Build",
            remediation=_build_remediation(exit_code),
            context=context,
        )


def _test_remediation(framework: str | None) -> list[str]:
    name = (framework or "").lower()
    if name == "jest":
        return [
            'Run "npm test -- --verbose" locally to see detailed failures',
            "Check for missing mock implementations",
            "Verify test environment matches CI configuration",
        ]
    if name == "appium":
        return [
            "Verify Docker emulator is running and accessible",
            "Check Appium server connection settings",
            "Review element selectors if tests timeout",
            "Ensure app is properly installed on emulator",
        ]
    return [
        "Review test output for specific failure messages",
        "Run failing tests locally to reproduce",
        "Check for flaky tests and add retries if needed",
    ]


class TestError(PipelineError):
    """Raised when a test framework fails or reports failing tests."""

    __test__ = False

    def __init__(
        self,
        message: str,
        framework: str | None = None,
        failed: int = 0,
        total: int = 0,
    ) -> None:
        self.framework = framework
        self.failed = failed
        self.total = total
        super().__init__(
            message,
            stage_name="Test",
            remediation=_test_remediation(framework),
            context={"framework": framework, "failed": failed, "total": total},
        )

    @property
    def pass_rate(self) -> float:
        if self.total <= 0:
            return 0.0
        return (self.total - self.failed) / self.total * 100.0


def _deploy_remediation(message: str) -> list[str]:
    lowered = (message or "").lower()
    if "authentication" in lowered or "credential" in lowered:
        return [
            "Verify Play Store service account JSON key is valid",
            "Check the credential store has the service account configured",
            "Ensure service account has correct API permissions",
        ]
    if "version" in lowered:
        return [
            "Version code must be higher than current version in Play Store",
            "Check app/build.gradle for version settings",
            "Consider using auto-incrementing version codes",
        ]
    if "signature" in lowered or "signing" in lowered:
        return [
            "Verify upload keystore matches the one registered with Play Store",
            "Check keystore password and alias are correct",
            "Ensure APK/AAB is properly signed",
        ]
    return [
        "Review Fastlane output for detailed error",
        "Check Play Console for any pending issues",
        "Verify app bundle is properly formatted",
    ]


class DeployError(PipelineError):
    """Raised when distribution to a store track fails."""

    def __init__(
        self,
        message: str,
        track: Any = None,
        artifact_path: str | None = None,
    ) -> None:
        self.track = track
        self.artifact_path = artifact_path
        context: dict[str, Any] = {}
        if track is not None:
            context["track"] = getattr(track, "value", track)
        if artifact_path:
            context["artifact"] = artifact_path
        super().__init__(
            message,
            stage_name="Deploy",
            remediation=_deploy_remediation(message),
            context=context,
        )


class NotificationError(PipelineError):
    """Raised by a notifier; always caught and logged by the fan-out service."""

    def __init__(self, message: str, channel: str = "") -> None:
        self.channel = channel
        super().__init__(message, stage_name="Notify", context={"channel": channel})


class PipelineCancelledError(PipelineError):
    """Raised when a run is cancelled at a stage boundary."""

    def __init__(self, stage_name: str | None = None) -> None:
        where = f" before stage '{stage_name}'" if stage_name else ""
        super().__init__(f"Pipeline cancelled{where}", stage_name=stage_name)
