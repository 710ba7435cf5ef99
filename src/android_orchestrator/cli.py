"""Command-line interface for the Android pipeline.

Commands:

* ``run``      -- execute the full pipeline
* ``validate`` -- check configuration, build environment, and project layout
* ``version``  -- parse a version string and show name/code, optionally bumped
* ``status``   -- show the last persisted pipeline outcome
* ``init``     -- write a default ``pipeline.yaml``
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from src.android_orchestrator.config import load_pipeline_config, load_toolchain_config
from src.android_orchestrator.display import (
    print_config_table,
    print_error_panel,
    print_final_summary,
    print_pipeline_header,
    print_stage_table,
    print_test_summary,
    print_validation_findings,
    print_version_info,
)
from src.android_orchestrator.exceptions import ConfigurationError, PipelineError
from src.android_orchestrator.pipeline import create_orchestrator
from src.android_orchestrator.shutdown import GracefulShutdown
from src.android_orchestrator.state import PipelineOutcome
from src.android_orchestrator.validator import ConfigValidator
from src.commands.filesystem import LocalFileSystem
from src.commands.runner import SubprocessCommandRunner
from src.pipeline_shared import __version__
from src.pipeline_shared.models import AppVersion
from src.shared.config import ToolchainSettings
from src.shared.logging import setup_logging

app = typer.Typer(
    name="android-pipeline",
    help="Build, test, and deploy React Native Android apps.",
    no_args_is_help=True,
)

console = Console()

DEFAULT_CONFIG_FILE = "pipeline.yaml"

_DEFAULT_CONFIG_TEMPLATE = """\
# Android pipeline configuration
pipeline:
  appName: MyApp
  gitUrl: null
  gitBranch: main
  gitCredentialsId: null

  buildType: debug          # debug | release | staging
  environment: dev          # dev | staging | prod
  outputType: apk           # apk | aab
  version: 1.0.0
  buildNumber: 1
  flavor: null
  cleanBuild: true

  # Release signing (required when buildType is release)
  keystoreCredentialsId: null
  keystorePasswordCredentialsId: null
  keyAlias: null

  # Play Store
  deploy: false
  playStoreCredentialsId: null
  packageName: null
  track: internal           # internal | alpha | beta | production
  rolloutPercentage: 100
  releaseNotes: null

  # Tests
  runLint: true
  failOnLint: false
  runUnitTests: true
  runE2ETests: false
  emulatorUrl: null
  buildTimeout: 30
  testTimeout: 20

  # Notifications
  slackWebhookCredentialsId: null
  slackChannel: "#builds"
  emailRecipients: []

android:
  gradle_jvm_args: "-Xmx4g -XX:MaxMetaspaceSize=512m"
  gradle_daemon: true
  parallel_build: true
  configuration_cache: false
  gradle_properties: {}
"""


class BumpPart(str, Enum):
    build = "build"
    patch = "patch"
    minor = "minor"
    major = "major"


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"android-pipeline v{__version__}")
        raise typer.Exit()


@app.callback()
def _main(
    show_version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Android build-test-deploy pipeline."""


def _config_path(config: Optional[Path], project_dir: Path) -> Path:
    return config if config is not None else project_dir / DEFAULT_CONFIG_FILE


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@app.command()
def run(
    app_name: Optional[str] = typer.Option(None, "--app-name", help="Application name."),
    build_type: Optional[str] = typer.Option(
        None, "--build-type", help="debug, release or staging."
    ),
    environment: Optional[str] = typer.Option(
        None, "--environment", help="dev, staging or prod."
    ),
    output_type: Optional[str] = typer.Option(None, "--output-type", help="apk or aab."),
    track: Optional[str] = typer.Option(
        None, "--track", help="internal, alpha, beta or production."
    ),
    rollout: Optional[float] = typer.Option(
        None, "--rollout", help="Rollout percentage (production only)."
    ),
    unit_tests: Optional[bool] = typer.Option(
        None, "--unit-tests/--no-unit-tests", help="Run Jest unit tests."
    ),
    e2e_tests: Optional[bool] = typer.Option(
        None, "--e2e-tests/--no-e2e-tests", help="Run Appium E2E tests."
    ),
    deploy: Optional[bool] = typer.Option(
        None, "--deploy/--no-deploy", help="Upload the artifact to the Play Store."
    ),
    app_version: Optional[str] = typer.Option(
        None, "--version", help="Application version (e.g. 1.2.3)."
    ),
    build_number: Optional[int] = typer.Option(None, "--build-number", help="Build number."),
    config: Optional[Path] = typer.Option(
        None, "--config", help="Path to pipeline YAML (default: <project-dir>/pipeline.yaml)."
    ),
    project_dir: Path = typer.Option(Path("."), "--project-dir", help="Project root."),
    check_env: bool = typer.Option(
        False, "--check-env", help="Validate the build environment before starting."
    ),
) -> None:
    """Execute the full pipeline; exits 1 unless every stage succeeded."""
    settings = ToolchainSettings()
    setup_logging("android-pipeline", settings.log_level)

    overrides = {
        "app_name": app_name,
        "build_type": build_type,
        "environment": environment,
        "output_type": output_type,
        "play_store_track": track,
        "rollout_percentage": rollout,
        "run_unit_tests": unit_tests,
        "run_e2e_tests": e2e_tests,
        "deploy": deploy,
        "version": app_version,
        "build_number": build_number,
    }
    path = _config_path(config, project_dir)
    try:
        pipeline_config = load_pipeline_config(path, overrides)
        toolchain = load_toolchain_config(path)
    except ConfigurationError as exc:
        print_error_panel(exc)
        raise typer.Exit(code=1)

    print_pipeline_header(pipeline_config)

    shutdown = GracefulShutdown()
    shutdown.install()
    try:
        orchestrator = create_orchestrator(
            pipeline_config,
            project_dir,
            settings=settings,
            toolchain=toolchain,
            shutdown=shutdown,
            check_environment=check_env,
        )
        outcome = orchestrator.run()
    except PipelineError as exc:
        print_error_panel(exc)
        raise typer.Exit(code=1)
    finally:
        shutdown.uninstall()

    print_stage_table(outcome)
    if outcome.test_result:
        print_test_summary(outcome.test_result)
    if outcome.error_report:
        print_error_panel(outcome.error_report)
    print_final_summary(outcome)

    if not outcome.overall_success:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


@app.command()
def validate(
    config: Optional[Path] = typer.Option(None, "--config", help="Path to pipeline YAML."),
    project_dir: Path = typer.Option(Path("."), "--project-dir", help="Project root."),
    check_env: bool = typer.Option(
        True, "--check-env/--no-check-env", help="Check that java, node, gradle and fastlane are installed."
    ),
    check_structure: bool = typer.Option(
        True, "--check-structure/--no-check-structure", help="Check the project layout."
    ),
) -> None:
    """Print configuration and environment findings; exits 1 when any."""
    path = _config_path(config, project_dir)
    problems = 0

    try:
        pipeline_config = load_pipeline_config(path)
    except ConfigurationError as exc:
        print_validation_findings("Configuration", exc.violations)
        problems += len(exc.violations)
    else:
        print_config_table(pipeline_config)
        print_validation_findings("Configuration", [])

    validator = ConfigValidator(
        SubprocessCommandRunner(cwd=project_dir), LocalFileSystem(project_dir)
    )
    if check_env:
        findings = validator.validate_environment()
        print_validation_findings("Environment", findings)
        problems += len(findings)
    if check_structure:
        findings = validator.validate_project_structure()
        print_validation_findings("Project structure", findings)
        problems += len(findings)

    if problems:
        console.print(f"[red]{problems} problem(s) found[/red]")
        raise typer.Exit(code=1)
    console.print("[green]All checks passed[/green]")


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@app.command()
def version(
    version_string: str = typer.Argument(..., help="Version such as 1.2.3 or v2.0.0-rc1."),
    build_number: int = typer.Option(0, "--build-number", help="Build number."),
    bump: Optional[BumpPart] = typer.Option(None, "--bump", help="Part to increment."),
) -> None:
    """Show version name and version code for a version string."""
    try:
        parsed = AppVersion.parse(version_string, build_number)
    except ValueError as exc:
        console.print(f"[red]Invalid version:[/red] {exc}")
        raise typer.Exit(code=1)

    if bump is BumpPart.build:
        parsed = parsed.increment_build_number()
    elif bump is BumpPart.patch:
        parsed = parsed.increment_patch()
    elif bump is BumpPart.minor:
        parsed = parsed.increment_minor()
    elif bump is BumpPart.major:
        parsed = parsed.increment_major()

    print_version_info(parsed)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@app.command()
def status(
    project_dir: Path = typer.Option(Path("."), "--project-dir", help="Project root."),
    state_dir: Optional[Path] = typer.Option(
        None, "--state-dir", help="Outcome directory (default from PIPELINE_STATE_DIR)."
    ),
) -> None:
    """Show the outcome of the last pipeline run."""
    if state_dir is None:
        state_dir = Path(ToolchainSettings().state_dir)
        if not state_dir.is_absolute():
            state_dir = project_dir / state_dir

    outcome = PipelineOutcome.load(state_dir)
    if outcome is None:
        console.print(f"[red]No pipeline outcome found in {state_dir}[/red]")
        raise typer.Exit(code=1)

    print_stage_table(outcome)
    if outcome.test_result:
        print_test_summary(outcome.test_result)
    if outcome.error_report:
        print_error_panel(outcome.error_report)
    print_final_summary(outcome)


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


@app.command()
def init(
    output: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILE), "--output", "-o", help="Where to write the template."
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
) -> None:
    """Write a default pipeline configuration template."""
    if output.exists() and not force:
        console.print(f"[red]{output} already exists; use --force to overwrite[/red]")
        raise typer.Exit(code=1)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(_DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
    console.print(f"[green]Wrote {output}[/green]")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
