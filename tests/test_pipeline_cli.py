"""Tests for src.android_orchestrator.cli."""

from __future__ import annotations

import signal
from unittest.mock import MagicMock, patch

import pytest
import yaml
from typer.testing import CliRunner

from src.android_orchestrator.cli import _DEFAULT_CONFIG_TEMPLATE, app
from src.android_orchestrator.config import load_pipeline_config
from src.android_orchestrator.state import PipelineOutcome
from src.pipeline_shared.models import StageStatus

runner = CliRunner()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "pipeline.yaml"
    path.write_text(_DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
    return path


@pytest.fixture
def done_outcome():
    outcome = PipelineOutcome(app_name="Demo", current_state="done", overall_success=True)
    for name in outcome.stages:
        outcome.record(name, StageStatus.SUCCEEDED)
    outcome.build_result = {"success": True, "artifact_path": "app-dev-debug.apk"}
    return outcome


@pytest.fixture
def failed_outcome():
    outcome = PipelineOutcome(app_name="Demo", current_state="failed", failed_stage="build")
    outcome.record("build", StageStatus.FAILED, "Build failed with exit code 1")
    outcome.error_report = "PIPELINE ERROR\nType: BuildError"
    return outcome


@pytest.fixture(autouse=True)
def _quiet_logging():
    with patch("src.android_orchestrator.cli.setup_logging"):
        yield


def _patched_orchestrator(outcome):
    orchestrator = MagicMock()
    orchestrator.run.return_value = outcome
    return patch(
        "src.android_orchestrator.cli.create_orchestrator", return_value=orchestrator
    )


# ---------------------------------------------------------------------------
# App structure
# ---------------------------------------------------------------------------


class TestAppStructure:
    def test_commands_registered(self):
        names = {cmd.name or cmd.callback.__name__ for cmd in app.registered_commands}
        assert {"run", "validate", "version", "status", "init"} <= names

    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "android-pipeline v1.0.0" in result.output

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "run" in result.output


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


class TestInit:
    def test_writes_template(self, tmp_path):
        target = tmp_path / "conf" / "pipeline.yaml"
        result = runner.invoke(app, ["init", "--output", str(target)])
        assert result.exit_code == 0
        assert "Wrote" in result.output
        assert target.read_text(encoding="utf-8") == _DEFAULT_CONFIG_TEMPLATE

    def test_refuses_to_overwrite(self, config_file, monkeypatch):
        monkeypatch.chdir(config_file.parent)
        config_file.write_text("old", encoding="utf-8")
        result = runner.invoke(app, ["init", "-o", config_file.name])
        assert result.exit_code == 1
        assert "already exists" in result.output
        assert config_file.read_text(encoding="utf-8") == "old"

    def test_force_overwrites(self, config_file):
        config_file.write_text("old", encoding="utf-8")
        result = runner.invoke(app, ["init", "-o", str(config_file), "--force"])
        assert result.exit_code == 0
        assert config_file.read_text(encoding="utf-8") == _DEFAULT_CONFIG_TEMPLATE


class TestConfigTemplate:
    def test_template_is_valid_yaml_with_sections(self):
        data = yaml.safe_load(_DEFAULT_CONFIG_TEMPLATE)
        assert set(data) == {"pipeline", "android"}
        assert data["pipeline"]["appName"] == "MyApp"

    def test_template_loads_as_valid_config(self, config_file):
        config = load_pipeline_config(config_file)
        assert config.app_name == "MyApp"
        assert config.variant_name == "devDebug"
        assert config.run_unit_tests
        assert not config.run_e2e_tests


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


class TestVersionCommand:
    def test_shows_name_and_code(self):
        result = runner.invoke(app, ["version", "2.3.4", "--build-number", "17"])
        assert result.exit_code == 0
        assert "2.3.4" in result.output
        assert "17" in result.output

    def test_bump_minor(self):
        result = runner.invoke(app, ["version", "2.3.4", "--bump", "minor"])
        assert result.exit_code == 0
        assert "2.4.0" in result.output
        assert "20400" in result.output

    def test_invalid_version(self):
        result = runner.invoke(app, ["version", "not.a.version"])
        assert result.exit_code == 1
        assert "Invalid version:" in result.output


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


class TestStatus:
    def test_missing_outcome(self, tmp_path):
        result = runner.invoke(app, ["status", "--state-dir", str(tmp_path / "none")])
        assert result.exit_code == 1
        assert "No pipeline outcome found" in result.output

    def test_shows_saved_outcome(self, tmp_path, failed_outcome):
        failed_outcome.save(tmp_path)
        result = runner.invoke(app, ["status", "--state-dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "Stage Status" in result.output
        assert "Pipeline Failed" in result.output
        assert "BuildError" in result.output

    def test_default_state_dir_is_under_project(self, tmp_path, done_outcome, monkeypatch):
        monkeypatch.delenv("PIPELINE_STATE_DIR", raising=False)
        done_outcome.save(tmp_path / ".android-pipeline")
        result = runner.invoke(app, ["status", "--project-dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "Pipeline Succeeded" in result.output


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


class TestValidate:
    def test_all_checks_pass(self, project, config_file):
        result = runner.invoke(
            app, ["validate", "--project-dir", str(project), "--no-check-env"]
        )
        assert result.exit_code == 0, result.output
        assert "All checks passed" in result.output

    def test_reports_problems(self, tmp_path):
        (tmp_path / "pipeline.yaml").write_text(
            "pipeline:\n  buildType: release\n", encoding="utf-8"
        )
        result = runner.invoke(
            app, ["validate", "--project-dir", str(tmp_path), "--no-check-env"]
        )
        assert result.exit_code == 1
        assert "problem(s) found" in result.output
        assert "appName is required" in result.output

    def test_structure_check_can_be_disabled(self, tmp_path, config_file):
        result = runner.invoke(
            app,
            ["validate", "--project-dir", str(tmp_path), "--no-check-env",
             "--no-check-structure"],
        )
        assert result.exit_code == 0


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


class TestRun:
    def test_successful_run(self, tmp_path, config_file, done_outcome):
        with _patched_orchestrator(done_outcome) as create:
            result = runner.invoke(
                app,
                ["run", "--project-dir", str(tmp_path), "--app-name", "Demo",
                 "--no-unit-tests", "--version", "3.1.0", "--build-number", "9"],
            )
        assert result.exit_code == 0, result.output
        assert "Pipeline Succeeded" in result.output
        config = create.call_args.args[0]
        assert config.app_name == "Demo"
        assert config.run_unit_tests is False
        assert config.version == "3.1.0"
        assert config.build_number == 9
        assert create.call_args.args[1] == tmp_path
        assert create.call_args.kwargs["check_environment"] is False

    def test_failed_run_exits_one(self, tmp_path, config_file, failed_outcome):
        with _patched_orchestrator(failed_outcome):
            result = runner.invoke(app, ["run", "--project-dir", str(tmp_path)])
        assert result.exit_code == 1
        assert "Pipeline Failed" in result.output
        assert "BuildError" in result.output

    def test_invalid_options_exit_before_running(self, tmp_path, config_file):
        with _patched_orchestrator(None) as create:
            result = runner.invoke(
                app, ["run", "--project-dir", str(tmp_path), "--build-type", "nightly"]
            )
        assert result.exit_code == 1
        assert "ConfigurationError" in result.output
        create.assert_not_called()

    def test_explicit_config_path(self, tmp_path, done_outcome):
        custom = tmp_path / "ci" / "android.yaml"
        custom.parent.mkdir()
        custom.write_text("pipeline:\n  appName: FromCustom\n", encoding="utf-8")
        with _patched_orchestrator(done_outcome) as create:
            result = runner.invoke(
                app, ["run", "--config", str(custom), "--project-dir", str(tmp_path)]
            )
        assert result.exit_code == 0, result.output
        assert create.call_args.args[0].app_name == "FromCustom"

    def test_signal_handlers_are_restored(self, tmp_path, config_file, done_outcome):
        before = signal.getsignal(signal.SIGTERM)
        with _patched_orchestrator(done_outcome):
            runner.invoke(app, ["run", "--project-dir", str(tmp_path)])
        assert signal.getsignal(signal.SIGTERM) == before
