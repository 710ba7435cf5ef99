"""Tests for src.stages.test_runners."""

from __future__ import annotations

import json

import pytest

from src.android_orchestrator.exceptions import TestError
from src.pipeline_shared.protocols import TestRunner
from src.stages.test_runners import AppiumRunner, JestRunner


def _write_json(root, relative, data):
    target = root / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(data), encoding="utf-8")


JEST_REPORT_DATA = {
    "numTotalTests": 12,
    "numPassedTests": 9,
    "numFailedTests": 2,
    "numPendingTests": 1,
    "numTodoTests": 0,
    "testResults": [
        {
            "assertionResults": [
                {"status": "passed", "fullName": "login works"},
                {"status": "failed", "fullName": "cart totals"},
                {"status": "failed", "title": "checkout"},
            ]
        }
    ],
}


class TestJestRunner:
    def test_is_available_needs_package_json(self, runner, fs, project, tmp_path):
        assert JestRunner(runner, fs).is_available()
        (project / "package.json").unlink()
        assert not JestRunner(runner, fs).is_available()

    def test_satisfies_protocol(self, runner, fs):
        assert isinstance(JestRunner(runner, fs), TestRunner)

    def test_command_with_coverage(self, runner, fs):
        assert JestRunner(runner, fs).command().render() == (
            "npm test -- --ci --json --outputFile=test-results/jest.json "
            "--coverage --coverageReporters=json-summary --coverageReporters=text"
        )

    def test_command_without_coverage_and_with_pattern(self, runner, fs):
        spec = JestRunner(runner, fs, coverage=False).command({"test_path_pattern": "cart"})
        assert spec.render() == (
            "npm test -- --ci --json --outputFile=test-results/jest.json --testPathPattern=cart"
        )

    def test_prepare_creates_results_dir(self, runner, fs):
        JestRunner(runner, fs).prepare_environment()
        assert runner.rendered == ["mkdir -p test-results"]

    def test_parses_report_and_coverage(self, runner, fs, tmp_path):
        _write_json(tmp_path, "test-results/jest.json", JEST_REPORT_DATA)
        _write_json(tmp_path, "coverage/coverage-summary.json",
                    {"total": {"lines": {"pct": 83.5}}})
        runner.on("npm test", exit_code=1)

        result = JestRunner(runner, fs, timeout=30).run_tests()

        assert result.framework == "Jest"
        assert (result.total, result.passed, result.failed, result.skipped) == (12, 9, 2, 1)
        assert result.failed_test_names == ("cart totals", "checkout")
        assert result.coverage_percent == 83.5
        assert result.report_path == "test-results/jest.json"
        assert result.error_output is None
        assert not result.success
        assert runner.timeouts == [30]

    def test_all_passing(self, runner, fs, tmp_path):
        _write_json(tmp_path, "test-results/jest.json",
                    {"numTotalTests": 4, "numPassedTests": 4, "numFailedTests": 0})
        result = JestRunner(runner, fs, coverage=False).run_tests()
        assert result.success
        assert result.coverage_percent is None

    def test_missing_report_on_failure_is_an_error(self, runner, fs):
        runner.on("npm test", exit_code=2, stderr="Cannot find module 'x'")
        result = JestRunner(runner, fs).run_tests()
        assert not result.success
        assert result.error_output == "Cannot find module 'x'"
        assert result.total == 0

    def test_nonzero_exit_without_failures_is_an_error(self, runner, fs, tmp_path):
        _write_json(tmp_path, "test-results/jest.json",
                    {"numTotalTests": 3, "numPassedTests": 3, "numFailedTests": 0})
        runner.on("npm test", exit_code=1)
        result = JestRunner(runner, fs, coverage=False).run_tests()
        assert result.error_output == "Jest exited with code 1"

    def test_timeout(self, runner, fs):
        runner.on("npm test", exit_code=124, timed_out=True)
        result = JestRunner(runner, fs).run_tests()
        assert result.error_output == "Jest timed out"

    def test_corrupt_report_is_ignored(self, runner, fs, tmp_path):
        (tmp_path / "test-results").mkdir()
        (tmp_path / "test-results" / "jest.json").write_text("{not json", encoding="utf-8")
        result = JestRunner(runner, fs, coverage=False).run_tests()
        assert result.total == 0
        assert result.success

    def test_prepare_removes_stale_reports(self, runner, fs, tmp_path):
        _write_json(tmp_path, "test-results/jest.json", JEST_REPORT_DATA)
        _write_json(tmp_path, "coverage/coverage-summary.json",
                    {"total": {"lines": {"pct": 90}}})
        jest = JestRunner(runner, fs)
        jest.prepare_environment()
        assert not (tmp_path / "test-results" / "jest.json").exists()
        assert not (tmp_path / "coverage" / "coverage-summary.json").exists()
        assert runner.rendered == ["mkdir -p test-results"]

        runner.on("npm test", exit_code=1, stderr="crash")
        result = jest.run_tests()
        assert result.total == 0
        assert result.error_output == "crash"
        assert result.coverage_percent is None

    def test_prepare_without_stale_reports(self, runner, fs, tmp_path):
        JestRunner(runner, fs).prepare_environment()
        assert not (tmp_path / "test-results" / "jest.json").exists()

    def test_malformed_coverage_is_ignored(self, runner, fs, tmp_path):
        _write_json(tmp_path, "coverage/coverage-summary.json", {"total": {}})
        assert JestRunner(runner, fs).run_tests().coverage_percent is None


class TestAppiumRunner:
    URL = "http://emulator:4723/"

    def test_is_available_needs_wdio_config(self, runner, fs, tmp_path):
        appium = AppiumRunner(runner, fs, self.URL)
        assert not appium.is_available()
        (tmp_path / "wdio.conf.js").write_text("", encoding="utf-8")
        assert appium.is_available()

    def test_prepare_without_url_raises(self, runner, fs):
        with pytest.raises(TestError, match="Emulator URL is not configured"):
            AppiumRunner(runner, fs, None).prepare_environment()

    def test_prepare_checks_emulator_status(self, runner, fs):
        AppiumRunner(runner, fs, self.URL).prepare_environment()
        assert runner.rendered[0] == (
            "curl --connect-timeout 5 -s -f http://emulator:4723/status > '/dev/null'"
        )
        assert runner.rendered[1] == "mkdir -p test-results"

    def test_prepare_removes_stale_wdio_report(self, runner, fs, tmp_path):
        _write_json(tmp_path, "test-results/wdio.json", {"state": {"passed": 3}})
        AppiumRunner(runner, fs, self.URL).prepare_environment()
        assert not (tmp_path / "test-results" / "wdio.json").exists()

    def test_unreachable_emulator_raises(self, runner, fs):
        runner.on("curl", exit_code=7)
        with pytest.raises(TestError) as exc_info:
            AppiumRunner(runner, fs, self.URL).prepare_environment()
        assert str(exc_info.value).startswith("Emulator not reachable at http://emulator:4723")
        assert exc_info.value.framework == "Appium"

    def test_command_passes_app_path(self, runner, fs):
        appium = AppiumRunner(runner, fs, self.URL).with_app("app.apk")
        appium.run_tests({"app_path": "other.apk"})
        spec = runner.find("wdio run")
        assert spec.env == {"EMULATOR_URL": "http://emulator:4723", "APP_PATH": "other.apk"}
        assert spec.render().endswith("npx wdio run wdio.conf.js")

    def test_parses_wdio_report(self, runner, fs, tmp_path):
        _write_json(tmp_path, "test-results/wdio.json", {
            "state": {"passed": 5, "failed": 1, "skipped": 2},
            "suites": [{"tests": [{"name": "opens menu", "state": "failed"},
                                  {"name": "logs in", "state": "passed"}]}],
        })
        runner.on("wdio", exit_code=1)
        result = AppiumRunner(runner, fs, self.URL).run_tests()
        assert (result.total, result.passed, result.failed, result.skipped) == (8, 5, 1, 2)
        assert result.failed_test_names == ("opens menu",)
        assert result.error_output is None
        assert result.report_path == "test-results/wdio.json"

    def test_failure_without_report(self, runner, fs):
        runner.on("wdio", exit_code=3, stderr="session not created")
        result = AppiumRunner(runner, fs, self.URL).run_tests()
        assert result.error_output == (
            "Appium tests failed with exit code 3: session not created"
        )

    def test_timeout(self, runner, fs):
        runner.on("wdio", exit_code=124, timed_out=True)
        assert AppiumRunner(runner, fs, self.URL).run_tests().error_output == "E2E tests timed out"
