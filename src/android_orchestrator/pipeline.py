"""Android pipeline -- main orchestration engine.

Drives one run through the stage sequence:

    checkout → setup → dependencies → lint → build → unit_test
    → e2e_test → deploy → notify → done

The run is state-machine-driven and interruptible between stages.

.. rubric:: Key design decisions

* **Skip, don't fail** – A stage whose applicability predicate is false is
  entered and immediately recorded ``skipped`` so the outcome always has an
  entry for every stage.
* **Always notify** – A failing stage aborts the remaining stages but the
  machine still passes through ``notify`` so the failure notification is
  attempted before ``failed``.
* **Preflight before stages** – Configuration and environment errors stop
  the run before checkout and send no notification.
* **Save after every stage** – The outcome record is written atomically
  after each stage and once more at the end.
"""

from __future__ import annotations

import contextlib
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator

from src.android_orchestrator.config import PipelineConfig, validate_pipeline_config
from src.android_orchestrator.exceptions import (
    BuildError,
    ConfigurationError,
    DeployError,
    EnvironmentSetupError,
    PipelineCancelledError,
    PipelineError,
    TestError,
)
from src.android_orchestrator.shutdown import GracefulShutdown
from src.android_orchestrator.state import PipelineOutcome
from src.android_orchestrator.state_machine import (
    STAGE_STATES,
    STAGE_TRIGGERS,
    create_pipeline_machine,
)
from src.android_orchestrator.validator import ConfigValidator
from src.commands.filesystem import LocalFileSystem
from src.commands.runner import SubprocessCommandRunner
from src.commands.secrets import (
    CredentialRequest,
    EnvironmentCredentialStore,
    SecretsManager,
)
from src.pipeline_shared.constants import (
    STAGE_BUILD,
    STAGE_CHECKOUT,
    STAGE_DEPENDENCIES,
    STAGE_DEPLOY,
    STAGE_DISPLAY_NAMES,
    STAGE_E2E_TEST,
    STAGE_LINT,
    STAGE_NOTIFY,
    STAGE_SETUP,
    STAGE_UNIT_TEST,
    STATE_DIR,
)
from src.pipeline_shared.models import (
    BuildResult,
    StageStatus,
    TestResult,
    UploadResult,
)
from src.pipeline_shared.protocols import Builder, Distributor
from src.shared.config import ToolchainSettings
from src.shared.logging import run_id_var
from src.stages.builder_factory import BuilderFactory
from src.stages.fastlane import FastlaneExecutor
from src.stages.gradle import AndroidToolchainConfig
from src.stages.notification_service import NotificationService
from src.stages.notifiers import HttpTransport, SmtpTransport
from src.stages.play_store import PlayStoreDistributor
from src.stages.test_orchestrator import COMBINED_FRAMEWORK, TestOrchestrator
from src.stages.test_runners import AppiumRunner, JestRunner
from src.stages.workspace import WorkspacePreparer

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _display(stage: str) -> str:
    return STAGE_DISPLAY_NAMES.get(stage, stage)


# ---------------------------------------------------------------------------
# PipelineModel -- state machine model with guard methods
# ---------------------------------------------------------------------------


class PipelineModel:
    """Model object for the ``transitions`` state machine.

    Wraps a :class:`PipelineOutcome` and exposes the guard methods required
    by :data:`TRANSITIONS`.  The ``state`` attribute is managed by the
    ``Machine``.
    """

    def __init__(self, outcome: PipelineOutcome) -> None:
        self._outcome = outcome
        self.state: str = outcome.current_state

    # ---- Guard methods ---------------------------------------------------

    def is_configured(self, *args, **kwargs) -> bool:
        """True when the run has an application to build."""
        return bool(self._outcome.app_name)

    def last_stage_ok(self, *args, **kwargs) -> bool:
        """True when the stage being left did not fail."""
        return self._outcome.stage_status(self.state) is not StageStatus.FAILED

    def pipeline_succeeded(self, *args, **kwargs) -> bool:
        """True when no stage failed and the run was not cancelled."""
        return (
            not self._outcome.stages_with(StageStatus.FAILED)
            and not self._outcome.cancelled
        )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class PipelineOrchestrator:
    """Runs one pipeline for one :class:`PipelineConfig`.

    Collaborators are injected so tests can substitute fakes.  ``builder``
    and ``tests`` are required; every other collaborator is optional and
    the stages that need a missing one are skipped.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        builder: Builder,
        tests: TestOrchestrator,
        distributor: Distributor | None = None,
        notifications: NotificationService | None = None,
        workspace: WorkspacePreparer | None = None,
        secrets: SecretsManager | None = None,
        validator: ConfigValidator | None = None,
        check_environment: bool = False,
        state_dir: Path | str | None = None,
        shutdown: GracefulShutdown | None = None,
    ) -> None:
        self.config = config
        self.builder = builder
        self.tests = tests
        self.distributor = distributor
        self.notifications = notifications or NotificationService()
        self.workspace = workspace
        self.secrets = secrets or SecretsManager()
        self.validator = validator
        self.check_environment = check_environment
        self.state_dir = Path(state_dir) if state_dir else Path(STATE_DIR)
        self.shutdown = shutdown

        self.outcome = PipelineOutcome(
            app_name=config.app_name,
            variant_name=config.variant_name,
        )
        self.model = PipelineModel(self.outcome)
        self.machine = create_pipeline_machine(self.model)

        self.build_result: BuildResult | None = None
        self.test_result: TestResult | None = None
        self.deploy_result: UploadResult | None = None
        self._test_results: list[TestResult] = []
        self._cancel_requested = False
        self._run_started = 0

        self._handlers: dict[str, Callable[[], tuple[str, dict[str, Any]]]] = {
            STAGE_CHECKOUT: self._stage_checkout,
            STAGE_SETUP: self._stage_setup,
            STAGE_DEPENDENCIES: self._stage_dependencies,
            STAGE_LINT: self._stage_lint,
            STAGE_BUILD: self._stage_build,
            STAGE_UNIT_TEST: self._stage_unit_test,
            STAGE_E2E_TEST: self._stage_e2e_test,
            STAGE_DEPLOY: self._stage_deploy,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Request cancellation; honoured at the next stage boundary."""
        logger.warning("Cancellation requested")
        self._cancel_requested = True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested or bool(self.shutdown and self.shutdown.should_stop)

    def run(self) -> PipelineOutcome:
        """Execute the pipeline and return its outcome.

        Never raises for stage failures; the outcome records them.
        """
        token = run_id_var.set(self.outcome.pipeline_id)
        started = self._run_started = _now_ms()
        if self.shutdown is not None:
            self.shutdown.set_state(self.outcome, self.state_dir)
        logger.info(
            "Starting pipeline %s for %s (%s)",
            self.outcome.pipeline_id, self.config.app_name, self.config.variant_name,
        )
        try:
            try:
                self._preflight()
            except (ConfigurationError, EnvironmentSetupError) as exc:
                logger.error("Preflight failed: %s", exc.message)
                self._record_error(exc, failed_stage=None)
                for name in self.outcome.stages:
                    self.outcome.record(name, StageStatus.SKIPPED, "Pipeline did not start")
                self.model.fail()  # type: ignore[attr-defined]
                return self.outcome
            self._run_stages()
        finally:
            self.outcome.total_duration_ms = _now_ms() - started
            self.outcome.finished_at = datetime.now(timezone.utc).isoformat()
            self.outcome.current_state = self.model.state
            self.outcome.overall_success = self.model.state == "done"
            self._save()
            run_id_var.reset(token)
            logger.info(
                "Pipeline %s finished in state '%s'",
                self.outcome.pipeline_id, self.model.state,
            )
        return self.outcome

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def _preflight(self) -> None:
        if self.validator is not None:
            self.validator.require_valid(self.config)
            if self.check_environment:
                self.validator.require_valid_environment()
        else:
            errors = validate_pipeline_config(self.config)
            if errors:
                raise ConfigurationError(errors)

    def _enter(self, stage: str) -> None:
        trigger = getattr(self.model, STAGE_TRIGGERS[stage])
        if not trigger():
            raise PipelineError(
                f"Cannot enter stage '{stage}' from state '{self.model.state}'",
                stage_name=_display(stage),
            )
        self.outcome.current_state = self.model.state

    def _run_stages(self) -> None:
        self.notifications.notify_build_started(
            self.config.display_job_name,
            self.config.build_number,
            self.config.git_branch,
        )

        current = STAGE_CHECKOUT
        try:
            for stage in STAGE_STATES:
                current = stage
                self._enter(stage)
                if self.cancel_requested:
                    raise PipelineCancelledError(stage_name=_display(stage))
                self._run_stage(stage)
                self._save()
        except PipelineCancelledError as exc:
            logger.warning("Pipeline cancelled before %s", _display(current))
            self.outcome.cancelled = True
            self._record_error(exc, failed_stage=current)
            self.outcome.record(current, StageStatus.SKIPPED, "Cancelled")
            self._fail_remaining(current)
            return
        except PipelineError as exc:
            self._handle_stage_failure(current, exc)
            return
        except Exception as exc:
            logger.exception("Unexpected error in stage %s", current)
            wrapped = PipelineError(
                f"Unexpected error: {exc}", stage_name=_display(current)
            )
            self._handle_stage_failure(current, wrapped)
            return

        self._enter(STAGE_NOTIFY)
        started = _now_ms()
        self.notifications.notify_build_success(
            self.build_result or BuildResult(success=True),
            _now_ms() - self._run_started,
        )
        self._record_notify(started)
        self.model.finish()  # type: ignore[attr-defined]
        logger.info("Pipeline completed successfully")

    def _run_stage(self, stage: str) -> None:
        reason = self._skip_reason(stage)
        if reason:
            logger.info("Skipping %s: %s", _display(stage), reason)
            self.outcome.record(stage, StageStatus.SKIPPED, reason)
            return

        logger.info("Stage %s started", _display(stage))
        self.outcome.record(stage, StageStatus.RUNNING)
        self._save()
        started = _now_ms()
        try:
            message, details = self._handlers[stage]()
        except PipelineError as exc:
            self.outcome.record(
                stage, StageStatus.FAILED, exc.message, _now_ms() - started
            )
            raise
        except Exception as exc:
            self.outcome.record(stage, StageStatus.FAILED, str(exc), _now_ms() - started)
            raise
        duration = _now_ms() - started
        self.outcome.record(stage, StageStatus.SUCCEEDED, message, duration, **details)
        logger.info("Stage %s succeeded in %d ms", _display(stage), duration)

    def _skip_reason(self, stage: str) -> str | None:
        cfg = self.config
        if stage in (STAGE_CHECKOUT, STAGE_SETUP) and self.workspace is None:
            return "No workspace configured"
        if stage == STAGE_LINT and not cfg.run_lint:
            return "Lint disabled"
        if stage == STAGE_UNIT_TEST and not cfg.run_unit_tests:
            return "Unit tests disabled"
        if stage == STAGE_E2E_TEST and not cfg.run_e2e_tests:
            return "E2E tests disabled"
        if stage == STAGE_DEPLOY:
            if not cfg.deploy:
                return "Deployment not requested"
            if not cfg.environment.play_store_deployment_allowed:
                return (
                    f"Play Store deployment not allowed for "
                    f"{cfg.environment.display_name} environment"
                )
            if self.build_result is None or not self.build_result.success:
                return "No successful build to deploy"
            if self.distributor is None:
                return "No distributor configured"
        return None

    def _handle_stage_failure(self, stage: str, exc: PipelineError) -> None:
        logger.error("Stage %s failed: %s", _display(stage), exc.message)
        if self.outcome.stage_status(stage) is not StageStatus.FAILED:
            self.outcome.record(stage, StageStatus.FAILED, exc.message)
        self._record_error(exc, failed_stage=stage)
        self._fail_remaining(stage)

    def _fail_remaining(self, stage: str) -> None:
        """Skip the stages after *stage*, send the failure notification, then fail."""
        for name in STAGE_STATES[STAGE_STATES.index(stage) + 1:]:
            self.outcome.record(name, StageStatus.SKIPPED, f"Skipped after {_display(stage)} failure")

        self.model.abort()  # type: ignore[attr-defined]
        started = _now_ms()
        self.notifications.notify_build_failure(
            self.config.display_job_name,
            self.config.build_number,
            self.outcome.error["message"] if self.outcome.error else "Unknown error",
            _display(stage),
        )
        self._record_notify(started)
        self.model.fail()  # type: ignore[attr-defined]

    def _record_notify(self, started: int) -> None:
        if self.notifications.has_notifiers():
            channels = ", ".join(self.notifications.configured_channels)
            self.outcome.record(
                STAGE_NOTIFY, StageStatus.SUCCEEDED,
                f"Notified {channels}", _now_ms() - started,
            )
        else:
            self.outcome.record(STAGE_NOTIFY, StageStatus.SKIPPED, "No notifiers configured")

    def _record_error(self, exc: PipelineError, failed_stage: str | None) -> None:
        self.outcome.failed_stage = failed_stage
        self.outcome.error = exc.to_dict()
        self.outcome.error_report = exc.formatted_report()

    def _save(self) -> None:
        self.outcome.current_state = self.model.state
        try:
            self.outcome.save(self.state_dir)
        except OSError as exc:
            logger.warning("Failed to save pipeline outcome: %s", exc)

    # ------------------------------------------------------------------
    # Credential scopes
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def _git_env(self) -> Iterator[dict[str, str]]:
        if not self.config.git_credentials_id:
            yield {}
            return
        request = CredentialRequest.username_password(
            self.config.git_credentials_id, "GIT_USERNAME", "GIT_PASSWORD"
        )
        with self.secrets.acquire(request) as env:
            yield {**env, "GIT_TERMINAL_PROMPT": "0"}

    @contextlib.contextmanager
    def _signing_env(self) -> Iterator[dict[str, str]]:
        cfg = self.config
        if not (
            cfg.build_type.requires_signing
            and cfg.keystore_credentials_id
            and cfg.keystore_password_credentials_id
            and cfg.key_alias
        ):
            yield {}
            return
        with self.secrets.android_signing(
            cfg.keystore_credentials_id,
            cfg.keystore_password_credentials_id,
            cfg.key_alias,
        ) as env:
            yield env

    # ------------------------------------------------------------------
    # Stage handlers -- each returns (message, details) or raises
    # ------------------------------------------------------------------

    def _stage_checkout(self) -> tuple[str, dict[str, Any]]:
        assert self.workspace is not None
        with self._git_env() as env:
            info = self.workspace.checkout(self.config.git_url, self.config.git_branch, env=env)
        self.outcome.checkout = info.to_dict()
        return f"Checked out {info.short_commit} on {info.branch}", {"commit": info.commit}

    def _stage_setup(self) -> tuple[str, dict[str, Any]]:
        assert self.workspace is not None
        versions = self.workspace.setup()
        return "Environment ready", {"tools": versions}

    def _stage_dependencies(self) -> tuple[str, dict[str, Any]]:
        if not self.builder.install_dependencies():
            raise PipelineError(
                "Dependency installation failed",
                stage_name=_display(STAGE_DEPENDENCIES),
                remediation=[
                    "Check that package.json and the lockfile are consistent",
                    "Verify network access to the package registry",
                    "Delete node_modules and retry",
                ],
            )
        return "Dependencies installed", {}

    def _stage_lint(self) -> tuple[str, dict[str, Any]]:
        if self.builder.run_lint():
            return "Lint passed", {}
        if self.config.fail_on_lint:
            raise PipelineError(
                "Lint reported errors",
                stage_name=_display(STAGE_LINT),
                remediation=["Run 'npm run lint' locally and fix the reported issues"],
            )
        logger.warning("Lint reported issues; continuing because failOnLint is false")
        return "Lint reported issues (non-fatal)", {"warnings": True}

    def _stage_build(self) -> tuple[str, dict[str, Any]]:
        build_config = self.config.build_config()
        with self._signing_env() as env:
            result = self.builder.build(build_config, env=env)
        self.build_result = result
        self.outcome.build_result = result.to_dict()
        if not result.success:
            raise BuildError(
                result.error_message or "Build failed",
                command=result.metadata.get("command"),
                exit_code=result.metadata.get("exit_code", -1),
            )
        return (
            f"Built {result.artifact_file_name} ({result.formatted_file_size})",
            {"artifact_path": result.artifact_path, "duration": result.formatted_duration},
        )

    def _record_tests(self, result: TestResult) -> None:
        self._test_results.append(result)
        self.test_result = (
            result
            if len(self._test_results) == 1
            else TestResult.merge(COMBINED_FRAMEWORK, self._test_results)
        )
        self.outcome.test_result = self.test_result.to_dict()
        self.notifications.notify_test_results(result)
        if not result.success:
            raise TestError(
                f"{result.framework} tests failed: {result.summary}",
                framework=result.framework,
                failed=result.failed,
                total=result.total,
            )

    def _stage_unit_test(self) -> tuple[str, dict[str, Any]]:
        result = self.tests.run_unit_tests()
        self._record_tests(result)
        return result.summary, {"framework": result.framework, "total": result.total}

    def _stage_e2e_test(self) -> tuple[str, dict[str, Any]]:
        app_path = self.build_result.artifact_path if self.build_result else None
        result = self.tests.run_e2e_tests({"app_path": app_path})
        self._record_tests(result)
        return result.summary, {"framework": result.framework, "total": result.total}

    def _stage_deploy(self) -> tuple[str, dict[str, Any]]:
        assert self.distributor is not None and self.build_result is not None
        cfg = self.config
        artifact = self.build_result.artifact_path or ""
        if cfg.play_store_credentials_id:
            scope = self.secrets.play_store(cfg.play_store_credentials_id)
        else:
            scope = contextlib.nullcontext({})
        with scope as env:
            result = self.distributor.upload(
                artifact, cfg.play_store_track, cfg.release_notes, env=env
            )
        self.deploy_result = result
        self.outcome.deploy_result = result.to_dict()
        if not result.success:
            raise DeployError(result.message, cfg.play_store_track, artifact)

        version = self.build_result.version
        self.notifications.notify_deployment(
            cfg.environment.display_name,
            version.version_name if version else cfg.version,
            cfg.play_store_track.value,
        )
        return result.message, {"track": cfg.play_store_track.value}


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _slack_webhook(
    config: PipelineConfig, settings: ToolchainSettings, store: EnvironmentCredentialStore
) -> str | None:
    if settings.slack_webhook_url:
        return settings.slack_webhook_url
    if config.slack_webhook_credentials_id:
        url = store.lookup(config.slack_webhook_credentials_id)
        if url is None:
            logger.warning(
                "Slack webhook credential '%s' is not available; Slack disabled",
                config.slack_webhook_credentials_id,
            )
        return url
    return None


def create_orchestrator(
    config: PipelineConfig,
    project_dir: Path | str = ".",
    settings: ToolchainSettings | None = None,
    toolchain: AndroidToolchainConfig | None = None,
    shutdown: GracefulShutdown | None = None,
    check_environment: bool = False,
) -> PipelineOrchestrator:
    """Build a :class:`PipelineOrchestrator` wired to real tools.

    Commands run through :class:`SubprocessCommandRunner` in *project_dir*;
    credentials come from ``PIPELINE_CREDENTIAL_<ID>`` variables.

    Raises:
        EnvironmentSetupError: If no builder exists for ``config.platform``.
    """
    settings = settings or ToolchainSettings()
    project_dir = Path(project_dir)
    default_timeout = settings.command_timeout or None
    runner = SubprocessCommandRunner(cwd=project_dir, default_timeout=default_timeout)
    fs = LocalFileSystem(project_dir)
    store = EnvironmentCredentialStore()

    builder = BuilderFactory().create_builder(
        config.platform,
        runner,
        fs,
        toolchain=toolchain,
        timeout=config.build_timeout * 60,
    )

    test_timeout = config.test_timeout * 60
    tests = TestOrchestrator()
    if config.run_unit_tests:
        tests.add_runner(JestRunner(runner, fs, timeout=test_timeout))
    if config.run_e2e_tests:
        tests.add_runner(
            AppiumRunner(runner, fs, config.emulator_url, timeout=test_timeout)
        )

    distributor = None
    if config.deploy:
        fastlane = FastlaneExecutor(
            runner, fs, package_name=config.package_name, timeout=config.build_timeout * 60
        )
        distributor = PlayStoreDistributor(
            fastlane, fs, rollout_percentage=config.rollout_percentage
        )

    notifications = NotificationService().with_slack(
        _slack_webhook(config, settings, store),
        channel=config.slack_channel,
        transport=HttpTransport(),
    ).with_email(
        config.email_recipients,
        transport=SmtpTransport(settings.smtp_host, settings.smtp_port),
        from_address=settings.email_from,
    )

    state_dir = Path(settings.state_dir)
    if not state_dir.is_absolute():
        state_dir = project_dir / state_dir

    return PipelineOrchestrator(
        config,
        builder=builder,
        tests=tests,
        distributor=distributor,
        notifications=notifications,
        workspace=WorkspacePreparer(runner, fs, timeout=default_timeout),
        secrets=SecretsManager(store),
        validator=ConfigValidator(runner, fs),
        check_environment=check_environment,
        state_dir=state_dir,
        shutdown=shutdown,
    )
