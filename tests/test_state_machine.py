"""Tests for src.android_orchestrator.state_machine."""

from __future__ import annotations

import pytest

from src.android_orchestrator.state_machine import (
    STAGE_STATES,
    STAGE_TRIGGERS,
    STATES,
    TERMINAL_STATES,
    TRANSITIONS,
    create_pipeline_machine,
)


class GuardModel:
    def __init__(self, configured=True, stage_ok=True, succeeded=True):
        self.configured = configured
        self.stage_ok = stage_ok
        self.succeeded = succeeded

    def is_configured(self, *args, **kwargs):
        return self.configured

    def last_stage_ok(self, *args, **kwargs):
        return self.stage_ok

    def pipeline_succeeded(self, *args, **kwargs):
        return self.succeeded


def _walk_to(model, stage):
    for name in STAGE_STATES:
        assert getattr(model, STAGE_TRIGGERS[name])()
        if name == stage:
            return


class TestDefinitions:
    def test_twelve_states(self):
        names = [s.name for s in STATES]
        assert names == ["init", *STAGE_STATES, "notify", "done", "failed"]
        assert len(names) == 12
        assert TERMINAL_STATES == {"done", "failed"}

    def test_every_trigger_is_defined(self):
        triggers = {t["trigger"] for t in TRANSITIONS}
        assert set(STAGE_TRIGGERS.values()) <= triggers
        assert {"finish", "abort", "fail"} <= triggers


class TestHappyPath:
    def test_full_run_reaches_done(self):
        model = GuardModel()
        create_pipeline_machine(model)
        assert model.state == "init"
        _walk_to(model, "deploy")
        assert model.state == "deploy"
        assert model.start_notify()
        assert model.finish()
        assert model.state == "done"

    def test_stage_order_is_enforced(self):
        model = GuardModel()
        create_pipeline_machine(model)
        # invalid triggers are ignored rather than raising
        assert model.start_build() is False
        assert model.state == "init"


class TestGuards:
    def test_unconfigured_pipeline_cannot_start(self):
        model = GuardModel(configured=False)
        create_pipeline_machine(model)
        assert model.start_checkout() is False
        assert model.state == "init"

    def test_failed_stage_blocks_next_stage(self):
        model = GuardModel()
        create_pipeline_machine(model)
        _walk_to(model, "build")
        model.stage_ok = False
        assert model.start_unit_test() is False
        assert model.state == "build"

    def test_finish_requires_success(self):
        model = GuardModel(succeeded=False)
        create_pipeline_machine(model, initial_state="notify")
        assert model.finish() is False
        assert model.state == "notify"


class TestFailurePath:
    @pytest.mark.parametrize("stage", STAGE_STATES)
    def test_abort_from_any_stage_goes_to_notify(self, stage):
        model = GuardModel()
        create_pipeline_machine(model, initial_state=stage)
        assert model.abort()
        assert model.state == "notify"
        assert model.fail()
        assert model.state == "failed"

    def test_fail_from_init(self):
        model = GuardModel()
        create_pipeline_machine(model)
        assert model.fail()
        assert model.state == "failed"

    def test_terminal_states_accept_nothing(self):
        model = GuardModel()
        create_pipeline_machine(model, initial_state="failed")
        for trigger in ("start_checkout", "abort", "fail", "finish"):
            assert getattr(model, trigger)() is False
        assert model.state == "failed"

    def test_abort_not_allowed_from_notify(self):
        model = GuardModel()
        create_pipeline_machine(model, initial_state="notify")
        assert model.abort() is False
