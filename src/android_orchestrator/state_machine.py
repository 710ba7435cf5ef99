"""Pipeline state machine using the ``transitions`` library.

Defines 12 states.  Each working stage advances with its own trigger,
guarded so that the pipeline only moves on after the previous stage did
not fail.  A failing stage takes the ``abort`` trigger into ``notify`` so
the failure notification is still sent, then ``fail`` ends in ``failed``.
"""

from __future__ import annotations

import logging
from typing import Any

from transitions import Machine, State

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# States -- stages run strictly in this order
# ---------------------------------------------------------------------------
STAGE_STATES: list[str] = [
    "checkout",
    "setup",
    "dependencies",
    "lint",
    "build",
    "unit_test",
    "e2e_test",
    "deploy",
]

STATES: list[State] = [
    State("init"),
    *(State(name) for name in STAGE_STATES),
    State("notify"),
    State("done"),
    State("failed"),
]

TERMINAL_STATES = frozenset({"done", "failed"})

# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
# Trigger that enters each stage state from its predecessor
STAGE_TRIGGERS: dict[str, str] = {
    "checkout": "start_checkout",
    "setup": "start_setup",
    "dependencies": "start_dependencies",
    "lint": "start_lint",
    "build": "start_build",
    "unit_test": "start_unit_test",
    "e2e_test": "start_e2e_test",
    "deploy": "start_deploy",
    "notify": "start_notify",
}

TRANSITIONS: list[dict[str, Any]] = [
    {
        "trigger": "start_checkout",
        "source": "init",
        "dest": "checkout",
        "conditions": ["is_configured"],
    },
    *(
        {
            "trigger": STAGE_TRIGGERS[dest],
            "source": source,
            "dest": dest,
            "conditions": ["last_stage_ok"],
        }
        for source, dest in zip(STAGE_STATES, STAGE_STATES[1:] + ["notify"])
    ),
    {
        "trigger": "finish",
        "source": "notify",
        "dest": "done",
        "conditions": ["pipeline_succeeded"],
    },
    {
        "trigger": "abort",
        "source": STAGE_STATES,
        "dest": "notify",
    },
    {
        "trigger": "fail",
        "source": ["init", *STAGE_STATES, "notify"],
        "dest": "failed",
    },
]


def create_pipeline_machine(model: Any, initial_state: str = "init") -> Machine:
    """Create and return a ``Machine`` bound to *model*.

    The model object must implement the guard methods referenced in
    ``TRANSITIONS`` (``is_configured``, ``last_stage_ok``,
    ``pipeline_succeeded``).

    Args:
        model: The object whose state the machine manages.
        initial_state: The initial state for the machine.

    Returns:
        Configured ``Machine`` instance.
    """
    machine = Machine(
        model=model,
        states=STATES,
        transitions=TRANSITIONS,
        initial=initial_state,
        auto_transitions=False,
        send_event=True,
        ignore_invalid_triggers=True,
    )
    return machine
