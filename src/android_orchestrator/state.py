"""Pipeline outcome record with atomic persistence."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from src.pipeline_shared.constants import ALL_STAGES, OUTCOME_FILE, STATE_DIR
from src.pipeline_shared.models import StageStatus
from src.pipeline_shared.utils import atomic_write_json, load_json


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StageOutcome:
    """What happened to one stage."""

    name: str
    status: str = StageStatus.PENDING.value
    message: str = ""
    duration_ms: int = 0
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PipelineOutcome:
    """Aggregate record of a pipeline run.

    Persisted to ``PIPELINE_OUTCOME.json`` using atomic writes.  Typed
    results are stored in their ``to_dict()`` form.
    """

    pipeline_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    app_name: str = ""
    variant_name: str = ""
    current_state: str = "init"
    overall_success: bool = False
    stages: dict[str, StageOutcome] = field(
        default_factory=lambda: {name: StageOutcome(name) for name in ALL_STAGES}
    )
    checkout: dict[str, Any] = field(default_factory=dict)
    build_result: dict[str, Any] | None = None
    test_result: dict[str, Any] | None = None
    deploy_result: dict[str, Any] | None = None
    failed_stage: str | None = None
    error: dict[str, Any] | None = None
    error_report: str = ""
    cancelled: bool = False
    interrupted: bool = False
    interrupt_reason: str = ""
    started_at: str = field(default_factory=_now)
    finished_at: str = ""
    total_duration_ms: int = 0
    schema_version: int = 1

    # ------------------------------------------------------------------
    # Stage bookkeeping
    # ------------------------------------------------------------------

    def record(
        self,
        name: str,
        status: StageStatus,
        message: str = "",
        duration_ms: int = 0,
        **details: Any,
    ) -> StageOutcome:
        outcome = StageOutcome(
            name=name,
            status=status.value,
            message=message,
            duration_ms=duration_ms,
            details=details,
        )
        self.stages[name] = outcome
        return outcome

    def stage_status(self, name: str) -> StageStatus:
        stage = self.stages.get(name)
        return StageStatus(stage.status) if stage else StageStatus.PENDING

    def stages_with(self, status: StageStatus) -> list[str]:
        return [name for name, s in self.stages.items() if s.status == status.value]

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def save(self, directory: Path | str | None = None) -> Path:
        directory = Path(directory) if directory else Path(STATE_DIR)
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / OUTCOME_FILE
        atomic_write_json(target, self.to_dict())
        return target

    @classmethod
    def load(cls, directory: Path | str | None = None) -> PipelineOutcome | None:
        """Load the last outcome, or ``None`` if missing or invalid."""
        directory = Path(directory) if directory else Path(STATE_DIR)
        data = load_json(directory / OUTCOME_FILE)
        if not isinstance(data, dict):
            return None
        known = {f for f in cls.__dataclass_fields__}
        filtered = {k: v for k, v in data.items() if k in known}
        stage_fields = set(StageOutcome.__dataclass_fields__)
        filtered["stages"] = {
            name: StageOutcome(**{k: v for k, v in raw.items() if k in stage_fields})
            for name, raw in (filtered.get("stages") or {}).items()
            if isinstance(raw, dict) and "name" in raw
        }
        return cls(**filtered)
