"""
Experiment: the persisted unit of work.

Provides:
- ProvenanceEntry, an immutable record of one generation attempt
- StepRecord, the per-step inputs, outputs and summaries
- Experiment, with the cursor invariant checked on every construction

Experiments are treated as immutable snapshots. Helpers that change an
experiment return a new, re-validated instance.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from ..config.workflow import COMPLETE, TOTAL_STEPS


AutomationMode = Literal["manual", "automated"]
ExperimentStatus = Literal["active", "archived"]


def _now() -> str:
    return datetime.now().isoformat()


class ProvenanceEntry(BaseModel):
    """One generation attempt. Never mutated once appended."""

    timestamp: str = Field(default_factory=_now, description="When the call was made")
    prompt: str = Field(..., description="Full prompt sent to the model")
    config: dict[str, Any] = Field(default_factory=dict, description="Generation config used")
    output: str = Field(default="", description="Text the model returned")

    model_config = {"extra": "forbid", "frozen": True}


class StepRecord(BaseModel):
    """Data for one workflow step. A step is complete iff `output` is non-empty."""

    input: str = Field(default="", description="User- or agent-supplied seed")
    output: str = Field(default="", description="Final generated content, text or JSON")
    summary: str = Field(default="", description="Short distilled text used as context later")
    suggested_input: str = Field(default="", description="Agent-produced shortcut summary")
    provenance: list[ProvenanceEntry] = Field(default_factory=list, description="Append-only attempt log")
    uniqueness_score: Optional[float] = Field(default=None, description="Step 1 novelty score")
    uniqueness_justification: Optional[str] = Field(default=None, description="Step 1 score rationale")

    model_config = {"extra": "forbid"}

    @property
    def is_complete(self) -> bool:
        return bool(self.output)


class Experiment(BaseModel):
    """A research project moving through the ten-step workflow."""

    id: str = Field(default_factory=lambda: uuid4().hex, description="Stable identifier")
    title: str = Field(..., description="Project title")
    field: str = Field(default="General Science", description="Scientific field")
    description: str = Field(default="", description="Initial research idea")
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)
    current_step: int = Field(default=1, ge=1, le=COMPLETE, description="Step cursor, 11 means complete")
    automation_mode: Optional[AutomationMode] = Field(default=None)
    step_data: dict[int, StepRecord] = Field(default_factory=dict)
    fine_tune_settings: dict[int, dict[str, Any]] = Field(default_factory=dict)
    lab_notebook: str = Field(default="")
    status: ExperimentStatus = Field(default="active")

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _check_cursor(self) -> "Experiment":
        for key in self.step_data:
            if not 1 <= key <= TOTAL_STEPS:
                raise ValueError(f"step_data key {key} is outside 1..{TOTAL_STEPS}")
        limit = self.last_completed_step() + 1
        if self.current_step > limit:
            raise ValueError(
                f"current_step {self.current_step} exceeds last completed step + 1 ({limit})"
            )
        return self

    def last_completed_step(self) -> int:
        """Largest k such that steps 1..k all have output."""
        k = 0
        while k < TOTAL_STEPS and self.is_complete(k + 1):
            k += 1
        return k

    def is_complete(self, step: int) -> bool:
        record = self.step_data.get(step)
        return record is not None and record.is_complete

    def step(self, step: int) -> StepRecord:
        """The record for a step, or an empty one if the step has none yet."""
        return self.step_data.get(step) or StepRecord()

    def settings_for(self, step: int) -> dict[str, Any]:
        return dict(self.fine_tune_settings.get(step, {}))

    @property
    def is_finished(self) -> bool:
        return self.current_step >= COMPLETE

    def evolve(self, **changes: Any) -> "Experiment":
        """Return a validated copy with the given fields replaced."""
        data = self.model_dump()
        data.update(changes)
        data["updated_at"] = _now()
        return type(self).model_validate(data)

    def with_step(self, step: int, record: StepRecord, **changes: Any) -> "Experiment":
        """Return a copy with one step's record replaced."""
        step_data = dict(self.step_data)
        step_data[step] = record
        return self.evolve(step_data=step_data, **changes)
