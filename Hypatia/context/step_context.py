"""
Step Context Builder.

Derives the input bundle a step's prompt needs from earlier steps. Older
steps contribute their short `summary`; the most recent ones contribute
full output, which bounds prompt size as the project log grows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from ..config.workflow import get_workflow
from ..storage.experiment import Experiment

NOT_AVAILABLE = "N/A"

# Steps whose prompts embed the whole project log
LOG_STEPS = frozenset({9, 10})

# (context key, source step, use full output)
_CONTEXT_FIELDS = (
    ("question", 1, True),
    ("literature_review_summary", 2, False),
    ("hypothesis", 3, True),
    ("methodology_summary", 4, False),
    ("data_collection_plan_summary", 5, False),
    ("experimental_data_summary", 6, False),
    ("analysis_summary", 7, False),
    ("conclusion_summary", 8, False),
    ("peer_review_summary", 9, False),
)


@dataclass
class StepContext:
    """Context handed to prompt construction for one step."""
    step: int
    experiment_field: str
    values: dict[str, str] = field(default_factory=dict)
    project_log: Optional[str] = None

    def get(self, key: str, default: str = NOT_AVAILABLE) -> str:
        return self.values.get(key, default)

    def __getitem__(self, key: str) -> str:
        return self.values[key]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"experiment_field": self.experiment_field, **self.values}
        if self.project_log is not None:
            data["full_project_summary_log"] = self.project_log
        return data


def step_summary(experiment: Experiment, step: int) -> str:
    """Summary, falling back to full output."""
    record = experiment.step_data.get(step)
    if record is None:
        return NOT_AVAILABLE
    return record.summary or record.output or NOT_AVAILABLE


def full_output(experiment: Experiment, step: int) -> str:
    record = experiment.step_data.get(step)
    return (record.output if record else "") or NOT_AVAILABLE


def build_project_log(experiment: Experiment, step: int, recent: int = 2) -> str:
    """
    Concatenate steps 1..step-1.

    The `recent` steps closest to `step` use full output; older steps use
    their summaries.
    """
    workflow = get_workflow()
    sections = []
    for prior in range(1, step):
        title = workflow.step(prior).title
        text = full_output(experiment, prior) if step - prior <= recent else step_summary(experiment, prior)
        sections.append(f"--- Summary of Step {prior}: {title} ---\n{text}")
    return "\n\n".join(sections)


def build_step_context(experiment: Experiment, step: int, include_log: Optional[bool] = None) -> StepContext:
    """
    Build the context for `step` from the experiment's earlier steps.

    Args:
        experiment: Latest experiment snapshot
        step: Step the context is for
        include_log: Force (or suppress) the full project log; by default
            only peer review and publication get it
    """
    values = {}
    for key, source, use_full in _CONTEXT_FIELDS:
        if step > source:
            values[key] = full_output(experiment, source) if use_full else step_summary(experiment, source)

    wants_log = step in LOG_STEPS if include_log is None else include_log
    return StepContext(
        step=step,
        experiment_field=experiment.field or "General Science",
        values=values,
        project_log=build_project_log(experiment, step) if wants_log else None,
    )
