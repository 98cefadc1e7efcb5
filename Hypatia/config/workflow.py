"""
Workflow definition loader.

Reads workflow.yaml once: the ordered research steps, per-step fine-tune
parameters with declared defaults, and the generation defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml


WORKFLOW_PATH = Path(__file__).parent / "workflow.yaml"

TOTAL_STEPS = 10
COMPLETE = TOTAL_STEPS + 1


@dataclass(frozen=True)
class WorkflowStep:
    id: int
    title: str
    description: str


@dataclass(frozen=True)
class TuningParameter:
    """One user-adjustable option for a step."""
    name: str
    label: str
    type: str  # select, range, boolean
    default: Any
    description: str = ""
    options: tuple = ()
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TuningParameter":
        return cls(
            name=str(data["name"]),
            label=str(data.get("label", data["name"])),
            type=str(data.get("type", "select")),
            default=data.get("default"),
            description=str(data.get("description", "")),
            options=tuple(data.get("options", ())),
            min=data.get("min"),
            max=data.get("max"),
            step=data.get("step"),
        )

    def check(self, value: Any) -> Optional[str]:
        """Return a problem description, or None when the value is acceptable."""
        if self.type == "select":
            if value not in self.options:
                return f"'{value}' is not one of {list(self.options)}"
        elif self.type == "range":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return f"expected a number, got {value!r}"
            if self.min is not None and value < self.min:
                return f"{value} is below the minimum {self.min}"
            if self.max is not None and value > self.max:
                return f"{value} is above the maximum {self.max}"
        elif self.type == "boolean":
            if not isinstance(value, bool):
                return f"expected true/false, got {value!r}"
        return None


@dataclass
class WorkflowDefinition:
    steps: list[WorkflowStep]
    generation_defaults: dict[str, Any]
    common_parameters: list[TuningParameter] = field(default_factory=list)
    tuning_parameters: dict[int, list[TuningParameter]] = field(default_factory=dict)

    def step(self, step_id: int) -> WorkflowStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(f"Unknown workflow step {step_id}")

    def parameters_for(self, step_id: int) -> list[TuningParameter]:
        """Common parameters followed by the step-specific ones."""
        return list(self.common_parameters) + list(self.tuning_parameters.get(step_id, []))


def load_workflow(path: Optional[Path] = None) -> WorkflowDefinition:
    """Parse a workflow YAML file."""
    path = path or WORKFLOW_PATH
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    steps = [
        WorkflowStep(id=int(s["id"]), title=str(s["title"]), description=str(s.get("description", "")))
        for s in data.get("steps", [])
    ]
    return WorkflowDefinition(
        steps=steps,
        generation_defaults=dict(data.get("generation_defaults", {})),
        common_parameters=[TuningParameter.from_dict(p) for p in data.get("common_parameters", [])],
        tuning_parameters={
            int(step_id): [TuningParameter.from_dict(p) for p in params]
            for step_id, params in (data.get("tuning_parameters") or {}).items()
        },
    )


@lru_cache(maxsize=1)
def get_workflow() -> WorkflowDefinition:
    """The packaged workflow, loaded once."""
    return load_workflow()


def step_title(step_id: int) -> str:
    return get_workflow().step(step_id).title


def resolve_fine_tune(step_id: int, settings: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """
    Fill every recognized option for a step.

    Unset options fall back to their declared defaults; unrecognized keys
    are carried through untouched.
    """
    settings = settings or {}
    resolved: dict[str, Any] = {}
    for param in get_workflow().parameters_for(step_id):
        value = settings.get(param.name)
        resolved[param.name] = param.default if value is None else value
    for key, value in settings.items():
        resolved.setdefault(key, value)
    return resolved


def validate_fine_tune(step_id: int, settings: dict[str, Any]) -> None:
    """
    Reject unknown option names and out-of-range values.

    Raises:
        ValueError: Listing every problem found
    """
    params = {p.name: p for p in get_workflow().parameters_for(step_id)}
    problems = []
    for key, value in settings.items():
        param = params.get(key)
        if param is None:
            problems.append(f"unknown option '{key}' for step {step_id}")
            continue
        problem = param.check(value)
        if problem:
            problems.append(f"{key}: {problem}")
    if problems:
        raise ValueError("Invalid fine-tune settings: " + "; ".join(problems))


def generation_options(step_id: int, settings: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Sampling options for a step, as GenerationRequest keyword arguments."""
    resolved = resolve_fine_tune(step_id, settings)
    defaults = get_workflow().generation_defaults
    return {
        "temperature": resolved.get("temperature", defaults.get("temperature")),
        "top_p": resolved.get("topP", defaults.get("topP")),
        "top_k": resolved.get("topK", defaults.get("topK")),
    }
