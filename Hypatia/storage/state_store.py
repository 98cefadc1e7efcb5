"""
Experiment Store.

Owns the persisted experiment records and the step cursor. Every mutation
funnels through `ExperimentStore`, which:
- re-reads the freshest snapshot before each write
- merges one step's fields and writes the whole record back
  (last-write-wins on `step_data`)
- discards writes that carry a superseded run token
"""

from __future__ import annotations

import itertools
import json
import logging
import os
import pathlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from .experiment import AutomationMode, Experiment, ProvenanceEntry, StepRecord
from ..config.workflow import COMPLETE, TOTAL_STEPS, validate_fine_tune
from ..utils import console

logger = logging.getLogger("hypatia.storage")


class ExperimentNotFoundError(KeyError):
    """No experiment with the requested id."""


# === Persistence backends ===

class PersistenceBackend(ABC):
    """Single-record read/write contract keyed by experiment id."""

    @abstractmethod
    def get(self, experiment_id: str) -> Optional[Experiment]:
        ...

    @abstractmethod
    def put(self, experiment: Experiment) -> None:
        ...

    @abstractmethod
    def delete(self, experiment_id: str) -> None:
        ...

    @abstractmethod
    def list_ids(self) -> list[str]:
        ...


class InMemoryBackend(PersistenceBackend):
    """Keeps serialized copies so callers never share mutable state with the store."""

    def __init__(self):
        self._records: dict[str, str] = {}

    def get(self, experiment_id: str) -> Optional[Experiment]:
        raw = self._records.get(experiment_id)
        return Experiment.model_validate_json(raw) if raw is not None else None

    def put(self, experiment: Experiment) -> None:
        self._records[experiment.id] = experiment.model_dump_json()

    def delete(self, experiment_id: str) -> None:
        self._records.pop(experiment_id, None)

    def list_ids(self) -> list[str]:
        return list(self._records)


class JsonFileBackend(PersistenceBackend):
    """One JSON file per experiment under a directory."""

    def __init__(self, directory: str | pathlib.Path):
        self.directory = pathlib.Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, experiment_id: str) -> pathlib.Path:
        return self.directory / f"{experiment_id}.json"

    def get(self, experiment_id: str) -> Optional[Experiment]:
        path = self._path(experiment_id)
        if not path.exists():
            return None
        return Experiment.model_validate_json(path.read_text())

    def put(self, experiment: Experiment) -> None:
        path = self._path(experiment.id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(experiment.model_dump_json(indent=2))
        os.replace(tmp, path)

    def delete(self, experiment_id: str) -> None:
        path = self._path(experiment_id)
        if path.exists():
            path.unlink()

    def list_ids(self) -> list[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))


# === Run tokens ===

@dataclass(frozen=True)
class RunToken:
    """Issued when an agent loop starts; writes carrying a stale token are dropped."""
    experiment_id: str
    value: int


class ExperimentStore:
    """
    All experiment mutations go through here.

    Methods that accept a `token` return None (and leave persisted state
    untouched) when the token has been superseded.
    """

    def __init__(self, backend: Optional[PersistenceBackend] = None):
        self.backend = backend or InMemoryBackend()
        self._counter = itertools.count(1)
        self._current_runs: dict[str, int] = {}

    # --- run tokens ---

    def begin_run(self, experiment_id: str) -> RunToken:
        """Start a run, superseding any earlier run on the same experiment."""
        token = RunToken(experiment_id, next(self._counter))
        self._current_runs[experiment_id] = token.value
        return token

    def is_current(self, token: Optional[RunToken]) -> bool:
        if token is None:
            return True
        return self._current_runs.get(token.experiment_id) == token.value

    def invalidate(self, experiment_id: str) -> None:
        """Supersede every outstanding run, as when the user navigates away."""
        self._current_runs[experiment_id] = next(self._counter)

    def _stale(self, token: Optional[RunToken], action: str) -> bool:
        if self.is_current(token):
            return False
        logger.debug("Discarding stale %s for %s (token %s)", action, token.experiment_id, token.value)
        console.debug(f"Discarded stale write: {action}")
        return True

    # --- reads ---

    def get(self, experiment_id: str) -> Experiment:
        experiment = self.backend.get(experiment_id)
        if experiment is None:
            raise ExperimentNotFoundError(experiment_id)
        return experiment

    def list_experiments(self, include_archived: bool = True) -> list[Experiment]:
        experiments = [e for e in (self.backend.get(i) for i in self.backend.list_ids()) if e is not None]
        if not include_archived:
            experiments = [e for e in experiments if e.status == "active"]
        return sorted(experiments, key=lambda e: e.created_at, reverse=True)

    # --- writes ---

    def create_experiment(self, title: str, field: str = "General Science", description: str = "") -> Experiment:
        experiment = Experiment(
            title=title,
            field=field,
            description=description,
            step_data={1: StepRecord(input=description)} if description else {},
        )
        self.backend.put(experiment)
        logger.info("Created experiment %s", experiment.id)
        return experiment

    def import_experiment(self, data: dict[str, Any]) -> Experiment:
        """Persist an exported experiment record after validating it."""
        experiment = Experiment.model_validate(data)
        self.backend.put(experiment)
        return experiment

    def save(self, experiment: Experiment, token: Optional[RunToken] = None) -> Optional[Experiment]:
        """Full-record replace."""
        if self._stale(token, "save"):
            return None
        self.backend.put(experiment)
        return experiment

    def delete(self, experiment_id: str) -> None:
        self.backend.delete(experiment_id)
        self._current_runs.pop(experiment_id, None)

    def update_step(
        self,
        experiment_id: str,
        step: int,
        token: Optional[RunToken] = None,
        **fields: Any,
    ) -> Optional[Experiment]:
        """Merge fields into one step's record on the latest snapshot."""
        if self._stale(token, f"update of step {step}"):
            return None
        latest = self.get(experiment_id)
        record = StepRecord.model_validate({**latest.step(step).model_dump(), **fields})
        updated = latest.with_step(step, record)
        self.backend.put(updated)
        return updated

    def update_steps(
        self,
        experiment_id: str,
        changes: dict[int, dict[str, Any]],
        token: Optional[RunToken] = None,
        current_step: Optional[int] = None,
    ) -> Optional[Experiment]:
        """Merge fields into several steps (and optionally move the cursor) in one write."""
        if self._stale(token, f"update of steps {sorted(changes)}"):
            return None
        latest = self.get(experiment_id)
        step_data = dict(latest.step_data)
        for step, fields in changes.items():
            merged = {**latest.step(step).model_dump(), **fields}
            step_data[step] = StepRecord.model_validate(merged)
        extra = {"current_step": current_step} if current_step is not None else {}
        updated = latest.evolve(step_data=step_data, **extra)
        self.backend.put(updated)
        return updated

    def record_generation(
        self,
        experiment_id: str,
        step: int,
        entry: ProvenanceEntry,
        token: Optional[RunToken] = None,
        **fields: Any,
    ) -> Optional[Experiment]:
        """Append a provenance entry and merge fields (usually `output`) in one write."""
        if self._stale(token, f"generation for step {step}"):
            return None
        latest = self.get(experiment_id)
        current = latest.step(step)
        merged = {**current.model_dump(), **fields}
        merged["provenance"] = [p.model_dump() for p in current.provenance] + [entry.model_dump()]
        updated = latest.with_step(step, StepRecord.model_validate(merged))
        self.backend.put(updated)
        return updated

    def complete_step(
        self,
        experiment_id: str,
        step: int,
        summary: str,
        token: Optional[RunToken] = None,
        forward: Optional[dict[int, dict[str, Any]]] = None,
    ) -> Optional[Experiment]:
        """
        Store a step's summary and advance the cursor past it.

        `forward` merges fields into later steps in the same write (e.g. the
        dataset handed from step 6 to step 7).
        """
        if self._stale(token, f"completion of step {step}"):
            return None
        latest = self.get(experiment_id)
        if not latest.is_complete(step):
            raise ValueError(f"Step {step} has no output and cannot be completed")
        next_step = step + 1 if step < TOTAL_STEPS else COMPLETE
        changes = {step: {"summary": summary}}
        for later, fields in (forward or {}).items():
            changes[later] = {**changes.get(later, {}), **fields}
        return self.update_steps(
            experiment_id,
            changes,
            token=token,
            current_step=max(latest.current_step, next_step),
        )

    def submit_dataset(
        self,
        experiment_id: str,
        data: str,
        summary: str,
        token: Optional[RunToken] = None,
    ) -> Optional[Experiment]:
        """Record the step 6 dataset and hand it to the analysis step."""
        return self.update_steps(
            experiment_id,
            {
                6: {"output": summary, "summary": summary, "input": data},
                7: {"input": data},
            },
            token=token,
        )

    def rerun_step(self, experiment_id: str, step: int) -> Experiment:
        """
        Reset the project to an earlier step.

        Deletes every record after `step`, clears `output` and `summary` of
        `step` itself and moves the cursor back to it.
        """
        latest = self.get(experiment_id)
        step_data = {k: v for k, v in latest.step_data.items() if k < step}
        if step in latest.step_data:
            step_data[step] = latest.step_data[step].model_copy(update={"output": "", "summary": ""})
        updated = latest.evolve(step_data=step_data, current_step=step)
        self.backend.put(updated)
        self.invalidate(experiment_id)
        logger.info("Experiment %s reset to step %d", experiment_id, step)
        return updated

    def set_automation_mode(self, experiment_id: str, mode: AutomationMode) -> Experiment:
        """Choose manual or automated mode. Allowed once, after step 1."""
        latest = self.get(experiment_id)
        if latest.automation_mode is not None:
            raise ValueError(f"Automation mode already set to '{latest.automation_mode}'")
        if latest.current_step < 2:
            raise ValueError("Automation mode is chosen after Step 1 is complete")
        updated = latest.evolve(automation_mode=mode)
        self.backend.put(updated)
        return updated

    def set_fine_tune(self, experiment_id: str, step: int, settings: dict[str, Any]) -> Experiment:
        validate_fine_tune(step, settings)
        latest = self.get(experiment_id)
        fine_tune = dict(latest.fine_tune_settings)
        fine_tune[step] = {**fine_tune.get(step, {}), **settings}
        updated = latest.evolve(fine_tune_settings=fine_tune)
        self.backend.put(updated)
        return updated

    def update_lab_notebook(self, experiment_id: str, text: str) -> Experiment:
        updated = self.get(experiment_id).evolve(lab_notebook=text)
        self.backend.put(updated)
        return updated

    def update_details(
        self,
        experiment_id: str,
        title: Optional[str] = None,
        field: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Experiment:
        """Explicit edit of the user-supplied identity fields."""
        changes = {k: v for k, v in {"title": title, "field": field, "description": description}.items() if v is not None}
        updated = self.get(experiment_id).evolve(**changes)
        self.backend.put(updated)
        return updated

    def archive(self, experiment_id: str) -> Experiment:
        updated = self.get(experiment_id).evolve(status="archived")
        self.backend.put(updated)
        return updated

    def export_json(self, experiment_id: str) -> str:
        return json.dumps(self.get(experiment_id).model_dump(mode="json"), indent=2)
