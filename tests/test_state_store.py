"""Tests for the experiment model and store."""

import json

import pytest
from pydantic import ValidationError

from Hypatia.config.workflow import COMPLETE
from Hypatia.storage.experiment import Experiment, ProvenanceEntry, StepRecord
from Hypatia.storage.state_store import (
    ExperimentNotFoundError,
    ExperimentStore,
    InMemoryBackend,
    JsonFileBackend,
)

from conftest import seed_experiment


class TestExperimentModel:
    def test_cursor_cannot_skip_incomplete_steps(self):
        with pytest.raises(ValidationError):
            Experiment(title="t", current_step=3, step_data={1: StepRecord(output="done")})

    def test_step_keys_must_be_workflow_steps(self):
        with pytest.raises(ValidationError):
            Experiment(title="t", step_data={12: StepRecord()})

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            Experiment(title="t", colour="blue")

    def test_evolve_returns_new_snapshot(self):
        experiment = Experiment(title="t")
        changed = experiment.evolve(title="u")
        assert experiment.title == "t"
        assert changed.title == "u"
        assert changed.id == experiment.id

    def test_missing_step_reads_as_empty(self):
        experiment = Experiment(title="t")
        assert experiment.step(5) == StepRecord()
        assert not experiment.is_complete(5)


class TestStoreWrites:
    def test_create_seeds_step_one_input(self, store):
        experiment = store.create_experiment("Soil", description="Does biochar help?")
        assert store.get(experiment.id).step(1).input == "Does biochar help?"
        assert experiment.current_step == 1

    def test_get_missing(self, store):
        with pytest.raises(ExperimentNotFoundError):
            store.get("nope")

    def test_update_step_merges_on_latest_snapshot(self, store):
        experiment = store.create_experiment("Soil")
        store.update_step(experiment.id, 1, input="idea")
        store.update_step(experiment.id, 1, suggested_input="hint")
        record = store.get(experiment.id).step(1)
        assert record.input == "idea"
        assert record.suggested_input == "hint"

    def test_record_generation_appends_provenance(self, store):
        experiment = store.create_experiment("Soil")
        for n in range(2):
            store.record_generation(
                experiment.id, 1, ProvenanceEntry(prompt=f"p{n}", output=f"o{n}"), output=f"o{n}"
            )
        record = store.get(experiment.id).step(1)
        assert [p.prompt for p in record.provenance] == ["p0", "p1"]
        assert record.output == "o1"

    def test_complete_step_advances_cursor(self, store):
        experiment = seed_experiment(store, completed=2)
        store.update_step(experiment.id, 3, output="hypotheses")

        updated = store.complete_step(experiment.id, 3, "three hypotheses")

        assert updated.current_step == 4
        assert updated.step(3).summary == "three hypotheses"

    def test_complete_step_requires_output(self, store):
        experiment = seed_experiment(store, completed=2)
        with pytest.raises(ValueError):
            store.complete_step(experiment.id, 3, "nothing")

    def test_completing_last_step_finishes(self, store):
        experiment = seed_experiment(store, completed=9)
        store.update_step(experiment.id, 10, output="paper")
        updated = store.complete_step(experiment.id, 10, "paper done")
        assert updated.current_step == COMPLETE
        assert updated.is_finished

    def test_completing_earlier_step_never_moves_cursor_back(self, store):
        experiment = seed_experiment(store, completed=5)
        updated = store.complete_step(experiment.id, 2, "re-summarized")
        assert updated.current_step == 6

    def test_submit_dataset(self, store):
        experiment = seed_experiment(store, completed=5)
        updated = store.submit_dataset(experiment.id, "a,b\n1,2", "Tiny dataset")
        assert updated.step(6).output == "Tiny dataset"
        assert updated.step(6).input == "a,b\n1,2"
        assert updated.step(7).input == "a,b\n1,2"


class TestRerun:
    def test_rerun_clears_later_steps(self, store):
        experiment = seed_experiment(store, completed=6)

        updated = store.rerun_step(experiment.id, 3)

        assert updated.current_step == 3
        assert sorted(updated.step_data) == [1, 2, 3]
        assert updated.step(3).output == ""
        assert updated.step(3).summary == ""
        assert updated.step(3).input == "Input 3"
        assert updated.step(2).output == "Output of step 2"

    def test_rerun_supersedes_running_agents(self, store):
        experiment = seed_experiment(store, completed=6)
        token = store.begin_run(experiment.id)

        store.rerun_step(experiment.id, 3)

        assert not store.is_current(token)
        assert store.update_step(experiment.id, 3, token=token, output="late") is None
        assert store.get(experiment.id).step(3).output == ""


class TestRunTokens:
    def test_new_run_supersedes_old(self, store):
        experiment = store.create_experiment("Soil")
        first = store.begin_run(experiment.id)
        second = store.begin_run(experiment.id)
        assert not store.is_current(first)
        assert store.is_current(second)
        assert store.is_current(None)

    def test_stale_writes_are_discarded(self, store):
        experiment = store.create_experiment("Soil")
        token = store.begin_run(experiment.id)
        store.invalidate(experiment.id)

        assert store.record_generation(experiment.id, 1, ProvenanceEntry(prompt="p"), token=token, output="x") is None
        assert store.complete_step(experiment.id, 1, "s", token=token) is None
        assert store.get(experiment.id).step(1).provenance == []

    def test_tokens_are_per_experiment(self, store):
        a = store.create_experiment("A")
        b = store.create_experiment("B")
        token_a = store.begin_run(a.id)
        store.begin_run(b.id)
        assert store.is_current(token_a)


class TestSettings:
    def test_automation_mode_once_after_step_one(self, store):
        fresh = store.create_experiment("Soil")
        with pytest.raises(ValueError):
            store.set_automation_mode(fresh.id, "automated")

        experiment = seed_experiment(store, completed=1)
        assert store.set_automation_mode(experiment.id, "manual").automation_mode == "manual"
        with pytest.raises(ValueError):
            store.set_automation_mode(experiment.id, "automated")

    def test_fine_tune_is_validated(self, store):
        experiment = store.create_experiment("Soil")
        updated = store.set_fine_tune(experiment.id, 3, {"hypothesis_count": "2"})
        assert updated.fine_tune_settings[3]["hypothesis_count"] == "2"
        with pytest.raises(ValueError):
            store.set_fine_tune(experiment.id, 3, {"no_such_option": 1})

    def test_archive_and_list(self, store):
        keep = store.create_experiment("Keep")
        gone = store.create_experiment("Gone")
        store.archive(gone.id)
        active = store.list_experiments(include_archived=False)
        assert [e.id for e in active] == [keep.id]

    def test_notebook_and_details(self, store):
        experiment = store.create_experiment("Soil", field="Ecology")
        store.update_lab_notebook(experiment.id, "Day 1: ordered biochar.")
        updated = store.update_details(experiment.id, title="Soil carbon")
        assert updated.lab_notebook == "Day 1: ordered biochar."
        assert updated.title == "Soil carbon"
        assert updated.field == "Ecology"


class TestBackends:
    def test_json_file_round_trip(self, tmp_path):
        store = ExperimentStore(JsonFileBackend(tmp_path / "experiments"))
        experiment = seed_experiment(store, completed=2)

        reopened = ExperimentStore(JsonFileBackend(tmp_path / "experiments"))

        assert reopened.get(experiment.id) == store.get(experiment.id)
        assert reopened.backend.list_ids() == [experiment.id]
        assert (tmp_path / "experiments" / f"{experiment.id}.json").exists()

    def test_in_memory_copies_are_isolated(self):
        backend = InMemoryBackend()
        experiment = Experiment(title="t")
        backend.put(experiment)
        assert backend.get(experiment.id) is not experiment
        assert backend.get(experiment.id) == experiment

    def test_export_and_import(self, store):
        experiment = seed_experiment(store, completed=3)
        exported = json.loads(store.export_json(experiment.id))

        other = ExperimentStore()
        imported = other.import_experiment(exported)

        assert imported == store.get(experiment.id)

    def test_delete(self, store):
        experiment = store.create_experiment("Soil")
        store.delete(experiment.id)
        with pytest.raises(ExperimentNotFoundError):
            store.get(experiment.id)
