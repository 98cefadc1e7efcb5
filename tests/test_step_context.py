"""Tests for step context assembly."""

from Hypatia.context.step_context import NOT_AVAILABLE, build_project_log, build_step_context, step_summary

from conftest import seed_experiment


def test_only_earlier_steps_contribute(store):
    experiment = seed_experiment(store, completed=3)

    context = build_step_context(experiment, 4)

    assert context.experiment_field == "Climate Science"
    assert '"research_question"' in context["question"]
    assert context["literature_review_summary"] == "Summary of step 2"
    assert context["hypothesis"] == "Output of step 3"
    assert "methodology_summary" not in context.values
    assert context.get("methodology_summary") == NOT_AVAILABLE
    assert context.project_log is None


def test_summary_falls_back_to_output(store):
    experiment = seed_experiment(store, completed=2)
    store.update_step(experiment.id, 2, summary="")
    experiment = store.get(experiment.id)

    assert step_summary(experiment, 2) == "Output of step 2"
    assert step_summary(experiment, 5) == NOT_AVAILABLE


def test_log_uses_full_output_for_recent_steps(store):
    experiment = seed_experiment(store, completed=8)

    log = build_project_log(experiment, 9)

    assert "--- Summary of Step 1: " in log
    assert "Summary of step 6" in log
    assert "Output of step 6" not in log
    assert "Output of step 7" in log
    assert "Output of step 8" in log
    assert "Step 9" not in log


def test_peer_review_and_publication_get_the_log(store):
    experiment = seed_experiment(store, completed=9)

    assert build_step_context(experiment, 9).project_log
    assert build_step_context(experiment, 10).to_dict()["full_project_summary_log"]
    assert build_step_context(experiment, 8).project_log is None
    assert build_step_context(experiment, 8, include_log=True).project_log


def test_missing_field_defaults(store):
    experiment = seed_experiment(store, completed=1, field="")
    assert build_step_context(experiment, 2).experiment_field == "General Science"
