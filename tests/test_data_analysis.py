"""Tests for the data-analysis agent: plan, chart gate, synthesis."""

import json

from Hypatia.agents.data_analysis import ChartPlan, DataAnalysisAgent, describe_dataset
from Hypatia.agents.run_state import RunStatus
from Hypatia.infrastructure.errors import CredentialError

from conftest import ScriptedBackend, seed_experiment

CSV = "a,b\n1,2\n3,4"

BAR_PLAN = json.dumps({"charts": [{"chartType": "bar", "goal": "b by a", "columns": ["a", "b"]}]})
VALID_BAR = json.dumps({
    "type": "bar",
    "data": {"labels": ["1", "3"], "datasets": [{"label": "b", "data": [2, 4]}]},
})
BAR_WITHOUT_LABELS = json.dumps({"type": "bar", "data": {"datasets": [{"label": "b", "data": [2, 4]}]}})


def analysis_backend(plan=BAR_PLAN, chart=VALID_BAR, summary="As Figure 1 shows, b rises with a."):
    def handler(request):
        if "Data Scientist Planner" in request.prompt:
            return plan
        if "data preparation specialist" in request.prompt:
            return chart(request) if callable(chart) else chart
        if "fallback" in request.prompt or "An error occurred" in request.prompt:
            return "An error prevented the generation of visualizations. However, b rises with a."
        return summary
    return ScriptedBackend(handler=handler)


def seeded(store):
    experiment = seed_experiment(store, completed=6)
    store.update_step(experiment.id, 7, input=CSV)
    return experiment


async def test_single_bar_chart(store, config, policy):
    experiment = seeded(store)
    backend = analysis_backend()
    agent = DataAnalysisAgent(backend, store, config, policy)

    state = await agent.run(experiment.id)

    assert state.status == RunStatus.SUCCESS
    record = store.get(experiment.id).step(7)
    output = json.loads(record.output)
    assert len(output["chartSuggestions"]) == 1
    assert output["chartSuggestions"][0]["data"]["datasets"][0]["borderWidth"] == 1
    assert "Figure 1" in output["summary"]
    assert record.suggested_input.startswith("Generated 1/1 planned visualizations")
    assert len(record.provenance) == 1

    synthesis_prompt = backend.prompts[-1]
    assert "Figure 1: a bar chart showing b by a" in synthesis_prompt


async def test_invalid_chart_is_retried_then_dropped(store, config, policy):
    experiment = seeded(store)
    backend = analysis_backend(chart=BAR_WITHOUT_LABELS, summary="Text-only reading of the data.")
    agent = DataAnalysisAgent(backend, store, config, policy)

    state = await agent.run(experiment.id)

    assert state.succeeded
    chart_prompts = [p for p in backend.prompts if "data preparation specialist" in p]
    assert len(chart_prompts) == config.analysis.max_chart_attempts
    assert "rejected for these reasons" not in chart_prompts[0]
    assert '"data.labels" must be a non-empty array' in chart_prompts[1]

    output = json.loads(store.get(experiment.id).step(7).output)
    assert output["chartSuggestions"] == []
    assert "No charts could be produced" in backend.prompts[-1]
    assert store.get(experiment.id).step(7).suggested_input.startswith("Generated 0/1")


async def test_chart_fixed_on_second_attempt(store, config, policy):
    experiment = seeded(store)
    replies = iter([BAR_WITHOUT_LABELS, VALID_BAR])
    backend = analysis_backend(chart=lambda request: next(replies))
    agent = DataAnalysisAgent(backend, store, config, policy)

    state = await agent.run(experiment.id)

    assert state.succeeded
    output = json.loads(store.get(experiment.id).step(7).output)
    assert len(output["chartSuggestions"]) == 1


async def test_empty_plan_fails_the_run(store, config, policy):
    experiment = seeded(store)
    agent = DataAnalysisAgent(analysis_backend(plan='{"charts": []}'), store, config, policy)

    state = await agent.run(experiment.id)

    assert state.status == RunStatus.FAILED
    assert store.get(experiment.id).step(7).output == ""


async def test_malformed_plan_fails_the_run(store, config, policy):
    experiment = seeded(store)
    agent = DataAnalysisAgent(analysis_backend(plan="not json at all"), store, config, policy)

    state = await agent.run(experiment.id)

    assert state.status == RunStatus.FAILED
    assert "could not be used" in state.last_error


async def test_credential_error_is_not_absorbed(store, config, policy):
    experiment = seeded(store)

    def chart(request):
        raise CredentialError()

    agent = DataAnalysisAgent(analysis_backend(chart=chart), store, config, policy)

    state = await agent.run(experiment.id)

    assert state.status == RunStatus.FAILED
    assert isinstance(state.error, CredentialError)


async def test_no_data(store, config, policy):
    experiment = seed_experiment(store, completed=6)
    backend = analysis_backend()
    agent = DataAnalysisAgent(backend, store, config, policy)

    state = await agent.run(experiment.id)

    assert state.status == RunStatus.FAILED
    assert backend.requests == []


async def test_fallback_summary(store, config, policy):
    experiment = seeded(store)
    agent = DataAnalysisAgent(analysis_backend(), store, config, policy)

    payload = await agent.fallback_summary(experiment.id)

    assert payload["chartSuggestions"] == []
    record = store.get(experiment.id).step(7)
    assert json.loads(record.output) == payload
    assert record.suggested_input == "Workflow failed, but a fallback summary was generated."


def test_describe_dataset():
    header, sample = describe_dataset("x,y\n1,2\n3,4\n5,6\n7,8\n")
    assert header == "x,y"
    assert sample == "1,2\n3,4\n5,6"


def test_chart_plan_from_dict():
    plan = ChartPlan.from_dict({"chartType": "Scatter", "goal": "g", "columns": ["x", "y"]})
    assert plan == ChartPlan("scatter", "g", ["x", "y"])


async def test_chart_with_odd_option_values_is_kept(store, config, policy):
    experiment = seeded(store)
    chart = json.dumps({
        "type": "bar",
        "options": {"plugins": {"legend": True}, "scales": {"y": "linear"}},
        "data": {"labels": ["1", "3"], "datasets": [{"data": [2, 4]}]},
    })
    agent = DataAnalysisAgent(analysis_backend(chart=chart), store, config, policy)

    state = await agent.run(experiment.id)

    assert state.succeeded
    suggestion = json.loads(store.get(experiment.id).step(7).output)["chartSuggestions"][0]
    assert suggestion["options"]["plugins"]["legend"]["labels"]["color"] == "rgba(255, 255, 255, 0.8)"
