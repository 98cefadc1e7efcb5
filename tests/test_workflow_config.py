"""Tests for the workflow definition and runtime configuration."""

import pytest

from Hypatia.config.hypatia_config import HypatiaConfig
from Hypatia.config.workflow import (
    TOTAL_STEPS,
    generation_options,
    get_workflow,
    load_workflow,
    resolve_fine_tune,
    step_title,
    validate_fine_tune,
)


class TestWorkflow:
    def test_ten_ordered_steps(self):
        workflow = get_workflow()
        assert [s.id for s in workflow.steps] == list(range(1, TOTAL_STEPS + 1))
        assert all(s.title for s in workflow.steps)

    def test_unknown_step(self):
        with pytest.raises(KeyError):
            step_title(11)

    def test_common_parameters_come_first(self):
        names = [p.name for p in get_workflow().parameters_for(3)]
        assert names[:3] == ["temperature", "topP", "topK"]
        assert "hypothesis_count" in names

    def test_load_custom_file(self, tmp_path):
        path = tmp_path / "workflow.yaml"
        path.write_text(
            "steps:\n"
            "  - {id: 1, title: Question}\n"
            "generation_defaults: {temperature: 0.2}\n"
            "tuning_parameters:\n"
            "  1:\n"
            "    - {name: depth, type: range, min: 1, max: 3, default: 2}\n"
        )
        workflow = load_workflow(path)
        assert workflow.step(1).title == "Question"
        assert workflow.parameters_for(1)[0].default == 2


class TestFineTune:
    def test_defaults_fill_unset_options(self):
        resolved = resolve_fine_tune(9)
        assert resolved["reviewerPersona"] == "Harsh Critic"
        assert resolved["temperature"] == 0.7

    def test_explicit_values_win_and_extras_pass_through(self):
        resolved = resolve_fine_tune(3, {"hypothesis_count": "4", "legacy": "kept"})
        assert resolved["hypothesis_count"] == "4"
        assert resolved["legacy"] == "kept"

    def test_validation_reports_every_problem(self):
        with pytest.raises(ValueError) as info:
            validate_fine_tune(3, {"hypothesis_count": "9", "temperature": 5, "mystery": 1})
        message = str(info.value)
        assert "hypothesis_count" in message
        assert "above the maximum" in message
        assert "unknown option 'mystery'" in message

    def test_boolean_and_range_types(self):
        validate_fine_tune(2, {"criticalStance": False, "topK": 10})
        with pytest.raises(ValueError):
            validate_fine_tune(2, {"criticalStance": "yes"})
        with pytest.raises(ValueError):
            validate_fine_tune(2, {"topK": True})

    def test_generation_options(self):
        assert generation_options(4) == {"temperature": 0.7, "top_p": 0.95, "top_k": 40}
        assert generation_options(4, {"temperature": 0.1})["temperature"] == 0.1


class TestHypatiaConfig:
    def test_defaults_without_file(self, tmp_path):
        config = HypatiaConfig(config_path=tmp_path / "missing.yaml")
        assert config.simulation.max_iterations == 25
        assert config.analysis.max_chart_attempts == 3
        assert config.automation.data_mode == "simulate"
        assert config.retry_policy.max_attempts == config.retry.max_attempts

    def test_file_values(self, tmp_path):
        path = tmp_path / "hypatia_config.yaml"
        path.write_text("simulation:\n  max_iterations: 4\ndrafts:\n  literature_budget: 2\n")
        config = HypatiaConfig(config_path=path)
        assert config.simulation.max_iterations == 4
        assert config.drafts.literature_budget == 2
        assert config.to_dict()["drafts"]["peer_review_budget"] == 8

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HYPATIA_STORAGE_DIR", str(tmp_path / "store"))
        monkeypatch.setenv("HYPATIA_MODEL", "gemini-test")
        monkeypatch.setenv("HYPATIA_SANDBOX_TIMEOUT", "12")
        config = HypatiaConfig(config_path=tmp_path / "missing.yaml")
        assert config.storage.storage_dir == str(tmp_path / "store")
        assert config.models.default == "gemini-test"
        assert config.sandbox.timeout_seconds == 12.0

    def test_bad_timeout_is_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HYPATIA_SANDBOX_TIMEOUT", "soon")
        config = HypatiaConfig(config_path=tmp_path / "missing.yaml")
        assert config.sandbox.timeout_seconds == 30.0
