"""Pytest fixtures for Hypatia tests."""

import json
from collections.abc import Callable
from typing import Any, Optional, Union

import pytest

from Hypatia.config.hypatia_config import HypatiaConfig
from Hypatia.infrastructure.retry import RetryPolicy
from Hypatia.llm_backends.base import GenerationRequest, GenerationResult, LLMBackend
from Hypatia.storage.experiment import StepRecord
from Hypatia.storage.state_store import ExperimentStore, InMemoryBackend

Reply = Union[str, BaseException]


class ScriptedBackend(LLMBackend):
    """
    LLM backend that replays canned replies.

    Replies come from a queue or from a handler that sees each request.
    Exceptions in either are raised instead of returned.
    """

    def __init__(
        self,
        replies: Optional[list[Reply]] = None,
        handler: Optional[Callable[[GenerationRequest], Reply]] = None,
    ):
        self.replies = list(replies or [])
        self.handler = handler
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        if self.handler is not None:
            reply = self.handler(request)
        elif self.replies:
            reply = self.replies.pop(0)
        else:
            raise AssertionError(f"Unexpected model call: {request.prompt[:80]!r}")
        if isinstance(reply, BaseException):
            raise reply
        return GenerationResult(text=reply, model=request.model)

    @property
    def prompts(self) -> list[str]:
        return [r.prompt for r in self.requests]


FAST_POLICY = RetryPolicy(max_attempts=3, base_delay=0.0, jitter=0.0)


@pytest.fixture
def config(tmp_path) -> HypatiaConfig:
    """Config with every pacing delay zeroed."""
    cfg = HypatiaConfig(config_path=tmp_path / "missing.yaml")
    cfg.simulation.iteration_delay = 0
    cfg.analysis.chart_delay = 0
    cfg.drafts.phase_delay = 0
    cfg.automation.pre_step_delay = 0
    cfg.automation.post_step_delay = 0
    cfg.retry.base_delay = 0
    cfg.retry.jitter = 0
    return cfg


@pytest.fixture
def store() -> ExperimentStore:
    return ExperimentStore(InMemoryBackend())


@pytest.fixture
def policy() -> RetryPolicy:
    return FAST_POLICY


def seed_experiment(store: ExperimentStore, completed: int = 0, **overrides: Any):
    """
    Create an experiment with steps 1..completed done.

    Each completed step gets a plain output and summary; step 1 gets the
    JSON the refinement call produces.
    """
    experiment = store.create_experiment(
        "Green roofs",
        field="Climate Science",
        description="Do green roofs cool cities at night?",
    )
    step_data = {}
    for k in range(1, completed + 1):
        if k == 1:
            output = json.dumps({
                "research_question": "Do green roofs lower night-time air temperature?",
                "uniqueness_score": 0.6,
                "justification": "Well studied by day, less at night.",
            })
            summary = "Do green roofs lower night-time air temperature?"
        else:
            output = f"Output of step {k}"
            summary = f"Summary of step {k}"
        step_data[k] = StepRecord(input=f"Input {k}", output=output, summary=summary)
    experiment = experiment.evolve(step_data=step_data, current_step=completed + 1, **overrides)
    store.save(experiment)
    return experiment
