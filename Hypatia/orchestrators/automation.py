"""
Automation Sequencer.

Runs the remaining workflow steps back to back for an experiment in
automated mode. Each step is generated (by its agent where it has one),
summarized and persisted before the next begins, so an interrupted run
resumes where it stopped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .step_runner import StepRunner
from ..agents.code_simulation import CodeSimulationAgent
from ..agents.data_analysis import DataAnalysisAgent
from ..agents.draft_agents import LiteratureReviewAgent, PeerReviewAgent, PublicationAgent
from ..agents.run_state import AgenticRunState
from ..config.hypatia_config import HypatiaConfig, get_config
from ..config.workflow import TOTAL_STEPS, step_title
from ..infrastructure.errors import HypatiaError, SequenceAbort, describe_error
from ..infrastructure.retry import RetryPolicy
from ..llm_backends.base import LLMBackend
from ..storage.experiment import Experiment
from ..storage.state_store import ExperimentStore
from ..utils import console

logger = logging.getLogger("hypatia.automation")

WORKFLOW_NAME = "Automated research run"


class AutomationSequencer:
    """
    Drives steps `start..10` in order.

    Steps that already have output are not regenerated. A failure stops
    the sequence with SequenceAbort and leaves the cursor on the failed
    step.
    """

    def __init__(
        self,
        backend: LLMBackend,
        store: ExperimentStore,
        config: Optional[HypatiaConfig] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        self.store = store
        self.config = config or get_config()
        args = (backend, store, self.config, policy)
        self.runner = StepRunner(*args)
        self.simulation = CodeSimulationAgent(*args)
        self.analysis = DataAnalysisAgent(*args)
        self.agents = {
            2: LiteratureReviewAgent(*args),
            7: self.analysis,
            9: PeerReviewAgent(*args),
            10: PublicationAgent(*args),
        }

    async def _pause(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    async def _generate(self, experiment_id: str, step: int) -> None:
        """Produce `step`'s output, raising on any failure."""
        if step == 6:
            if self.config.automation.data_mode == "synthesize":
                await self.runner.synthesize_dataset(experiment_id)
                return
            state = await self.simulation.run(experiment_id)
        elif step in self.agents:
            state = await self.agents[step].run(experiment_id, state=AgenticRunState())
        else:
            await self.runner.generate(experiment_id, step)
            return

        if not state.succeeded:
            raise SequenceAbort(step, state.last_error or "Agent run failed", original_error=state.error)

    async def run(self, experiment_id: str, start_step: Optional[int] = None) -> Experiment:
        """
        Run the sequence to completion.

        Args:
            experiment_id: Experiment in automated mode
            start_step: First step to consider; defaults to the cursor

        Returns:
            The final experiment snapshot

        Raises:
            ValueError: The experiment is not in automated mode
            SequenceAbort: A step failed; `step` names it
        """
        experiment = self.store.get(experiment_id)
        if experiment.automation_mode != "automated":
            raise ValueError("Experiment is not in automated mode")

        start = start_step or experiment.current_step
        if start > TOTAL_STEPS:
            return experiment

        console.workflow_start(WORKFLOW_NAME)
        automation = self.config.automation

        for step in range(start, TOTAL_STEPS + 1):
            latest = self.store.get(experiment_id)
            if latest.is_complete(step) and latest.current_step > step:
                logger.debug("Step %d already complete, skipping", step)
                continue

            console.workflow_step(step, step_title(step))
            await self._pause(automation.pre_step_delay)
            try:
                if not latest.is_complete(step):
                    await self._generate(experiment_id, step)
                await self.runner.complete_step(experiment_id, step)
            except SequenceAbort as e:
                console.workflow_failed(WORKFLOW_NAME, f"Step {step}: {e.message}")
                raise
            except HypatiaError as e:
                message = describe_error(e)
                console.workflow_failed(WORKFLOW_NAME, f"Step {step}: {message}")
                raise SequenceAbort(step, message, original_error=e) from e

            if step < TOTAL_STEPS:
                await self._pause(automation.post_step_delay)

        console.workflow_complete(WORKFLOW_NAME, "All steps complete")
        return self.store.get(experiment_id)
