"""
Code-Simulation Agent: generate -> execute -> debug.

Produces the step 6 dataset by running a model-written simulation script
in the sandbox. Runtime failures (and scripts that never call
`hypatia.finish`) are fed back to a Debugger pass, up to a fixed number
of attempts.
"""

from __future__ import annotations

from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Callable, Optional

from .base import AgentLoop
from .prompts import coder_prompt, debugger_prompt, simplifier_prompt
from .run_state import AgenticRunState
from ..context.step_context import build_step_context
from ..infrastructure.errors import HypatiaError, MalformedResponse, SandboxExecutionError, describe_error
from ..llm_backends.base import GenerationRequest
from ..security.sandbox import Finished, SandboxedExecutor
from ..storage.state_store import RunToken
from ..utils import strip_code_fences

SIMULATION_STEP = 6

OnComplete = Callable[[str, str], None]


@dataclass(frozen=True)
class SimulationResult:
    data: str
    summary: str
    code: str


class CodeSimulationAgent(AgentLoop):
    """Self-debugging simulation loop for step 6."""

    name = "Simulator"

    async def initialize_code(
        self,
        experiment_id: str,
        run: Optional[AgenticRunState] = None,
        token: Optional[RunToken] = None,
    ) -> str:
        """
        Write the first version of the script.

        Simplifier condenses the plan into one paragraph of intent, then
        Coder turns that into a script. The code is persisted as the step
        6 input.
        """
        run = run or AgenticRunState()
        context = build_step_context(self.store.get(experiment_id), SIMULATION_STEP)

        run.log("Simplifier", "Reading hypothesis, methodology, and data plan to create a simplified simulation goal...")
        instructions = await self.ask(
            GenerationRequest(prompt=simplifier_prompt(context), model=self.config.models.fast),
            run,
            action_name="Simplifier call",
        )
        run.log("Simplifier", "Simplified instructions created.")
        run.log("Instructions", instructions)

        run.log("Coder", "Generating simulation code based on simplified instructions...")
        raw = await self.ask(
            GenerationRequest(prompt=coder_prompt(context.experiment_field, instructions)),
            run,
            action_name="Coder call",
        )
        code = strip_code_fences(raw)
        if not code:
            raise MalformedResponse("The Coder returned no code", raw_text=raw)

        self.store.update_step(experiment_id, SIMULATION_STEP, token=token, input=code)
        run.log("Coder", "Code generated successfully.")
        return code

    async def run(
        self,
        experiment_id: str,
        code: Optional[str] = None,
        on_complete: Optional[OnComplete] = None,
        state: Optional[AgenticRunState] = None,
        token: Optional[RunToken] = None,
        sandbox: Optional[SandboxedExecutor] = None,
    ) -> AgenticRunState:
        """
        Run the execute/debug loop to a terminal state.

        Args:
            experiment_id: Experiment to simulate for
            code: Script to start from; defaults to the persisted step 6
                input, or a freshly initialized script
            on_complete: Called with (data, summary) on success
            state: Run state to drive (a fresh one by default)
            token: Run token; a new run is started when omitted
            sandbox: An entered executor to reuse; by default one is
                created for this run

        Returns:
            The run state, `success` or `failed`. On success `result` is a
            SimulationResult and the dataset has been submitted.
        """
        max_iterations = self.config.simulation.max_iterations
        state = state or AgenticRunState()
        state.max_iterations = max_iterations
        state.start()
        token = token or self.store.begin_run(experiment_id)

        try:
            current_code = code or self.store.get(experiment_id).step(SIMULATION_STEP).input
            if not current_code:
                current_code = await self.initialize_code(experiment_id, state, token)
        except HypatiaError as e:
            state.fail(f"AI failed to generate initial simulation code: {describe_error(e)}", e)
            return state

        experiment_field = self.store.get(experiment_id).field
        last_error = f"Maximum attempts ({max_iterations}) reached without a successful run."

        async with AsyncExitStack() as stack:
            if sandbox is None:
                sandbox = await stack.enter_async_context(
                    SandboxedExecutor(timeout=self.config.sandbox.timeout_seconds)
                )

            for attempt in range(1, max_iterations + 1):
                if not self.is_current(token):
                    state.fail("Simulation run was superseded; stopping.")
                    return state

                state.iterations = attempt
                state.log("System", f"--- Attempt {attempt} of {max_iterations} ---")
                if attempt > 1:
                    await self.pause(self.config.simulation.iteration_delay)

                try:
                    outcome = await sandbox.execute(current_code, on_log=lambda line: state.log("Simulator", line))
                except SandboxExecutionError as e:
                    state.fail(f"Sandbox unavailable: {describe_error(e)}", e)
                    return state

                if isinstance(outcome, Finished):
                    if self.store.submit_dataset(experiment_id, outcome.data, outcome.summary, token=token) is None:
                        state.fail("Simulation run was superseded; result discarded.")
                        return state
                    state.result = SimulationResult(outcome.data, outcome.summary, current_code)
                    state.succeed("Agentic simulation successful.")
                    if on_complete is not None:
                        on_complete(outcome.data, outcome.summary)
                    return state

                last_error = outcome.message
                state.last_error = last_error
                state.log("Debugger", f"Execution failed. Error: {last_error}")
                if attempt == max_iterations:
                    break

                try:
                    fixed = await self.ask(
                        GenerationRequest(prompt=debugger_prompt(experiment_field, last_error, current_code)),
                        state,
                        action_name="Debugger call",
                    )
                except HypatiaError as e:
                    state.fail(f"Debugger agent failed: {describe_error(e)}", e)
                    return state

                current_code = strip_code_fences(fixed) or current_code
                self.store.update_step(experiment_id, SIMULATION_STEP, token=token, input=current_code)
                state.log("Debugger", "Attempting a fix...")

        state.fail(f"Agentic simulation failed. Last known error: {last_error}")
        state.last_error = last_error
        return state
