"""
Manual step runner.

Drives one workflow step at a time the way a researcher does in manual
mode: generate (or regenerate with feedback), review, then complete the
step so its summary feeds later context.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Optional

from ..agents.base import AgentLoop
from ..agents.prompts import (
    COMPANION_KINDS,
    SUMMARY_PROMPT,
    companion_prompt,
    get_prompt_for_step,
    suggest_input_prompt,
    synthesize_dataset_prompt,
)
from ..config.workflow import COMPLETE
from ..context.step_context import build_step_context
from ..infrastructure.errors import MalformedResponse
from ..infrastructure.retry import stream_with_retry
from ..llm_backends.base import GenerationRequest
from ..storage.experiment import Experiment, ProvenanceEntry
from ..storage.state_store import RunToken
from ..utils import console

logger = logging.getLogger("hypatia.runner")

OnChunk = Callable[[str], None]

SUGGESTION_STEPS = (1, 3, 4)

_SEPARATOR = re.compile(r"^\s*---\s*$", re.MULTILINE)


class StepRunner(AgentLoop):
    """Single-call steps, step completion and the small helper calls around them."""

    name = "Assistant"

    async def generate(
        self,
        experiment_id: str,
        step: int,
        user_input: Optional[str] = None,
        feedback: str = "",
        on_chunk: Optional[OnChunk] = None,
        token: Optional[RunToken] = None,
    ) -> Optional[Experiment]:
        """
        Generate a step's output with one model call.

        Regenerating a step behind the cursor resets the project to that
        step first. JSON steps (1, 2) are generated in one call; text steps
        are streamed through `on_chunk`.

        Returns:
            The updated experiment, or None when the run was superseded

        Raises:
            ValueError: The step is beyond the cursor
            CredentialError, ExhaustedRetries, MalformedResponse: The call
                failed; nothing was written
        """
        experiment = self.store.get(experiment_id)
        if step > experiment.current_step:
            raise ValueError(f"Step {step} is locked; the project is at step {experiment.current_step}")
        if step < experiment.current_step:
            experiment = self.store.rerun_step(experiment_id, step)

        token = token or self.store.begin_run(experiment_id)
        if user_input is not None and user_input != experiment.step(step).input:
            experiment = self.store.update_step(experiment_id, step, token=token, input=user_input) or experiment
        user_input = experiment.step(step).input

        context = build_step_context(experiment, step)
        step_prompt = get_prompt_for_step(step, user_input, context, experiment.settings_for(step), feedback)
        request = step_prompt.to_request(self.config.models.default)

        extra: dict[str, Any] = {}
        if step_prompt.expect_json:
            text = await self.ask(request, action_name=f"Step {step} generation")
            parsed = self.parse_json(text, f"step {step} response")
            extra = self._json_fields(step, parsed, text)
            output = json.dumps(parsed)
        else:
            chunks = []
            async for chunk in stream_with_retry(
                lambda: self.backend.generate_stream(request),
                policy=self.policy,
                action_name=f"Step {step} generation",
            ):
                chunks.append(chunk)
                if on_chunk is not None:
                    on_chunk(chunk)
            output = "".join(chunks)
            if not output.strip():
                raise MalformedResponse(f"Step {step} generation returned no text")

        entry = ProvenanceEntry(prompt=step_prompt.prompt, config=request.config_snapshot(), output=output)
        return self.store.record_generation(experiment_id, step, entry, token=token, output=output, **extra)

    @staticmethod
    def _json_fields(step: int, parsed: Any, raw: str) -> dict[str, Any]:
        """Validate a JSON step response and pick out the fields stored beside it."""
        if not isinstance(parsed, dict):
            raise MalformedResponse(f"Step {step} response is not a JSON object", raw_text=raw)
        if step == 1:
            if not str(parsed.get("research_question", "")).strip():
                raise MalformedResponse("The response has no research_question", raw_text=raw)
            score = parsed.get("uniqueness_score")
            return {
                "uniqueness_score": float(score) if isinstance(score, (int, float)) else None,
                "uniqueness_justification": parsed.get("justification"),
            }
        if step == 2 and not str(parsed.get("summary", "")).strip():
            raise MalformedResponse("The literature review has no summary", raw_text=raw)
        return {}

    async def summarize_text(self, text: str) -> str:
        return (await self.ask(
            GenerationRequest(prompt=SUMMARY_PROMPT.format(text=text), model=self.config.models.fast),
            action_name="Summary call",
        )).strip()

    async def summarize_step(self, experiment: Experiment, step: int) -> str:
        """
        Short log summary of a completed step.

        Step 1 uses the refined question and step 7 the cached analysis
        line; step 6 already carries its summary. Everything else costs one
        summary call.
        """
        record = experiment.step(step)
        if step == 1:
            try:
                return json.loads(record.output)["research_question"]
            except (ValueError, KeyError, TypeError):
                logger.debug("Step 1 output is not the expected JSON; summarizing the text")
        elif step == 6 and record.summary:
            return record.summary
        elif step == 7 and record.suggested_input:
            return record.suggested_input

        text = record.output
        if step in (2, 7):
            try:
                text = json.loads(record.output).get("summary") or text
            except (ValueError, AttributeError):
                logger.debug("Step %d output is not JSON; summarizing it as text", step)
        return await self.summarize_text(text)

    async def complete_step(
        self,
        experiment_id: str,
        step: int,
        summary: Optional[str] = None,
        token: Optional[RunToken] = None,
    ) -> Optional[Experiment]:
        """
        Summarize a step and advance the cursor past it.

        Completing step 6 forwards its dataset to step 7.
        """
        experiment = self.store.get(experiment_id)
        if not experiment.is_complete(step):
            raise ValueError(f"Step {step} has no output and cannot be completed")
        if summary is None:
            summary = await self.summarize_step(experiment, step)

        forward = None
        if step == 6 and experiment.step(6).input:
            forward = {7: {"input": experiment.step(6).input}}
        updated = self.store.complete_step(experiment_id, step, summary, token=token, forward=forward)
        if updated is not None:
            console.success(f"Step {step} complete", summary[:120])
        return updated

    async def suggest_input(self, experiment_id: str, step: int) -> str:
        """An optional starting input for steps 1, 3 and 4."""
        if step not in SUGGESTION_STEPS:
            raise ValueError(f"Input suggestions are available for steps {SUGGESTION_STEPS}, not {step}")
        experiment = self.store.get(experiment_id)
        prompt = suggest_input_prompt(step, build_step_context(experiment, step), experiment.description)
        return (await self.ask(
            GenerationRequest(prompt=prompt, model=self.config.models.fast),
            action_name="Input suggestion",
        )).strip()

    async def synthesize_dataset(
        self,
        experiment_id: str,
        submit: bool = True,
        token: Optional[RunToken] = None,
    ) -> tuple[str, str]:
        """
        Generate a plausible synthetic dataset in one call.

        Returns:
            (summary, csv)

        Raises:
            MalformedResponse: The reply had no `---` separator or no CSV
        """
        experiment = self.store.get(experiment_id)
        text = await self.ask(
            GenerationRequest(prompt=synthesize_dataset_prompt(build_step_context(experiment, 6))),
            action_name="Dataset synthesis",
        )
        parts = _SEPARATOR.split(text, maxsplit=1)
        if len(parts) != 2:
            raise MalformedResponse("The synthesized dataset has no '---' separator", raw_text=text)
        summary = parts[0].strip()
        csv_data = parts[1].strip()
        if csv_data.startswith("```"):
            csv_data = csv_data.strip("`").removeprefix("csv").strip()
        if not summary or not csv_data:
            raise MalformedResponse("The synthesized dataset is missing its summary or CSV", raw_text=text)

        if submit:
            self.submit_dataset(experiment_id, csv_data, summary, token=token)
        return summary, csv_data

    def submit_dataset(
        self,
        experiment_id: str,
        csv_data: str,
        summary: str,
        token: Optional[RunToken] = None,
    ) -> Optional[Experiment]:
        """Manual data entry or upload for step 6."""
        if not csv_data.strip():
            raise ValueError("Dataset is empty")
        return self.store.submit_dataset(
            experiment_id,
            csv_data.strip(),
            summary.strip() or "Dataset provided by the researcher.",
            token=token,
        )

    async def generate_companion(self, experiment_id: str, kind: str) -> str:
        """Submission checklist, presentation outline or plain-language explainer."""
        if kind not in COMPANION_KINDS:
            raise ValueError(f"Unknown companion kind '{kind}', expected one of {COMPANION_KINDS}")
        experiment = self.store.get(experiment_id)
        if experiment.current_step != COMPLETE:
            raise ValueError("Companion documents are available once all ten steps are complete")
        context = build_step_context(experiment, COMPLETE, include_log=True)
        return await self.ask(GenerationRequest(prompt=companion_prompt(kind, context)), action_name=f"{kind} call")
