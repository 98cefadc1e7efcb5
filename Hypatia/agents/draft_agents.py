"""
Multi-phase draft agents for the literature review, peer review and
publication steps.

Each agent runs a fixed sequence of passes (draft, critique, compile)
within an iteration budget. Nothing is persisted unless the whole
sequence succeeds.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Optional

from .base import AgentLoop
from .prompts import (
    CRITIC_SCHEMA,
    GOOGLE_SEARCH_TOOL,
    OUTLINE_SCHEMA,
    critic_prompt,
    outline_prompt,
    publication_editor_prompt,
    researcher_prompt,
    review_editor_prompt,
    reviewer_step_prompt,
    revision_prompt,
    system_instruction,
    writer_prompt,
)
from .run_state import AgenticRunState
from ..config.workflow import generation_options, resolve_fine_tune, step_title
from ..context.step_context import StepContext, build_project_log, build_step_context, full_output
from ..infrastructure.errors import HypatiaError, MalformedResponse, RunSuperseded, describe_error
from ..llm_backends.base import GenerationRequest
from ..storage.experiment import Experiment, ProvenanceEntry
from ..storage.state_store import RunToken


class DraftAgent(AgentLoop, ABC):
    """
    Shared driver for the draft agents.

    Subclasses set `step` and `budget_field` and implement `draft()`,
    which returns the final output and the prompt of the last pass.
    `draft()` calls `ensure_current(token)` before every pass so a
    superseded run stops making model calls.
    """

    step: int = 0
    budget_field: str = ""

    @property
    def budget(self) -> int:
        return getattr(self.config.drafts, self.budget_field)

    def request(self, prompt: str, settings: dict[str, Any], **kwargs: Any) -> GenerationRequest:
        options = generation_options(self.step, settings)
        return GenerationRequest(prompt=prompt, **options, **kwargs)

    @abstractmethod
    async def draft(
        self,
        experiment: Experiment,
        context: StepContext,
        settings: dict[str, Any],
        state: AgenticRunState,
        token: RunToken,
    ) -> tuple[str, str]:
        ...

    async def run(
        self,
        experiment_id: str,
        state: Optional[AgenticRunState] = None,
        token: Optional[RunToken] = None,
    ) -> AgenticRunState:
        """Run every pass and persist the output only if all of them succeed."""
        experiment = self.store.get(experiment_id)
        settings = resolve_fine_tune(self.step, experiment.settings_for(self.step))
        context = build_step_context(experiment, self.step, include_log=True)
        token = token or self.store.begin_run(experiment_id)

        state = state or AgenticRunState()
        state.start()
        state.max_iterations = self.budget

        try:
            output, prompt = await self.draft(experiment, context, settings, state, token)
        except RunSuperseded as e:
            state.fail(e.message, e)
            return state
        except HypatiaError as e:
            state.fail(f"{self.name} failed: {describe_error(e)}", e)
            return state

        entry = ProvenanceEntry(
            prompt=prompt,
            config={"agent": self.name, "passes": state.iterations, **generation_options(self.step, settings)},
            output=output,
        )
        if self.store.record_generation(experiment_id, self.step, entry, token=token, output=output) is None:
            state.fail(f"{self.name} run was superseded; result discarded.")
            return state

        state.result = output
        state.succeed(f"{self.name} complete.")
        return state


def _parse_review(agent: AgentLoop, text: str) -> dict[str, Any]:
    parsed = agent.parse_json(text, "literature review")
    if not isinstance(parsed, dict) or not str(parsed.get("summary", "")).strip():
        raise MalformedResponse("The literature review has no summary", raw_text=text)
    references = parsed.get("references") or []
    if not isinstance(references, list):
        raise MalformedResponse("The literature review references must be a list", raw_text=text)
    return {"summary": parsed["summary"], "references": references}


class LiteratureReviewAgent(DraftAgent):
    """Researcher drafts with search grounding; a Critic requests revisions until satisfied."""

    name = "Literature Review Agent"
    step = 2
    budget_field = "literature_budget"

    async def draft(self, experiment, context, settings, state, token):
        self.ensure_current(token)
        state.log("Researcher", "Searching for sources and drafting the literature review...")
        prompt = researcher_prompt(context, settings)
        text = await self.ask(
            self.request(prompt, settings, tools=[GOOGLE_SEARCH_TOOL]),
            state,
            action_name="Researcher call",
        )
        review = _parse_review(self, text)
        state.iterations = 1
        state.log("Researcher", f"Draft ready with {len(review['references'])} references.")

        for round_number in range(2, self.budget + 1):
            await self.pause(self.config.drafts.phase_delay)
            self.ensure_current(token)
            draft_json = json.dumps(review, indent=2)
            state.log("Critic", "Reviewing the draft...")
            verdict = self.parse_json(
                await self.ask(
                    GenerationRequest(
                        prompt=critic_prompt(context, draft_json),
                        response_mime_type="application/json",
                        response_schema=CRITIC_SCHEMA,
                    ),
                    state,
                    action_name="Critic call",
                ),
                "critic verdict",
            )
            if not isinstance(verdict, dict):
                raise MalformedResponse(f"The critic verdict is not an object: {verdict!r}")
            if verdict.get("approved"):
                state.log("Critic", "Approved.")
                break

            feedback = str(verdict.get("feedback", ""))
            state.log("Critic", feedback or "Revision requested.")
            self.ensure_current(token)
            state.log("Researcher", f"Revising the review (round {round_number - 1})...")
            prompt = revision_prompt(context, draft_json, feedback)
            review = _parse_review(
                self,
                await self.ask(
                    self.request(prompt, settings, tools=[GOOGLE_SEARCH_TOOL]),
                    state,
                    action_name="Revision call",
                ),
            )
            state.iterations = round_number
        else:
            state.log("Critic", "Revision budget spent; keeping the latest draft.")

        return json.dumps(review), prompt


class PeerReviewAgent(DraftAgent):
    """Reviews each prior step in turn, then an Editor compiles one review."""

    name = "Peer Review Agent"
    step = 9
    budget_field = "peer_review_budget"

    async def draft(self, experiment, context, settings, state, token):
        notes: list[tuple[int, str]] = []
        for prior in range(1, min(self.step, self.budget + 1)):
            self.ensure_current(token)
            title = step_title(prior)
            state.log("Reviewer", f"Analyzing Step {prior}: {title}")
            text = await self.ask(
                self.request(
                    reviewer_step_prompt(prior, title, full_output(experiment, prior), settings),
                    settings,
                    system_instruction=system_instruction(context.experiment_field, settings),
                ),
                state,
                action_name=f"Review of step {prior}",
            )
            notes.append((prior, text))
            state.iterations = prior
            await self.pause(self.config.drafts.phase_delay)

        self.ensure_current(token)
        state.log("Editor", "Compiling the final peer review...")
        prompt = review_editor_prompt(context.project_log or build_project_log(experiment, self.step), notes, settings)
        review = await self.ask(
            self.request(prompt, settings, system_instruction=system_instruction(context.experiment_field, settings)),
            state,
            action_name="Editor call",
        )
        return review, prompt


class PublicationAgent(DraftAgent):
    """Manager outlines, Writer drafts each section, Editor assembles the paper."""

    name = "Publication Agent"
    step = 10
    budget_field = "publication_budget"

    async def draft(self, experiment, context, settings, state, token):
        project_log = context.project_log or build_project_log(experiment, self.step)

        self.ensure_current(token)
        state.log("Manager", "Analyzing project log to create a publication outline...")
        text = await self.ask(
            GenerationRequest(
                prompt=outline_prompt(project_log, self.budget),
                response_mime_type="application/json",
                response_schema=OUTLINE_SCHEMA,
            ),
            state,
            action_name="Outline call",
        )
        outline = self.parse_json(text, "publication outline")
        if not isinstance(outline, list) or not outline:
            raise MalformedResponse("The publication outline is empty", raw_text=text)
        outline = [str(section) for section in outline][: self.budget]
        state.log("Manager", "Outline created: " + ", ".join(outline))
        await self.pause(self.config.drafts.phase_delay)

        sections: dict[str, str] = {}
        for index, section in enumerate(outline, start=1):
            self.ensure_current(token)
            state.log("Writer", f"Drafting section: {section}...")
            sections[section] = await self.ask(
                self.request(writer_prompt(section, project_log, settings), settings),
                state,
                action_name=f"Writer call ({section})",
            )
            state.iterations = index
            state.log("Writer", f'"{section}" section complete.')
            await self.pause(self.config.drafts.phase_delay)

        self.ensure_current(token)
        state.log("Editor", "Assembling the final paper...")
        prompt = publication_editor_prompt(sections, settings)
        paper = await self.ask(self.request(prompt, settings), state, action_name="Editor call")
        return paper, prompt
