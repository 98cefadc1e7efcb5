"""
Data-Analysis Agent: plan -> build charts -> synthesize.

Step 7 turns the dataset into a set of validated Chart.js configurations
and a Markdown interpretation that refers to them as Figure 1, Figure 2...
"""

from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import pandas as pd

from .base import AgentLoop
from .charts import CHART_TYPES, ensure_chart_styling, validate_chart_config
from .prompts import (
    CHART_JS_SCHEMA,
    VISUALIZATION_PLAN_SCHEMA,
    analysis_synthesis_prompt,
    chart_prompt,
    fallback_analysis_prompt,
    planner_prompt,
)
from .run_state import AgenticRunState
from ..config.workflow import resolve_fine_tune
from ..context.step_context import build_step_context
from ..infrastructure.errors import CredentialError, HypatiaError, MalformedResponse, describe_error
from ..llm_backends.base import GenerationRequest
from ..storage.experiment import ProvenanceEntry
from ..storage.state_store import RunToken
from ..utils import get_current_timestamp

logger = logging.getLogger("hypatia.analysis")

ANALYSIS_STEP = 7


@dataclass(frozen=True)
class ChartPlan:
    chart_type: str
    goal: str
    columns: list[str]

    @classmethod
    def from_dict(cls, data: Any) -> "ChartPlan":
        if not isinstance(data, dict):
            raise MalformedResponse(f"Chart plan entry is not an object: {data!r}")
        chart_type = str(data.get("chartType", "")).lower()
        if chart_type not in CHART_TYPES:
            raise MalformedResponse(f"Unsupported chart type in plan: {data.get('chartType')!r}")
        columns = data.get("columns") or []
        if not isinstance(columns, list):
            raise MalformedResponse(f"Chart plan columns must be a list, got {columns!r}")
        return cls(chart_type=chart_type, goal=str(data.get("goal", "")), columns=[str(c) for c in columns])


def describe_dataset(csv_data: str, sample_rows: int = 3) -> tuple[str, str]:
    """Header line and a few sample rows for the planner prompt."""
    try:
        frame = pd.read_csv(io.StringIO(csv_data.strip()))
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        logger.debug("pandas could not parse the dataset (%s); using raw lines", e)
        lines = csv_data.strip().splitlines()
        return (lines[0] if lines else ""), "\n".join(lines[1:1 + sample_rows])
    header = ",".join(str(c) for c in frame.columns)
    sample = frame.head(sample_rows).to_csv(index=False, header=False).strip()
    return header, sample


class DataAnalysisAgent(AgentLoop):
    """Planner, per-chart builder with a validation gate, and synthesizer."""

    name = "Analyst"

    async def plan(self, context, csv_data: str, settings: dict[str, Any], run: AgenticRunState) -> list[ChartPlan]:
        header, sample = describe_dataset(csv_data)
        run.log("Planner", "Analyzing data structure to create a visualization plan...")
        text = await self.ask(
            GenerationRequest(
                prompt=planner_prompt(context, header, sample, settings),
                response_mime_type="application/json",
                response_schema=VISUALIZATION_PLAN_SCHEMA,
            ),
            run,
            action_name="Planner call",
        )
        parsed = self.parse_json(text, "visualization plan")
        charts = parsed.get("charts") if isinstance(parsed, dict) else None
        if not isinstance(charts, list) or not charts:
            raise MalformedResponse("The visualization plan contained no charts", raw_text=text)
        plans = [ChartPlan.from_dict(c) for c in charts]
        run.log("Planner", f"Plan created with {len(plans)} visualizations.")
        return plans

    async def build_chart(self, plan: ChartPlan, csv_data: str, run: AgenticRunState) -> Optional[dict[str, Any]]:
        """
        Ask for a Chart.js config until it passes validation.

        Returns None when every attempt fails; only credential errors
        escape.
        """
        attempts = self.config.analysis.max_chart_attempts
        problems: list[str] = []
        for attempt in range(1, attempts + 1):
            run.log("Dataset-Builder", f'Preparing chart "{plan.goal}" (attempt {attempt}/{attempts})')
            request = GenerationRequest(
                prompt=chart_prompt(plan, csv_data, problems),
                response_mime_type="application/json",
                # The schema types data points as numbers, which excludes scatter {x, y} points
                response_schema=CHART_JS_SCHEMA if plan.chart_type != "scatter" else None,
            )
            try:
                text = await self.ask(request, run, action_name="Chart builder call")
                config = self.parse_json(text, "chart configuration")
            except CredentialError:
                raise
            except HypatiaError as e:
                problems = [describe_error(e)]
                run.log("Dataset-Builder", f"Attempt {attempt} failed: {problems[0]}")
                continue

            problems = validate_chart_config(config, plan.chart_type)
            if not problems:
                run.log("Dataset-Builder", f'Chart "{plan.goal}" validated.')
                return ensure_chart_styling(config)
            run.log("Dataset-Builder", f"Attempt {attempt} rejected: {'; '.join(problems)}")

        run.log("Dataset-Builder", f'Dropping chart "{plan.goal}" after {attempts} attempts.')
        return None

    async def run(
        self,
        experiment_id: str,
        state: Optional[AgenticRunState] = None,
        token: Optional[RunToken] = None,
    ) -> AgenticRunState:
        """
        Analyze `step_data[7].input` and persist `{summary, chartSuggestions}`.

        Returns the terminal run state. On success `result` holds the
        decoded output payload.
        """
        state = state or AgenticRunState()
        experiment = self.store.get(experiment_id)
        csv_data = experiment.step(ANALYSIS_STEP).input
        settings = resolve_fine_tune(ANALYSIS_STEP, experiment.settings_for(ANALYSIS_STEP))
        context = build_step_context(experiment, ANALYSIS_STEP)
        token = token or self.store.begin_run(experiment_id)

        state.start()
        if not csv_data.strip():
            state.fail("No data to analyze. Complete Step 6 first.")
            return state

        try:
            plans = await self.plan(context, csv_data, settings, state)
            state.max_iterations = len(plans)

            charts: list[tuple[ChartPlan, dict[str, Any]]] = []
            for index, plan in enumerate(plans, start=1):
                if not self.is_current(token):
                    state.fail("Analysis run was superseded; stopping.")
                    return state
                state.iterations = index
                config = await self.build_chart(plan, csv_data, state)
                if config is not None:
                    charts.append((plan, config))
                await self.pause(self.config.analysis.chart_delay)

            state.log("Synthesizer", "Compiling final report...")
            prompt = analysis_synthesis_prompt(context, charts, csv_data, settings)
            summary = await self.ask(GenerationRequest(prompt=prompt), state, action_name="Synthesis call")
        except HypatiaError as e:
            state.fail(f"Agentic analysis failed: {describe_error(e)}", e)
            return state

        payload = {"summary": summary, "chartSuggestions": [config for _, config in charts]}
        log_summary = f"Generated {len(charts)}/{len(plans)} planned visualizations and a summary of the analysis."
        entry = ProvenanceEntry(
            timestamp=get_current_timestamp(),
            prompt=prompt,
            config={"agent": "data_analysis", "charts_planned": len(plans), "charts_kept": len(charts)},
            output=summary,
        )
        saved = self.store.record_generation(
            experiment_id,
            ANALYSIS_STEP,
            entry,
            token=token,
            output=json.dumps(payload),
            suggested_input=log_summary,
        )
        if saved is None:
            state.fail("Analysis run was superseded; result discarded.")
            return state

        state.result = payload
        state.succeed(log_summary)
        return state

    async def fallback_summary(self, experiment_id: str, token: Optional[RunToken] = None) -> dict[str, Any]:
        """Text-only analysis for when the agentic run could not finish."""
        csv_data = self.store.get(experiment_id).step(ANALYSIS_STEP).input
        prompt = fallback_analysis_prompt(csv_data)
        summary = await self.ask(GenerationRequest(prompt=prompt), action_name="Fallback summary")
        payload = {"summary": summary, "chartSuggestions": []}
        self.store.record_generation(
            experiment_id,
            ANALYSIS_STEP,
            ProvenanceEntry(
                timestamp=get_current_timestamp(),
                prompt=prompt,
                config={"agent": "data_analysis", "fallback": True},
                output=summary,
            ),
            token=token,
            output=json.dumps(payload),
            suggested_input="Workflow failed, but a fallback summary was generated.",
        )
        return payload
