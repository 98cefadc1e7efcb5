"""
Agent loops for the workflow steps that need more than one model call.
"""

from .base import AgentLoop
from .charts import ensure_chart_styling, validate_chart_config
from .code_simulation import CodeSimulationAgent, SimulationResult
from .data_analysis import ChartPlan, DataAnalysisAgent
from .draft_agents import DraftAgent, LiteratureReviewAgent, PeerReviewAgent, PublicationAgent
from .prompts import StepPrompt, get_prompt_for_step
from .run_state import AgentLogEntry, AgenticRunState, RunStatus

__all__ = [
    "AgentLoop",
    "AgentLogEntry",
    "AgenticRunState",
    "RunStatus",
    "CodeSimulationAgent",
    "SimulationResult",
    "DataAnalysisAgent",
    "ChartPlan",
    "DraftAgent",
    "LiteratureReviewAgent",
    "PeerReviewAgent",
    "PublicationAgent",
    "StepPrompt",
    "get_prompt_for_step",
    "validate_chart_config",
    "ensure_chart_styling",
]
