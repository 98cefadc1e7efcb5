"""
Hypatia Context Module

Builds prompt context for a step from the experiment's earlier steps:
recent steps contribute full output, older steps their summaries.
"""

from .step_context import (
    StepContext,
    build_step_context,
    build_project_log,
    step_summary,
    full_output,
    NOT_AVAILABLE,
)

__all__ = [
    "StepContext",
    "build_step_context",
    "build_project_log",
    "step_summary",
    "full_output",
    "NOT_AVAILABLE",
]
