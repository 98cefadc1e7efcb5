"""
Hypatia Orchestrators.

- StepRunner: Manual, one-step-at-a-time generation and completion
- AutomationSequencer: Runs the remaining steps back to back
- HypatiaSession: Wires a backend and a store to both
"""

from .step_runner import StepRunner
from .automation import AutomationSequencer
from .session import HypatiaSession

__all__ = [
    "StepRunner",
    "AutomationSequencer",
    "HypatiaSession",
]
