"""
Hypatia Security Module

Isolated execution of model-authored simulation scripts.
"""

from .sandbox import (
    SandboxedExecutor,
    Finished,
    CompletedWithoutFinish,
    ExecutionError,
    Outcome,
)

__all__ = [
    "SandboxedExecutor",
    "Finished",
    "CompletedWithoutFinish",
    "ExecutionError",
    "Outcome",
]
