"""Ephemeral state of one agent-loop run. Never persisted."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from ..utils import console


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class AgentLogEntry:
    agent: str
    message: str


LogListener = Callable[[AgentLogEntry], None]


@dataclass
class AgenticRunState:
    """
    State machine for an agent loop: idle -> running -> success | failed.

    Terminal states are only left through `start()` on a new run.
    """
    max_iterations: int = 0
    status: RunStatus = RunStatus.IDLE
    iterations: int = 0
    logs: list[AgentLogEntry] = field(default_factory=list)
    last_error: Optional[str] = None
    error: Optional[BaseException] = None
    # Artifact produced by a successful run
    result: Any = None
    listener: Optional[LogListener] = None

    def start(self) -> None:
        self.status = RunStatus.RUNNING
        self.iterations = 0
        self.logs = []
        self.last_error = None
        self.error = None
        self.result = None

    def log(self, agent: str, message: str) -> None:
        entry = AgentLogEntry(agent, message)
        self.logs.append(entry)
        console.agent_log(agent, message)
        if self.listener is not None:
            self.listener(entry)

    def notifier(self, agent: str = "System") -> Callable[[str], None]:
        """Adapter for the retry controller's on_notify."""
        return lambda message: self.log(agent, message)

    def succeed(self, message: Optional[str] = None) -> None:
        if message:
            self.log("System", message)
        self.status = RunStatus.SUCCESS

    def fail(self, message: str, error: Optional[BaseException] = None) -> None:
        self.last_error = message
        self.error = error
        self.log("System", message)
        self.status = RunStatus.FAILED

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCESS
