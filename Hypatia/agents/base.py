"""
Agent base class shared by the agent loops.

Implements:
- Retrying LLM calls attributed to a run's log
- JSON parsing of model output into MalformedResponse on failure
- Pacing delays
- Run-token checks so superseded loops stop scheduling work
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from .run_state import AgenticRunState
from ..config.hypatia_config import HypatiaConfig, get_config
from ..infrastructure.errors import MalformedResponse, RunSuperseded
from ..infrastructure.retry import RetryPolicy, call_with_retry
from ..llm_backends.base import GenerationRequest, LLMBackend
from ..storage.state_store import ExperimentStore, RunToken
from ..utils import strip_code_fences


class AgentLoop:
    """
    Base for the self-correcting agent loops.

    The LLM backend is an injected handle; nothing here reaches for a
    module-level client.
    """

    name = "Agent"

    def __init__(
        self,
        backend: LLMBackend,
        store: ExperimentStore,
        config: Optional[HypatiaConfig] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        self.backend = backend
        self.store = store
        self.config = config or get_config()
        self.policy = policy or self.config.retry_policy

    async def ask(
        self,
        request: GenerationRequest,
        run: Optional[AgenticRunState] = None,
        action_name: str = "AI call",
    ) -> str:
        """One generation through the retry controller; returns the text."""
        result = await call_with_retry(
            self.backend.generate,
            request,
            on_notify=run.notifier() if run is not None else None,
            policy=self.policy,
            action_name=action_name,
        )
        return result.text

    @staticmethod
    def parse_json(text: str, what: str = "response") -> Any:
        """Parse model output as JSON, tolerating a Markdown fence."""
        cleaned = strip_code_fences(text)
        try:
            return json.loads(cleaned)
        except ValueError as e:
            raise MalformedResponse(f"The {what} was not valid JSON: {e}", raw_text=text) from e

    @staticmethod
    async def pause(seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    def is_current(self, token: Optional[RunToken]) -> bool:
        return self.store.is_current(token)

    def ensure_current(self, token: Optional[RunToken]) -> None:
        """Raise RunSuperseded once `token` is stale, before the next pass is scheduled."""
        if not self.store.is_current(token):
            raise RunSuperseded(f"{self.name} run was superseded; stopping.")
