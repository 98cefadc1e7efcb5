"""
HypatiaSession: wires the backend, store and orchestrators together.

Scripts and tests build one session and reach every operation through
it; nothing in the package holds a module-level client.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .automation import AutomationSequencer
from .step_runner import StepRunner
from ..config.hypatia_config import HypatiaConfig, get_config
from ..infrastructure.retry import RetryPolicy
from ..llm_backends.base import LLMBackend
from ..llm_backends.credentials import resolve_api_key
from ..llm_backends.gemini_backend import GeminiBackend
from ..storage.state_store import ExperimentStore, JsonFileBackend


class HypatiaSession:
    """
    One research session: a model handle plus the persisted experiments.

    Usage:
        async with HypatiaSession.open(api_key=...) as session:
            experiment = session.store.create_experiment("Coral bleaching")
            await session.runner.generate(experiment.id, 1)
    """

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
        self.sequencer = AutomationSequencer(backend, store, self.config, policy)
        self.runner = self.sequencer.runner
        self.simulation = self.sequencer.simulation
        self.analysis = self.sequencer.analysis

    @classmethod
    def open(
        cls,
        api_key: Optional[str] = None,
        storage_dir: Optional[str | Path] = None,
        config: Optional[HypatiaConfig] = None,
    ) -> "HypatiaSession":
        """Build a session backed by Gemini and the JSON file store."""
        config = config or get_config()
        backend = GeminiBackend(model=config.models.default, api_key=resolve_api_key(api_key))
        store = ExperimentStore(JsonFileBackend(storage_dir or config.storage.storage_dir))
        return cls(backend, store, config)

    async def aclose(self) -> None:
        await self.backend.aclose()

    async def __aenter__(self) -> "HypatiaSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
