"""
Hypatia: AI research assistant for the ten-step scientific workflow.

Takes a research idea from a refined question through literature review,
hypotheses, methodology, data, analysis and peer review to a publication
draft, with agent loops for the steps that need more than one model call.

Architecture:
- config/: Workflow definition (YAML) and runtime configuration
- storage/: Experiment model and the mutation store
- llm_backends/: Gemini backend and credentials
- infrastructure/: Error taxonomy and retry controller
- security/: Subprocess sandbox for simulation scripts
- context/: Step context and project log builder
- agents/: Simulation, analysis and draft agent loops
- orchestrators/: Manual step runner and automation sequencer

Quick Start:
    from Hypatia import HypatiaSession

    async with HypatiaSession.open() as session:
        experiment = session.store.create_experiment(
            "Urban heat islands", field="Climate Science",
            description="Do green roofs lower night-time temperatures?",
        )
        await session.runner.generate(experiment.id, 1)
        await session.runner.complete_step(experiment.id, 1)
"""

__version__ = "0.1.0"

# Orchestration
from .orchestrators import AutomationSequencer, HypatiaSession, StepRunner

# Agents
from .agents import (
    AgenticRunState,
    CodeSimulationAgent,
    DataAnalysisAgent,
    LiteratureReviewAgent,
    PeerReviewAgent,
    PublicationAgent,
)

# Storage
from .storage import Experiment, ExperimentStore, InMemoryBackend, JsonFileBackend

# LLM Backends
from .llm_backends import GeminiBackend, LLMBackend

# Configuration
from .config import HypatiaConfig, get_config

# Console utilities
from .utils import console

__all__ = [
    # Version
    "__version__",
    # Orchestration
    "HypatiaSession",
    "StepRunner",
    "AutomationSequencer",
    # Agents
    "AgenticRunState",
    "CodeSimulationAgent",
    "DataAnalysisAgent",
    "LiteratureReviewAgent",
    "PeerReviewAgent",
    "PublicationAgent",
    # Storage
    "Experiment",
    "ExperimentStore",
    "InMemoryBackend",
    "JsonFileBackend",
    # LLM Backends
    "GeminiBackend",
    "LLMBackend",
    # Configuration
    "HypatiaConfig",
    "get_config",
    # Console
    "console",
]
