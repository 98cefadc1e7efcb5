"""
Hypatia Configuration System.

Single source of truth for runtime tuning:
- Model names
- Retry policy
- Agent loop bounds and pacing delays
- Sandbox limits
- Storage location

Loads from hypatia_config.yaml (if present) with sensible defaults.
Environment variables override the file:
    HYPATIA_STORAGE_DIR, HYPATIA_MODEL, HYPATIA_SANDBOX_TIMEOUT
"""

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional
import os

import yaml

from ..infrastructure.retry import RetryPolicy
from ..utils import console


@dataclass
class ModelsConfig:
    """Which Gemini models serve which kind of call."""
    default: str = "gemini-2.5-flash"
    # Cheap model for summaries, simplifier passes and automation
    fast: str = "gemini-flash-lite-latest"


@dataclass
class RetryConfig:
    max_attempts: int = 5
    base_delay: float = 2.0
    backoff_factor: float = 2.0
    jitter: float = 0.25

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            backoff_factor=self.backoff_factor,
            jitter=self.jitter,
        )


@dataclass
class SimulationConfig:
    max_iterations: int = 25
    iteration_delay: float = 1.0


@dataclass
class AnalysisConfig:
    max_chart_attempts: int = 3
    chart_delay: float = 0.0


@dataclass
class DraftsConfig:
    literature_budget: int = 5
    peer_review_budget: int = 8
    publication_budget: int = 7
    # Pause between section/review passes
    phase_delay: float = 2.0


@dataclass
class AutomationConfig:
    pre_step_delay: float = 0.5
    post_step_delay: float = 2.0
    # "simulate" runs the code-simulation agent, "synthesize" asks for a dataset directly
    data_mode: str = "simulate"


@dataclass
class SandboxConfig:
    timeout_seconds: float = 30.0


@dataclass
class StorageConfig:
    storage_dir: str = "Experiments"


class HypatiaConfig:
    """
    Unified configuration for Hypatia.

    Loads from hypatia_config.yaml if available, otherwise uses defaults.
    """

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or Path(__file__).parent.parent.parent / "hypatia_config.yaml"

        if self.config_path.exists():
            with open(self.config_path) as f:
                data = yaml.safe_load(f) or {}
            console.info(f"Loaded config from {self.config_path}")
        else:
            data = {}
            console.debug(f"No config file at {self.config_path}, using defaults")

        self.models = ModelsConfig(**data.get("models", {}))
        self.retry = RetryConfig(**data.get("retry", {}))
        self.simulation = SimulationConfig(**data.get("simulation", {}))
        self.analysis = AnalysisConfig(**data.get("analysis", {}))
        self.drafts = DraftsConfig(**data.get("drafts", {}))
        self.automation = AutomationConfig(**data.get("automation", {}))
        self.sandbox = SandboxConfig(**data.get("sandbox", {}))
        self.storage = StorageConfig(**data.get("storage", {}))

        self._apply_env_overrides()
        self._raw_config = data

    def _apply_env_overrides(self) -> None:
        storage_dir = os.getenv("HYPATIA_STORAGE_DIR")
        if storage_dir:
            self.storage.storage_dir = storage_dir
        model = os.getenv("HYPATIA_MODEL")
        if model:
            self.models.default = model
        timeout = os.getenv("HYPATIA_SANDBOX_TIMEOUT")
        if timeout:
            try:
                self.sandbox.timeout_seconds = float(timeout)
            except ValueError:
                console.warning(f"Ignoring HYPATIA_SANDBOX_TIMEOUT={timeout!r}: not a number")

    @property
    def retry_policy(self) -> RetryPolicy:
        return self.retry.to_policy()

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {
            "models": asdict(self.models),
            "retry": asdict(self.retry),
            "simulation": asdict(self.simulation),
            "analysis": asdict(self.analysis),
            "drafts": asdict(self.drafts),
            "automation": asdict(self.automation),
            "sandbox": asdict(self.sandbox),
            "storage": asdict(self.storage),
        }


_config: Optional[HypatiaConfig] = None


def get_config(config_path: Optional[Path] = None) -> HypatiaConfig:
    """Get or initialize the shared configuration."""
    global _config
    if _config is None:
        _config = HypatiaConfig(config_path)
    return _config


def reload_config(config_path: Optional[Path] = None) -> HypatiaConfig:
    """Reload configuration."""
    global _config
    _config = HypatiaConfig(config_path)
    return _config
