"""
Configuration for Hypatia.

- workflow: The ten research steps and their fine-tune parameters
- hypatia_config: Runtime tuning (models, retry, loop bounds, sandbox, storage)
"""

from .workflow import (
    TOTAL_STEPS,
    COMPLETE,
    WorkflowStep,
    TuningParameter,
    WorkflowDefinition,
    load_workflow,
    get_workflow,
    step_title,
    resolve_fine_tune,
    validate_fine_tune,
    generation_options,
)
from .hypatia_config import (
    HypatiaConfig,
    ModelsConfig,
    RetryConfig,
    SimulationConfig,
    AnalysisConfig,
    DraftsConfig,
    AutomationConfig,
    SandboxConfig,
    StorageConfig,
    get_config,
    reload_config,
)

__all__ = [
    "TOTAL_STEPS",
    "COMPLETE",
    "WorkflowStep",
    "TuningParameter",
    "WorkflowDefinition",
    "load_workflow",
    "get_workflow",
    "step_title",
    "resolve_fine_tune",
    "validate_fine_tune",
    "generation_options",
    "HypatiaConfig",
    "ModelsConfig",
    "RetryConfig",
    "SimulationConfig",
    "AnalysisConfig",
    "DraftsConfig",
    "AutomationConfig",
    "SandboxConfig",
    "StorageConfig",
    "get_config",
    "reload_config",
]
