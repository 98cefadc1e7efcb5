"""Experiment persistence: data model, backends and the mutation store."""

from .experiment import Experiment, StepRecord, ProvenanceEntry, AutomationMode
from .state_store import (
    ExperimentStore,
    ExperimentNotFoundError,
    PersistenceBackend,
    InMemoryBackend,
    JsonFileBackend,
    RunToken,
)

__all__ = [
    "Experiment",
    "StepRecord",
    "ProvenanceEntry",
    "AutomationMode",
    "ExperimentStore",
    "ExperimentNotFoundError",
    "PersistenceBackend",
    "InMemoryBackend",
    "JsonFileBackend",
    "RunToken",
]
