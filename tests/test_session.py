"""Tests for session wiring."""

import pytest

from Hypatia.infrastructure.errors import CredentialError
from Hypatia.llm_backends.gemini_backend import GeminiBackend
from Hypatia.orchestrators.session import HypatiaSession
from Hypatia.storage.state_store import JsonFileBackend


async def test_open_builds_gemini_and_file_store(tmp_path, config):
    config.models.default = "gemini-test"

    async with HypatiaSession.open(api_key="k", storage_dir=tmp_path / "exp", config=config) as session:
        assert isinstance(session.backend, GeminiBackend)
        assert session.backend.model == "gemini-test"
        assert isinstance(session.store.backend, JsonFileBackend)
        assert session.runner is session.sequencer.runner
        assert session.analysis is session.sequencer.agents[7]

        experiment = session.store.create_experiment("Soil")
        assert (tmp_path / "exp" / f"{experiment.id}.json").exists()


def test_open_without_key(tmp_path, config, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with pytest.raises(CredentialError):
        HypatiaSession.open(storage_dir=tmp_path, config=config)
