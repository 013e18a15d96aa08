"""
Pytest configuration for the bento RAG bridge test suite.

Configures:
- pytest-asyncio runs in auto mode (see pyproject.toml)
- a throwaway ROOT_DIR so log files never land in the working tree
- shared fixtures for config, fake backends and a fully wired app
"""
import logging
import os
import tempfile

os.environ.setdefault("ROOT_DIR", tempfile.mkdtemp(prefix="bento-tests-"))

import pytest
from fastapi.testclient import TestClient

from shared.helper.HelperConfig import HelperConfig
from tests.fake_backends import FakeBackend

BACKEND_ENV = {
    "RAG_ENGINE": "qdrant",
    "RAG_QDRANT_BASE_URL": "http://qdrant.test",
    "RAG_QDRANT_COLLECTION": "bento",
    "EMBED_ENGINE": "ollama",
    "EMBED_OLLAMA_BASE_URL": "http://ollama.test",
    "EMBED_MODEL": "fake-embed",
    "EMBED_VECTOR_SIZE": "27",
    "LLM_ENGINE": "ollama",
    "LLM_OLLAMA_BASE_URL": "http://ollama.test",
    "LLM_CHAT_MODEL": "fake-chat",
}


@pytest.fixture
def helper_config():
    """HelperConfig backed by a plain test logger."""
    return HelperConfig(logger=logging.getLogger("bento_tests"))


@pytest.fixture
def backend_env(monkeypatch, tmp_path):
    """Point every backend client at the fake hosts and all data at tmp_path."""
    for key, value in BACKEND_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SESSION_SWEEP_PROBABILITY", "0")
    return tmp_path


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def make_client(backend_env, fake_backend, monkeypatch):
    """Factory for a TestClient running the full app against the fake backends.

    Usage: `with make_client(isolation_mode="session") as client: ...`
    """
    from server.api_server import create_app

    def _make(isolation_mode: str = "none", **env: str) -> TestClient:
        monkeypatch.setenv("ISOLATION_MODE", isolation_mode)
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        return TestClient(create_app(transport=fake_backend.transport))

    return _make
