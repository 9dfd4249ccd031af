"""Pytest fixtures for ollama-chat-relay tests."""

import json
import os
from unittest.mock import patch

import httpx
import pytest

from ollama_chat_relay.config import Settings
from ollama_chat_relay.gateway.backend import OllamaBackend


@pytest.fixture
def mock_env_vars():
    """Mock environment variables for testing."""
    env_vars = {
        "OLLAMA_BASE_URL": "http://ollama.test:11434",
        "HOST": "127.0.0.1",
        "PORT": "3001",
        "LOG_LEVEL": "DEBUG",
    }
    with patch.dict(os.environ, env_vars, clear=False):
        yield env_vars


@pytest.fixture
def settings(mock_env_vars) -> Settings:
    """Create Settings instance with mocked environment."""
    return Settings()


def chunked(*chunks: bytes):
    """Async byte stream yielding the given chunks, as a backend would."""
    async def _stream():
        for chunk in chunks:
            yield chunk

    return _stream()


def ndjson(*objects) -> bytes:
    return b"".join(json.dumps(o).encode() + b"\n" for o in objects)


async def events_from(*objects):
    """Async iterator of already-decoded stream events."""
    for o in objects:
        yield o


def make_backend(handler, settings: Settings | None = None) -> OllamaBackend:
    """OllamaBackend whose HTTP traffic goes to ``handler``."""
    base_url = settings.ollama_base_url if settings else "http://ollama.test:11434"
    return OllamaBackend(base_url, timeout=5.0, transport=httpx.MockTransport(handler))


def sse_payloads(text: str) -> list[dict]:
    """Decode the ``data:`` events of an event-stream body."""
    return [
        json.loads(line[len("data:"):].strip())
        for line in text.splitlines()
        if line.startswith("data:")
    ]
