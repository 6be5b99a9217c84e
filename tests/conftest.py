"""Shared test fixtures for preset-relay tests."""

import pytest
from unittest.mock import AsyncMock, MagicMock


# ─────────────────────────────────────────────────────────────────────
# MOCK DATA
# ─────────────────────────────────────────────────────────────────────

MOCK_HOST_URL = "http://127.0.0.1:8000"
MOCK_RELAY_URL = f"{MOCK_HOST_URL}/api/backends/chat-completions/generate"

MOCK_DIRECT_CONFIG = {
    "apiMode": "direct-endpoint",
    "apiConfig": {
        "source": "claude",
        "url": "https://proxy.example.com/v1/",
        "apiKey": "sk-test-123",
        "proxyPassword": "hunter2",
        "model": "claude-3-5-sonnet",
        "max_tokens": "2048",
        "temperature": "0.7",
    },
}

MOCK_HOST_CONFIG = {"apiMode": "host-delegated"}

MOCK_COMPLETION_RESPONSE = {
    "id": "chatcmpl-123",
    "object": "chat.completion",
    "choices": [
        {
            "index": 0,
            "message": {
                "role": "assistant",
                "content": "  The party reached Rivendell.  \n"
            },
            "finish_reason": "stop"
        }
    ],
}


# ─────────────────────────────────────────────────────────────────────
# FIXTURES - Data
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_completion_response():
    """Return mock relay success response."""
    return {**MOCK_COMPLETION_RESPONSE}


# ─────────────────────────────────────────────────────────────────────
# FIXTURES - Registry / Dispatcher
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def registry():
    """Registry holding one direct-endpoint and one host-delegated preset."""
    from preset_relay.presets import PresetRegistry

    reg = PresetRegistry()
    reg.save_preset("Direct", MOCK_DIRECT_CONFIG)
    reg.save_preset("Host", MOCK_HOST_CONFIG)
    return reg


@pytest.fixture
def mock_host():
    """Host generator that answers with padded text."""
    host = MagicMock()
    host.generate = AsyncMock(return_value="  host summary  ")
    return host


@pytest.fixture
def relay_client():
    """RelayClient pointed at the mock host, with a CSRF header."""
    from preset_relay.adapters.relay import RelayClient

    return RelayClient(
        MOCK_HOST_URL,
        header_source=lambda: {"X-CSRF-Token": "csrf-abc"},
        timeout_seconds=5.0,
    )


@pytest.fixture
def dispatcher(registry, mock_host, relay_client):
    """Dispatcher wired to the fixtures above."""
    from preset_relay.dispatcher import GenerationDispatcher

    return GenerationDispatcher(
        registry, host_generator=mock_host, relay_client=relay_client
    )


# ─────────────────────────────────────────────────────────────────────
# FIXTURES - Environment
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def clean_env(monkeypatch):
    """Remove all PRESET_RELAY_* variables."""
    for key in (
        "PRESET_RELAY_HOST_URL",
        "PRESET_RELAY_TIMEOUT",
        "PRESET_RELAY_PRESETS_FILE",
        "PRESET_RELAY_CSRF_TOKEN",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch
