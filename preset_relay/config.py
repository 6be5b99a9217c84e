"""
Configuration constants and environment loading for preset-relay.
"""

import os


# ─────────────────────────────────────────────────────────────────────
# PRESET DEFAULTS - Applied when a preset is saved, never at read time
# ─────────────────────────────────────────────────────────────────────

DEFAULT_SOURCE: str = "openai"
DEFAULT_MAX_TOKENS: int = 4096
DEFAULT_TEMPERATURE: float = 0.9
DEFAULT_TOP_P: float = 0.9
DEFAULT_FREQUENCY_PENALTY: float = 0.0
DEFAULT_PRESENCE_PENALTY: float = 0.0


# ─────────────────────────────────────────────────────────────────────
# INTERNAL CONSTANTS - Not exposed to users
# ─────────────────────────────────────────────────────────────────────

DEFAULT_HOST_URL: str = "http://127.0.0.1:8000"
DEFAULT_TIMEOUT_SECONDS: float = 300.0  # 5 minutes
DEFAULT_PRESETS_FILE: str = "presets.json"
CSRF_HEADER: str = "X-CSRF-Token"


# ─────────────────────────────────────────────────────────────────────
# ENVIRONMENT LOADING
# ─────────────────────────────────────────────────────────────────────

def get_host_url() -> str:
    """
    Base URL of the host that serves the chat-completions relay.

    Set PRESET_RELAY_HOST_URL in .env (default: http://127.0.0.1:8000).
    Trailing slashes are stripped.
    """
    value = os.environ.get("PRESET_RELAY_HOST_URL", "").strip()
    return (value or DEFAULT_HOST_URL).rstrip("/")


def get_request_timeout() -> float:
    """
    Relay request timeout in seconds.

    Set PRESET_RELAY_TIMEOUT in .env (default: 300).
    """
    try:
        timeout = float(os.environ.get("PRESET_RELAY_TIMEOUT", DEFAULT_TIMEOUT_SECONDS))
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS
    if timeout <= 0:
        return DEFAULT_TIMEOUT_SECONDS
    return timeout


def get_presets_path() -> str:
    """Path of the JSON file the CLI keeps presets in."""
    value = os.environ.get("PRESET_RELAY_PRESETS_FILE", "").strip()
    return value or DEFAULT_PRESETS_FILE


def get_ambient_headers() -> dict[str, str]:
    """
    Session headers the host expects on every relay request.

    The host rejects relay calls without its CSRF token, so
    PRESET_RELAY_CSRF_TOKEN is forwarded when set.
    """
    headers = {}
    token = os.environ.get("PRESET_RELAY_CSRF_TOKEN", "").strip()
    if token:
        headers[CSRF_HEADER] = token
    return headers
