"""
RelayClient - direct-endpoint generation through the host's chat-completions relay.

The relay speaks to a dozen+ provider protocols; we send it one normalized
JSON body and it picks the provider from "chat_completion_source". The relay
reads different fields depending on the source, so several values are sent
under more than one key on purpose:

- custom_url / reverse_proxy   same endpoint URL
- api_key / bearer_token       same API key
- model / <family>_model       same model id, for sources in FAMILY_MODEL_FIELDS

Do not "clean up" the duplicates.
"""

import json
import logging
import time
from typing import Any, Callable, Optional

import httpx

from preset_relay.config import get_request_timeout
from preset_relay.errors import BackendRequestError, InvalidResponseError
from preset_relay.presets import ApiConfig

logger = logging.getLogger(__name__)

RELAY_PATH = "/api/backends/chat-completions/generate"

FAMILY_MODEL_FIELDS: dict[str, str] = {
    "makersuite": "google_model",
    "google": "google_model",
    "claude": "claude_model",
    "mistralai": "mistralai_model",
}

HeaderSource = Callable[[], dict[str, str]]


def build_relay_payload(messages: list[dict], api_config: ApiConfig) -> dict[str, Any]:
    """Build the relay request body for already-normalized messages."""
    url = api_config.base_url
    api_key = api_config.api_key

    payload = {
        "messages": messages,
        "model": api_config.model,
        "max_tokens": api_config.max_tokens,
        "temperature": api_config.temperature,
        "top_p": api_config.top_p,
        "frequency_penalty": api_config.frequency_penalty,
        "presence_penalty": api_config.presence_penalty,
        "stream": False,
        "chat_completion_source": api_config.source,
        "custom_url": url,
        "reverse_proxy": url,
        "api_key": api_key,
        "bearer_token": api_key,
        "custom_include_headers": f"Authorization: Bearer {api_key}" if api_key else "",
        "proxy_password": api_config.proxy_password or "",
    }

    family_field = FAMILY_MODEL_FIELDS.get(api_config.source)
    if family_field:
        payload[family_field] = api_config.model

    return payload


def redact_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Copy of payload safe for logs: credentials masked, messages counted."""
    redacted = dict(payload)
    for key in ("api_key", "bearer_token", "proxy_password", "custom_include_headers"):
        if redacted.get(key):
            redacted[key] = "***"
    redacted["messages"] = f"<{len(payload.get('messages', []))} messages>"
    return redacted


def extract_completion_text(payload: Any) -> str:
    """
    Pull choices[0].message.content out of a relay response.

    Raises:
        InvalidResponseError: if the path is missing or not a string
    """
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        raise InvalidResponseError(
            "Relay response has no choices[0].message.content", payload=payload
        ) from None
    if not isinstance(content, str):
        raise InvalidResponseError(
            f"Relay returned non-text content ({type(content).__name__})",
            payload=payload,
        )
    return content


class RelayClient:
    """
    Posts relay payloads to the host and returns the completion text.

    One attempt per call: no retries, no caching.
    """

    def __init__(
        self,
        host_url: str,
        header_source: Optional[HeaderSource] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """
        Args:
            host_url: Base URL of the host serving RELAY_PATH
            header_source: Returns the host session's ambient headers
                (e.g. CSRF token); called once per request
            timeout_seconds: Request timeout (default: PRESET_RELAY_TIMEOUT)
        """
        self.host_url = host_url.rstrip("/")
        self._header_source = header_source
        self.timeout_seconds = timeout_seconds or get_request_timeout()

    @property
    def endpoint(self) -> str:
        return f"{self.host_url}{RELAY_PATH}"

    def _headers(self) -> dict[str, str]:
        headers = dict(self._header_source()) if self._header_source else {}
        headers["Content-Type"] = "application/json"
        return headers

    async def complete(self, payload: dict[str, Any]) -> str:
        """
        Send one relay request and return the trimmed completion text.

        Raises:
            BackendRequestError: non-success status, or transport failure
            InvalidResponseError: success status without usable text
        """
        logger.debug(f"POST {self.endpoint}: {json.dumps(redact_payload(payload))}")
        start_time = time.time()

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    self.endpoint,
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            raise BackendRequestError(None, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise BackendRequestError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError:
            raise InvalidResponseError(
                "Relay returned a non-JSON body", payload=response.text
            ) from None

        text = extract_completion_text(data).strip()
        latency_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Relay completion for {payload.get('chat_completion_source')}/"
            f"{payload.get('model')} in {latency_ms:.0f}ms"
        )
        return text
