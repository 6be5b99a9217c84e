"""
Error taxonomy for preset-relay.

Every failure surfaced by the queue, the registry or the dispatcher is one of
these. Each carries a stable ``kind`` and enough structured detail
(``to_dict()``) for a presentation layer to show an actionable message
without parsing strings.
"""

from typing import Any, Optional


class PresetRelayError(Exception):
    """Base class for all preset-relay errors."""

    kind: str = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        """Extra structured fields for this error kind."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, **self.details()}


# ─────────────────────────────────────────────────────────────────────
# CALLER INPUT / CONFIGURATION
# ─────────────────────────────────────────────────────────────────────


class ValidationError(PresetRelayError):
    """Bad caller input (preset name, config record, model, messages)."""

    kind = "validation"


class PresetNotFoundError(PresetRelayError):
    """Named preset does not exist in the registry."""

    kind = "preset_not_found"

    def __init__(self, name: Optional[str]):
        super().__init__(f"Preset not found: {name!r}")
        self.name = name

    def details(self) -> dict[str, Any]:
        return {"name": self.name}


class ConfigurationError(PresetRelayError):
    """Contradictory or unsupported configuration."""

    kind = "configuration"

    def __init__(
        self,
        message: str,
        preset: Optional[str] = None,
        api_mode: Optional[str] = None,
    ):
        super().__init__(message)
        self.preset = preset
        self.api_mode = api_mode

    def details(self) -> dict[str, Any]:
        detail = {}
        if self.preset is not None:
            detail["preset"] = self.preset
        if self.api_mode is not None:
            detail["api_mode"] = self.api_mode
        return detail


class InvalidTaskError(PresetRelayError):
    """Malformed queue task (missing numeric priority, non-callable action)."""

    kind = "invalid_task"


# ─────────────────────────────────────────────────────────────────────
# EXECUTION
# ─────────────────────────────────────────────────────────────────────


class HostCapabilityUnavailableError(PresetRelayError):
    """Host-delegated generation requested but no host generator is wired in."""

    kind = "host_capability_unavailable"


class BackendRequestError(PresetRelayError):
    """Relay answered with a non-success status, or the transport failed.

    ``status`` is None for transport failures (timeout, refused connection).
    """

    kind = "backend_request"

    def __init__(self, status: Optional[int], body: str):
        if status is None:
            message = f"Backend request failed: {body}"
        else:
            message = f"Backend request failed with HTTP {status}: {body[:500]}"
        super().__init__(message)
        self.status = status
        self.body = body

    def details(self) -> dict[str, Any]:
        return {"status": self.status, "body": self.body}


class InvalidResponseError(PresetRelayError):
    """Response arrived but did not contain usable text."""

    kind = "invalid_response"

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = payload

    def details(self) -> dict[str, Any]:
        return {"payload": self.payload}


class GenerationCancelledError(PresetRelayError):
    """Caller's cancellation token fired while the generation was in flight.

    Distinct from asyncio.CancelledError, which still propagates when the
    awaiting task itself is cancelled.
    """

    kind = "cancelled"

    def __init__(self, message: str = "Generation cancelled"):
        super().__init__(message)
