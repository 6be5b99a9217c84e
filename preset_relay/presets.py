"""
Preset model and in-memory PresetRegistry.

A preset is a named generation configuration: which execution path to use
(host-delegated or direct-endpoint), and for direct-endpoint the protocol
family, endpoint, credentials and sampling parameters.

Defaults are applied when a preset is built, so every stored ApiConfig is
fully populated and numeric fields are real numbers.

Usage:
    registry = PresetRegistry(on_update=store.write)
    registry.save_preset("Summary", {"apiMode": "direct-endpoint",
                                     "apiConfig": {"source": "claude", "model": "..."}})
    preset = registry.get_preset("Summary")
"""

import logging
import math
from collections.abc import Mapping
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from preset_relay.config import (
    DEFAULT_SOURCE,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_P,
    DEFAULT_FREQUENCY_PENALTY,
    DEFAULT_PRESENCE_PENALTY,
)
from preset_relay.errors import ValidationError

logger = logging.getLogger(__name__)


# Closed set of protocol families the relay understands; "google" is the
# legacy spelling of "makersuite".
PROTOCOL_SOURCES: frozenset[str] = frozenset({
    "openai", "claude", "openrouter", "ai21", "makersuite", "vertexai",
    "mistralai", "custom", "cohere", "perplexity", "groq", "01ai",
    "nanogpt", "deepseek", "aimlapi", "xai", "pollinations", "google",
})


class ApiMode(str, Enum):
    """Execution path for a preset."""
    HOST_DELEGATED = "host-delegated"
    DIRECT_ENDPOINT = "direct-endpoint"


# Older preset files used the host application's own names
LEGACY_API_MODES: dict[str, str] = {
    "tavern": ApiMode.HOST_DELEGATED.value,
    "custom": ApiMode.DIRECT_ENDPOINT.value,
}


def _to_number(value: Any, field: str, integer: bool) -> float:
    """Coerce a number or numeric string; blank values are handled by callers."""
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number, got {value!r}")
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ValueError(f"{field} must be finite, got {value!r}")
    return int(number) if integer else number


class ApiConfig(BaseModel):
    """Direct-endpoint settings. Every field is always present."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    source: str = DEFAULT_SOURCE
    url: str = ""
    api_key: str = Field(default="", alias="apiKey")
    proxy_password: str = Field(default="", alias="proxyPassword")
    model: str = ""
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    top_p: float = DEFAULT_TOP_P
    frequency_penalty: float = DEFAULT_FREQUENCY_PENALTY
    presence_penalty: float = DEFAULT_PRESENCE_PENALTY

    @model_validator(mode="before")
    @classmethod
    def _legacy_password(cls, data: Any) -> Any:
        # Early exports stored the proxy password as "password"
        if isinstance(data, Mapping) and "password" in data:
            if not data.get("proxyPassword") and not data.get("proxy_password"):
                data = {**data, "proxyPassword": data["password"]}
        return data

    @field_validator("source", "url", "api_key", "proxy_password", "model", mode="before")
    @classmethod
    def _text_or_default(cls, value: Any, info) -> str:
        text = "" if value is None else str(value).strip()
        return text or cls.model_fields[info.field_name].default

    @field_validator("max_tokens", mode="before")
    @classmethod
    def _coerce_int(cls, value: Any, info) -> Any:
        if value is None or value == "":
            return cls.model_fields[info.field_name].default
        return _to_number(value, info.field_name, integer=True)

    @field_validator(
        "temperature", "top_p", "frequency_penalty", "presence_penalty", mode="before"
    )
    @classmethod
    def _coerce_float(cls, value: Any, info) -> Any:
        if value is None or value == "":
            return cls.model_fields[info.field_name].default
        return _to_number(value, info.field_name, integer=False)

    @property
    def base_url(self) -> str:
        """Endpoint URL with any trailing slash removed."""
        return self.url.rstrip("/")


class Preset(BaseModel):
    """
    Named, fully-defaulted generation configuration.

    Immutable: editing a preset means saving a replacement under the
    same name.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    api_mode: str = Field(default=ApiMode.DIRECT_ENDPOINT.value, alias="apiMode")
    api_config: ApiConfig = Field(default_factory=ApiConfig, alias="apiConfig")

    @field_validator("name", mode="before")
    @classmethod
    def _trim_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("api_mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> str:
        if value is None or value == "":
            return ApiMode.DIRECT_ENDPOINT.value
        if isinstance(value, ApiMode):
            return value.value
        mode = str(value).strip()
        return LEGACY_API_MODES.get(mode.lower(), mode)

    @field_validator("api_config", mode="before")
    @classmethod
    def _config_or_default(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_dict(self) -> dict[str, Any]:
        """Persisted/exported shape (camelCase keys)."""
        return self.model_dump(by_alias=True, mode="json")


def build_preset(name: Any, config: Any) -> Preset:
    """
    Validate caller input and build a fully-defaulted Preset.

    Raises:
        ValidationError: on empty/non-string name, non-mapping config,
            or non-numeric sampling values
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Invalid preset name")
    if not isinstance(config, Mapping):
        raise ValidationError("Invalid config object")

    data = {k: v for k, v in config.items() if k != "name"}
    data["name"] = name.strip()
    try:
        return Preset.model_validate(data)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid preset {name.strip()!r}: {problems}") from e


# ─────────────────────────────────────────────────────────────────────
# REGISTRY
# ─────────────────────────────────────────────────────────────────────

PresetListener = Callable[[list[Preset]], None]


class PresetRegistry:
    """
    Owns the preset collection. Single writer, many readers.

    Each mutation builds a new list and swaps it in, so readers always see a
    complete snapshot. The on_update callback receives the whole collection
    after every mutation; persisting callers treat it as authoritative.
    """

    def __init__(
        self,
        initial_presets: Optional[Iterable[Any]] = None,
        on_update: Optional[PresetListener] = None,
    ):
        presets: list[Preset] = []
        for item in initial_presets or []:
            if isinstance(item, Preset):
                preset = item
            elif isinstance(item, Mapping):
                preset = build_preset(item.get("name"), item)
            else:
                raise ValidationError(
                    f"Initial preset must be a Preset or mapping, got {type(item).__name__}"
                )
            presets = _upsert(presets, preset)
        self._presets = presets
        self.on_update = on_update

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(list(self._presets))

    def save_preset(self, name: str, config: Mapping[str, Any]) -> bool:
        """
        Create or replace a preset by (trimmed) name.

        Replacement keeps the preset's position in the collection.

        Returns:
            True on success

        Raises:
            ValidationError: on bad name/config
        """
        preset = build_preset(name, config)
        if preset.api_config.source not in PROTOCOL_SOURCES:
            logger.warning(
                f"Preset {preset.name!r} uses unknown source {preset.api_config.source!r}"
            )

        self._presets = _upsert(self._presets, preset)
        logger.info(f"Saved preset {preset.name!r} ({preset.api_mode})")
        self._notify()
        return True

    def delete_preset(self, name: str) -> bool:
        """Remove the preset with exactly this name. Returns True if one was removed."""
        remaining = [p for p in self._presets if p.name != name]
        if len(remaining) == len(self._presets):
            logger.debug(f"Delete ignored, no preset named {name!r}")
            return False

        self._presets = remaining
        logger.info(f"Deleted preset {name!r}")
        self._notify()
        return True

    def get_preset(self, name: Optional[str]) -> Optional[Preset]:
        for preset in self._presets:
            if preset.name == name:
                return preset
        return None

    def get_all_presets(self) -> list[Preset]:
        return list(self._presets)

    def names(self) -> list[str]:
        return [p.name for p in self._presets]

    def __len__(self) -> int:
        return len(self._presets)

    def __contains__(self, name: object) -> bool:
        return self.get_preset(name) is not None


def _upsert(presets: list[Preset], preset: Preset) -> list[Preset]:
    """Return a new list with preset replacing its namesake, or appended."""
    updated = list(presets)
    for i, existing in enumerate(updated):
        if existing.name == preset.name:
            updated[i] = preset
            return updated
    updated.append(preset)
    return updated
