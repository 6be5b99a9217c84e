"""
Chat message schema and role normalization.

Roles are mapped onto the three the relay understands: "ai" and
"assistant" become assistant, "system" stays system, anything else is user.
"""

from collections.abc import Mapping
from typing import Any, Iterable, Literal

from pydantic import BaseModel

from preset_relay.errors import ValidationError

Role = Literal["user", "assistant", "system"]


class ChatMessage(BaseModel):
    """
    A single role-tagged message.

    Role is kept as given; normalize_messages() maps it onto
    user/assistant/system. Content is opaque and never modified.
    """
    role: Any = None
    content: Any = ""


def normalize_role(role: Any) -> Role:
    """Map a free-form role onto user/assistant/system ("ai" means assistant)."""
    r = str(role or "").strip().lower()
    if r in ("ai", "assistant"):
        return "assistant"
    if r == "system":
        return "system"
    return "user"


def normalize_messages(messages: Iterable[Any]) -> list[dict[str, Any]]:
    """
    Convert messages to [{"role", "content"}] with normalized roles.

    Order and content are preserved exactly.

    Raises:
        ValidationError: if messages is not a list of mappings/ChatMessages
    """
    if messages is None or isinstance(messages, (str, bytes, Mapping)):
        raise ValidationError("Messages must be a list of {role, content} records")

    normalized = []
    for i, message in enumerate(messages):
        if isinstance(message, ChatMessage):
            role, content = message.role, message.content
        elif isinstance(message, Mapping):
            role, content = message.get("role"), message.get("content")
        else:
            raise ValidationError(
                f"Message {i} must be a mapping, got {type(message).__name__}"
            )
        normalized.append({"role": normalize_role(role), "content": content})
    return normalized
