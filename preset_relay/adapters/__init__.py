"""
Execution paths for generation requests.

Host-delegated generation goes through a HostGenerator the host supplies;
direct-endpoint generation goes through the RelayClient.
"""

from .base import CancellationToken, HostGenerator
from .relay import RelayClient, build_relay_payload
from .schema import ChatMessage, normalize_messages, normalize_role

__all__ = [
    "CancellationToken",
    "ChatMessage",
    "HostGenerator",
    "RelayClient",
    "build_relay_payload",
    "normalize_messages",
    "normalize_role",
]
