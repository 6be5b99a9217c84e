"""
HostGenerator Protocol - the generation capability a host application lends us.

This is the WHAT (interface), not the HOW (implementation).
The dispatcher depends only on this interface, never on a concrete host.
See relay.py for the direct-endpoint path, which needs no host generator.
"""

import asyncio
from typing import Optional, Protocol


class CancellationToken:
    """
    Cooperative cancellation signal shared between a caller and a dispatch.

    Firing the token aborts the in-flight call. A token stays cancelled once
    fired; use a fresh token per request.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()


class HostGenerator(Protocol):
    """
    Contract for host-delegated generation.

    Implementations must provide a single non-streaming "generate from
    ordered messages" operation.
    """

    async def generate(
        self,
        messages: list[dict],
        stream: bool,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Generate text from ordered messages.

        Args:
            messages: Normalized messages [{"role": "...", "content": "..."}]
            stream: Always False when called by the dispatcher
            cancel_token: Caller's cancellation token, if any

        Returns:
            Generated text

        Raises:
            Exception on host error (propagated to the dispatch caller)
        """
        ...
