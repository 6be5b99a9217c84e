"""
GenerationDispatcher - turns "generate from these messages with this preset"
into exactly one backend call.

Flow (strictly sequential, one suspension point):
1. Resolve the preset (override or registry lookup)
2. Normalize message roles
3. Branch on api_mode: host-delegated or direct-endpoint
4. Run the single call, racing the cancellation token
5. Return trimmed text

No retries, no fallback between paths, no caching. Every failure is one
typed error from preset_relay.errors.
"""

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Iterable, Optional

from preset_relay.adapters.base import CancellationToken, HostGenerator
from preset_relay.adapters.relay import RelayClient, build_relay_payload
from preset_relay.adapters.schema import normalize_messages
from preset_relay.config import get_ambient_headers, get_host_url
from preset_relay.errors import (
    BackendRequestError,
    ConfigurationError,
    GenerationCancelledError,
    HostCapabilityUnavailableError,
    InvalidResponseError,
    PresetNotFoundError,
    PresetRelayError,
    ValidationError,
)
from preset_relay.presets import ApiMode, Preset, PresetRegistry
from preset_relay.task_queue import Task

logger = logging.getLogger(__name__)


async def run_cancellable(
    call: Awaitable[Any],
    cancel_token: Optional[CancellationToken],
) -> Any:
    """
    Await call, aborting it if cancel_token fires first.

    Raises:
        GenerationCancelledError: if the token fired before the call finished
    """
    if cancel_token is None:
        return await call

    if cancel_token.cancelled:
        # Never started; close it so no "never awaited" warning leaks
        if asyncio.iscoroutine(call):
            call.close()
        raise GenerationCancelledError("Generation cancelled before it started")

    call_task = asyncio.ensure_future(call)
    waiter = asyncio.ensure_future(cancel_token.wait())
    try:
        done, _ = await asyncio.wait(
            {call_task, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        call_task.cancel()
        raise
    finally:
        waiter.cancel()

    if call_task in done:
        return call_task.result()

    call_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await call_task
    raise GenerationCancelledError("Generation cancelled while in flight")


class GenerationDispatcher:
    """
    Executes one generation request end-to-end.

    The registry is only read here; concurrent dispatches against the same
    preset are safe because the registry swaps whole snapshots.

    Usage:
        dispatcher = GenerationDispatcher(registry, host_generator=host)
        text = await dispatcher.generate(messages, "Summary")
    """

    def __init__(
        self,
        registry: PresetRegistry,
        host_generator: Optional[HostGenerator] = None,
        relay_client: Optional[RelayClient] = None,
    ):
        """
        Args:
            registry: Preset source
            host_generator: Host capability for host-delegated presets
            relay_client: Client for direct-endpoint presets (default: built
                from PRESET_RELAY_HOST_URL and ambient session headers)
        """
        self.registry = registry
        self.host_generator = host_generator
        self.relay_client = relay_client or RelayClient(
            get_host_url(), header_source=get_ambient_headers
        )

    def resolve_preset(
        self,
        preset_name: Optional[str] = None,
        preset: Optional[Preset] = None,
    ) -> Preset:
        """Explicit preset override wins; otherwise look the name up."""
        if preset is not None:
            return preset
        found = self.registry.get_preset(preset_name)
        if found is None:
            raise PresetNotFoundError(preset_name)
        return found

    async def generate(
        self,
        messages: Iterable[Any],
        preset_name: Optional[str] = None,
        *,
        preset: Optional[Preset] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Generate text for messages using a preset.

        Args:
            messages: [{"role", "content"}] records in conversation order
            preset_name: Registry name of the preset
            preset: Use this preset instead of a registry lookup
            cancel_token: Aborts the in-flight call when fired

        Returns:
            Trimmed generated text

        Raises:
            PresetNotFoundError, ValidationError, ConfigurationError,
            HostCapabilityUnavailableError, BackendRequestError,
            InvalidResponseError, GenerationCancelledError
        """
        resolved = self.resolve_preset(preset_name, preset)
        ordered = normalize_messages(messages)

        if resolved.api_mode == ApiMode.HOST_DELEGATED:
            return await self._generate_host(resolved, ordered, cancel_token)
        if resolved.api_mode == ApiMode.DIRECT_ENDPOINT:
            return await self._generate_direct(resolved, ordered, cancel_token)

        raise ConfigurationError(
            f"Preset {resolved.name!r} has unknown api mode {resolved.api_mode!r}",
            preset=resolved.name,
            api_mode=resolved.api_mode,
        )

    async def _generate_host(
        self,
        preset: Preset,
        messages: list[dict],
        cancel_token: Optional[CancellationToken],
    ) -> str:
        host = self.host_generator
        if host is None or not callable(getattr(host, "generate", None)):
            raise HostCapabilityUnavailableError(
                "Host generation capability is not available"
            )

        logger.debug(f"Host-delegated generation for {preset.name!r} ({len(messages)} messages)")
        try:
            result = await run_cancellable(
                host.generate(messages, False, cancel_token), cancel_token
            )
        except PresetRelayError:
            raise
        except Exception as e:
            raise BackendRequestError(None, f"{type(e).__name__}: {e}") from e

        if not isinstance(result, str):
            raise InvalidResponseError(
                f"Host did not return text (got {type(result).__name__})",
                payload=result,
            )
        return result.strip()

    async def _generate_direct(
        self,
        preset: Preset,
        messages: list[dict],
        cancel_token: Optional[CancellationToken],
    ) -> str:
        api_config = preset.api_config
        if not api_config.model:
            raise ValidationError(f"Preset {preset.name!r} has no model configured")

        payload = build_relay_payload(messages, api_config)
        logger.debug(
            f"Direct-endpoint generation for {preset.name!r} via {api_config.source}"
        )
        return await run_cancellable(self.relay_client.complete(payload), cancel_token)

    def task(
        self,
        messages: Iterable[Any],
        preset_name: str,
        priority: float = 0,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Task:
        """
        Package a generation as a queue Task.

        Executing the task returns the generate() coroutine; the scheduler
        running the queue awaits it.
        """
        async def action() -> str:
            return await self.generate(
                messages, preset_name, cancel_token=cancel_token
            )

        return Task(action=action, params=(), priority=priority)
