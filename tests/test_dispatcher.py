"""Tests for GenerationDispatcher - preset resolution, both execution paths, cancellation."""

import asyncio
import json
import pytest
import respx
import httpx

from preset_relay.adapters.base import CancellationToken
from preset_relay.dispatcher import GenerationDispatcher, run_cancellable
from preset_relay.errors import (
    BackendRequestError,
    ConfigurationError,
    GenerationCancelledError,
    HostCapabilityUnavailableError,
    InvalidResponseError,
    PresetNotFoundError,
    ValidationError,
)
from preset_relay.presets import build_preset
from preset_relay.task_queue import Task, TaskQueue

from tests.conftest import MOCK_RELAY_URL


MESSAGES = [
    {"role": "AI", "content": "hi"},
    {"role": "System", "content": "rules"},
    {"role": "bob", "content": "yo"},
]
NORMALIZED = [
    {"role": "assistant", "content": "hi"},
    {"role": "system", "content": "rules"},
    {"role": "user", "content": "yo"},
]


# ─────────────────────────────────────────────────────────────────────
# Preset resolution
# ─────────────────────────────────────────────────────────────────────


class TestResolution:
    @pytest.mark.asyncio
    async def test_unknown_preset(self, dispatcher):
        with pytest.raises(PresetNotFoundError) as exc_info:
            await dispatcher.generate(MESSAGES, "Nope")
        assert exc_info.value.to_dict() == {
            "kind": "preset_not_found",
            "message": "Preset not found: 'Nope'",
            "name": "Nope",
        }

    @pytest.mark.asyncio
    async def test_missing_name(self, dispatcher):
        with pytest.raises(PresetNotFoundError):
            await dispatcher.generate(MESSAGES)

    @pytest.mark.asyncio
    async def test_preset_override_skips_registry(self, dispatcher, mock_host):
        override = build_preset("Ad hoc", {"apiMode": "host-delegated"})
        text = await dispatcher.generate(MESSAGES, "Nope", preset=override)
        assert text == "host summary"

    @pytest.mark.asyncio
    async def test_unknown_api_mode(self, dispatcher):
        dispatcher.registry.save_preset("Odd", {"apiMode": "carrier-pigeon"})
        with pytest.raises(ConfigurationError) as exc_info:
            await dispatcher.generate(MESSAGES, "Odd")
        assert exc_info.value.preset == "Odd"
        assert exc_info.value.api_mode == "carrier-pigeon"
        assert "Odd" in str(exc_info.value)
        assert "carrier-pigeon" in str(exc_info.value)


# ─────────────────────────────────────────────────────────────────────
# Host-delegated path
# ─────────────────────────────────────────────────────────────────────


class TestHostDelegated:
    @pytest.mark.asyncio
    async def test_calls_host_with_normalized_messages(self, dispatcher, mock_host):
        token = CancellationToken()
        text = await dispatcher.generate(MESSAGES, "Host", cancel_token=token)

        assert text == "host summary"
        mock_host.generate.assert_awaited_once_with(NORMALIZED, False, token)

    @pytest.mark.asyncio
    async def test_missing_host(self, registry, relay_client):
        dispatcher = GenerationDispatcher(registry, relay_client=relay_client)
        with pytest.raises(HostCapabilityUnavailableError):
            await dispatcher.generate(MESSAGES, "Host")

    @pytest.mark.asyncio
    async def test_host_without_generate(self, registry, relay_client):
        dispatcher = GenerationDispatcher(
            registry, host_generator=object(), relay_client=relay_client
        )
        with pytest.raises(HostCapabilityUnavailableError):
            await dispatcher.generate(MESSAGES, "Host")

    @pytest.mark.asyncio
    async def test_non_string_result(self, dispatcher, mock_host):
        mock_host.generate.return_value = {"text": "nope"}
        with pytest.raises(InvalidResponseError) as exc_info:
            await dispatcher.generate(MESSAGES, "Host")
        assert exc_info.value.payload == {"text": "nope"}

    @pytest.mark.asyncio
    async def test_host_error_becomes_backend_error(self, dispatcher, mock_host):
        mock_host.generate.side_effect = RuntimeError("host exploded")
        with pytest.raises(BackendRequestError) as exc_info:
            await dispatcher.generate(MESSAGES, "Host")
        assert exc_info.value.status is None
        assert "RuntimeError: host exploded" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_host_typed_error_passes_through(self, dispatcher, mock_host):
        mock_host.generate.side_effect = InvalidResponseError("bad host reply")
        with pytest.raises(InvalidResponseError, match="bad host reply"):
            await dispatcher.generate(MESSAGES, "Host")

    @pytest.mark.asyncio
    @respx.mock
    async def test_host_path_never_touches_network(self, dispatcher):
        route = respx.post(MOCK_RELAY_URL)
        await dispatcher.generate(MESSAGES, "Host")
        assert not route.called


# ─────────────────────────────────────────────────────────────────────
# Direct-endpoint path
# ─────────────────────────────────────────────────────────────────────


class TestDirectEndpoint:
    @pytest.mark.asyncio
    @respx.mock
    async def test_claude_payload_and_text(self, dispatcher, mock_completion_response):
        captured_request = None

        def capture_request(request):
            nonlocal captured_request
            captured_request = request
            return httpx.Response(200, json=mock_completion_response)

        respx.post(MOCK_RELAY_URL).mock(side_effect=capture_request)

        text = await dispatcher.generate(MESSAGES, "Direct")

        assert text == "The party reached Rivendell."
        body = json.loads(captured_request.content)
        assert body["messages"] == NORMALIZED
        assert body["model"] == "claude-3-5-sonnet"
        assert body["claude_model"] == body["model"]
        assert body["chat_completion_source"] == "claude"
        assert body["custom_url"] == body["reverse_proxy"] == "https://proxy.example.com/v1"
        assert body["api_key"] == body["bearer_token"] == "sk-test-123"
        assert body["custom_include_headers"] == "Authorization: Bearer sk-test-123"
        assert body["proxy_password"] == "hunter2"
        assert body["max_tokens"] == 2048
        assert body["temperature"] == 0.7
        assert body["stream"] is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_model_fails_before_network(self, dispatcher):
        route = respx.post(MOCK_RELAY_URL)
        dispatcher.registry.save_preset("No model", {"apiMode": "direct-endpoint"})

        with pytest.raises(ValidationError, match="no model"):
            await dispatcher.generate(MESSAGES, "No model")
        assert not route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_backend_error(self, dispatcher):
        respx.post(MOCK_RELAY_URL).mock(
            return_value=httpx.Response(429, text="rate limited")
        )
        with pytest.raises(BackendRequestError) as exc_info:
            await dispatcher.generate(MESSAGES, "Direct")
        assert exc_info.value.status == 429
        assert exc_info.value.body == "rate limited"

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_fallback_to_host_on_failure(self, dispatcher, mock_host):
        respx.post(MOCK_RELAY_URL).mock(return_value=httpx.Response(500, text="down"))
        with pytest.raises(BackendRequestError):
            await dispatcher.generate(MESSAGES, "Direct")
        mock_host.generate.assert_not_awaited()

    @pytest.mark.asyncio
    @respx.mock
    async def test_single_attempt(self, dispatcher):
        route = respx.post(MOCK_RELAY_URL).mock(
            return_value=httpx.Response(503, text="busy")
        )
        with pytest.raises(BackendRequestError):
            await dispatcher.generate(MESSAGES, "Direct")
        assert route.call_count == 1


# ─────────────────────────────────────────────────────────────────────
# Cancellation
# ─────────────────────────────────────────────────────────────────────


class TestCancellation:
    @pytest.mark.asyncio
    @respx.mock
    async def test_cancel_in_flight_direct(self, dispatcher, mock_completion_response):
        started = asyncio.Event()

        async def slow_response(request):
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200, json=mock_completion_response)

        respx.post(MOCK_RELAY_URL).mock(side_effect=slow_response)

        token = CancellationToken()
        call = asyncio.create_task(
            dispatcher.generate(MESSAGES, "Direct", cancel_token=token)
        )
        await asyncio.wait_for(started.wait(), timeout=2)
        token.cancel()

        with pytest.raises(GenerationCancelledError):
            await asyncio.wait_for(call, timeout=2)

    @pytest.mark.asyncio
    async def test_cancel_in_flight_host(self, dispatcher, mock_host):
        started = asyncio.Event()
        host_cancelled = False

        async def slow_generate(messages, stream, cancel_token):
            nonlocal host_cancelled
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                host_cancelled = True
                raise
            return "late"

        mock_host.generate = slow_generate
        token = CancellationToken()
        call = asyncio.create_task(
            dispatcher.generate(MESSAGES, "Host", cancel_token=token)
        )
        await asyncio.wait_for(started.wait(), timeout=2)
        token.cancel()

        with pytest.raises(GenerationCancelledError):
            await asyncio.wait_for(call, timeout=2)
        assert host_cancelled

    @pytest.mark.asyncio
    @respx.mock
    async def test_already_cancelled_token_skips_call(self, dispatcher):
        route = respx.post(MOCK_RELAY_URL)
        token = CancellationToken()
        token.cancel()

        with pytest.raises(GenerationCancelledError):
            await dispatcher.generate(MESSAGES, "Direct", cancel_token=token)
        assert not route.called

    @pytest.mark.asyncio
    async def test_uncancelled_token_returns_result(self):
        async def work():
            return "done"

        assert await run_cancellable(work(), CancellationToken()) == "done"

    @pytest.mark.asyncio
    async def test_call_error_propagates_through_token_race(self):
        async def work():
            raise BackendRequestError(500, "boom")

        with pytest.raises(BackendRequestError):
            await run_cancellable(work(), CancellationToken())

    @pytest.mark.asyncio
    async def test_outer_task_cancel_is_asyncio_cancel(self):
        inner_cancelled = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                inner_cancelled.set()
                raise

        outer = asyncio.create_task(run_cancellable(work(), CancellationToken()))
        await asyncio.sleep(0.01)
        outer.cancel()

        with pytest.raises(asyncio.CancelledError):
            await outer
        await asyncio.wait_for(inner_cancelled.wait(), timeout=1)


# ─────────────────────────────────────────────────────────────────────
# Queue integration
# ─────────────────────────────────────────────────────────────────────


class TestQueueIntegration:
    @pytest.mark.asyncio
    async def test_task_runs_generation_when_popped(self, dispatcher, mock_host):
        queue = TaskQueue(ascending=False, descending=True)
        queue.push(dispatcher.task(MESSAGES, "Host", priority=5))

        result = await queue.pop_exec()

        assert result == "host summary"
        mock_host.generate.assert_awaited_once()

    def test_task_shape(self, dispatcher):
        task = dispatcher.task(MESSAGES, "Host", priority=3)
        assert isinstance(task, Task)
        assert task.priority == 3
        assert callable(task.action)

    @pytest.mark.asyncio
    async def test_concurrent_dispatches_same_preset(self, dispatcher, mock_host):
        results = await asyncio.gather(*[
            dispatcher.generate(MESSAGES, "Host") for _ in range(5)
        ])
        assert results == ["host summary"] * 5
        assert mock_host.generate.await_count == 5
