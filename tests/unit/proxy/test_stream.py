"""
Tests unitaires pour le relais streaming.

Pourquoi: le streaming est critique et complexe (ordre des frames, chunks
corrompus, déconnexion client, erreurs réseau). Ces tests vérifient la
robustesse.
"""
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from deepseek_proxy.core.constants import SSE_DONE_FRAME
from deepseek_proxy.proxy.stream import (
    STATE_CANCELLED,
    STATE_DONE,
    STREAMING_ERROR_TYPES,
    CancellationToken,
    DisconnectToken,
    StreamRelay,
    format_data_frame,
    relay_stream,
    rewrite_chunk,
)


def chunk_line(index, model="deepseek-reasoner"):
    return "data: " + json.dumps({
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "model": model,
        "choices": [{"index": 0, "delta": {"content": f"t{index}"}}]
    })


def make_response(lines):
    response = MagicMock()
    response.aiter_lines = MagicMock(return_value=async_iter(lines))
    response.aclose = AsyncMock()
    return response


async def collect(frames):
    return [frame async for frame in frames]


class TestRewriteChunk:

    def test_model_rewritten(self):
        rewritten = rewrite_chunk('{"model":"deepseek-chat","choices":[]}', "gpt-4")
        assert json.loads(rewritten) == {"model": "gpt-4", "choices": []}

    def test_numbers_not_reserialized(self):
        rewritten = rewrite_chunk('{"model":"deepseek-chat","x":1e400,"p":0.10000000000000000555}', "gpt-4")
        assert rewritten == '{"model":"gpt-4","x":1e400,"p":0.10000000000000000555}'

    def test_invalid_payload(self):
        assert rewrite_chunk("{oops", "gpt-4") is None
        assert rewrite_chunk('"chaîne"', "gpt-4") is None

    def test_format_data_frame(self):
        assert format_data_frame('{"a":1}') == b'data: {"a":1}\n\n'


class TestStreamRelay:
    """Tests du relais SSE."""

    @pytest.mark.asyncio
    async def test_frames_in_order_then_done(self):
        lines = []
        for i in range(3):
            lines += [chunk_line(i), ""]
        lines += ["data: [DONE]", ""]
        response = make_response(lines)

        frames = await collect(relay_stream(response, "gpt-4o"))

        assert len(frames) == 4
        assert frames[-1] == SSE_DONE_FRAME
        for i, frame in enumerate(frames[:3]):
            assert frame.startswith(b"data: ") and frame.endswith(b"\n\n")
            payload = json.loads(frame[len(b"data: "):])
            assert payload["model"] == "gpt-4o"
            assert payload["choices"][0]["delta"]["content"] == f"t{i}"
        response.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nothing_after_done(self):
        response = make_response([chunk_line(0), "data: [DONE]", chunk_line(1)])
        frames = await collect(relay_stream(response, "gpt-4"))
        assert frames[-1] == SSE_DONE_FRAME
        assert len(frames) == 2

    @pytest.mark.asyncio
    async def test_malformed_chunk_dropped(self):
        response = make_response([chunk_line(0), "data: {pas du json", chunk_line(1), "data: [DONE]"])
        relay = StreamRelay(response, "gpt-4")

        frames = await collect(relay.__aiter__())

        assert len(frames) == 3
        assert relay.frames_emitted == 2
        assert relay.frames_dropped == 1
        assert relay.state == STATE_DONE

    @pytest.mark.asyncio
    async def test_other_lines_passed_through(self):
        response = make_response([": keep-alive", "event: ping", chunk_line(0), "data: [DONE]"])
        frames = await collect(relay_stream(response, "gpt-4"))
        assert frames[0] == b": keep-alive\n"
        assert frames[1] == b"event: ping\n"

    @pytest.mark.asyncio
    async def test_upstream_end_without_done(self):
        response = make_response([chunk_line(0)])
        relay = StreamRelay(response, "gpt-4")
        frames = await collect(relay.__aiter__())
        assert len(frames) == 1
        assert SSE_DONE_FRAME not in frames
        response.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancellation_stops_relay_and_closes_upstream(self):
        response = make_response([chunk_line(i) for i in range(10)] + ["data: [DONE]"])
        token = CancellationToken()
        relay = StreamRelay(response, "gpt-4", cancel_token=token)

        frames = []
        async for frame in relay.__aiter__():
            frames.append(frame)
            if len(frames) == 2:
                token.cancel()

        assert len(frames) == 2
        assert relay.state == STATE_CANCELLED
        response.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_disconnect_token(self):
        is_disconnected = AsyncMock(side_effect=[False, False, True])
        token = DisconnectToken(is_disconnected)
        response = make_response([chunk_line(0), chunk_line(1), "data: [DONE]"])

        frames = await collect(relay_stream(response, "gpt-4", cancel_token=token))

        assert len(frames) == 1
        assert token.cancelled
        response.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_read_error_ends_stream_without_error_frame(self):
        async def error_iter():
            yield chunk_line(0)
            raise httpx.ReadError("Connection reset")

        response = MagicMock()
        response.aiter_lines = MagicMock(return_value=error_iter())
        response.aclose = AsyncMock()
        relay = StreamRelay(response, "gpt-4")

        frames = await collect(relay.__aiter__())

        assert len(frames) == 1
        assert relay.error_type == "read_error"
        response.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_read_timeout_classified(self):
        async def timeout_iter():
            raise httpx.ReadTimeout("Read timeout")
            yield  # pragma: no cover

        response = MagicMock()
        response.aiter_lines = MagicMock(return_value=timeout_iter())
        response.aclose = AsyncMock()
        relay = StreamRelay(response, "gpt-4")

        assert await collect(relay.__aiter__()) == []
        assert relay.error_type == "timeout_error"


class TestStreamingErrorTypes:

    def test_error_types_defined(self):
        for key in ("read_error", "protocol_error", "timeout_error", "decode_error", "unknown"):
            assert key in STREAMING_ERROR_TYPES


def async_iter(items):
    """Helper pour créer un async iterator."""
    async def _iter():
        for item in items:
            yield item
    return _iter()


class TestStreamRelayClose:

    @pytest.mark.asyncio
    async def test_aclose_without_iteration(self):
        response = make_response([chunk_line(0), "data: [DONE]"])
        relay = StreamRelay(response, "gpt-4")

        await relay.aclose()
        await relay.aclose()

        response.aclose.assert_awaited_once()
        response.aiter_lines.assert_not_called()

    @pytest.mark.asyncio
    async def test_aclose_after_iteration_is_noop(self):
        response = make_response([chunk_line(0), "data: [DONE]"])
        relay = StreamRelay(response, "gpt-4")

        await collect(relay.__aiter__())
        await relay.aclose()

        response.aclose.assert_awaited_once()
