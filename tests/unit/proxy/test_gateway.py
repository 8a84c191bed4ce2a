"""
Tests unitaires de l'orchestration traduction -> transport -> relais.
"""
import json

import httpx
import pytest

from deepseek_proxy.core.constants import REASONING_MODE_MERGED, SSE_DONE_FRAME
from deepseek_proxy.core.exceptions import BackendRejected
from deepseek_proxy.core.models import FrontRequest
from deepseek_proxy.proxy.client import BackendClient
from deepseek_proxy.proxy.gateway import ChatGateway, generate_request_id


def make_gateway(table, handler, **kwargs):
    client = BackendClient(
        endpoint="https://backend.test",
        api_key="sk-test",
        transport=httpx.MockTransport(handler)
    )
    return ChatGateway(table, client, **kwargs)


def make_front(stream=False, model="o3"):
    return FrontRequest.from_dict({
        "model": model,
        "stream": stream,
        "temperature": 0.2,
        "messages": [{"role": "user", "content": "2+2?"}]
    })


def reasoner_response(request):
    return httpx.Response(200, json={
        "id": "chatcmpl-9",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "deepseek-reasoner",
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": "4", "reasoning_content": "2+2=4"},
            "finish_reason": "stop"
        }],
        "usage": {"prompt_tokens": 5, "completion_tokens": 3, "total_tokens": 8}
    })


def stream_response(request):
    body = "".join(
        "data: " + json.dumps({"id": "c", "model": "deepseek-reasoner",
                               "choices": [{"index": 0, "delta": {"content": part}}]}) + "\n\n"
        for part in ("Bon", "jour")
    ) + "data: [DONE]\n\n"
    return httpx.Response(200, headers={"Content-Type": "text/event-stream"}, content=body.encode())


def test_request_id_format():
    assert generate_request_id().startswith("req_")


class TestComplete:

    @pytest.mark.asyncio
    async def test_round_trip(self, table):
        sent = []

        def handler(request):
            sent.append(json.loads(request.content))
            return reasoner_response(request)

        gateway = make_gateway(table, handler)
        response = await gateway.complete(make_front())
        await gateway.client.aclose()

        assert sent[0]["model"] == "deepseek-reasoner"
        assert "temperature" not in sent[0]
        data = response.to_dict()
        assert data["model"] == "o3"
        assert data["choices"][0]["message"]["reasoning_content"] == "2+2=4"

    @pytest.mark.asyncio
    async def test_merged_reasoning(self, table):
        gateway = make_gateway(table, reasoner_response, reasoning_mode=REASONING_MODE_MERGED)
        response = await gateway.complete(make_front())
        await gateway.client.aclose()
        assert response.choices[0].message.content == "2+2=4\n\n4"

    @pytest.mark.asyncio
    async def test_backend_error_propagates(self, table):
        gateway = make_gateway(table, lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(BackendRejected):
            await gateway.complete(make_front())
        await gateway.client.aclose()


class TestStreaming:

    @pytest.mark.asyncio
    async def test_stream_to_sink(self, table):
        written = []

        async def sink(frame):
            written.append(frame)

        gateway = make_gateway(table, stream_response)
        result = await gateway.handle(make_front(stream=True), stream=True, sink=sink)
        await gateway.client.aclose()

        assert result is None
        assert written[-1] == SSE_DONE_FRAME
        models = {json.loads(frame[len(b"data: "):])["model"] for frame in written[:-1]}
        assert models == {"o3"}

    @pytest.mark.asyncio
    async def test_open_error_raised_before_first_frame(self, table):
        gateway = make_gateway(table, lambda request: httpx.Response(403, text="forbidden"))
        with pytest.raises(BackendRejected):
            await gateway.open_stream(make_front(stream=True))
        await gateway.client.aclose()

    @pytest.mark.asyncio
    async def test_stream_requires_sink(self, table):
        gateway = make_gateway(table, stream_response)
        with pytest.raises(ValueError):
            await gateway.handle(make_front(stream=True), stream=True)

    @pytest.mark.asyncio
    async def test_handle_sync(self, table):
        gateway = make_gateway(table, reasoner_response)
        result = await gateway.handle(make_front(), stream=False)
        await gateway.client.aclose()
        assert result.model == "o3"


class TestStreamOwnership:
    """Le stream backend est fermé même si le relais n'est jamais itéré."""

    @pytest.mark.asyncio
    async def test_close_before_first_frame(self, table):
        gateway = make_gateway(table, stream_response)
        relay = await gateway.open_stream(make_front(stream=True))
        assert not relay.response.is_closed

        await relay.aclose()

        assert relay.response.is_closed
        await gateway.client.aclose()

    @pytest.mark.asyncio
    async def test_stream_to_closes_upstream_when_sink_fails(self, table):
        async def failing_sink(frame):
            raise ConnectionResetError("client parti")

        gateway = make_gateway(table, stream_response)
        relays = []
        original_open = gateway.open_stream

        async def tracking_open(*args, **kwargs):
            relay = await original_open(*args, **kwargs)
            relays.append(relay)
            return relay

        gateway.open_stream = tracking_open
        with pytest.raises(ConnectionResetError):
            await gateway.stream_to(make_front(stream=True), failing_sink)
        await gateway.client.aclose()

        assert relays[0].response.is_closed
