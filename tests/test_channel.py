"""Tests for the line-delimited JSON front-end channel."""

import asyncio
import json

import httpx
import pytest

from dtcontrol.models.messages import BridgeResponse
from dtcontrol.services.bridge import RequestBridge
from dtcontrol.services.channel import FrontendChannel, parse_request


@pytest.fixture
async def channel(client_factory, open_gate, fake_sleep):
    async def handler(request):
        item = request.url.path.rsplit("/", 1)[1]
        await asyncio.sleep(0.1 if item == "slow" else 0.0)
        return httpx.Response(200, json={"item": item})

    bridge = RequestBridge(client_factory(handler), open_gate, sleep=fake_sleep)
    exits = []
    chan = FrontendChannel(bridge, port=0, on_exit=lambda: exits.append(True))
    chan.exits = exits
    await chan.start()
    yield chan
    await chan.close()


async def _connect(chan: FrontendChannel):
    return await asyncio.open_connection("127.0.0.1", chan.bound_port)


async def _send(writer, message) -> None:
    if not isinstance(message, (bytes, str)):
        message = json.dumps(message)
    if isinstance(message, str):
        message = message.encode()
    writer.write(message + b"\n")
    await writer.drain()


async def _recv(reader) -> dict:
    line = await asyncio.wait_for(reader.readline(), timeout=5)
    return json.loads(line)


class TestParseRequest:

    def test_valid_request(self):
        request = parse_request(b'{"channel": "txInfo", "request_id": 5, "params": ["abc"]}')
        assert request.channel == "txInfo"
        assert request.request_id == 5
        assert request.params == ["abc"]

    def test_params_default_to_empty(self):
        assert parse_request(b'{"channel": "sync"}').params == []

    @pytest.mark.parametrize("line", [b"not json", b"[1, 2]", b'{"request_id": 1}', b'{"channel": "x", "params": [{"a": 1}]}'])
    def test_malformed_lines(self, line):
        with pytest.raises(ValueError):
            parse_request(line)


class TestFrontendChannel:

    async def test_request_response_round_trip(self, channel):
        reader, writer = await _connect(channel)
        await _send(writer, {"channel": "txInfo", "request_id": "a1", "params": ["abc"]})

        response = await _recv(reader)

        assert response == {"channel": "txInfo", "request_id": "a1", "error": None, "result": {"item": "abc"}}
        writer.close()

    async def test_out_of_order_responses_are_correlated(self, channel):
        reader, writer = await _connect(channel)
        await _send(writer, {"channel": "txInfo", "request_id": 1, "params": ["slow"]})
        await _send(writer, {"channel": "txInfo", "request_id": 2, "params": ["fast"]})

        first = await _recv(reader)
        second = await _recv(reader)

        assert first["request_id"] == 2 and first["result"] == {"item": "fast"}
        assert second["request_id"] == 1 and second["result"] == {"item": "slow"}
        writer.close()

    async def test_malformed_line_gets_error_and_connection_survives(self, channel):
        reader, writer = await _connect(channel)
        await _send(writer, "{broken")
        error = await _recv(reader)
        assert error["channel"] == ""
        assert error["request_id"] is None
        assert error["error"].startswith("malformed request")
        assert error["result"] is None

        await _send(writer, {"channel": "txInfo", "request_id": 9, "params": ["ok"]})
        assert (await _recv(reader))["request_id"] == 9
        writer.close()

    async def test_overlong_line_gets_error_and_connection_survives(self, channel):
        reader, writer = await _connect(channel)
        await _send(writer, {"channel": "txInfo", "request_id": 1, "params": ["x" * 70_000]})
        await _send(writer, {"channel": "txInfo", "request_id": 9, "params": ["ok"]})

        error = await _recv(reader)
        assert error["channel"] == ""
        assert error["request_id"] is None
        assert error["error"] == "malformed request: line too long"

        response = await _recv(reader)
        assert response["request_id"] == 9
        assert response["result"] == {"item": "ok"}
        writer.close()

    async def test_line_limit_is_configurable(self, channel):
        small = FrontendChannel(channel.bridge, port=0, line_limit=64)
        await small.start()
        try:
            reader, writer = await _connect(small)
            await _send(writer, {"channel": "txInfo", "request_id": 1, "params": ["y" * 100]})
            await _send(writer, {"channel": "txInfo", "request_id": 2, "params": ["z"]})
            assert (await _recv(reader))["error"] == "malformed request: line too long"
            assert (await _recv(reader))["request_id"] == 2
            writer.close()
        finally:
            await small.close()

    async def test_request_errors_are_delivered(self, channel):
        reader, writer = await _connect(channel)
        await _send(writer, {"channel": "nope", "request_id": 3})
        response = BridgeResponse.model_validate(await _recv(reader))
        assert response.request_id == 3
        assert not response.ok
        writer.close()

    async def test_exit_message_requests_shutdown(self, channel):
        reader, writer = await _connect(channel)
        await _send(writer, {"channel": "exit"})
        for _ in range(50):
            if channel.exits:
                break
            await asyncio.sleep(0.01)
        assert channel.exits == [True]
        writer.close()

    async def test_close_is_idempotent(self, channel):
        await channel.close()
        await channel.close()
        assert channel.bound_port is None
