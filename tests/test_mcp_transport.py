"""Tests for the SSE handshake: endpoint resolution and keepalive lifetime."""
import asyncio
import json
import socket

import httpx
import pytest
import uvicorn
from starlette.requests import Request

from drive_bridge.config import Settings
from drive_bridge.gateway import create_gateway_app, hello_message
from drive_bridge.mcp_session import SessionStream
from drive_bridge.mcp_transport import MCPTransport, resolve_base_url, resolve_messages_url
from drive_bridge.server import create_app


def make_request(headers=None, query_string=b"", scheme="http", path="/mcp"):
    """Build a bare Starlette request for resolver tests."""
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": scheme,
        "server": ("10.0.0.5", 10000),
        "path": path,
        "root_path": "",
        "query_string": query_string,
        "headers": raw_headers,
    }
    return Request(scope)


def parse_frame(frame: bytes) -> dict:
    """Split an encoded SSE frame into its fields."""
    fields = {}
    for line in frame.decode().splitlines():
        if not line:
            continue
        key, _, value = line.partition(":")
        fields[key] = value[1:] if value.startswith(" ") else value
    return fields


class TestResolver:
    def test_uses_host_header(self):
        request = make_request({"Host": "bridge.local:10000"})

        assert resolve_base_url(request) == "http://bridge.local:10000"

    def test_honours_forwarded_headers(self):
        request = make_request({
            "Host": "10.0.0.5:10000",
            "X-Forwarded-Proto": "https, http",
            "X-Forwarded-Host": "bridge.example.com",
        })

        assert resolve_messages_url(request) == "https://bridge.example.com/mcp"

    def test_forwarded_headers_ignored_when_untrusted(self):
        request = make_request({"Host": "bridge.local", "X-Forwarded-Proto": "https"})

        assert resolve_base_url(request, trust_forwarded=False) == "http://bridge.local"

    def test_query_token_carried_over(self):
        request = make_request({"Host": "bridge.local"}, query_string=b"token=a%2Bb")

        assert resolve_messages_url(request, "/mcp") == "http://bridge.local/mcp?token=a%2Bb"

    def test_custom_messages_path(self):
        request = make_request({"Host": "bridge.local"})

        assert resolve_messages_url(request, "/rpc") == "http://bridge.local/rpc"


class TestSessionStream:
    @pytest.mark.asyncio
    async def test_endpoint_event_is_first_frame(self):
        transport = MCPTransport(Settings(keepalive_seconds=30))
        stream = transport.open_stream(
            make_request({"Host": "bridge.local", "X-Forwarded-Proto": "https"}), token="s3cret"
        )
        frames = stream.frames()

        fields = parse_frame(await frames.__anext__())

        assert fields["event"] == "endpoint"
        assert json.loads(fields["data"]) == {"messages": "https://bridge.local/mcp"}
        assert stream.token == "s3cret"
        await frames.aclose()

    @pytest.mark.asyncio
    async def test_keepalive_comments_are_emitted(self):
        stream = SessionStream(keepalive_interval=0.01)
        frames = stream.frames()

        frame = await asyncio.wait_for(frames.__anext__(), timeout=1)

        assert frame.startswith(b": keepalive")
        await frames.aclose()

    @pytest.mark.asyncio
    async def test_close_cancels_keepalive(self):
        stream = SessionStream(keepalive_interval=0.01)
        stream.send({"messages": "http://bridge.local/mcp"}, event="endpoint")
        frames = stream.frames()
        await frames.__anext__()
        task = stream.keepalive_task

        await frames.aclose()
        await asyncio.sleep(0.05)

        assert stream.closed
        assert task.done()
        # nothing is queued for a closed connection
        assert stream.pending() == 0
        stream.send({"late": True})
        assert stream.pending() == 0

    @pytest.mark.asyncio
    async def test_each_stream_owns_its_timer(self):
        first = SessionStream(keepalive_interval=0.01)
        second = SessionStream(keepalive_interval=0.01)
        first_frames = first.frames()
        second_frames = second.frames()
        await asyncio.wait_for(first_frames.__anext__(), timeout=1)
        await asyncio.wait_for(second_frames.__anext__(), timeout=1)

        await first_frames.aclose()
        await asyncio.sleep(0.05)

        assert first.keepalive_task.done()
        assert not second.keepalive_task.done()
        await second_frames.aclose()

    @pytest.mark.asyncio
    async def test_gateway_hello_follows_endpoint(self, settings):
        stream = MCPTransport(settings).open_stream(make_request({"Host": "gw.local"}))
        stream.send(hello_message(settings), event="message")
        frames = stream.frames()

        endpoint = parse_frame(await frames.__anext__())
        hello = parse_frame(await frames.__anext__())

        assert endpoint["event"] == "endpoint"
        assert hello["event"] == "message"
        message = json.loads(hello["data"])
        assert message["id"] == "0"
        assert message["result"]["protocolVersion"] == "2024-11-05"
        assert message["result"]["capabilities"] == {"tools": {}}
        await frames.aclose()


def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def opened_streams(monkeypatch):
    """Collect every SessionStream the apps open."""
    streams = []
    open_stream = MCPTransport.open_stream

    def recording_open_stream(self, request, token=None):
        stream = open_stream(self, request, token)
        streams.append(stream)
        return stream

    monkeypatch.setattr(MCPTransport, "open_stream", recording_open_stream)
    return streams


async def wait_for(condition, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.02)
    return True


class TestHandshakeOverHttp:
    """Runs the apps under uvicorn so client disconnects are real."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("factory", [create_app, create_gateway_app])
    async def test_stream_and_disconnect(self, settings, opened_streams, factory):
        port = free_port()
        server = uvicorn.Server(
            uvicorn.Config(factory(settings), host="127.0.0.1", port=port, log_level="warning")
        )
        serve_task = asyncio.create_task(server.serve())
        try:
            assert await wait_for(lambda: server.started)

            url = f"http://127.0.0.1:{port}/mcp?token=s3cret"
            async with httpx.AsyncClient(timeout=5.0) as client:
                async with client.stream("GET", url) as response:
                    assert response.status_code == 200
                    assert response.headers["content-type"].startswith("text/event-stream")
                    assert response.headers["cache-control"] == "no-store"

                    fields = {}
                    async for line in response.aiter_lines():
                        if not line:
                            break
                        key, _, value = line.partition(":")
                        fields[key] = value.strip()

            assert fields["event"] == "endpoint"
            assert json.loads(fields["data"]) == {
                "messages": f"http://127.0.0.1:{port}/mcp?token=s3cret"
            }

            assert len(opened_streams) == 1
            stream = opened_streams[0]
            assert await wait_for(lambda: stream.closed)
            assert await wait_for(lambda: stream.keepalive_task.done())
        finally:
            server.should_exit = True
            await serve_task
