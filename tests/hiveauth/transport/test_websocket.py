"""Tests for the WebSocket transport."""

import asyncio

import pytest
import pytest_asyncio
from websockets.asyncio.server import serve

from hiveauth.lib import oj
from hiveauth.transport import (
    ConnectionError,
    SessionError,
    TransportConfig,
    TransportEventType,
    WebSocketTransport,
)


class TestTransportConfig:
    """Tests for TransportConfig validation."""

    def test_valid_wss_url(self):
        config = TransportConfig(url="wss://hive-auth.arcange.eu/")
        assert config.url == "wss://hive-auth.arcange.eu/"

    def test_plain_ws_allowed(self):
        config = TransportConfig(url="ws://localhost:8080/")
        assert config.url == "ws://localhost:8080/"

    def test_http_rejected(self):
        with pytest.raises(ValueError, match="must use ws:// or wss://"):
            TransportConfig(url="https://example.com/")

    def test_empty_url_rejected(self):
        with pytest.raises(ValueError, match="url is required"):
            TransportConfig(url="")

    def test_invalid_timeouts_rejected(self):
        with pytest.raises(ValueError, match="open_timeout must be positive"):
            TransportConfig(url="ws://localhost/", open_timeout=0)
        with pytest.raises(ValueError, match="close_timeout must be positive"):
            TransportConfig(url="ws://localhost/", close_timeout=-1)

    def test_ping_can_be_disabled(self):
        assert TransportConfig(url="ws://localhost/", ping_interval=None).ping_interval is None
        with pytest.raises(ValueError, match="ping_interval"):
            TransportConfig(url="ws://localhost/", ping_interval=0)

    def test_invalid_message_size(self):
        with pytest.raises(ValueError, match="max_message_size"):
            TransportConfig(url="ws://localhost/", max_message_size=0)


async def relay_handler(websocket):
    """Greets like the relay, pushes some junk, then echoes."""
    await websocket.send(oj.dumps({"cmd": "connected", "timeout": 60, "protocol": 0.7}))
    await websocket.send("not json")
    await websocket.send("[1, 2, 3]")
    async for frame in websocket:
        message = oj.loads(frame)
        if message.get("cmd") == "bye":
            return
        await websocket.send(frame)


class TestWebSocketTransport:
    """Tests for WebSocketTransport against a local server."""

    @pytest_asyncio.fixture
    async def relay_url(self):
        async with serve(relay_handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            yield f"ws://127.0.0.1:{port}/"

    @pytest.fixture
    def events(self):
        return []

    @pytest.fixture
    def transport(self, relay_url, events):
        transport = WebSocketTransport(TransportConfig(url=relay_url, open_timeout=2.0))
        transport.on_event(lambda event: events.append(event.type))
        return transport

    @pytest.mark.asyncio
    async def test_send_requires_connection(self):
        transport = WebSocketTransport(TransportConfig(url="ws://127.0.0.1:1/"))
        with pytest.raises(SessionError, match="not connected"):
            await transport.send({"cmd": "auth_req"})

    @pytest.mark.asyncio
    async def test_receive_drops_non_objects(self, transport, events):
        await transport.connect()
        assert transport.is_connected()
        assert events[:2] == [TransportEventType.CONNECTING, TransportEventType.CONNECTED]

        received = transport.receive()
        first = await asyncio.wait_for(received.__anext__(), 2.0)
        assert first == {"cmd": "connected", "timeout": 60, "protocol": 0.7}

        await transport.send({"cmd": "auth_req", "account": "alice", "data": "x"})
        echoed = await asyncio.wait_for(received.__anext__(), 2.0)
        assert echoed == {"cmd": "auth_req", "account": "alice", "data": "x"}
        assert TransportEventType.MESSAGE_SENT in events
        assert events.count(TransportEventType.MESSAGE_RECEIVED) == 2

        await received.aclose()
        await transport.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect(self, transport, events):
        await transport.connect()
        await transport.disconnect()
        assert not transport.is_connected()
        assert events.count(TransportEventType.DISCONNECTED) == 1

        await transport.disconnect()
        assert events.count(TransportEventType.DISCONNECTED) == 1

    @pytest.mark.asyncio
    async def test_server_close_ends_receive(self, transport, events):
        await transport.connect()
        await transport.send({"cmd": "bye"})

        messages = []

        async def drain():
            async for message in transport.receive():
                messages.append(message)

        await asyncio.wait_for(drain(), 2.0)
        assert messages == [{"cmd": "connected", "timeout": 60, "protocol": 0.7}]
        assert not transport.is_connected()
        assert events.count(TransportEventType.DISCONNECTED) == 1

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        async with serve(relay_handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]

        transport = WebSocketTransport(TransportConfig(url=f"ws://127.0.0.1:{port}/", open_timeout=2.0))
        with pytest.raises(ConnectionError, match="Failed to connect"):
            await transport.connect()
        assert not transport.is_connected()

    @pytest.mark.asyncio
    async def test_context_manager(self, relay_url):
        async with WebSocketTransport(TransportConfig(url=relay_url)) as transport:
            assert transport.is_connected()
        assert not transport.is_connected()
