"""WebSocket transport to the HAS relay."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from hiveauth.lib import oj
from hiveauth.transport.base import (
    Transport,
    TransportError,
    ConnectionError,
    TimeoutError,
    SessionError,
)
from hiveauth.transport.types import (
    TransportConfig,
    TransportEvent,
    TransportEventType,
)

logger = logging.getLogger(__name__)


class WebSocketTransport(Transport):
    """
    WebSocket transport over the ``websockets`` asyncio client.

    The relay pushes every message on the same socket; there are no
    request/response pairs at this layer.
    """

    def __init__(self, config: TransportConfig):
        super().__init__(config)
        self._ws: ClientConnection | None = None
        self._connected: bool = False
        self._closing: bool = False

    async def connect(self) -> None:
        """Open the WebSocket connection to the relay."""
        if self._connected:
            return

        self._emit_event(
            TransportEvent(
                type=TransportEventType.CONNECTING,
                timestamp=time.time(),
                data={"url": self.config.url},
            )
        )

        try:
            self._ws = await connect(
                self.config.url,
                open_timeout=self.config.open_timeout,
                close_timeout=self.config.close_timeout,
                ping_interval=self.config.ping_interval,
                max_size=self.config.max_message_size,
            )
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"Connection to {self.config.url} timed out", cause=e)
        except (OSError, InvalidHandshake, InvalidURI) as e:
            raise ConnectionError(f"Failed to connect to {self.config.url}: {e}", cause=e)

        self._connected = True
        self._closing = False

        self._emit_event(
            TransportEvent(
                type=TransportEventType.CONNECTED,
                timestamp=time.time(),
                data={"url": self.config.url},
            )
        )

    async def disconnect(self) -> None:
        """Close the connection and cleanup resources."""
        if not self._connected and self._ws is None:
            return

        self._closing = True

        self._emit_event(
            TransportEvent(
                type=TransportEventType.DISCONNECTING,
                timestamp=time.time(),
            )
        )

        if self._ws is not None:
            await self._ws.close()
        self._mark_disconnected()

    async def send(self, message: dict) -> None:
        """Serialize and send one message."""
        if self._ws is None or not self._connected:
            raise SessionError("Transport not connected")

        if self._closing:
            raise SessionError("Transport is closing")

        try:
            await self._ws.send(oj.dumps(message))
        except ConnectionClosed as e:
            self._mark_disconnected()
            raise SessionError(f"Connection closed: {e}", cause=e)
        except Exception as e:
            raise TransportError(f"Send failed: {e}", cause=e)

        self._emit_event(
            TransportEvent(
                type=TransportEventType.MESSAGE_SENT,
                timestamp=time.time(),
                data={"cmd": message.get("cmd")},
            )
        )

    async def receive(self) -> AsyncIterator[dict]:
        """
        Yield decoded messages until the socket closes.

        Frames that are not JSON objects are dropped.
        """
        if self._ws is None:
            return

        try:
            async for frame in self._ws:
                try:
                    message = oj.loads(frame)
                except oj.JSONDecodeError:
                    logger.debug(f"Dropping non-JSON frame: {frame!r}")
                    continue
                if not isinstance(message, dict):
                    logger.debug(f"Dropping non-object frame: {frame!r}")
                    continue

                self._emit_event(
                    TransportEvent(
                        type=TransportEventType.MESSAGE_RECEIVED,
                        timestamp=time.time(),
                        data={"cmd": message.get("cmd")},
                    )
                )
                yield message
        except ConnectionClosed as e:
            if not self._closing:
                self._emit_event(
                    TransportEvent(
                        type=TransportEventType.ERROR,
                        timestamp=time.time(),
                        error=e,
                    )
                )
        finally:
            self._mark_disconnected()

    def is_connected(self) -> bool:
        """Check if transport is connected."""
        return self._connected and not self._closing

    def _mark_disconnected(self) -> None:
        """Drop the socket and emit DISCONNECTED once."""
        was_connected = self._connected
        self._connected = False
        self._ws = None
        if was_connected:
            self._emit_event(
                TransportEvent(
                    type=TransportEventType.DISCONNECTED,
                    timestamp=time.time(),
                )
            )
