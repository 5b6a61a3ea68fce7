"""
Relay Transport Layer.

One long-lived WebSocket connection carrying JSON messages to and from the
HAS relay.
"""

from hiveauth.transport.types import TransportConfig, TransportEvent, TransportEventType
from hiveauth.transport.base import Transport, TransportError, ConnectionError, TimeoutError, SessionError
from hiveauth.transport.websocket import WebSocketTransport

__all__ = [
    "Transport",
    "TransportConfig",
    "TransportEvent",
    "TransportEventType",
    "TransportError",
    "ConnectionError",
    "TimeoutError",
    "SessionError",
    "WebSocketTransport",
]
