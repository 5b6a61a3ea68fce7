"""Transport layer types and configuration."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any


class TransportEventType(Enum):
    """Types of transport events for observability."""

    CONNECTING = auto()
    CONNECTED = auto()
    DISCONNECTING = auto()
    DISCONNECTED = auto()
    MESSAGE_SENT = auto()
    MESSAGE_RECEIVED = auto()
    ERROR = auto()


@dataclass
class TransportEvent:
    """Event emitted by transport for observability."""

    type: TransportEventType
    timestamp: float
    data: dict[str, Any] | None = None
    error: Exception | None = None

    def __str__(self) -> str:
        base = f"[{self.type.name}]"
        if self.data:
            base += f" {self.data}"
        if self.error:
            base += f" error={self.error}"
        return base


@dataclass
class TransportConfig:
    """Configuration for the relay transport."""

    url: str
    """WebSocket URL of the relay (ws:// or wss://)."""

    open_timeout: float = 10.0
    """Connection establishment timeout in seconds."""

    close_timeout: float = 5.0
    """Closing handshake timeout in seconds."""

    ping_interval: float | None = 20.0
    """Keepalive ping interval in seconds, None to disable."""

    max_message_size: int = 1024 * 1024
    """Largest inbound frame accepted, in bytes."""

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.url:
            raise ValueError("url is required")
        if not self.url.startswith(("ws://", "wss://")):
            raise ValueError("url must use ws:// or wss://")
        if self.open_timeout <= 0:
            raise ValueError("open_timeout must be positive")
        if self.close_timeout <= 0:
            raise ValueError("close_timeout must be positive")
        if self.ping_interval is not None and self.ping_interval <= 0:
            raise ValueError("ping_interval must be positive")
        if self.max_message_size < 1:
            raise ValueError("max_message_size must be at least 1")
