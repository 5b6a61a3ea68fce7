"""Abstract base transport and error types."""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable

from hiveauth.transport.types import TransportConfig, TransportEvent


class TransportError(Exception):
    """Base exception for transport errors."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ConnectionError(TransportError):
    """Failed to establish connection to the relay."""

    pass


class TimeoutError(TransportError):
    """Connection attempt timed out."""

    pass


class SessionError(TransportError):
    """Operation on a transport that is not connected."""

    pass


class Transport(ABC):
    """
    Abstract base class for relay transports.

    A transport owns one long-lived connection to the relay. It sends
    outbound JSON messages and yields every pushed inbound message, in
    arrival order, from receive(). It has no reconnect policy of its own.
    """

    def __init__(self, config: TransportConfig):
        self.config = config
        self._event_handlers: list[Callable[[TransportEvent], None]] = []

    def on_event(self, handler: Callable[[TransportEvent], None]) -> None:
        """
        Register an event handler for transport events.

        Args:
            handler: Callback invoked when transport events occur.
        """
        self._event_handlers.append(handler)

    def _emit_event(self, event: TransportEvent) -> None:
        """Emit an event to all registered handlers."""
        for handler in self._event_handlers:
            try:
                handler(event)
            except Exception:
                # Don't let handler errors affect transport
                pass

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to the relay.

        Raises:
            ConnectionError: If connection cannot be established.
            TimeoutError: If connection times out.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Close connection and release all resources.

        This method should be safe to call multiple times.
        """
        pass

    @abstractmethod
    async def send(self, message: dict) -> None:
        """
        Send a JSON message to the relay.

        Args:
            message: JSON-serializable message dict.

        Raises:
            SessionError: If the transport is not connected.
            TransportError: If send fails.
        """
        pass

    @abstractmethod
    def receive(self) -> AsyncIterator[dict]:
        """
        Async iterator yielding pushed messages from the relay.

        The iterator ends when the connection closes.

        Yields:
            Decoded JSON message dicts.
        """
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """
        Check if transport is currently connected.

        Returns:
            True if connected and ready for communication.
        """
        pass

    async def __aenter__(self) -> "Transport":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.disconnect()
