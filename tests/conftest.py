"""Pytest configuration and fixtures."""

import asyncio
import time

import pytest

from hiveauth.config import HASConfig
from hiveauth.protocol.client import HASClient
from hiveauth.protocol.credentials import AppDescriptor, ChallengeDescriptor, SessionCredential
from hiveauth.transport.base import ConnectionError, SessionError, Transport
from hiveauth.transport.types import TransportConfig, TransportEvent, TransportEventType

# Enable async tests without marking each one
pytest_plugins = ["pytest_asyncio"]


class FakeTransport(Transport):
    """In-memory relay: records sent messages, lets tests push inbound ones."""

    def __init__(self, fail_connect: bool = False):
        super().__init__(TransportConfig(url="ws://localhost:8080/"))
        self.fail_connect = fail_connect
        self.sent: list[dict] = []
        self.connect_calls = 0
        self._connected = False
        self._queue: asyncio.Queue[dict | None] = asyncio.Queue()

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.fail_connect:
            raise ConnectionError("connection refused")
        self._connected = True
        self._emit_event(TransportEvent(type=TransportEventType.CONNECTED, timestamp=time.time()))

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self.drop()

    async def send(self, message: dict) -> None:
        if not self._connected:
            raise SessionError("Transport not connected")
        self.sent.append(message)

    async def receive(self):
        while True:
            message = await self._queue.get()
            if message is None:
                break
            yield message

    def is_connected(self) -> bool:
        return self._connected

    def push(self, message: dict) -> None:
        """Deliver a message as if the relay pushed it."""
        self._queue.put_nowait(message)

    def drop(self) -> None:
        """Close the connection from the relay side."""
        self._connected = False
        self._queue.put_nowait(None)
        self._emit_event(TransportEvent(type=TransportEventType.DISCONNECTED, timestamp=time.time()))


class FakeClock:
    """Manually advanced clock in epoch milliseconds."""

    def __init__(self, now: float = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


async def settle(rounds: int = 5) -> None:
    """Let background tasks process what has been pushed."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def now_ms() -> int:
    return int(time.time() * 1000)


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def config():
    """Fast client settings for tests."""
    return HASConfig(host="ws://localhost:8080/", request_timeout=2.0, poll_interval=0.05)


@pytest.fixture
def client(config, fake_transport):
    return HASClient(config=config, transport=fake_transport)


@pytest.fixture
def app():
    return AppDescriptor(name="test-app", description="Test application")


@pytest.fixture
def challenge_data():
    return ChallengeDescriptor(key_type="posting", challenge="login-nonce-42")


@pytest.fixture
def session():
    """An already authenticated credential."""
    return SessionCredential(
        username="alice",
        token="tok-123",
        expire=now_ms() + 86_400_000,
        key="5f0c2e36-7a43-4e93-9f57-2d8a1c0b6e11",
    )
