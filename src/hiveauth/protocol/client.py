"""HAS protocol client implementation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from hiveauth.config import HASConfig
from hiveauth.crypto.keys import ServiceMode, derive_key
from hiveauth.lib.clock import Clock, now_ms
from hiveauth.protocol.classifier import InboundClassifier
from hiveauth.protocol.credentials import (
    AppDescriptor,
    ChallengeDescriptor,
    SessionCredential,
    require_str,
    validate_challenge,
    validate_session,
)
from hiveauth.protocol.errors import ConnectivityError, ValidationError
from hiveauth.protocol.flow import (
    CHALLENGE,
    SIGN,
    AckResult,
    AuthenticateFlow,
    CorrelatedRequestFlow,
    PendingCallback,
    PendingConfirmation,
)
from hiveauth.protocol.state import (
    ConnectionInfo,
    ConnectionState,
    ConnectionStateMachine,
    FlowPhase,
)
from hiveauth.protocol.store import PendingMessageStore
from hiveauth.transport.base import Transport, TransportError
from hiveauth.transport.types import TransportConfig, TransportEvent, TransportEventType
from hiveauth.transport.websocket import WebSocketTransport

logger = logging.getLogger(__name__)
trace_logger = logging.getLogger("hiveauth.trace")


@dataclass
class ClientStatus:
    """Snapshot of the client's connection."""

    host: str
    connected: bool
    timeout_ms: float
    protocol: float | None = None


class PendingRequest:
    """
    A sent request, observable in its two stages.

    ``await confirmation()`` resolves when the relay confirms the request
    (for authentication, that is when the wallet link can be shown), and
    ``await result()`` resolves with the signer's approval.
    """

    def __init__(self, flow: CorrelatedRequestFlow):
        self.flow = flow
        self._task = asyncio.create_task(
            flow.wait(),
            name=f"has-{flow.family.name}-flow",
        )

    @property
    def phase(self) -> FlowPhase:
        return self.flow.phase

    @property
    def correlation_id(self) -> str | None:
        return self.flow.correlation_id

    async def confirmation(self) -> PendingConfirmation:
        """Wait for the relay's ``*_wait`` confirmation."""
        return await asyncio.shield(self.flow.confirmation)

    async def result(self) -> AckResult:
        """Wait for the terminal outcome."""
        return await self._task


class HASClient:
    """
    Client for the HiveAuth Services relay.

    Owns the connection state, the pending message store and the receive
    loop that feeds it. Authentication, broadcast and challenge requests
    each run as an independent correlated flow over the shared connection.
    """

    def __init__(
        self,
        config: HASConfig | None = None,
        transport: Transport | None = None,
        service_mode: ServiceMode | None = None,
        clock: Clock = now_ms,
    ):
        """
        Initialize HAS client.

        Args:
            config: Client settings (defaults to the public relay).
            transport: Transport to the relay (defaults to a WebSocket).
            service_mode: Opt-in service mode, see ServiceMode.
            clock: Wall clock in epoch milliseconds.
        """
        self.config = config or HASConfig()
        self.transport = transport or WebSocketTransport(
            TransportConfig(url=self.config.host, open_timeout=self.config.connect_timeout)
        )
        self.service_mode = service_mode
        self.trace = False

        self._clock = clock
        self._state = ConnectionStateMachine()
        self.info = ConnectionInfo()
        self.store = PendingMessageStore(clock=clock)
        self.classifier = InboundClassifier(
            self.store,
            self.info,
            supported_protocol=self.config.protocol,
            default_timeout_ms=self.config.request_timeout_ms,
            clock=clock,
        )
        self._receive_task: asyncio.Task | None = None
        self._connect_lock = asyncio.Lock()

        self.transport.on_event(self._on_transport_event)

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state.state

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    def trace_on(self) -> None:
        """Log every sent and received message to the hiveauth.trace logger."""
        self.trace = True

    def trace_off(self) -> None:
        self.trace = False

    def status(self) -> ClientStatus:
        return ClientStatus(
            host=self.config.host,
            connected=self.is_connected,
            timeout_ms=self.info.timeout_ms(self.config.request_timeout_ms),
            protocol=self.info.server_protocol,
        )

    async def connect(self) -> bool:
        """
        Connect to the relay unless already connected.

        Returns:
            True if connected. Connection failures are logged, not raised.
        """
        if self.is_connected:
            return True

        async with self._connect_lock:
            if self.is_connected:
                return True

            self._state.transition(ConnectionState.CONNECTING)
            try:
                await self.transport.connect()
            except TransportError as e:
                logger.warning(f"Connection to {self.config.host} failed: {e}")
                self._state.transition(ConnectionState.DISCONNECTED)
                return False

            self._state.transition(ConnectionState.CONNECTED)
            self._receive_task = asyncio.create_task(
                self._receive_loop(),
                name="has-receive-loop",
            )
            logger.info(f"Connected to {self.config.host}")
            return True

    async def close(self) -> None:
        """Stop the receive loop and close the connection."""
        if self._receive_task and not self._receive_task.done():
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
        self._receive_task = None

        await self.transport.disconnect()
        self._mark_disconnected()

    async def start_authenticate(
        self,
        credential: SessionCredential,
        app: AppDescriptor,
        challenge: ChallengeDescriptor | None = None,
        on_pending: PendingCallback | None = None,
    ) -> PendingRequest:
        """
        Send an authentication request.

        Args:
            credential: Account to authenticate; an existing key is reused.
            app: The requesting application.
            challenge: Optional challenge to sign along with the login.
            on_pending: Called with the confirmation once the relay accepts.

        Returns:
            Handle on the sent request.

        Raises:
            ValidationError: On missing or malformed input.
            ConnectivityError: If the relay cannot be reached.
        """
        if not isinstance(credential, SessionCredential):
            raise ValidationError("missing auth")
        require_str(credential.username, "auth.username")
        if not isinstance(app, AppDescriptor):
            raise ValidationError("missing app_data")
        require_str(app.name, "app_data.name")
        if challenge is not None:
            validate_challenge(challenge)

        payload: dict[str, Any] = {"app": app.to_dict()}
        if credential.token is not None:
            payload["token"] = credential.token
        if challenge is not None:
            payload["challenge"] = challenge.to_dict()

        flow = AuthenticateFlow(
            self.store,
            self._send,
            account=credential.username,
            session_key=derive_key(credential),
            payload=payload,
            token=credential.token,
            credential=credential,
            on_pending=on_pending,
            **self._flow_options(),
        )
        return await self._start(flow)

    async def start_broadcast(
        self,
        credential: SessionCredential,
        key_type: str,
        operations: list[Any],
        on_pending: PendingCallback | None = None,
    ) -> PendingRequest:
        """
        Ask the signer to sign and broadcast operations.

        Args:
            credential: An authenticated credential.
            key_type: Key to sign with ("posting", "active", ...).
            operations: Non-empty list of blockchain operations.
            on_pending: Called with the confirmation once the relay accepts.

        Returns:
            Handle on the sent request.
        """
        validate_session(credential)
        require_str(key_type, "key_type")
        if not isinstance(operations, list) or not operations:
            raise ValidationError("missing or invalid ops")

        flow = CorrelatedRequestFlow(
            SIGN,
            self.store,
            self._send,
            account=credential.username,
            session_key=derive_key(credential),
            payload={"key_type": key_type, "ops": operations, "broadcast": True},
            token=credential.token,
            on_pending=on_pending,
            **self._flow_options(),
        )
        return await self._start(flow)

    async def start_challenge(
        self,
        credential: SessionCredential,
        challenge: ChallengeDescriptor,
        on_pending: PendingCallback | None = None,
    ) -> PendingRequest:
        """
        Ask the signer to sign a challenge string.

        Args:
            credential: An authenticated credential.
            challenge: Key type and challenge to sign.
            on_pending: Called with the confirmation once the relay accepts.

        Returns:
            Handle on the sent request.
        """
        validate_session(credential)
        validate_challenge(challenge)

        flow = CorrelatedRequestFlow(
            CHALLENGE,
            self.store,
            self._send,
            account=credential.username,
            session_key=derive_key(credential),
            payload=challenge.to_dict(),
            token=credential.token,
            on_pending=on_pending,
            **self._flow_options(),
        )
        return await self._start(flow)

    async def authenticate(
        self,
        credential: SessionCredential,
        app: AppDescriptor,
        challenge: ChallengeDescriptor | None = None,
        on_pending: PendingCallback | None = None,
    ) -> AckResult:
        """
        Authenticate an account and wait for approval.

        Returns:
            The approval; ``result.credential`` holds the new token, its
            expiry and the session key. The credential passed in is not
            modified.

        Raises:
            ValidationError, ConnectivityError, ProtocolRejection,
            ProtocolError, ExpirationError.
        """
        pending = await self.start_authenticate(credential, app, challenge, on_pending)
        return await pending.result()

    async def broadcast(
        self,
        credential: SessionCredential,
        key_type: str,
        operations: list[Any],
        on_pending: PendingCallback | None = None,
    ) -> AckResult:
        """Sign and broadcast operations and wait for approval."""
        pending = await self.start_broadcast(credential, key_type, operations, on_pending)
        return await pending.result()

    async def challenge(
        self,
        credential: SessionCredential,
        challenge: ChallengeDescriptor,
        on_pending: PendingCallback | None = None,
    ) -> AckResult:
        """Sign a challenge and wait for approval."""
        pending = await self.start_challenge(credential, challenge, on_pending)
        return await pending.result()

    def _flow_options(self) -> dict[str, Any]:
        return {
            "poll_interval": self.config.poll_interval,
            "service_mode": self.service_mode,
            "host": self.config.host,
            "clock": self._clock,
        }

    async def _start(self, flow: CorrelatedRequestFlow) -> PendingRequest:
        if not await self.connect():
            raise ConnectivityError(f"could not connect to {self.config.host}")
        # Latest timeout announced by the relay, if any
        flow.timeout_ms = self.info.timeout_ms(self.config.request_timeout_ms)
        await flow.send()
        return PendingRequest(flow)

    async def _send(self, message: dict[str, Any]) -> None:
        if self.trace:
            trace_logger.info(f"[SEND] {message}")
        try:
            await self.transport.send(message)
        except TransportError as e:
            raise ConnectivityError(str(e)) from e

    async def _receive_loop(self) -> None:
        """Background task feeding pushed messages to the classifier."""
        try:
            async for message in self.transport.receive():
                if self.trace:
                    trace_logger.info(f"[RECV] {message}")
                try:
                    self.classifier.classify(message)
                except Exception as e:
                    logger.error(f"Error handling message: {e}")
        except asyncio.CancelledError:
            pass
        except TransportError as e:
            logger.error(f"Receive loop error: {e}")
        finally:
            # A loop outlived by a reconnect must not touch the new connection
            if self._receive_task is asyncio.current_task():
                self._mark_disconnected()

    def _on_transport_event(self, event: TransportEvent) -> None:
        if event.type is TransportEventType.DISCONNECTED:
            self._mark_disconnected()

    def _mark_disconnected(self) -> None:
        if self._state.state is ConnectionState.CONNECTED:
            self._state.transition(ConnectionState.DISCONNECTED)
            # The next connection gets a fresh handshake
            self.info.reset()
            logger.info(f"Disconnected from {self.config.host}")

    async def __aenter__(self) -> "HASClient":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
