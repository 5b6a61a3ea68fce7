"""
Correlated request flows.

A flow owns one request from the moment it is sent until a terminal
outcome. It first waits for the relay's ``*_wait`` confirmation, which
carries the correlation id (``uuid``) and the authoritative deadline, then
waits for the ``*_ack``, ``*_nack`` or ``*_err`` reply carrying that id.

Replies are matched through the shared PendingMessageStore, so any number
of flows can run concurrently over one connection.
"""

from __future__ import annotations

import asyncio
import base64
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from hiveauth.crypto import envelope
from hiveauth.crypto.envelope import DecodeAnomaly
from hiveauth.crypto.keys import ServiceMode
from hiveauth.lib import oj
from hiveauth.lib.clock import Clock, now_ms
from hiveauth.protocol.credentials import SessionCredential
from hiveauth.protocol.errors import (
    ExpirationError,
    HASError,
    ProtocolError,
    ProtocolRejection,
)
from hiveauth.protocol.messages import Command, OutboundRequest, ProtocolMessage
from hiveauth.protocol.state import FlowPhase, FlowStateMachine
from hiveauth.protocol.store import PendingMessageStore

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.25

SendFunc = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class FlowFamily:
    """The commands and decoding rules of one request type."""

    name: str
    request: Command
    wait: Command
    ack: Command
    nack: Command
    err: Command
    decrypt_ack: bool = True
    """Whether ack data is encrypted under the session key."""
    verify_nack: bool = True
    """Whether a nack must prove itself by decrypting to the correlation id."""


AUTH = FlowFamily(
    name="auth",
    request=Command.AUTH_REQ,
    wait=Command.AUTH_WAIT,
    ack=Command.AUTH_ACK,
    nack=Command.AUTH_NACK,
    err=Command.AUTH_ERR,
)

SIGN = FlowFamily(
    name="sign",
    request=Command.SIGN_REQ,
    wait=Command.SIGN_WAIT,
    ack=Command.SIGN_ACK,
    nack=Command.SIGN_NACK,
    err=Command.SIGN_ERR,
    decrypt_ack=False,
)

CHALLENGE = FlowFamily(
    name="challenge",
    request=Command.CHALLENGE_REQ,
    wait=Command.CHALLENGE_WAIT,
    ack=Command.CHALLENGE_ACK,
    nack=Command.CHALLENGE_NACK,
    err=Command.CHALLENGE_ERR,
)


@dataclass
class PendingConfirmation:
    """The relay accepted a request and forwarded it to the signer app."""

    kind: Command
    correlation_id: str
    expire: int | None
    account: str
    message: ProtocolMessage
    key: str | None = None
    """Session key, only exposed for authentication requests."""
    host: str | None = None

    def auth_payload_uri(self) -> str:
        """
        Build the ``has://auth_req/...`` link a wallet scans to pick up the
        session key.

        Raises:
            ValueError: If this is not an authentication confirmation.
        """
        if self.kind is not Command.AUTH_WAIT or self.key is None:
            raise ValueError("auth payload is only available for auth_wait")
        payload: dict[str, Any] = {
            "account": self.account,
            "uuid": self.correlation_id,
            "key": self.key,
        }
        if self.host is not None:
            payload["host"] = self.host
        encoded = base64.b64encode(oj.dumps(payload).encode("utf-8")).decode("ascii")
        return f"has://auth_req/{encoded}"


@dataclass
class AckResult:
    """A request approved by the signer."""

    kind: Command
    correlation_id: str
    data: Any
    message: ProtocolMessage
    credential: SessionCredential | None = None
    """Updated credential, for authentication requests."""


PendingCallback = Callable[[PendingConfirmation], Any]


class CorrelatedRequestFlow:
    """
    One request driven through SENT -> CONFIRMED -> TERMINAL.

    Expiry is checked at the top of every tick, so a reply that arrives
    after the deadline never wins. Replies that fail to decrypt under the
    session key are discarded and the flow keeps waiting: stale or foreign
    pushes are normal on a shared channel.
    """

    def __init__(
        self,
        family: FlowFamily,
        store: PendingMessageStore,
        send: SendFunc,
        account: str,
        session_key: str,
        payload: dict[str, Any],
        token: str | None = None,
        timeout_ms: float = 60 * 1000,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        service_mode: ServiceMode | None = None,
        on_pending: PendingCallback | None = None,
        host: str | None = None,
        clock: Clock = now_ms,
    ):
        self.family = family
        self.store = store
        self.account = account
        self.session_key = session_key
        self.payload = payload
        self.token = token
        self.timeout_ms = timeout_ms
        self.poll_interval = poll_interval
        self.service_mode = service_mode
        self.on_pending = on_pending
        self.host = host

        self._send = send
        self._clock = clock
        self._state = FlowStateMachine()
        self._correlation_id: str | None = None
        self._deadline: float | None = None
        self._result: AckResult | None = None
        self._error: HASError | None = None
        self._callback_tasks: set[asyncio.Future] = set()
        self._confirmation: asyncio.Future[PendingConfirmation] = (
            asyncio.get_running_loop().create_future()
        )
        # Observing the confirmation is optional
        self._confirmation.add_done_callback(_consume_exception)

    @property
    def phase(self) -> FlowPhase:
        return self._state.state

    @property
    def correlation_id(self) -> str | None:
        return self._correlation_id

    @property
    def deadline(self) -> float | None:
        """Absolute deadline in epoch milliseconds, set once sent."""
        return self._deadline

    @property
    def confirmation(self) -> asyncio.Future[PendingConfirmation]:
        """Resolves on the ``*_wait`` confirmation, fails if none arrives."""
        return self._confirmation

    def build_request(self) -> OutboundRequest:
        """Encrypt the payload and compose the outbound request."""
        request = OutboundRequest(
            cmd=self.family.request,
            account=self.account,
            token=self.token,
            data=envelope.encrypt_json(self.payload, self.session_key),
        )
        if self.service_mode is not None:
            request.auth_key = self.service_mode.wrap(self.session_key)
        return request

    async def send(self) -> None:
        """Send the request and start the provisional deadline."""
        request = self.build_request()
        await self._send(request.to_dict())
        self._deadline = self._clock() + self.timeout_ms
        logger.debug(f"Sent {request}, deadline in {self.timeout_ms}ms")

    async def run(self) -> AckResult:
        """Send the request and wait for its outcome."""
        try:
            await self.send()
        except BaseException as e:
            self._fail_confirmation(e)
            raise
        return await self.wait()

    async def wait(self) -> AckResult:
        """
        Wait for the outcome of a sent request.

        Returns:
            The approved result.

        Raises:
            ProtocolRejection: The signer rejected the request.
            ProtocolError: The signer reported an error.
            ExpirationError: No terminal reply before the deadline.
        """
        if self._deadline is None:
            raise RuntimeError("Request has not been sent")

        try:
            while True:
                result = self.tick()
                if result is not None:
                    return result
                remaining = (self._deadline - self._clock()) / 1000
                await self.store.wait_for_push(min(self.poll_interval, remaining))
        except BaseException as e:
            self._fail_confirmation(e)
            raise

    def _fail_confirmation(self, error: BaseException) -> None:
        if self._confirmation.done():
            return
        if isinstance(error, Exception):
            self._confirmation.set_exception(error)
        else:
            self._confirmation.cancel()

    def tick(self) -> AckResult | None:
        """
        Advance the flow by one step.

        Returns:
            The result once approved, None while still waiting.
        """
        if self._state.is_terminal:
            if self._error is not None:
                raise self._error
            return self._result

        if self._deadline is not None and self._clock() >= self._deadline:
            phase = self.phase
            logger.info(f"{self.family.name} request {self._correlation_id} expired in {phase}")
            self._fail(ExpirationError(phase.name.lower(), self._correlation_id))

        if self.phase is FlowPhase.SENT:
            wait = self.store.query(self.family.wait)
            if wait is not None:
                self._confirm(wait)

        if self.phase is FlowPhase.CONFIRMED:
            return self._check_replies()

        return None

    def _confirm(self, wait: ProtocolMessage) -> None:
        if wait.correlation_id is None:
            logger.warning(f"Ignoring {wait.kind} without uuid")
            return

        self._correlation_id = wait.correlation_id
        if wait.expire is not None:
            # The relay's deadline supersedes the provisional one
            self._deadline = wait.expire
        self._state.transition(FlowPhase.CONFIRMED)
        logger.debug(f"{wait.kind} found: {wait}")

        confirmation = PendingConfirmation(
            kind=wait.kind,
            correlation_id=wait.correlation_id,
            expire=wait.expire,
            account=self.account,
            message=wait,
            key=self.session_key if self.family is AUTH else None,
            host=self.host,
        )
        if not self._confirmation.done():
            self._confirmation.set_result(confirmation)
        self._notify_pending(confirmation)

    def _notify_pending(self, confirmation: PendingConfirmation) -> None:
        if self.on_pending is None:
            return
        try:
            outcome = self.on_pending(confirmation)
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._callback_tasks.add(task)
                task.add_done_callback(self._callback_tasks.discard)
        except Exception:
            logger.exception(f"on_pending callback failed for {confirmation.kind}")

    def _check_replies(self) -> AckResult | None:
        cid = self._correlation_id

        ack = self.store.query(self.family.ack, cid)
        if ack is not None:
            try:
                result = self.decode_ack(ack)
            except DecodeAnomaly as e:
                logger.warning(f"Discarding undecodable {ack.kind} for {cid}: {e}")
            else:
                self._state.transition(FlowPhase.TERMINAL)
                self._result = result
                logger.debug(f"{ack.kind} found: {ack}")
                return result

        nack = self.store.query(self.family.nack, cid)
        if nack is not None:
            if self.family.verify_nack and not self._verify_nack(nack):
                logger.warning(f"Discarding unverified {nack.kind} for {cid}")
            else:
                self._fail(ProtocolRejection(nack))

        err = self.store.query(self.family.err, cid)
        if err is not None:
            try:
                error_text = envelope.decrypt(err.error, self.session_key)
            except DecodeAnomaly as e:
                logger.warning(f"Discarding undecodable {err.kind} for {cid}: {e}")
            else:
                self._fail(ProtocolError(error_text, err))

        return None

    def _fail(self, error: HASError) -> None:
        self._state.transition(FlowPhase.TERMINAL)
        self._error = error
        raise error

    def _verify_nack(self, nack: ProtocolMessage) -> bool:
        try:
            return envelope.decrypt(nack.data, self.session_key) == self._correlation_id
        except DecodeAnomaly:
            return False

    def decode_ack(self, ack: ProtocolMessage) -> AckResult:
        """
        Turn an ack into a result.

        Raises:
            DecodeAnomaly: If the ack does not decode under the session key.
        """
        data = ack.data
        if self.family.decrypt_ack:
            data = envelope.decrypt_json(data, self.session_key)
        return AckResult(
            kind=ack.kind,
            correlation_id=ack.correlation_id,
            data=data,
            message=ack,
        )


class AuthenticateFlow(CorrelatedRequestFlow):
    """Authentication: the ack carries the new token for the session key."""

    def __init__(self, *args: Any, credential: SessionCredential, **kwargs: Any):
        super().__init__(AUTH, *args, **kwargs)
        self.credential = credential

    def decode_ack(self, ack: ProtocolMessage) -> AckResult:
        result = super().decode_ack(ack)
        data = result.data
        if not isinstance(data, dict) or not isinstance(data.get("token"), str):
            raise envelope.WrongKey("auth_ack payload carries no token")

        result.credential = SessionCredential(
            username=self.credential.username,
            token=data["token"],
            expire=data.get("expire"),
            key=self.session_key,
        )
        return result


def _consume_exception(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()
