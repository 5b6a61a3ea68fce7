"""Routing of pushed relay messages."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from hiveauth.lib.clock import Clock, now_ms
from hiveauth.protocol.messages import CORRELATED_COMMANDS, Command, ProtocolMessage
from hiveauth.protocol.state import ConnectionInfo
from hiveauth.protocol.store import PendingMessageStore

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOL = 0.7
DEFAULT_TIMEOUT_MS = 60 * 1000


class InboundClassifier:
    """
    Sorts every pushed message into handshake, correlatable, or ignored.

    The ``connected`` handshake updates the connection info. Wait, ack,
    nack and err replies plus generic errors go verbatim into the pending
    store. Anything else is dropped so newer relays can add commands.
    Payloads are never decrypted here.
    """

    def __init__(
        self,
        store: PendingMessageStore,
        info: ConnectionInfo,
        supported_protocol: float = SUPPORTED_PROTOCOL,
        default_timeout_ms: float = DEFAULT_TIMEOUT_MS,
        clock: Clock = now_ms,
    ):
        self.store = store
        self.info = info
        self.supported_protocol = supported_protocol
        self.default_timeout_ms = default_timeout_ms
        self._clock = clock

    def classify(self, message: dict[str, Any]) -> ProtocolMessage | None:
        """
        Route one decoded message.

        Args:
            message: The pushed message dict.

        Returns:
            The stored message, or None if nothing was stored.
        """
        kind = Command.parse(message.get("cmd"))

        if kind is Command.CONNECTED:
            self._handle_handshake(message)
            return None

        if kind not in CORRELATED_COMMANDS:
            logger.debug(f"Ignoring message with cmd={message.get('cmd')!r}")
            return None

        stored = ProtocolMessage.from_dict(message, kind=kind)
        if stored.expire is None:
            ttl = self.info.timeout_ms(self.default_timeout_ms)
            stored = replace(stored, expire=int(self._clock() + ttl))

        if kind is Command.ERROR:
            logger.warning(f"Relay reported an error: {stored.error!r}")

        self.store.push(stored)
        return stored

    def _handle_handshake(self, message: dict[str, Any]) -> None:
        timeout = message.get("timeout")
        if isinstance(timeout, (int, float)) and timeout > 0:
            self.info.server_timeout_ms = timeout * 1000
        else:
            logger.debug(f"Handshake without usable timeout: {timeout!r}")

        protocol = message.get("protocol")
        if isinstance(protocol, (int, float)):
            self.info.server_protocol = protocol
            if protocol > self.supported_protocol:
                logger.warning(
                    f"Unsupported HAS protocol {protocol} "
                    f"(client supports {self.supported_protocol})"
                )

        logger.info(
            f"Relay handshake: timeout={self.info.server_timeout_ms}ms "
            f"protocol={self.info.server_protocol}"
        )
