"""HAS wire message types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Command(str, Enum):
    """Values of the ``cmd`` field exchanged with the relay."""

    CONNECTED = "connected"
    AUTH_REQ = "auth_req"
    AUTH_WAIT = "auth_wait"
    AUTH_ACK = "auth_ack"
    AUTH_NACK = "auth_nack"
    AUTH_ERR = "auth_err"
    SIGN_REQ = "sign_req"
    SIGN_WAIT = "sign_wait"
    SIGN_ACK = "sign_ack"
    SIGN_NACK = "sign_nack"
    SIGN_ERR = "sign_err"
    CHALLENGE_REQ = "challenge_req"
    CHALLENGE_WAIT = "challenge_wait"
    CHALLENGE_ACK = "challenge_ack"
    CHALLENGE_NACK = "challenge_nack"
    CHALLENGE_ERR = "challenge_err"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> "Command | None":
        """Map a raw ``cmd`` value to a Command, None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


# Inbound kinds that are buffered for correlation
CORRELATED_COMMANDS = frozenset({
    Command.AUTH_WAIT,
    Command.AUTH_ACK,
    Command.AUTH_NACK,
    Command.AUTH_ERR,
    Command.SIGN_WAIT,
    Command.SIGN_ACK,
    Command.SIGN_NACK,
    Command.SIGN_ERR,
    Command.CHALLENGE_WAIT,
    Command.CHALLENGE_ACK,
    Command.CHALLENGE_NACK,
    Command.CHALLENGE_ERR,
    Command.ERROR,
})


@dataclass(frozen=True)
class ProtocolMessage:
    """
    An inbound message pushed by the relay.

    Instances are immutable; ``data`` and ``error`` stay encrypted until a
    flow decodes them.
    """

    kind: Command
    correlation_id: str | None = None
    expire: int | None = None
    """Absolute expiry in epoch milliseconds."""
    data: Any = None
    error: Any = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def is_expired(self, now_ms: float) -> bool:
        """Check whether the message is past its expiry."""
        return self.expire is not None and self.expire < now_ms

    @classmethod
    def from_dict(cls, data: dict[str, Any], kind: Command | None = None) -> "ProtocolMessage":
        """
        Create from a decoded wire message.

        Raises:
            ValueError: If ``cmd`` is not a known command.
        """
        if kind is None:
            kind = Command.parse(data.get("cmd"))
            if kind is None:
                raise ValueError(f"Unknown command: {data.get('cmd')!r}")

        expire = data.get("expire")
        if not isinstance(expire, (int, float)) or isinstance(expire, bool):
            expire = None

        correlation_id = data.get("uuid")
        return cls(
            kind=kind,
            correlation_id=str(correlation_id) if correlation_id is not None else None,
            expire=int(expire) if expire is not None else None,
            data=data.get("data"),
            error=data.get("error"),
            raw=dict(data),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert back to wire format."""
        msg: dict[str, Any] = dict(self.raw)
        msg["cmd"] = self.kind.value
        if self.correlation_id is not None:
            msg["uuid"] = self.correlation_id
        if self.expire is not None:
            msg["expire"] = self.expire
        if self.data is not None:
            msg["data"] = self.data
        if self.error is not None:
            msg["error"] = self.error
        return msg

    def __str__(self) -> str:
        return f"Message({self.kind}, uuid={self.correlation_id})"


@dataclass
class OutboundRequest:
    """A request sent to the relay on behalf of an account."""

    cmd: Command
    account: str
    data: str
    """Payload encrypted under the session key."""
    token: str | None = None
    auth_key: str | None = None
    """Session key wrapped under the service-mode secret."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        msg: dict[str, Any] = {
            "cmd": self.cmd.value,
            "account": self.account,
            "data": self.data,
        }
        if self.token is not None:
            msg["token"] = self.token
        if self.auth_key is not None:
            msg["auth_key"] = self.auth_key
        return msg

    def __str__(self) -> str:
        return f"Request({self.cmd}, account={self.account})"
