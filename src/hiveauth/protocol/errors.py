"""Protocol error types and error codes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hiveauth.protocol.messages import ProtocolMessage

VALIDATION_FAILED = 1001
NOT_CONNECTED = 1002
REQUEST_REJECTED = 1003
REQUEST_FAILED = 1004
REQUEST_EXPIRED = 1005

# Error code to message mapping
ERROR_MESSAGES = {
    VALIDATION_FAILED: "Validation failed",
    NOT_CONNECTED: "Not connected to server",
    REQUEST_REJECTED: "Request rejected",
    REQUEST_FAILED: "Request failed",
    REQUEST_EXPIRED: "Request expired",
}


@dataclass
class HASError(Exception):
    """
    Base error surfaced by client operations.

    Carries a numeric code so callers can branch without isinstance checks,
    and optional structured data.
    """

    code: int
    message: str
    data: dict[str, Any] | None = None

    def __post_init__(self):
        # Set exception message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict."""
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.data is not None:
            error["data"] = self.data
        return error

    def __str__(self) -> str:
        base = f"{type(self).__name__}({self.code}): {self.message}"
        if self.data:
            base += f" {self.data}"
        return base

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code}, message={self.message!r}, data={self.data})"


class ValidationError(HASError):
    """A required field is missing or malformed. Nothing was sent."""

    def __init__(self, details: str):
        super().__init__(VALIDATION_FAILED, details, {"details": details})


class ConnectivityError(HASError):
    """The relay connection could not be established."""

    def __init__(self, details: str | None = None):
        super().__init__(
            NOT_CONNECTED,
            ERROR_MESSAGES[NOT_CONNECTED],
            {"details": details} if details else None,
        )


class ProtocolRejection(HASError):
    """The signer explicitly rejected the request."""

    def __init__(self, reply: "ProtocolMessage"):
        self.reply = reply
        super().__init__(
            REQUEST_REJECTED,
            f"{ERROR_MESSAGES[REQUEST_REJECTED]}: {reply.kind}",
            {"cmd": reply.kind.value, "uuid": reply.correlation_id},
        )


class ProtocolError(HASError):
    """The signer reported an error; ``message`` is the decrypted error text."""

    def __init__(self, error_text: str, reply: "ProtocolMessage"):
        self.reply = reply
        super().__init__(
            REQUEST_FAILED,
            error_text,
            {"cmd": reply.kind.value, "uuid": reply.correlation_id},
        )


class ExpirationError(HASError):
    """The deadline passed before a terminal reply arrived."""

    def __init__(self, phase: str, correlation_id: str | None = None):
        super().__init__(
            REQUEST_EXPIRED,
            "expired",
            {"phase": phase, "uuid": correlation_id},
        )
