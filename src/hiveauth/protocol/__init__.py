"""
HAS Protocol Core.

Buffers pushed relay messages, correlates them with outstanding requests,
and drives each request through its confirm/terminate state machine.
"""

from hiveauth.protocol.messages import (
    Command,
    ProtocolMessage,
    OutboundRequest,
)
from hiveauth.protocol.errors import (
    HASError,
    ValidationError,
    ConnectivityError,
    ProtocolRejection,
    ProtocolError,
    ExpirationError,
    VALIDATION_FAILED,
    NOT_CONNECTED,
    REQUEST_REJECTED,
    REQUEST_FAILED,
    REQUEST_EXPIRED,
)
from hiveauth.protocol.state import (
    ConnectionState,
    ConnectionInfo,
    FlowPhase,
    InvalidStateTransition,
)
from hiveauth.protocol.credentials import (
    SessionCredential,
    AppDescriptor,
    ChallengeDescriptor,
)
from hiveauth.protocol.store import PendingMessageStore
from hiveauth.protocol.classifier import InboundClassifier
from hiveauth.protocol.flow import (
    FlowFamily,
    AUTH,
    SIGN,
    CHALLENGE,
    CorrelatedRequestFlow,
    AuthenticateFlow,
    PendingConfirmation,
    AckResult,
)
from hiveauth.protocol.client import HASClient, PendingRequest, ClientStatus

__all__ = [
    # Messages
    "Command",
    "ProtocolMessage",
    "OutboundRequest",
    # Errors
    "HASError",
    "ValidationError",
    "ConnectivityError",
    "ProtocolRejection",
    "ProtocolError",
    "ExpirationError",
    "VALIDATION_FAILED",
    "NOT_CONNECTED",
    "REQUEST_REJECTED",
    "REQUEST_FAILED",
    "REQUEST_EXPIRED",
    # State
    "ConnectionState",
    "ConnectionInfo",
    "FlowPhase",
    "InvalidStateTransition",
    # Credentials
    "SessionCredential",
    "AppDescriptor",
    "ChallengeDescriptor",
    # Correlation
    "PendingMessageStore",
    "InboundClassifier",
    "FlowFamily",
    "AUTH",
    "SIGN",
    "CHALLENGE",
    "CorrelatedRequestFlow",
    "AuthenticateFlow",
    "PendingConfirmation",
    "AckResult",
    # Client
    "HASClient",
    "PendingRequest",
    "ClientStatus",
]
