"""
HiveAuth Services (HAS) client.

Obtains authentication tokens and signatures from a signer app the client
does not control, through the HAS relay, without private keys ever leaving
the signer. Payloads are encrypted end to end under a per-session key the
relay never sees.

Submodules:
- transport: WebSocket connection to the relay
- protocol: message correlation, request flows and the client
- crypto: payload envelopes and session keys
- config: client settings
"""

# Transport layer
from hiveauth.transport import (
    WebSocketTransport,
    TransportConfig,
    Transport,
    TransportError,
)

# Protocol layer
from hiveauth.protocol import (
    HASClient,
    PendingRequest,
    ClientStatus,
    SessionCredential,
    AppDescriptor,
    ChallengeDescriptor,
    AckResult,
    PendingConfirmation,
    Command,
    ProtocolMessage,
    HASError,
    ValidationError,
    ConnectivityError,
    ProtocolRejection,
    ProtocolError,
    ExpirationError,
)

# Crypto
from hiveauth.crypto import ServiceMode, DecodeAnomaly

# Config
from hiveauth.config import HASConfig, load_config

__all__ = [
    # Transport
    "WebSocketTransport",
    "TransportConfig",
    "Transport",
    "TransportError",
    # Protocol
    "HASClient",
    "PendingRequest",
    "ClientStatus",
    "SessionCredential",
    "AppDescriptor",
    "ChallengeDescriptor",
    "AckResult",
    "PendingConfirmation",
    "Command",
    "ProtocolMessage",
    # Errors
    "HASError",
    "ValidationError",
    "ConnectivityError",
    "ProtocolRejection",
    "ProtocolError",
    "ExpirationError",
    "DecodeAnomaly",
    # Crypto
    "ServiceMode",
    # Config
    "HASConfig",
    "load_config",
]
