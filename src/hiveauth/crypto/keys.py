"""Session key derivation and service-mode key wrapping."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from hiveauth.crypto import envelope

if TYPE_CHECKING:
    from hiveauth.protocol.credentials import SessionCredential

logger = logging.getLogger(__name__)


def generate_key() -> str:
    """Generate a fresh session key (UUID4 string, drawn from the OS CSPRNG)."""
    return str(uuid.uuid4())


def derive_key(credential: "SessionCredential") -> str:
    """
    Return the session key to use for a request.

    Reuses the key of a previously authenticated credential so sign and
    challenge requests travel over the channel set up during authentication.

    Args:
        credential: The caller's credential.

    Returns:
        The existing key, or a newly generated one.
    """
    if credential.key:
        return credential.key
    return generate_key()


class ServiceMode:
    """
    Opt-in service mode.

    In service mode every request carries the session key wrapped under a
    secret shared with a signer app running as a service, so that signer can
    pick up the key without reading it from a QR code. Only enable this
    against a signer you operate yourself.
    """

    def __init__(self, auth_key_secret: str):
        if not isinstance(auth_key_secret, str) or not auth_key_secret:
            raise ValueError("auth_key_secret must be a non-empty string")
        self._secret = auth_key_secret
        logger.warning(
            "Service mode enabled: session keys will be sent to the relay "
            "wrapped under a pre-shared secret. Only use this with a signer "
            "you run in service mode."
        )

    def wrap(self, session_key: str) -> str:
        """Encrypt the session key under the pre-shared secret."""
        return envelope.encrypt(session_key, self._secret)

    def __repr__(self) -> str:
        return "ServiceMode(auth_key_secret=<hidden>)"
