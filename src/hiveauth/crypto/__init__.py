"""
Payload encryption.

Envelope codec shared with the signer apps, and session key management.
"""

from hiveauth.crypto.envelope import (
    DecodeAnomaly,
    MalformedEnvelope,
    WrongKey,
    encrypt,
    decrypt,
    encrypt_json,
    decrypt_json,
)
from hiveauth.crypto.keys import ServiceMode, derive_key, generate_key

__all__ = [
    "DecodeAnomaly",
    "MalformedEnvelope",
    "WrongKey",
    "encrypt",
    "decrypt",
    "encrypt_json",
    "decrypt_json",
    "ServiceMode",
    "derive_key",
    "generate_key",
]
