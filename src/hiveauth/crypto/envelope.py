"""
Passphrase-keyed AES envelopes.

Envelopes use the OpenSSL ``enc`` / CryptoJS passphrase format understood by
the signer apps::

    base64("Salted__" || salt[8] || AES-256-CBC(PKCS#7(plaintext)))

The AES key and IV are derived from the passphrase and salt with
``EVP_BytesToKey`` (MD5, one iteration).
"""

from __future__ import annotations

import base64
import binascii
import os
from typing import Any

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from hiveauth.lib import oj

SALT_HEADER = b"Salted__"
SALT_SIZE = 8
KEY_SIZE = 32
IV_SIZE = 16
BLOCK_SIZE = 16


class DecodeAnomaly(Exception):
    """An envelope could not be opened."""


class MalformedEnvelope(DecodeAnomaly):
    """The envelope is not in the salted passphrase format."""


class WrongKey(DecodeAnomaly):
    """The envelope is well formed but does not open under the given key."""


def _md5(data: bytes) -> bytes:
    digest = hashes.Hash(hashes.MD5())
    digest.update(data)
    return digest.finalize()


def derive_key_iv(passphrase: bytes, salt: bytes) -> tuple[bytes, bytes]:
    """
    OpenSSL EVP_BytesToKey with MD5 and a single iteration.

    Args:
        passphrase: Passphrase bytes.
        salt: 8-byte salt.

    Returns:
        (key, iv) sized for AES-256-CBC.
    """
    derived = b""
    block = b""
    while len(derived) < KEY_SIZE + IV_SIZE:
        block = _md5(block + passphrase + salt)
        derived += block
    return derived[:KEY_SIZE], derived[KEY_SIZE:KEY_SIZE + IV_SIZE]


def encrypt(plaintext: str, passphrase: str) -> str:
    """
    Encrypt plaintext under a passphrase.

    Args:
        plaintext: Text to protect.
        passphrase: Shared passphrase (the session key).

    Returns:
        Base64 envelope string.
    """
    salt = os.urandom(SALT_SIZE)
    key, iv = derive_key_iv(passphrase.encode("utf-8"), salt)

    padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    return base64.b64encode(SALT_HEADER + salt + ciphertext).decode("ascii")


def decrypt(envelope: str, passphrase: str) -> str:
    """
    Open an envelope produced by encrypt() or by a signer app.

    Args:
        envelope: Base64 envelope string.
        passphrase: Shared passphrase (the session key).

    Returns:
        The decrypted plaintext.

    Raises:
        MalformedEnvelope: If the envelope is not in the expected format.
        WrongKey: If the envelope does not open under passphrase.
    """
    if not isinstance(envelope, str) or not envelope:
        raise MalformedEnvelope("Envelope must be a non-empty string")

    try:
        raw = base64.b64decode(envelope, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedEnvelope(f"Envelope is not valid base64: {e}") from e

    header_size = len(SALT_HEADER) + SALT_SIZE
    if not raw.startswith(SALT_HEADER) or len(raw) <= header_size:
        raise MalformedEnvelope("Envelope is missing the salt header")

    ciphertext = raw[header_size:]
    if len(ciphertext) % BLOCK_SIZE:
        raise MalformedEnvelope("Ciphertext is not a whole number of blocks")

    key, iv = derive_key_iv(passphrase.encode("utf-8"), raw[len(SALT_HEADER):header_size])
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    try:
        unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
        data = unpadder.update(padded) + unpadder.finalize()
        return data.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        raise WrongKey("Envelope does not open under this key") from e


def encrypt_json(obj: Any, passphrase: str) -> str:
    """Serialize obj to JSON and encrypt it."""
    return encrypt(oj.dumps(obj), passphrase)


def decrypt_json(envelope: str, passphrase: str) -> Any:
    """
    Decrypt an envelope and parse its JSON content.

    A parse failure is reported as WrongKey: garbage that happens to unpad
    cleanly under a foreign key looks exactly like this.
    """
    text = decrypt(envelope, passphrase)
    try:
        return oj.loads(text)
    except oj.JSONDecodeError as e:
        raise WrongKey("Envelope content is not valid JSON") from e
