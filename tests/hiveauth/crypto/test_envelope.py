"""Tests for the passphrase envelope codec."""

import base64
import hashlib

import pytest

from hiveauth.crypto import envelope
from hiveauth.crypto.envelope import (
    DecodeAnomaly,
    MalformedEnvelope,
    WrongKey,
    derive_key_iv,
)

KEY = "5f0c2e36-7a43-4e93-9f57-2d8a1c0b6e11"


class TestKeyDerivation:
    """Tests for EVP_BytesToKey."""

    def test_sizes(self):
        key, iv = derive_key_iv(b"secret", b"saltsalt")
        assert len(key) == 32
        assert len(iv) == 16

    def test_deterministic(self):
        assert derive_key_iv(b"secret", b"saltsalt") == derive_key_iv(b"secret", b"saltsalt")

    def test_salt_changes_output(self):
        assert derive_key_iv(b"secret", b"saltsalt") != derive_key_iv(b"secret", b"SALTSALT")

    def test_matches_openssl_construction(self):
        passphrase, salt = b"password", bytes(range(8))
        d1 = hashlib.md5(passphrase + salt).digest()
        d2 = hashlib.md5(d1 + passphrase + salt).digest()
        d3 = hashlib.md5(d2 + passphrase + salt).digest()
        key, iv = derive_key_iv(passphrase, salt)
        assert key == d1 + d2
        assert iv == d3


class TestEnvelope:
    """Tests for encrypt/decrypt."""

    def test_round_trip(self):
        sealed = envelope.encrypt("hello signer", KEY)
        assert envelope.decrypt(sealed, KEY) == "hello signer"

    def test_round_trip_unicode(self):
        text = "héllo ✓ 署名"
        assert envelope.decrypt(envelope.encrypt(text, KEY), KEY) == text

    def test_salted_format(self):
        raw = base64.b64decode(envelope.encrypt("x", KEY))
        assert raw.startswith(b"Salted__")
        assert (len(raw) - 16) % 16 == 0

    def test_random_salt(self):
        assert envelope.encrypt("same", KEY) != envelope.encrypt("same", KEY)

    def test_block_aligned_plaintext(self):
        text = "a" * 32
        assert envelope.decrypt(envelope.encrypt(text, KEY), KEY) == text

    def test_wrong_key_never_returns_plaintext(self):
        sealed = envelope.encrypt("the-correlation-id", KEY)
        for other in ("other-key", "", KEY.upper(), KEY + "x"):
            try:
                opened = envelope.decrypt(sealed, other)
            except WrongKey:
                continue
            assert opened != "the-correlation-id"

    def test_not_base64(self):
        with pytest.raises(MalformedEnvelope):
            envelope.decrypt("not base64 !!", KEY)

    def test_missing_header(self):
        bogus = base64.b64encode(b"NotSalted" + bytes(23)).decode()
        with pytest.raises(MalformedEnvelope):
            envelope.decrypt(bogus, KEY)

    def test_partial_block(self):
        bogus = base64.b64encode(b"Salted__" + bytes(8) + bytes(15)).decode()
        with pytest.raises(MalformedEnvelope):
            envelope.decrypt(bogus, KEY)

    def test_empty_and_none(self):
        with pytest.raises(MalformedEnvelope):
            envelope.decrypt("", KEY)
        with pytest.raises(MalformedEnvelope):
            envelope.decrypt(None, KEY)

    def test_anomalies_share_a_base(self):
        assert issubclass(WrongKey, DecodeAnomaly)
        assert issubclass(MalformedEnvelope, DecodeAnomaly)


class TestJsonEnvelope:
    """Tests for the JSON helpers."""

    def test_round_trip(self):
        payload = {"token": "T1", "expire": 1999999, "nested": {"ops": [1, 2]}}
        assert envelope.decrypt_json(envelope.encrypt_json(payload, KEY), KEY) == payload

    def test_non_json_content_is_wrong_key(self):
        sealed = envelope.encrypt("not json", KEY)
        with pytest.raises(WrongKey):
            envelope.decrypt_json(sealed, KEY)
