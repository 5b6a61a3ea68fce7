"""Tests for inbound message routing."""

import logging

import pytest

from hiveauth.protocol.classifier import InboundClassifier
from hiveauth.protocol.messages import CORRELATED_COMMANDS, Command
from hiveauth.protocol.state import ConnectionInfo
from hiveauth.protocol.store import PendingMessageStore


@pytest.fixture
def store(fake_clock):
    return PendingMessageStore(clock=fake_clock)


@pytest.fixture
def info():
    return ConnectionInfo()


@pytest.fixture
def classifier(store, info, fake_clock):
    return InboundClassifier(store, info, default_timeout_ms=60_000, clock=fake_clock)


class TestHandshake:
    """Tests for the connected handshake."""

    def test_updates_timeout(self, classifier, info, store):
        assert classifier.classify({"cmd": "connected", "timeout": 30, "protocol": 0.7}) is None
        assert info.server_timeout_ms == 30_000
        assert info.server_protocol == 0.7
        assert len(store) == 0

    def test_newer_protocol_warns(self, classifier, info, caplog):
        with caplog.at_level(logging.WARNING, logger="hiveauth.protocol.classifier"):
            classifier.classify({"cmd": "connected", "timeout": 60, "protocol": 1.0})
        assert "Unsupported HAS protocol" in caplog.text
        assert info.server_timeout_ms == 60_000

    def test_supported_protocol_does_not_warn(self, classifier, caplog):
        with caplog.at_level(logging.WARNING, logger="hiveauth.protocol.classifier"):
            classifier.classify({"cmd": "connected", "timeout": 60, "protocol": 0.5})
        assert "Unsupported" not in caplog.text

    def test_missing_timeout_keeps_default(self, classifier, info):
        classifier.classify({"cmd": "connected"})
        assert info.server_timeout_ms is None
        assert info.timeout_ms(60_000) == 60_000


class TestRouting:
    """Tests for correlatable and unknown messages."""

    @pytest.mark.parametrize("cmd", sorted(c.value for c in CORRELATED_COMMANDS))
    def test_correlated_kinds_are_stored(self, classifier, store, cmd):
        stored = classifier.classify({"cmd": cmd, "uuid": "abc", "expire": 2_000_000_000_000})
        assert stored is not None
        assert stored.kind == Command(cmd)
        assert len(store) == 1

    def test_twelve_reply_kinds_plus_error(self):
        assert len(CORRELATED_COMMANDS) == 13

    @pytest.mark.parametrize("message", [
        {"cmd": "auth_req", "account": "alice"},
        {"cmd": "something_new", "uuid": "abc"},
        {"uuid": "abc"},
        {"cmd": None},
    ])
    def test_other_messages_dropped(self, classifier, store, message):
        assert classifier.classify(message) is None
        assert len(store) == 0

    def test_payload_stays_encrypted(self, classifier):
        stored = classifier.classify({"cmd": "auth_ack", "uuid": "abc", "data": "U2FsdGVkX1..."})
        assert stored.data == "U2FsdGVkX1..."

    def test_missing_expire_gets_default(self, classifier, fake_clock):
        stored = classifier.classify({"cmd": "sign_wait", "uuid": "abc"})
        assert stored.expire == int(fake_clock.now + 60_000)

    def test_default_expire_uses_server_timeout(self, classifier, fake_clock):
        classifier.classify({"cmd": "connected", "timeout": 10})
        stored = classifier.classify({"cmd": "sign_wait", "uuid": "abc"})
        assert stored.expire == int(fake_clock.now + 10_000)

    def test_service_expire_is_kept(self, classifier):
        stored = classifier.classify({"cmd": "sign_wait", "uuid": "abc", "expire": 1234})
        assert stored.expire == 1234

    def test_generic_error_logged(self, classifier, caplog):
        with caplog.at_level(logging.WARNING, logger="hiveauth.protocol.classifier"):
            classifier.classify({"cmd": "error", "error": "invalid payload"})
        assert "invalid payload" in caplog.text
