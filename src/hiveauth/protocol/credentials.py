"""Caller-side credential and request descriptors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from hiveauth.protocol.errors import ValidationError


@dataclass
class SessionCredential:
    """
    An account's authentication state with the signer.

    Created by the caller with just a username, then returned fully
    populated by a successful authenticate(). The library never stores it;
    persist it yourself to reuse the session.
    """

    username: str
    token: str | None = None
    expire: int | None = None
    """Token expiry in epoch milliseconds."""
    key: str | None = None
    """Session key shared with the signer app."""

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token and self.key)

    def is_expired(self, now_ms: float) -> bool:
        return self.expire is not None and self.expire <= now_ms

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"username": self.username}
        if self.token is not None:
            result["token"] = self.token
        if self.expire is not None:
            result["expire"] = self.expire
        if self.key is not None:
            result["key"] = self.key
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionCredential":
        return cls(
            username=data["username"],
            token=data.get("token"),
            expire=data.get("expire"),
            key=data.get("key"),
        )


@dataclass
class AppDescriptor:
    """The application asking for authentication, shown in the signer app."""

    name: str
    description: str | None = None
    icon: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name}
        if self.description is not None:
            result["description"] = self.description
        if self.icon is not None:
            result["icon"] = self.icon
        return result


@dataclass
class ChallengeDescriptor:
    """A string the signer should sign with the account's key of key_type."""

    key_type: str
    challenge: str

    def to_dict(self) -> dict[str, Any]:
        return {"key_type": self.key_type, "challenge": self.challenge}


def require_str(value: Any, name: str) -> str:
    """Return value if it is a non-empty string, else raise ValidationError."""
    if not isinstance(value, str) or not value:
        raise ValidationError(f"missing or invalid {name}")
    return value


def validate_challenge(challenge: Any) -> ChallengeDescriptor:
    if not isinstance(challenge, ChallengeDescriptor):
        raise ValidationError("missing or invalid challenge_data")
    require_str(challenge.key_type, "challenge_data.key_type")
    require_str(challenge.challenge, "challenge_data.challenge")
    return challenge


def validate_session(credential: Any) -> SessionCredential:
    """Check a credential is usable for sign and challenge requests."""
    if not isinstance(credential, SessionCredential):
        raise ValidationError("missing auth")
    require_str(credential.username, "username")
    require_str(credential.token, "token")
    require_str(credential.key, "encryption key")
    return credential
