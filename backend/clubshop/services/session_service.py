# Overview: Session registry; issues, resolves and revokes signed bearer tokens.

"""
Session Token Management Service

WHY: Every authenticated request carries an opaque token that maps to a
(user_id, password_verified) pair held by the server.

SECURITY FEATURES:
- 24 bytes of secrets-grade randomness per token
- HMAC-SHA256 signature over the token body using SECRET_KEY
- Signature checked with a constant-time compare BEFORE the table lookup
- Absolute lifetime of SESSION_MAX_AGE (7 days)
- Revocable on logout, or when the backing user record disappears

KNOWN LIMITATION: the in-memory registry lives only as long as the process.
A restart signs everybody out; persisted users, orders and items are kept.
Call sites only depend on the SessionRegistry interface, so a durable
registry can be installed in extensions.py without touching them.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from ..time_utils import now_utc, format_timestamp


DEFAULT_MAX_AGE = timedelta(days=7)


@dataclass
class SessionRecord:
    user_id: str
    password_verified: bool
    created_at: datetime
    password_verified_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "passwordVerified": self.password_verified,
            "passwordVerifiedAt": format_timestamp(self.password_verified_at),
            "createdAt": format_timestamp(self.created_at),
        }


class SessionRegistry(ABC):
    """Where sessions live. Implementations must be safe across request threads."""

    @abstractmethod
    def issue(self, user_id: str, verified: bool) -> str:
        ...

    @abstractmethod
    def resolve(self, token: str) -> SessionRecord | None:
        ...

    @abstractmethod
    def revoke(self, token: str) -> bool:
        ...

    @abstractmethod
    def mark_password_verified(self, token: str) -> SessionRecord | None:
        ...

    @abstractmethod
    def active_count(self) -> int:
        ...


class InMemorySessionRegistry(SessionRegistry):
    def __init__(self, secret: str | None = None, max_age: timedelta = DEFAULT_MAX_AGE):
        self._secret = secret
        self._max_age = max_age
        self._sessions: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def init_app(self, app) -> None:
        self._secret = app.config["SECRET_KEY"]
        self._max_age = app.config.get("SESSION_MAX_AGE", DEFAULT_MAX_AGE)
        with self._lock:
            self._sessions.clear()
        app.extensions["session_registry"] = self

    def _sign(self, raw: str) -> str:
        if not self._secret:
            raise RuntimeError("Session registry has no signing secret")
        return hmac.new(self._secret.encode("utf-8"), raw.encode("utf-8"), hashlib.sha256).hexdigest()

    def _signature_valid(self, token: str) -> bool:
        try:
            padded = token + "=" * (-len(token) % 4)
            decoded = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
        except (binascii.Error, UnicodeError, ValueError):
            return False
        raw, sep, signature = decoded.rpartition(":")
        if not sep or not raw:
            return False
        return hmac.compare_digest(signature, self._sign(raw))

    def _expired(self, record: SessionRecord) -> bool:
        return now_utc() - record.created_at > self._max_age

    def issue(self, user_id: str, verified: bool) -> str:
        now = now_utc()
        raw = f"{user_id}:{int(now.timestamp() * 1000)}:{secrets.token_hex(24)}"
        body = f"{raw}:{self._sign(raw)}"
        token = base64.urlsafe_b64encode(body.encode("utf-8")).decode("ascii").rstrip("=")
        with self._lock:
            self._sessions[token] = SessionRecord(
                user_id=user_id,
                password_verified=bool(verified),
                created_at=now,
                password_verified_at=now if verified else None,
            )
        return token

    def resolve(self, token: str) -> SessionRecord | None:
        """Return a copy of the session, or None if unsigned, unknown or expired."""
        if not token or not self._signature_valid(token):
            return None
        with self._lock:
            record = self._sessions.get(token)
            if record is None:
                return None
            if self._expired(record):
                del self._sessions[token]
                return None
            return replace(record)

    def revoke(self, token: str) -> bool:
        with self._lock:
            return self._sessions.pop(token, None) is not None

    def mark_password_verified(self, token: str) -> SessionRecord | None:
        with self._lock:
            record = self._sessions.get(token)
            if record is None:
                return None
            record.password_verified = True
            record.password_verified_at = now_utc()
            return replace(record)

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for r in self._sessions.values() if not self._expired(r))
