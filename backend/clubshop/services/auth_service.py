# Overview: Service-layer operations for identity; registration, login, gates and the owner predicate.

"""
Authentication Service

WHY: Members sign in by email; the owner is whoever holds OWNER_EMAIL.

Owner status is NEVER stored on the user record. is_owner() compares the
normalized email with the configured owner address on every check, so a
config change takes effect immediately and cannot drift.

Gates after a valid session:
- Password gate (PASSWORD_GATE_ENABLED): a shared secret must be verified
  once per session.
- Approval gate (APPROVAL_REQUIRED): new members wait for the owner.

Re-registering an existing email is an idempotent sign-in that merges any
newly supplied profile fields; it is never a conflict.
"""

from __future__ import annotations

import hmac
import logging
import uuid
from dataclasses import dataclass

import bcrypt
from flask import current_app

from ..extensions import store, sessions, notifier
from ..validation import (
    ValidationError,
    NotFoundError,
    normalize_email,
    normalize_initials,
    clean_text,
)
from ..time_utils import timestamp_now
from .session_service import SessionRecord
from . import notification_service

logger = logging.getLogger(__name__)

FALLBACK_FIRST_NAME = "Club"
FALLBACK_LAST_NAME = "Member"
FALLBACK_INITIALS = "DC"


class AuthError(Exception):
    """401-level: not signed in, or wrong shared password."""
    status_code = 401

    def __init__(self, message: str, **flags):
        super().__init__(message)
        self.flags = flags

    def to_dict(self) -> dict:
        return {"error": str(self), **self.flags}


class ForbiddenError(AuthError):
    """403-level: signed in but not allowed (gate pending, or not the owner)."""
    status_code = 403


class ConfigError(RuntimeError):
    """503-level: the feature needs server configuration that is missing."""


@dataclass
class AuthContext:
    token: str
    session: SessionRecord
    user: dict


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def is_owner(email: str | None, owner_email: str | None) -> bool:
    owner = clean_text(owner_email).lower()
    return bool(owner) and clean_text(email).lower() == owner


def split_name(full_name: str | None) -> tuple[str, str]:
    parts = clean_text(full_name).split()
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], " ".join(parts[1:])


def build_initials(first_name: str | None, last_name: str | None) -> str:
    return (clean_text(first_name)[:1] + clean_text(last_name)[:1]).upper()


def profile_is_complete(user: dict) -> bool:
    return bool(
        clean_text(user.get("firstName"))
        and clean_text(user.get("lastName"))
        and normalize_initials(user.get("initials"))
    )


def profile_suggestion(preferred_name: str | None) -> dict:
    """Best-effort first/last/initials from a display name."""
    first, last = split_name(preferred_name)
    return {
        "firstName": first,
        "lastName": last,
        "initials": build_initials(first, last),
    }


def _owner_email() -> str:
    return current_app.config.get("OWNER_EMAIL", "")


def user_is_owner(user: dict) -> bool:
    return is_owner(user.get("email"), _owner_email())


def is_approved(user: dict) -> bool:
    # The owner is always implicitly approved
    return user_is_owner(user) or user.get("approved") is True


def user_public_shape(user: dict) -> dict:
    return {
        "id": user.get("id"),
        "name": user.get("name"),
        "firstName": user.get("firstName"),
        "lastName": user.get("lastName"),
        "initials": user.get("initials"),
        "email": user.get("email"),
        "isOwner": user_is_owner(user),
        "approved": is_approved(user),
    }


def _find_by_email(users: list[dict], email: str) -> dict | None:
    for candidate in users:
        if clean_text(candidate.get("email")).lower() == email:
            return candidate
    return None


def _find_by_id(users: list[dict], user_id: str) -> dict | None:
    for candidate in users:
        if candidate.get("id") == user_id:
            return candidate
    return None


def get_user(user_id: str) -> dict | None:
    return _find_by_id(store.read_collection("users"), user_id)


def list_users() -> list[dict]:
    users = store.read_collection("users")
    return sorted(users, key=lambda u: clean_text(u.get("createdAt")), reverse=True)


# ---------------------------------------------------------------------------
# Registration and login
# ---------------------------------------------------------------------------

def register(email, first_name=None, last_name=None, initials=None) -> tuple[dict, bool]:
    """
    Create an account, or sign in to an existing one.

    Returns (user, created). For an existing email, non-empty first/last
    names and valid initials overwrite the stored ones.

    Raises:
        ValidationError: malformed email, or missing profile fields for a new account
    """
    normalized_email = normalize_email(email)
    first = clean_text(first_name)
    last = clean_text(last_name)
    normalized_initials = normalize_initials(initials)

    if not normalized_email:
        raise ValidationError("A valid email is required")

    approval_required = bool(current_app.config.get("APPROVAL_REQUIRED"))

    with store.transaction("users") as users:
        existing = _find_by_email(users, normalized_email)
        if existing is not None:
            if first:
                existing["firstName"] = first
            if last:
                existing["lastName"] = last
            if normalized_initials:
                existing["initials"] = normalized_initials
            computed_name = f"{existing.get('firstName') or ''} {existing.get('lastName') or ''}".strip()
            if computed_name:
                existing["name"] = computed_name
            return dict(existing), False

        if not first or not last or not normalized_initials:
            raise ValidationError("email, firstName, lastName, and initials are required")

        now = timestamp_now()
        auto_approved = not approval_required or is_owner(normalized_email, _owner_email())
        user = {
            "id": str(uuid.uuid4()),
            "email": normalized_email,
            "provider": "email",
            "firstName": first,
            "lastName": last,
            "initials": normalized_initials,
            "name": f"{first} {last}".strip(),
            "approved": auto_approved,
            "approvedAt": now if auto_approved else None,
            "approvedBy": _owner_email() if auto_approved else None,
            "createdAt": now,
            "lastLoginAt": now,
        }
        users.append(user)

    logger.info("Registered user %s", user["id"])
    if not auto_approved:
        _dispatch_approval_request(user)
    return dict(user), True


def _dispatch_approval_request(user: dict) -> dict:
    mailer = notification_service.build_mailer(current_app.config)
    if mailer is None:
        logger.info("Approval request for %s not emailed: %s", user["id"], notification_service.NOT_CONFIGURED_REASON)
        return notification_service.NotificationStatus.not_configured().to_dict()
    notifier.submit(
        "approval_requested",
        notification_service.notify_approval_requested,
        mailer,
        dict(user),
        context={"userId": user["id"]},
    )
    return {"queued": True}


def login(email) -> dict:
    """
    Sign in to an existing account by email.

    Back-fills an incomplete profile with suggestions derived from the
    display name, and records lastLoginAt.

    Raises:
        ValidationError: malformed email
        NotFoundError: no account for this email
    """
    normalized_email = normalize_email(email)
    if not normalized_email:
        raise ValidationError("email is required")

    approval_required = bool(current_app.config.get("APPROVAL_REQUIRED"))

    with store.transaction("users") as users:
        user = _find_by_email(users, normalized_email)
        if user is None:
            raise NotFoundError("Account not found. Create an account first.")

        user["email"] = normalized_email
        if not profile_is_complete(user):
            fallback = profile_suggestion(user.get("name") or normalized_email.split("@")[0])
            first = clean_text(user.get("firstName")) or fallback["firstName"] or FALLBACK_FIRST_NAME
            last = clean_text(user.get("lastName")) or fallback["lastName"] or FALLBACK_LAST_NAME
            initials = (
                normalize_initials(user.get("initials"))
                or normalize_initials(build_initials(first, last))
                or FALLBACK_INITIALS
            )
            user["firstName"] = first
            user["lastName"] = last
            user["initials"] = initials
            user["name"] = f"{first} {last}".strip()

        if not approval_required and user.get("approved") is not True:
            user["approved"] = True
            user["approvedAt"] = user.get("approvedAt") or timestamp_now()
            user["approvedBy"] = user.get("approvedBy") or _owner_email()

        user["lastLoginAt"] = timestamp_now()
        return dict(user)


def start_session(user: dict) -> str:
    gate_enabled = bool(current_app.config.get("PASSWORD_GATE_ENABLED"))
    return sessions.issue(user["id"], verified=not gate_enabled)


def logout(token: str | None) -> bool:
    if not token:
        return False
    return sessions.revoke(token)


def _password_matches(candidate: str) -> bool:
    hashed = current_app.config.get("LOGIN_PASSWORD_HASH") or ""
    if hashed:
        try:
            return bcrypt.checkpw(candidate.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            logger.error("LOGIN_PASSWORD_HASH is not a valid bcrypt hash")
            return False
    secret = current_app.config.get("LOGIN_PASSWORD") or ""
    return hmac.compare_digest(candidate.encode("utf-8"), secret.encode("utf-8"))


def verify_password(token: str | None, password) -> dict:
    """
    Pass the shared password gate for the current session.

    Raises:
        AuthError: no valid session, or wrong password
        ConfigError: gate enabled but no secret configured
        ValidationError: password missing
    """
    context = resolve_request(token)
    if context is None:
        raise AuthError("Sign in first")

    if not current_app.config.get("PASSWORD_GATE_ENABLED"):
        sessions.mark_password_verified(context.token)
        return context.user

    if not (current_app.config.get("LOGIN_PASSWORD") or current_app.config.get("LOGIN_PASSWORD_HASH")):
        raise ConfigError("Password verification is not configured on the server")

    candidate = "" if password is None else str(password)
    if not candidate:
        raise ValidationError("password is required")

    if not _password_matches(candidate):
        logger.warning("Incorrect shared password for user %s", context.user.get("id"))
        raise AuthError("Incorrect password")

    sessions.mark_password_verified(context.token)
    return context.user


# ---------------------------------------------------------------------------
# Request resolution and gates
# ---------------------------------------------------------------------------

def resolve_request(token: str | None) -> AuthContext | None:
    """
    Resolve a bearer token to its session and CURRENT user record.

    A user deleted out-of-band invalidates the session.
    """
    if not token:
        return None
    session = sessions.resolve(token)
    if session is None:
        return None

    user = get_user(session.user_id)
    if user is None:
        sessions.revoke(token)
        return None

    return AuthContext(token=token, session=session, user=user)


def password_pending(session: SessionRecord) -> bool:
    return bool(current_app.config.get("PASSWORD_GATE_ENABLED")) and not session.password_verified


def approval_pending(user: dict) -> bool:
    return bool(current_app.config.get("APPROVAL_REQUIRED")) and not is_approved(user)


def require_full_access(context: AuthContext) -> None:
    if password_pending(context.session):
        raise ForbiddenError("Password verification required", passwordRequired=True)
    if approval_pending(context.user):
        raise ForbiddenError("Your account is waiting for owner approval", approvalRequired=True)


def require_owner(user: dict) -> None:
    if not user_is_owner(user):
        raise ForbiddenError("Owner access only")


def approve_user(user_id: str, acting_owner: dict) -> dict:
    """
    Approve a pending member. Approving twice keeps the first approval metadata.

    Raises:
        ForbiddenError: acting user is not the owner
        NotFoundError: unknown user id
    """
    require_owner(acting_owner)
    with store.transaction("users") as users:
        user = _find_by_id(users, user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.get("approved") is not True:
            user["approved"] = True
            user["approvedAt"] = user.get("approvedAt") or timestamp_now()
            user["approvedBy"] = user.get("approvedBy") or acting_owner.get("email")
        return dict(user)
