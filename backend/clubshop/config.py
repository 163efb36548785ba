# backend/clubshop/config.py
from __future__ import annotations
import os
from datetime import timedelta


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key. Also signs session tokens.
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # The one account with catalog and fulfillment privileges
    OWNER_EMAIL = os.environ.get("OWNER_EMAIL", "owner@club.local").strip().lower()

    # users.json, orders.json, merch-items.json and uploads/ live here
    DATA_DIR = os.environ.get(
        "DATA_DIR",
        os.path.join(os.getcwd(), "data"),
    )

    # Shared password gate after login (off unless enabled)
    PASSWORD_GATE_ENABLED = _env_bool("PASSWORD_GATE_ENABLED", False)
    LOGIN_PASSWORD = os.environ.get("LOGIN_PASSWORD", "").strip()
    LOGIN_PASSWORD_HASH = os.environ.get("LOGIN_PASSWORD_HASH", "").strip()  # bcrypt

    # Manual approval of new members by the owner
    APPROVAL_REQUIRED = _env_bool("APPROVAL_REQUIRED", False)

    AUTH_COOKIE_NAME = "club_session"
    AUTH_COOKIE_SECURE = _env_bool("COOKIE_SECURE", False)
    SESSION_MAX_AGE = timedelta(days=7)

    # Owner notifications (all of host/user/pass required to send)
    SMTP_HOST = os.environ.get("SMTP_HOST", "")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_USER = os.environ.get("SMTP_USER", "")
    SMTP_PASS = os.environ.get("SMTP_PASS", "")
    SMTP_SECURE = _env_bool("SMTP_SECURE", False)
    SMTP_TIMEOUT = float(os.environ.get("SMTP_TIMEOUT", "10"))
    MAIL_FROM = os.environ.get("MAIL_FROM", "")
    NOTIFY_MAX_ATTEMPTS = 2
    NOTIFY_RETRY_DELAY_SECONDS = 0.5
    NOTIFY_WORKERS = 2

    MAX_IMAGE_BYTES = 5 * 1024 * 1024
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024

    STORE_STRICT_READS = _env_bool("STORE_STRICT_READS", False)
    MERCH_SEED_ENABLED = _env_bool("MERCH_SEED_ENABLED", True)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
