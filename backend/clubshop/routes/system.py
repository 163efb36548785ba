# backend/clubshop/routes/system.py
"""
System health, version and client configuration endpoints.

Also serves managed catalog uploads from DATA_DIR/uploads.
"""

import os
import sys
import time
from flask import Blueprint, current_app, send_from_directory, abort

from ..extensions import store, sessions, notifier
from ..services.upload_service import is_safe_filename
from ..time_utils import timestamp_now

system_bp = Blueprint("system", __name__)


def check_store_health() -> dict:
    """
    Check that every collection file can be read.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        counts = store.counts()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": counts,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Store health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Store error",
        }


def check_notification_health() -> dict:
    """Degraded while the dead-letter list holds failed deliveries."""
    failures = list(notifier.dead_letters)
    details = {
        "pending": notifier.pending_count(),
        "failed": len(failures),
        "last_failure": failures[-1] if failures else None,
    }
    if failures:
        return {"status": "degraded", "warning": "Recent notification failures", "details": details}
    return {"status": "healthy", "details": details}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: the store cannot be read
    """
    start_time = time.time()

    store_health = check_store_health()
    notification_health = check_notification_health()
    session_health = {"status": "healthy", "details": {"active_sessions": sessions.active_count()}}

    all_checks = [store_health, notification_health, session_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": timestamp_now(),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "store": store_health,
            "session_service": session_health,
            "notifications": notification_health,
        },
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": timestamp_now(),
    }


@system_bp.get("/api/config")
def client_config():
    """What the sign-in screen needs to know."""
    cfg = current_app.config
    return {
        "authMode": "email",
        "passwordGate": bool(cfg.get("PASSWORD_GATE_ENABLED")),
        "approvalRequired": bool(cfg.get("APPROVAL_REQUIRED")),
    }


@system_bp.get("/uploads/<filename>")
def uploaded_file(filename: str):
    if not is_safe_filename(filename):
        return {"error": "Invalid filename"}, 400
    if not os.path.exists(os.path.join(store.uploads_dir, filename)):
        abort(404)
    response = send_from_directory(store.uploads_dir, filename)
    response.headers["Cache-Control"] = "public, max-age=604800"
    return response
