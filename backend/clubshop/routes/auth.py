# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- register / login issue a session token (JSON body + HttpOnly cookie)
- verify-password passes the optional shared password gate
- me reports the signed-in user and whether the gate is still pending
"""

from flask import Blueprint, request, jsonify, current_app, g
from werkzeug.exceptions import HTTPException

from ..storage import StoreCorruptionError
from ..services import auth_service
from ..services.auth_service import AuthError, ConfigError
from ..validation import ValidationError, NotFoundError
from ..decorators import require_session, get_request_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_response(payload: dict, token: str, status: int = 200):
    cfg = current_app.config
    response = jsonify({**payload, "token": token})
    response.status_code = status
    response.set_cookie(
        cfg["AUTH_COOKIE_NAME"],
        token,
        httponly=True,
        samesite="Lax",
        secure=bool(cfg.get("AUTH_COOKIE_SECURE")),
        max_age=int(cfg["SESSION_MAX_AGE"].total_seconds()),
    )
    return response


def _gate_flags(user: dict) -> dict:
    return {
        "passwordRequired": bool(current_app.config.get("PASSWORD_GATE_ENABLED")),
        "approvalRequired": auth_service.approval_pending(user),
    }


@auth_bp.post("/register")
def register_route():
    """
    Create an account, or sign in if the email is already registered.

    Request body: {"email", "firstName", "lastName", "initials"}
    """
    data = request.get_json(silent=True) or {}
    try:
        user, created = auth_service.register(
            data.get("email"),
            data.get("firstName"),
            data.get("lastName"),
            data.get("initials"),
        )
        token = auth_service.start_session(user)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except (HTTPException, StoreCorruptionError):
        raise
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500

    return _session_response({
        "registered": created,
        "existingAccount": not created,
        "user": auth_service.user_public_shape(user),
        **_gate_flags(user),
    }, token, 201 if created else 200)


@auth_bp.post("/login")
def login_route():
    """Sign in to an existing account by email."""
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.login(data.get("email"))
        token = auth_service.start_session(user)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (HTTPException, StoreCorruptionError):
        raise
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500

    return _session_response({
        "signedIn": True,
        "user": auth_service.user_public_shape(user),
        **_gate_flags(user),
    }, token)


@auth_bp.post("/verify-password")
def verify_password_route():
    """Pass the shared password gate for this session."""
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.verify_password(get_request_token(), data.get("password"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConfigError as e:
        return jsonify({"error": str(e)}), 503
    except AuthError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"success": True, "user": auth_service.user_public_shape(user)}), 200


@auth_bp.post("/logout")
def logout_route():
    """Revoke the session. Always succeeds; clears the cookie."""
    auth_service.logout(get_request_token())
    response = jsonify({"success": True})
    response.delete_cookie(current_app.config["AUTH_COOKIE_NAME"])
    return response


@auth_bp.get("/me")
@require_session
def me_route():
    user = g.current_user
    return jsonify({
        "user": auth_service.user_public_shape(user),
        "passwordRequired": auth_service.password_pending(g.auth_session),
        "approvalRequired": auth_service.approval_pending(user),
        "session": g.auth_session.to_dict(),
    }), 200
