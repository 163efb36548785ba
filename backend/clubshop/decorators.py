# Overview: Request authentication decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import auth_service
from .services.auth_service import AuthError


def get_request_token() -> str | None:
    """Bearer token from the Authorization header, else the session cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token
    return request.cookies.get(current_app.config["AUTH_COOKIE_NAME"]) or None


def _establish_context():
    context = auth_service.resolve_request(get_request_token())
    if context is None:
        return None
    g.current_user = context.user
    g.auth_session = context.session
    g.auth_token = context.token
    g.auth_context = context
    return context


def require_session(f):
    """
    Require a valid session, even one still waiting on the password gate.

    Sets g.current_user, g.auth_session, g.auth_token and g.auth_context.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if _establish_context() is None:
            return jsonify({"error": "Not signed in"}), 401
        return f(*args, **kwargs)

    return decorated_function


def require_auth(f):
    """
    Require a fully authenticated member.

    SECURITY: Returns 401 if:
    - No token (header or cookie)
    - Token unsigned, unknown, expired or revoked
    - The user record behind the session no longer exists

    Returns 403 if the password gate or the approval gate is still pending.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        context = _establish_context()
        if context is None:
            return jsonify({"error": "Not signed in"}), 401
        try:
            auth_service.require_full_access(context)
        except AuthError as e:
            return jsonify(e.to_dict()), e.status_code
        return f(*args, **kwargs)

    return decorated_function


def require_owner(f):
    """Require the owner. Must be stacked under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "current_user"):
            return jsonify({"error": "Not signed in"}), 401
        try:
            auth_service.require_owner(g.current_user)
        except AuthError as e:
            return jsonify(e.to_dict()), e.status_code
        return f(*args, **kwargs)

    return decorated_function
