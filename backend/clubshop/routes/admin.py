# Overview: Flask API routes for owner user administration; parses input and returns JSON responses.

"""
Owner routes for member management.

Provides endpoints for:
- Listing members (optionally only those waiting for approval)
- Approving a pending member

All endpoints require the owner.
"""

from flask import Blueprint, request, jsonify, g

from ..services import auth_service
from ..validation import NotFoundError
from ..decorators import require_auth, require_owner

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/users")
@require_auth
@require_owner
def list_users():
    """
    List members, newest first.

    Query params:
    - pending: bool (default false) - only members waiting for approval
    """
    pending_only = request.args.get("pending", "false").lower() == "true"

    users = auth_service.list_users()
    if pending_only:
        users = [u for u in users if not auth_service.is_approved(u)]

    return jsonify({
        "users": [
            {
                **auth_service.user_public_shape(u),
                "approvedAt": u.get("approvedAt"),
                "approvedBy": u.get("approvedBy"),
                "createdAt": u.get("createdAt"),
                "lastLoginAt": u.get("lastLoginAt"),
            }
            for u in users
        ],
        "count": len(users),
    }), 200


@admin_bp.post("/users/<user_id>/approve")
@require_auth
@require_owner
def approve_user_route(user_id: str):
    try:
        user = auth_service.approve_user(user_id, g.current_user)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({
        "success": True,
        "user": {
            **auth_service.user_public_shape(user),
            "approvedAt": user.get("approvedAt"),
            "approvedBy": user.get("approvedBy"),
        },
    }), 200
