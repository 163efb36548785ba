# Overview: Flask API routes for orders; placement by members, review and fulfillment by the owner.

from flask import Blueprint, request, jsonify, current_app, g
from werkzeug.exceptions import HTTPException

from ..storage import StoreCorruptionError
from ..services import order_service
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_owner

orders_bp = Blueprint("orders", __name__)


@orders_bp.post("/api/orders")
@require_auth
def place_order_route():
    """
    Place a pre-order.

    Request body:
    {
        "itemId": "item-...",      // required
        "quantity": 2,             // required, 1..50
        "venmoAgreed": true,       // required, must be true
        "selectedSize": "M",       // required for sized items
        "includeInitials": false   // honored only if the item allows it
    }

    The owner email is queued after the order is saved; emailStatus reports
    that, never a failure of the order itself.
    """
    data = request.get_json(silent=True) or {}
    try:
        order, email_status = order_service.place_order(
            g.current_user,
            item_id=data.get("itemId"),
            quantity=data.get("quantity"),
            venmo_agreed=data.get("venmoAgreed"),
            selected_size=data.get("selectedSize"),
            include_initials=data.get("includeInitials"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except (HTTPException, StoreCorruptionError):
        raise
    except Exception:
        current_app.logger.exception("Failed to place order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"success": True, "order": order, "emailStatus": email_status}), 201


@orders_bp.get("/api/admin/orders")
@require_auth
@require_owner
def list_orders_route():
    return jsonify(order_service.list_orders(g.current_user)), 200


@orders_bp.get("/api/orders")
@require_auth
@require_owner
def list_all_orders_route():
    """Every order, newest first."""
    return jsonify({"orders": order_service.list_all_orders(g.current_user)}), 200


@orders_bp.post("/api/admin/orders/<order_id>/fulfill")
@require_auth
@require_owner
def fulfill_order_route(order_id: str):
    try:
        order = order_service.fulfill_order(order_id, g.current_user)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"success": True, "order": order}), 200
