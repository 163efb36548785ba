# Overview: Flask API routes for the merch catalog; parses input and returns JSON responses.

"""
Merch catalog routes.

SECURITY: All routes require a fully authenticated member.
- GET /api/merch lists published items for everyone
- /api/admin/merch routes are owner-only
"""

from flask import Blueprint, request, jsonify, current_app
from werkzeug.exceptions import HTTPException

from ..storage import StoreCorruptionError
from ..services import merch_service, upload_service
from ..validation import ValidationError, NotFoundError
from ..decorators import require_auth, require_owner

merch_bp = Blueprint("merch", __name__)

_TRUE_STRINGS = {"1", "true", "yes", "on"}


def _flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _create_payload() -> tuple[dict, bytes | None]:
    """Accept either JSON with an imageDataUrl, or multipart form data with an `image` file."""
    max_bytes = current_app.config["MAX_IMAGE_BYTES"]

    if request.files.get("image") is not None:
        form = request.form
        upload = request.files["image"]
        image_data = upload.read(max_bytes + 1)
        if len(image_data) > max_bytes:
            raise ValidationError(f"Uploaded image must be under {max_bytes // (1024 * 1024)}MB")
        return form.to_dict(), image_data

    data = request.get_json(silent=True) or {}
    data_url = str(data.get("imageDataUrl") or "").strip()
    if not data_url:
        raise ValidationError("Product image is required")
    return data, upload_service.decode_data_url(data_url, max_bytes)


@merch_bp.get("/api/merch")
@require_auth
def list_public_merch():
    """Published (not paused) items in catalog order."""
    return jsonify({"items": merch_service.list_public_items()}), 200


@merch_bp.get("/api/admin/merch")
@require_auth
@require_owner
def list_all_merch():
    return jsonify({"items": merch_service.list_all_items()}), 200


@merch_bp.post("/api/admin/merch")
@require_auth
@require_owner
def create_merch_route():
    """
    Create a catalog item.

    JSON body: {"name", "price", "imageDataUrl", "includeSizes", "allowInitials", "twoXlPrice"}
    """
    try:
        data, image_data = _create_payload()
        item = merch_service.create_item(
            name=data.get("name"),
            price=data.get("price"),
            image_data=image_data,
            include_sizes=_flag(data.get("includeSizes")),
            allow_initials=_flag(data.get("allowInitials")),
            two_xl_price=data.get("twoXlPrice"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except (HTTPException, StoreCorruptionError):
        raise
    except Exception:
        current_app.logger.exception("Failed to create merch item")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"success": True, "item": item, "items": merch_service.list_all_items()}), 201


@merch_bp.patch("/api/admin/merch/<item_id>")
@require_auth
@require_owner
def update_merch_route(item_id: str):
    """Partial update: includeSizes, allowInitials, paused, twoXlPrice."""
    payload = request.get_json(silent=True)
    try:
        item = merch_service.update_item(item_id, payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"success": True, "item": item, "items": merch_service.list_all_items()}), 200


@merch_bp.delete("/api/admin/merch/<item_id>")
@require_auth
@require_owner
def delete_merch_route(item_id: str):
    try:
        removed = merch_service.delete_item(item_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"success": True, "removedItem": removed, "items": merch_service.list_all_items()}), 200
