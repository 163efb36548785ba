# Overview: Order placement, pricing, fulfillment and owner listings.

"""
Order Service

Lifecycle: Open -> Fulfilled (terminal). Fulfillment is first-write-wins;
fulfilling again returns the original fulfilledAt/fulfilledBy untouched.

Item and user fields are copied onto the order when it is placed. Later
catalog edits or deletions never change historical orders.

Pricing:
    unitPrice  = twoXlPrice if selectedSize == "2XL" and an override exists,
                 else the item's base price
    totalPrice = quantity * unitPrice, rounded half-up to cents
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from flask import current_app

from ..extensions import store, notifier
from ..validation import (
    ValidationError,
    ConflictError,
    NotFoundError,
    coerce_int,
    line_total,
    clean_text,
)
from ..time_utils import timestamp_now, parse_timestamp
from . import auth_service, merch_service, notification_service

logger = logging.getLogger(__name__)

MIN_QUANTITY = 1
MAX_QUANTITY = 50

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _validate_quantity(quantity) -> int:
    if quantity is None or (isinstance(quantity, str) and not quantity.strip()):
        raise ValidationError("itemId and quantity are required")
    qty = coerce_int(quantity, "quantity")
    if qty < MIN_QUANTITY or qty > MAX_QUANTITY:
        raise ValidationError(f"Quantity must be between {MIN_QUANTITY} and {MAX_QUANTITY}")
    return qty


def unit_price_for(item: dict, selected_size: str | None) -> float:
    if selected_size == merch_service.TWO_XL and item.get("twoXlPrice") is not None:
        return item["twoXlPrice"]
    return item["price"]


def place_order(user: dict, *, item_id, quantity, venmo_agreed, selected_size=None,
                include_initials=False) -> tuple[dict, dict]:
    """
    Validate and persist a new open order, then queue the owner email.

    Returns (order, notification_status). The status never affects whether
    the order was created.

    Raises:
        ValidationError: bad quantity, payment terms not accepted, bad size
        NotFoundError: item does not exist
        ConflictError: item is paused
    """
    item_id = clean_text(item_id)
    if not item_id:
        raise ValidationError("itemId and quantity are required")
    qty = _validate_quantity(quantity)

    if venmo_agreed is not True:
        raise ValidationError("You must agree to pay via Venmo")

    item = merch_service.get_item(item_id)
    if item is None:
        raise NotFoundError("Merch item not found")
    if item["paused"]:
        raise ConflictError("This item is currently unavailable")

    size = None
    requested_size = clean_text(selected_size).upper()
    if item["sizes"]:
        if not requested_size:
            raise ValidationError("Please select a size")
        if requested_size not in item["sizes"]:
            raise ValidationError("Selected size is not valid for this item")
        size = requested_size

    initials = bool(include_initials) if item["allowInitials"] else False
    unit_price = unit_price_for(item, size)

    order = {
        "id": str(uuid.uuid4()),
        "itemId": item["id"],
        "itemName": item["name"],
        "includeInitials": initials,
        "selectedSize": size,
        "unitPrice": unit_price,
        "totalPrice": line_total(qty, unit_price),
        "quantity": qty,
        "venmoAgreed": True,
        "userId": user["id"],
        "userName": user.get("name") or "",
        "userInitials": user.get("initials") or "",
        "userEmail": user.get("email") or "",
        "fulfilled": False,
        "fulfilledAt": None,
        "fulfilledBy": None,
        "createdAt": timestamp_now(),
    }

    with store.transaction("orders") as orders:
        orders.append(order)

    logger.info("Order %s placed for item %s (qty %d)", order["id"], item["id"], qty)
    return dict(order), dispatch_order_notification(order, user, item)


def dispatch_order_notification(order: dict, user: dict, item: dict) -> dict:
    """Queue the owner email after the order is saved. Returns the auxiliary status."""
    mailer = notification_service.build_mailer(current_app.config)
    if mailer is None:
        logger.info("Order %s not emailed: %s", order["id"], notification_service.NOT_CONFIGURED_REASON)
        return notification_service.NotificationStatus.not_configured().to_dict()

    notifier.submit(
        "order_placed",
        notification_service.notify_order_placed,
        mailer,
        dict(order),
        dict(user),
        dict(item),
        context={"orderId": order["id"]},
    )
    return {"queued": True}


def _normalize_order(order: dict, users_by_id: dict) -> dict:
    user = users_by_id.get(order.get("userId")) or {}
    return {
        **order,
        "selectedSize": order.get("selectedSize") or None,
        "includeInitials": bool(order.get("includeInitials")),
        "userInitials": order.get("userInitials") or user.get("initials") or "",
        "fulfilled": bool(order.get("fulfilled")),
        "fulfilledAt": order.get("fulfilledAt") or None,
        "fulfilledBy": order.get("fulfilledBy") or None,
    }


def _sort_key(value) -> datetime:
    try:
        return parse_timestamp(value) or _EPOCH
    except (AttributeError, TypeError, ValueError):
        return _EPOCH


def _normalized_orders() -> list[dict]:
    users_by_id = {u.get("id"): u for u in store.read_collection("users")}
    return [_normalize_order(o, users_by_id) for o in store.read_collection("orders")]


def list_orders(acting_owner: dict) -> dict:
    """Open orders (newest first) and fulfilled orders (most recently fulfilled first)."""
    auth_service.require_owner(acting_owner)
    orders = _normalized_orders()
    open_orders = sorted(
        (o for o in orders if not o["fulfilled"]),
        key=lambda o: _sort_key(o.get("createdAt")),
        reverse=True,
    )
    fulfilled_orders = sorted(
        (o for o in orders if o["fulfilled"]),
        key=lambda o: _sort_key(o.get("fulfilledAt") or o.get("createdAt")),
        reverse=True,
    )
    return {"openOrders": open_orders, "fulfilledOrders": fulfilled_orders}


def list_all_orders(acting_owner: dict) -> list[dict]:
    auth_service.require_owner(acting_owner)
    return sorted(_normalized_orders(), key=lambda o: _sort_key(o.get("createdAt")), reverse=True)


def fulfill_order(order_id: str, acting_owner: dict) -> dict:
    """
    Mark an order fulfilled. Idempotent: a second call changes nothing.

    Raises:
        ForbiddenError: acting user is not the owner
        NotFoundError: unknown order id
    """
    auth_service.require_owner(acting_owner)
    order_id = clean_text(order_id)
    if not order_id:
        raise ValidationError("orderId is required")

    users = store.read_collection("users")
    with store.transaction("orders") as orders:
        for index, existing in enumerate(orders):
            if existing.get("id") == order_id:
                break
        else:
            raise NotFoundError("Order not found")

        initials = existing.get("userInitials") or ""
        if not initials:
            matched = next((u for u in users if u.get("id") == existing.get("userId")), None)
            initials = (matched or {}).get("initials") or ""

        updated = {
            **existing,
            "userInitials": initials,
            "fulfilled": True,
            "fulfilledAt": existing.get("fulfilledAt") or timestamp_now(),
            "fulfilledBy": existing.get("fulfilledBy") or acting_owner.get("email"),
        }
        orders[index] = updated

    if not existing.get("fulfilled"):
        logger.info("Order %s fulfilled by %s", order_id, updated["fulfilledBy"])
    return dict(updated)
