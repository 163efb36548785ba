# Overview: Catalog management; merch item normalization, listing and owner mutations.

"""
Merch Catalog Service

Items carry either no sizes ("one size") or the full STANDARD_SIZES set.
A 2XL override price only makes sense for sized items, so twoXlPrice is
forced to None whenever sizes are empty.

Stored records are normalized leniently on every read: anything without an
id, name, image and valid price is dropped, and size lists are canonicalized.
"""

from __future__ import annotations

import logging
import secrets
import time

from flask import current_app

from ..extensions import store
from ..validation import (
    PatchPolicy,
    ValidationError,
    NotFoundError,
    validate_patch,
    normalize_price,
    normalize_optional_price,
    clean_text,
)
from ..time_utils import timestamp_now
from . import upload_service

logger = logging.getLogger(__name__)

STANDARD_SIZES = ("S", "M", "L", "XL", "2XL")
TWO_XL = "2XL"
MAX_SIZE_LABELS = 12

MERCH_PATCH_POLICY = PatchPolicy(
    writable_fields=frozenset({"includeSizes", "allowInitials", "paused", "twoXlPrice"}),
    boolean_fields=frozenset({"includeSizes", "allowInitials", "paused"}),
)

DEFAULT_MERCH_ITEMS = (
    {
        "id": "club-hat",
        "name": "Club Hat",
        "price": 25,
        "image": "/hat.png",
        "sizes": [],
        "allowInitials": False,
        "paused": False,
        "twoXlPrice": None,
        "createdAt": "2026-02-26T00:00:00.000Z",
    },
)


def normalize_sizes(values) -> list[str]:
    if not isinstance(values, (list, tuple)):
        return []
    seen = set()
    output = []
    for value in values:
        normalized = clean_text(value).upper()
        if not normalized or len(normalized) > MAX_SIZE_LABELS or normalized in seen:
            continue
        seen.add(normalized)
        output.append(normalized)
        if len(output) >= MAX_SIZE_LABELS:
            break
    return output


def normalize_merch_item(candidate) -> dict | None:
    """Canonical form of a stored record, or None if it is unusable."""
    if not isinstance(candidate, dict):
        return None

    item_id = clean_text(candidate.get("id"))
    name = clean_text(candidate.get("name"))
    image = clean_text(candidate.get("image"))
    price = normalize_price(candidate.get("price"))
    if not item_id or not name or not image or price is None:
        return None

    include_sizes = candidate.get("includeSizes") is True or bool(normalize_sizes(candidate.get("sizes")))

    return {
        "id": item_id,
        "name": name,
        "price": price,
        "image": image,
        "sizes": list(STANDARD_SIZES) if include_sizes else [],
        "allowInitials": bool(candidate.get("allowInitials")),
        "paused": bool(candidate.get("paused")),
        "twoXlPrice": normalize_optional_price(candidate.get("twoXlPrice")) if include_sizes else None,
        "createdAt": candidate.get("createdAt") or timestamp_now(),
    }


def _normalize_all(records: list) -> list[dict]:
    return [item for item in (normalize_merch_item(r) for r in records) if item is not None]


def seed_default_items() -> list[dict]:
    """Write the default catalog into an empty merch collection. Returns the seeded items."""
    with store.transaction("merch") as records:
        if records:
            return []
        seeded = [dict(item, sizes=list(item["sizes"])) for item in DEFAULT_MERCH_ITEMS]
        records.extend(seeded)
    logger.info("Seeded default merch catalog with %d item(s)", len(seeded))
    return seeded


def _read_items() -> list[dict]:
    if not store.exists("merch") and current_app.config.get("MERCH_SEED_ENABLED"):
        seed_default_items()
    return _normalize_all(store.read_collection("merch"))


def list_all_items() -> list[dict]:
    return _read_items()


def list_public_items() -> list[dict]:
    return [item for item in _read_items() if not item["paused"]]


def get_item(item_id: str) -> dict | None:
    item_id = clean_text(item_id)
    for item in _read_items():
        if item["id"] == item_id:
            return item
    return None


def generate_item_id() -> str:
    return f"item-{int(time.time() * 1000)}-{secrets.token_hex(2)}"


def create_item(*, name, price, image_data: bytes | None, include_sizes=False, allow_initials=False,
                two_xl_price=None) -> dict:
    """
    Create a published catalog item.

    Raises:
        ValidationError: empty name, bad price, bad/missing image, or a 2XL
            price on an item without sizes
    """
    name = clean_text(name)
    normalized_price = normalize_price(price)
    include_sizes = bool(include_sizes)
    normalized_two_xl = normalize_optional_price(two_xl_price)

    if not name:
        raise ValidationError("Product name is required")
    if normalized_price is None:
        raise ValidationError("Valid price is required")
    if not image_data:
        raise ValidationError("Product image is required")
    if normalized_two_xl is None and clean_text(two_xl_price) != "":
        raise ValidationError("2XL price must be a valid amount")
    if not include_sizes and normalized_two_xl is not None:
        raise ValidationError("Enable sizes before setting a 2XL price")

    item_id = generate_item_id()
    image_path = upload_service.save_image(image_data, item_id, current_app.config["MAX_IMAGE_BYTES"])

    item = {
        "id": item_id,
        "name": name,
        "price": normalized_price,
        "image": image_path,
        "sizes": list(STANDARD_SIZES) if include_sizes else [],
        "allowInitials": bool(allow_initials),
        "paused": False,
        "twoXlPrice": normalized_two_xl if include_sizes else None,
        "createdAt": timestamp_now(),
    }

    try:
        _read_items()  # first-run seeding happens before the new item lands
        with store.transaction("merch") as records:
            records[:] = _normalize_all(records)
            records.append(item)
    except Exception:
        upload_service.release_image(image_path)
        raise

    logger.info("Created merch item %s (%s)", item_id, name)
    return item


def _apply_patch(current: dict, patch: dict) -> dict:
    updated = dict(current)

    if "includeSizes" in patch:
        updated["sizes"] = list(STANDARD_SIZES) if patch["includeSizes"] else []
        if not updated["sizes"]:
            updated["twoXlPrice"] = None

    if "allowInitials" in patch:
        updated["allowInitials"] = patch["allowInitials"]

    if "paused" in patch:
        updated["paused"] = patch["paused"]

    if "twoXlPrice" in patch:
        raw = patch["twoXlPrice"]
        if not updated["sizes"]:
            raise ValidationError("Enable sizes before setting a 2XL price")
        normalized = normalize_optional_price(raw)
        if normalized is None and clean_text(raw) != "":
            raise ValidationError("2XL price must be a valid amount")
        updated["twoXlPrice"] = normalized

    return updated


def update_item(item_id: str, payload) -> dict:
    """
    Partial update of includeSizes / allowInitials / paused / twoXlPrice.

    Raises:
        ValidationError: unknown fields, empty patch, invalid 2XL price
        NotFoundError: unknown item id
    """
    patch = validate_patch(payload, MERCH_PATCH_POLICY)
    item_id = clean_text(item_id)

    _read_items()
    with store.transaction("merch") as records:
        records[:] = _normalize_all(records)
        for index, current in enumerate(records):
            if current["id"] == item_id:
                updated = _apply_patch(current, patch)
                records[index] = updated
                return dict(updated)
        raise NotFoundError("Product not found")


def delete_item(item_id: str) -> dict:
    """
    Remove an item and release its managed upload.

    Existing orders keep their denormalized item name and prices.

    Raises:
        NotFoundError: unknown item id
    """
    item_id = clean_text(item_id)

    _read_items()
    with store.transaction("merch") as records:
        records[:] = _normalize_all(records)
        for index, current in enumerate(records):
            if current["id"] == item_id:
                removed = records.pop(index)
                break
        else:
            raise NotFoundError("Product not found")

    upload_service.release_image(removed.get("image"))
    logger.info("Deleted merch item %s", item_id)
    return removed
