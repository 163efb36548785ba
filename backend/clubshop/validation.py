from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


# Maximum price: $10,000.00
# Anything above this is treated as a typo rather than a real listing
MAX_PRICE = Decimal("10000")
CENTS = Decimal("0.01")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
INITIALS_RE = re.compile(r"^[A-Z]{1,5}$")
WHOLE_NUMBER_RE = re.compile(r"[+-]?[0-9]+")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., ordering a paused item)."""


class NotFoundError(LookupError):
    """404-level missing order, item or user."""


@dataclass(frozen=True)
class PatchPolicy:
    """
    Allowlist for partial updates:
    - writable_fields: what clients are allowed to set (security boundary)
    - boolean_fields: coerced to bool
    """
    writable_fields: frozenset[str]
    boolean_fields: frozenset[str] = frozenset()


def validate_patch(payload: Any, policy: PatchPolicy) -> dict:
    """
    Validates an incoming PATCH body against the policy allowlist.
    Returns a cleaned patch dict; only keys present in the payload are returned.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")

    if not payload:
        raise ValidationError("No product updates provided")

    patch: dict = {}
    for k, raw in payload.items():
        if k in policy.boolean_fields:
            # fallback: truthiness
            patch[k] = raw if isinstance(raw, bool) else bool(raw)
        else:
            patch[k] = raw
    return patch


def round_cents(value: Decimal) -> float:
    return float(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def normalize_price(value: Any) -> float | None:
    """Return a positive price rounded to cents, or None if unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    if amount <= 0 or amount > MAX_PRICE:
        return None
    return round_cents(amount)


def normalize_optional_price(value: Any) -> float | None:
    if value is None or str(value).strip() == "":
        return None
    return normalize_price(value)


def line_total(quantity: int, unit_price: float) -> float:
    return round_cents(Decimal(str(unit_price)) * quantity)


def coerce_int(value: Any, field: str) -> int:
    """Accept a JSON integer or a string of digits (optionally signed); nothing else."""
    # bool is an int subclass; true/false are not quantities
    if type(value) is int:
        return value
    if isinstance(value, str) and WHOLE_NUMBER_RE.fullmatch(value.strip()):
        return int(value.strip())
    raise ValidationError(f"{field} must be a whole number")


def normalize_email(email: Any) -> str | None:
    normalized = str(email or "").strip().lower()
    if not EMAIL_RE.match(normalized):
        return None
    return normalized


def normalize_initials(initials: Any) -> str | None:
    normalized = str(initials or "").strip().upper()
    if not INITIALS_RE.match(normalized):
        return None
    return normalized


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
