from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .models import PRODUCT_STATUSES


# Maximum price: 9,999,999.99 in the environment's currency.
# This prevents database overflow issues and nonsensical prices
MAX_PRICE = 9_999_999.99

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate slug)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Decimal amounts - accept numbers and numeric strings ("12.50"), reject bools
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return None
            try:
                number = float(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be a number")
        else:
            raise ValidationError(f"{col.key} must be a number")
        # "nan" and "inf" parse as floats but are not amounts
        if not math.isfinite(number):
            raise ValidationError(f"{col.key} must be a finite number")
        return number

    # Strings / Text; form inputs send "" for "not provided"
    if isinstance(coltype, (String, Text)):
        text = str(value).strip()
        if text == "" and col.nullable:
            return None
        return text

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def validate_status(status: Any) -> str:
    if status not in PRODUCT_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(PRODUCT_STATUSES)}"
        )
    return status


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "status" in patch:
        validate_status(patch["status"])

    for field in ("purchase_price", "selling_price", "sold_price"):
        price = patch.get(field)
        if price is None:
            continue
        if not math.isfinite(price):
            raise ValidationError(f"{field} must be a finite number")
        if price <= 0:
            raise ValidationError(f"{field} must be positive")
        if price > MAX_PRICE:
            raise ValidationError(f"{field} cannot exceed {MAX_PRICE:,.2f}")


def enforce_rules_sale(amount: Any) -> float:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise ValidationError("Sale amount must be a number")
    if not math.isfinite(amount):
        raise ValidationError("Sale amount must be a finite number")
    if amount <= 0:
        raise ValidationError("Sale amount must be positive")
    if amount > MAX_PRICE:
        raise ValidationError(f"Sale amount cannot exceed {MAX_PRICE:,.2f}")
    return float(amount)


def enforce_rules_location(patch: dict) -> None:
    email = patch.get("contact_email")
    if email and not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email address")


def enforce_rules_environment(patch: dict) -> None:
    slug = patch.get("slug")
    if slug is not None and not SLUG_PATTERN.match(slug):
        raise ValidationError("Slug must contain only lowercase letters, numbers, and hyphens")
