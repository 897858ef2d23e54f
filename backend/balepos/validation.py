from __future__ import annotations
from datetime import datetime
from balepos.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Float, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .models import BaleStatus, PaymentMethod, TransactionType


# Maximum money amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate username)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


BALE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "status", "cost_cents", "item_count"},
    required_on_create={"name", "cost_cents", "item_count"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "brand", "bale_id", "cost_price_cents", "selling_price_cents", "stock"},
    required_on_create={"sku", "name"},
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"username", "is_vip", "vip_tickets", "is_blacklisted"},
    required_on_create={"username"},
)

TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={"type", "amount_cents", "wallet", "category", "note", "created_at"},
    required_on_create={"type", "amount_cents", "wallet", "category"},
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _strict_int(value: Any, field: str) -> int:
    """Whole numbers only: bools, floats, '1e3' and '12.5' are rejected."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be a whole number")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
    raise ValidationError(f"{field} must be a whole number")


def _coerce_value(col, value: Any):
    coltype = col.type
    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _strict_int(value, col.key)

    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{col.key} must be a number")

    if isinstance(coltype, Boolean):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    # ISO-8601, normalized to UTC-naive
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        try:
            dt = parse_iso_datetime(value) if isinstance(value, str) else None
        except ValueError:
            dt = None
        if dt is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        return dt

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

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

        # NULL handling
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


def _check_amount(patch: dict, key: str, *, allow_zero: bool = True) -> None:
    if key not in patch or patch[key] is None:
        return
    amount = patch[key]
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{key} must be {'>= 0' if allow_zero else '> 0'}")
    if amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS} ({MAX_AMOUNT_CENTS / 100:,.2f})")


def enforce_rules_bale(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_amount(patch, "cost_cents")
    if "item_count" in patch and patch["item_count"] is not None and patch["item_count"] < 0:
        raise ValidationError("item_count must be >= 0")
    if "status" in patch and patch["status"] not in BaleStatus.ALL:
        raise ValidationError(f"status must be one of: {', '.join(BaleStatus.ALL)}")


def enforce_rules_product(patch: dict) -> None:
    _check_amount(patch, "cost_price_cents")
    _check_amount(patch, "selling_price_cents")


def enforce_rules_customer(patch: dict) -> None:
    if "vip_tickets" in patch and patch["vip_tickets"] is not None and patch["vip_tickets"] < 0:
        raise ValidationError("vip_tickets must be >= 0")


def enforce_rules_transaction(patch: dict) -> None:
    # Amount is always positive; direction comes from the type
    _check_amount(patch, "amount_cents", allow_zero=False)
    if "type" in patch and patch["type"] not in TransactionType.ALL:
        raise ValidationError(f"type must be one of: {', '.join(TransactionType.ALL)}")
    if "wallet" in patch and patch["wallet"] not in PaymentMethod.ALL:
        raise ValidationError(f"wallet must be one of: {', '.join(PaymentMethod.ALL)}")


def require_choice(value: Any, choices: tuple, field: str) -> Any:
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value


def parse_cents(value: Any, field: str, *, allow_none: bool = False) -> int | None:
    """Strict non-negative integer-cents parsing for ad hoc request fields."""
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")
    cents = _strict_int(value, field)
    if cents < 0:
        raise ValidationError(f"{field} must be >= 0")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return cents
