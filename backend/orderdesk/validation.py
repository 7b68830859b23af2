from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_date, parse_iso_datetime


# Maximum money amount: 999,999,999 cents
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset
    required_on_create: frozenset = frozenset()


# Status, delivery, proof, number and total columns are deliberately absent:
# they only change through transition(), update_delivery_status() and
# recalculate_total().
ORDER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "customer_name",
        "customer_phone",
        "customer_email",
        "address",
        "comment",
        "courier_comment",
        "delivery_date",
        "delivery_slot",
        "manager_id",
        "discount_cents",
        "delivery_cost_cents",
        "payment_method",
        "payment_status",
    }),
)

ORDER_ITEM_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "product_id",
        "quantity",
        "price_cents",
        "discount_cents",
        "serial",
        "is_accessory",
    }),
    required_on_create=frozenset({"product_id"}),
)

STOCK_UNIT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "product_id",
        "serial",
        "condition",
        "supplier",
        "purchase_price_cents",
        "warranty_months",
    }),
    required_on_create=frozenset({"product_id", "serial"}),
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise ValidationError(f"{col.key} must be a boolean")

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{col.key} must be a number")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, str):
            if not value.strip():
                return None
            try:
                return parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")
        raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
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


def _check_cents(patch: dict, key: str) -> None:
    value = patch.get(key)
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")


def enforce_rules_order(patch: dict) -> None:
    _check_cents(patch, "discount_cents")
    _check_cents(patch, "delivery_cost_cents")


def enforce_rules_order_item(patch: dict) -> None:
    quantity = patch.get("quantity", 1)
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be > 0")
    _check_cents(patch, "price_cents")
    _check_cents(patch, "discount_cents")

    serial = patch.get("serial")
    if serial is not None:
        patch["serial"] = serial or None
        # One physical unit per serialized line.
        if patch["serial"] and quantity != 1:
            raise ValidationError("Serialized items must have quantity 1")


def enforce_rules_stock_unit(patch: dict) -> None:
    if not patch.get("serial"):
        raise ValidationError("serial is required")
    _check_cents(patch, "purchase_price_cents")
    months = patch.get("warranty_months")
    if months is not None and months < 0:
        raise ValidationError("warranty_months must be >= 0")
