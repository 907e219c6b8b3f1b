from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from fintab.time_utils import parse_iso_datetime, parse_iso_date


# Maximum price: 9,999,999.99 in cents
MAX_PRICE_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


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

    # Percentages and rates
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            return Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{col.key} must be a number")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

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
        if isinstance(value, date):
            return value
        try:
            return parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 date")

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

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_cents(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None:
        value = patch[key]
        if value < 0:
            raise ValidationError(f"{key} must be >= 0")
        if value > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    """
    _check_cents(patch, "price_cents")
    _check_cents(patch, "cost_price_cents")

    if "stock" in patch and patch["stock"] is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0")

    if "commission_percentage" in patch and patch["commission_percentage"] is not None:
        pct = patch["commission_percentage"]
        if pct < 0 or pct > 100:
            raise ValidationError("commission_percentage must be between 0 and 100")


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "category",
        "price_cents", "cost_price_cents", "stock",
        "commission_percentage", "is_active",
    },
    required_on_create={"name", "price_cents"},
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "is_active"},
    required_on_create={"name"},
)
