from __future__ import annotations
from datetime import date, datetime
from .time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Maximum money value: 999,999,999 minor units (999,999.999 TND)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT = 999_999_999

# Largest quantity accepted on one invoice line
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate barcode)."""


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


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects floats, booleans and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_date(key: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            d = parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{key} must be a date (YYYY-MM-DD)")
        if d is None:
            raise ValidationError(f"{key} must be a date (YYYY-MM-DD)")
        return d
    raise ValidationError(f"{key} must be a date (YYYY-MM-DD)")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Floats (coordinates)
    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            stripped = value.strip()
            try:
                return float(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be a number")
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

    # Calendar dates
    if isinstance(coltype, Date):
        return coerce_date(col.key, value)

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

        # Blank optional values from HTML forms count as null
        if isinstance(raw, str) and raw.strip() == "" and col.nullable:
            raw = None

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


def check_amount_bound(key: str, value: int, *, allow_negative: bool = False) -> int:
    """Keep a money figure inside the range the Integer columns can store."""
    if not allow_negative and value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if abs(value) > MAX_AMOUNT:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT}")
    return value


def _check_amount(patch: dict, field: str) -> None:
    if field in patch and patch[field] is not None:
        check_amount_bound(field, patch[field])


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_amount(patch, "cost_price")
    _check_amount(patch, "selling_price")

    if "stock_quantity" in patch and patch["stock_quantity"] is not None:
        if patch["stock_quantity"] < 0:
            raise ValidationError("stock_quantity must be >= 0")


def enforce_rules_customer(patch: dict) -> None:
    lat = patch.get("latitude")
    if lat is not None and not -90.0 <= lat <= 90.0:
        raise ValidationError("latitude must be between -90 and 90")

    lng = patch.get("longitude")
    if lng is not None and not -180.0 <= lng <= 180.0:
        raise ValidationError("longitude must be between -180 and 180")


def enforce_rules_settings(patch: dict) -> None:
    # tax_rate_bps is stored as given; no upper or lower bound
    if "currency" in patch and patch["currency"] is not None:
        patch["currency"] = patch["currency"].upper()
