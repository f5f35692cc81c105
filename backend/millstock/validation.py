from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from millstock.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

LOCATION_TYPES = ("WAREHOUSE", "ZONE", "SHELF", "BIN")


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(ValueError):
    """404-level: a referenced product/location/order/line does not exist."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., deleting a stocked location)."""


class InsufficientStockError(ConflictError):
    """
    Requested deduction exceeds what the applicable locations hold.

    Raised before any row is mutated; the enclosing transaction rolls back.
    """

    def __init__(self, product_name: str, available: int, requested: int, where: str | None = None):
        self.product_name = product_name
        self.available = available
        self.requested = requested
        scope = f" at {where}" if where else ""
        super().__init__(
            f"Insufficient stock for {product_name}{scope}. "
            f"Available: {available}, Requested: {requested}"
        )

    def to_dict(self) -> dict:
        return {
            "product": self.product_name,
            "available": self.available,
            "requested": self.requested,
        }


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - aliases: camelCase request keys accepted for a column key
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    aliases: dict[str, str] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
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
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{key} must be a number")


def coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{key} must be a datetime")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Numeric):
        return coerce_decimal(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        return coerce_datetime(col.key, value)

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

    payload = {policy.aliases.get(k, k): v for k, v in payload.items()}

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
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


# =============================================================================
# Request field helpers (non-model payloads: receive lines, returns, transfers)
# =============================================================================

def _lookup(data: dict, keys: tuple[str, ...]):
    for key in keys:
        if key in data and data[key] not in (None, ""):
            return data[key]
    return None


def require_int(data: dict, *keys: str, minimum: int | None = None) -> int:
    """First present key wins; keys are usually (camelCase, snake_case)."""
    raw = _lookup(data, keys)
    if raw is None:
        raise ValidationError(f"{keys[0]} is required")
    value = coerce_int(keys[0], raw)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{keys[0]} must be >= {minimum}")
    return value


def optional_int(data: dict, *keys: str, minimum: int | None = None) -> int | None:
    raw = _lookup(data, keys)
    if raw is None:
        return None
    value = coerce_int(keys[0], raw)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{keys[0]} must be >= {minimum}")
    return value


def optional_str(data: dict, *keys: str, max_length: int = 255) -> str | None:
    raw = _lookup(data, keys)
    if raw is None:
        return None
    value = str(raw).strip()
    if len(value) > max_length:
        raise ValidationError(f"{keys[0]} exceeds max length {max_length}")
    return value or None


def optional_datetime(data: dict, *keys: str) -> datetime | None:
    raw = _lookup(data, keys)
    if raw is None:
        return None
    return coerce_datetime(keys[0], raw)


def require_list(data: dict, *keys: str) -> list:
    raw = _lookup(data, keys)
    if not isinstance(raw, list) or not raw:
        raise ValidationError(f"{keys[0]} must be a non-empty list")
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError(f"each entry in {keys[0]} must be an object")
    return raw


# =============================================================================
# Business rules not captured by column metadata
# =============================================================================

def enforce_rules_product(patch: dict) -> None:
    if "price_cents" in patch and patch["price_cents"] is not None:
        price = patch["price_cents"]
        if price < 0:
            raise ValidationError("price_cents must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")

    rate = patch.get("milling_yield_rate")
    if rate is not None and not (Decimal("0") < rate <= Decimal("100")):
        raise ValidationError("milling_yield_rate must be within (0, 100]")

    if patch.get("reorder_point") is not None and patch["reorder_point"] < 0:
        raise ValidationError("reorder_point must be >= 0")


def enforce_rules_location(patch: dict) -> None:
    if "type" in patch and patch["type"] is not None:
        patch["type"] = patch["type"].upper()
        if patch["type"] not in LOCATION_TYPES:
            raise ValidationError(
                f"Invalid location type. Must be one of: {', '.join(LOCATION_TYPES)}"
            )

    if "code" in patch and patch["code"] is not None:
        patch["code"] = patch["code"].upper()

    if patch.get("capacity") is not None and patch["capacity"] < 0:
        raise ValidationError("capacity must be >= 0")
