from __future__ import annotations
import math
from datetime import datetime

from dataclasses import dataclass
from typing import Any

from .errors import ValidationError, ConflictError  # noqa: F401 (re-exported)
from .time_utils import coerce_datetime
from .models.catalog import VALID_UNITS, VALID_MOVEMENT_TYPES, MOVEMENT_ADJUSTMENT
from .models.customers import VALID_TRANSACTION_KINDS
from .models.billing import (
    VALID_INVOICE_TYPES,
    VALID_INVOICE_STATUSES,
    VALID_PAYMENT_METHODS,
    VALID_PAYMENT_STATES,
)


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# This prevents storage overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999

# 100% expressed in basis points
MAX_RATE_BPS = 10_000

STRING = "string"
INTEGER = "integer"
MONEY = "money"
BPS = "bps"
NUMBER = "number"
DATETIME = "datetime"
BOOLEAN = "boolean"
ITEMS = "items"


@dataclass(frozen=True)
class FieldSpec:
    kind: str = STRING
    nullable: bool = True
    max_length: int | None = None
    choices: tuple | None = None
    min_value: int | None = None


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - fields: what callers are allowed to set, and how each value is coerced
    - required_on_create: fields required on add
    - forbidden: derived fields that must never come from the caller
    """
    fields: dict
    required_on_create: frozenset = frozenset()
    forbidden: frozenset = frozenset()


def _coerce_integer(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(key: str, spec: FieldSpec, value: Any):
    kind = spec.kind

    if kind in (INTEGER, MONEY, BPS):
        val = _coerce_integer(key, value)
        if kind == MONEY:
            if val < 0:
                raise ValidationError(f"{key} must be >= 0")
            if val > MAX_AMOUNT_CENTS:
                raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")
        if kind == BPS and not 0 <= val <= MAX_RATE_BPS:
            raise ValidationError(f"{key} must be between 0 and {MAX_RATE_BPS}")
        if spec.min_value is not None and val < spec.min_value:
            raise ValidationError(f"{key} must be >= {spec.min_value}")
        return val

    if kind == NUMBER:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValidationError(f"{key} must be a number")
        try:
            val = float(value)
        except ValueError:
            raise ValidationError(f"{key} must be a number")
        if not math.isfinite(val):
            raise ValidationError(f"{key} must be a finite number")
        if val < 0:
            raise ValidationError(f"{key} must be >= 0")
        return val

    # Booleans
    if kind == BOOLEAN:
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if kind == DATETIME:
        if isinstance(value, (datetime, str)):
            try:
                dt = coerce_datetime(value)
            except ValueError:
                raise ValidationError(f"{key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{key} must be a datetime")

    if kind == ITEMS:
        if not isinstance(value, (list, tuple)):
            raise ValidationError(f"{key} must be a list")
        return list(value)

    # Strings
    val = str(value).strip()
    if spec.max_length and len(val) > spec.max_length:
        raise ValidationError(f"{key} exceeds max length {spec.max_length}")
    return val


def validate_payload(
    *,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming fields against a policy.
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid payload")

    for k in payload.keys():
        if k in policy.forbidden:
            raise ValidationError(f"{k} is derived and cannot be set")
        if k not in policy.fields:
            raise ValidationError(f"Field not allowed: {k}")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    patch: dict = {}

    for k, raw in payload.items():
        spec = policy.fields[k]

        # NULL handling
        if raw is None:
            if not spec.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(k, spec, raw)

        # Blank string check for non-nullable text fields
        if spec.kind == STRING and not spec.nullable and val == "":
            raise ValidationError(f"{k} cannot be blank")

        if spec.choices is not None and val not in spec.choices:
            raise ValidationError(f"{k} must be one of {list(spec.choices)}")

        patch[k] = val

    return patch


_TIMESTAMPS = frozenset({"id", "created_at", "updated_at", "created_by"})

PRODUCT_POLICY = ModelValidationPolicy(
    fields={
        "name": FieldSpec(nullable=False, max_length=255),
        "sku": FieldSpec(nullable=False, max_length=64),
        "price_cents": FieldSpec(MONEY, nullable=False),
        "quantity": FieldSpec(INTEGER, nullable=False, min_value=0),
        "category": FieldSpec(max_length=120),
        "barcode": FieldSpec(max_length=64),
        "low_stock_threshold": FieldSpec(INTEGER, nullable=False, min_value=0),
        "unit": FieldSpec(nullable=False, choices=tuple(VALID_UNITS)),
        "pieces_per_box": FieldSpec(INTEGER, min_value=1),
        "area_per_piece": FieldSpec(NUMBER),
        "material": FieldSpec(max_length=120),
        "finish": FieldSpec(max_length=120),
        "color": FieldSpec(max_length=64),
        "grade": FieldSpec(max_length=32),
        "manufacturer": FieldSpec(max_length=255),
        "hsn_code": FieldSpec(max_length=32),
        "description": FieldSpec(),
        "tax_rate_bps": FieldSpec(BPS, nullable=False),
    },
    required_on_create=frozenset({"name", "sku", "price_cents"}),
    forbidden=_TIMESTAMPS,
)

CUSTOMER_POLICY = ModelValidationPolicy(
    fields={
        "name": FieldSpec(nullable=False, max_length=255),
        "phone": FieldSpec(max_length=32),
        "email": FieldSpec(max_length=255),
        "address": FieldSpec(),
        "gst_number": FieldSpec(max_length=32),
        "credit_limit_cents": FieldSpec(MONEY),
        "customer_group": FieldSpec(nullable=False, max_length=32),
    },
    required_on_create=frozenset({"name"}),
    forbidden=_TIMESTAMPS | {"outstanding_balance_cents", "loyalty_points"},
)

VENDOR_POLICY = ModelValidationPolicy(
    fields={
        "name": FieldSpec(nullable=False, max_length=255),
        "phone": FieldSpec(max_length=32),
        "email": FieldSpec(max_length=255),
        "address": FieldSpec(),
        "gst_number": FieldSpec(max_length=32),
        "payment_terms_days": FieldSpec(INTEGER, nullable=False, min_value=0),
    },
    required_on_create=frozenset({"name"}),
    forbidden=_TIMESTAMPS,
)

EXPENSE_POLICY = ModelValidationPolicy(
    fields={
        "category": FieldSpec(nullable=False, max_length=120),
        "description": FieldSpec(),
        "amount_cents": FieldSpec(MONEY, nullable=False),
        "vendor_id": FieldSpec(),
        "payment_method": FieldSpec(nullable=False, choices=tuple(VALID_PAYMENT_METHODS)),
        "incurred_at": FieldSpec(DATETIME, nullable=False),
    },
    required_on_create=frozenset({"category", "amount_cents"}),
    forbidden=_TIMESTAMPS,
)

INVOICE_POLICY = ModelValidationPolicy(
    fields={
        "customer_id": FieldSpec(nullable=False),
        "invoice_number": FieldSpec(nullable=False, max_length=64),
        "invoice_type": FieldSpec(nullable=False, choices=tuple(VALID_INVOICE_TYPES)),
        "items": FieldSpec(ITEMS, nullable=False),
        "discount_cents": FieldSpec(MONEY, nullable=False),
        "tax_rate_bps": FieldSpec(BPS, nullable=False),
        "status": FieldSpec(nullable=False, choices=tuple(VALID_INVOICE_STATUSES)),
        "due_date": FieldSpec(DATETIME),
        "notes": FieldSpec(),
    },
    required_on_create=frozenset({"customer_id", "items"}),
    forbidden=_TIMESTAMPS | {
        "customer_name",
        "subtotal_cents",
        "tax_cents",
        "total_cents",
        "paid_cents",
        "balance_cents",
        "payment_status",
    },
)

INVOICE_ITEM_POLICY = ModelValidationPolicy(
    fields={
        "product_id": FieldSpec(nullable=False),
        "quantity": FieldSpec(INTEGER, nullable=False, min_value=1),
        "unit_price_cents": FieldSpec(MONEY),
    },
    required_on_create=frozenset({"product_id", "quantity"}),
    forbidden=frozenset({"product_name", "sku", "line_total_cents"}),
)

PAYMENT_POLICY = ModelValidationPolicy(
    fields={
        "invoice_id": FieldSpec(nullable=False),
        "amount_cents": FieldSpec(MONEY, nullable=False, min_value=1),
        "method": FieldSpec(nullable=False, choices=tuple(VALID_PAYMENT_METHODS)),
        "status": FieldSpec(nullable=False, choices=tuple(VALID_PAYMENT_STATES)),
        "reference": FieldSpec(max_length=128),
    },
    required_on_create=frozenset({"invoice_id", "amount_cents"}),
    forbidden=_TIMESTAMPS,
)

STOCK_MOVEMENT_POLICY = ModelValidationPolicy(
    fields={
        "product_id": FieldSpec(nullable=False),
        "movement_type": FieldSpec(nullable=False, choices=tuple(VALID_MOVEMENT_TYPES)),
        "quantity": FieldSpec(INTEGER, nullable=False),
        "reason": FieldSpec(max_length=255),
        "reference": FieldSpec(max_length=128),
    },
    required_on_create=frozenset({"product_id", "movement_type", "quantity"}),
    forbidden=_TIMESTAMPS | {"quantity_after"},
)

CUSTOMER_ADJUSTMENT_POLICY = ModelValidationPolicy(
    fields={
        "kind": FieldSpec(nullable=False, choices=tuple(VALID_TRANSACTION_KINDS)),
        "amount_cents": FieldSpec(INTEGER, nullable=False),
        "note": FieldSpec(),
    },
    required_on_create=frozenset({"amount_cents"}),
)


def enforce_rules_stock_movement(patch: dict) -> None:
    # in/out require qty > 0; adjustment requires a non-zero signed delta
    quantity = patch["quantity"]
    if patch["movement_type"] == MOVEMENT_ADJUSTMENT:
        if quantity == 0:
            raise ValidationError("quantity must be non-zero for adjustment")
    elif quantity <= 0:
        raise ValidationError(f"quantity must be > 0 for {patch['movement_type']}")


def enforce_rules_invoice(patch: dict) -> None:
    if "items" in patch and not patch["items"]:
        raise ValidationError("invoice requires at least one item")


def parse_window(args) -> tuple[datetime | None, datetime | None]:
    """Read optional ISO-8601 start/end from query args into a [start, end) window."""
    window = {}
    for key in ("start", "end"):
        raw = args.get(key)
        window[key] = _coerce_value(key, FieldSpec(DATETIME), raw) if raw else None
    start, end = window["start"], window["end"]
    if start is not None and end is not None and end < start:
        raise ValidationError("end must not be before start")
    return start, end
