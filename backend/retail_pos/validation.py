from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import InvalidInputError
from .time_utils import parse_iso_datetime


# Maximum amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class BodySchema:
    """
    Allow-list for a JSON request body that does not map 1:1 to a model.

    Unknown keys are rejected rather than copied through.
    """
    allowed: set[str]
    required: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(name: str, value: Any, *, minimum: int | None = None) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, bool):
        raise InvalidInputError(f"{name} must be an integer", details={"field": name})

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise InvalidInputError(f"{name} must be a plain integer", details={"field": name})
        try:
            result = int(stripped)
        except ValueError:
            raise InvalidInputError(f"{name} must be an integer", details={"field": name})
    else:
        raise InvalidInputError(f"{name} must be an integer", details={"field": name})

    if minimum is not None and result < minimum:
        raise InvalidInputError(f"{name} must be >= {minimum}", details={"field": name, "value": result})
    return result


def coerce_cents(name: str, value: Any, *, allow_negative: bool = False) -> int:
    cents = coerce_int(name, value, minimum=None if allow_negative else 0)
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise InvalidInputError(
            f"{name} cannot exceed {MAX_AMOUNT_CENTS} (${MAX_AMOUNT_CENTS / 100:,.2f})",
            details={"field": name},
        )
    return cents


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise InvalidInputError(f"{col.key} must be a boolean", details={"field": col.key})

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise InvalidInputError(f"{col.key} must be an ISO-8601 datetime", details={"field": col.key})
            if dt is None:
                raise InvalidInputError(f"{col.key} must be an ISO-8601 datetime", details={"field": col.key})
            return dt
        raise InvalidInputError(f"{col.key} must be a datetime", details={"field": col.key})

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
        raise InvalidInputError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise InvalidInputError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing": missing},
            )

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise InvalidInputError(f"Field not allowed: {k}", details={"field": k})
        if k not in cols:
            raise InvalidInputError(f"Unknown field: {k}", details={"field": k})

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise InvalidInputError(f"{k} cannot be null", details={"field": k})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise InvalidInputError(f"{k} cannot be blank", details={"field": k})

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise InvalidInputError(f"{k} exceeds max length {col.type.length}", details={"field": k})

        patch[k] = val

    return patch


def validate_body(payload: Any, schema: BodySchema) -> dict:
    """Reject unknown keys and report missing required ones; returns the payload as a dict."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidInputError("Invalid JSON payload")

    unknown = sorted(k for k in payload if k not in schema.allowed)
    if unknown:
        raise InvalidInputError(
            f"Field not allowed: {', '.join(unknown)}",
            details={"fields": unknown},
        )

    missing = sorted(k for k in schema.required if payload.get(k) is None)
    if missing:
        raise InvalidInputError(
            f"Missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )

    return dict(payload)


def enforce_rules_register(patch: dict) -> None:
    """Register rules that SQLAlchemy metadata does not capture."""
    if "opening_balance_cents" in patch and patch["opening_balance_cents"] is not None:
        coerce_cents("opening_balance_cents", patch["opening_balance_cents"])

    if "currency" in patch and patch["currency"] is not None:
        currency = patch["currency"]
        if len(currency) != 3 or not currency.isalpha():
            raise InvalidInputError("currency must be a 3-letter code", details={"field": "currency"})
        patch["currency"] = currency.upper()
