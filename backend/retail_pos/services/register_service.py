# Overview: Register administration (create, list, update, deactivate).

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import Register, RegisterSession, SESSION_STATUS_OPEN
from ..validation import ModelValidationPolicy, enforce_rules_register, validate_payload
from .concurrency import lock_for_update, run_with_retry

REGISTER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "location",
        "description",
        "currency",
        "is_active",
        "opening_balance_cents",
    },
    required_on_create={"name"},
)


def _ensure_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Register).filter(Register.name == name)
    if exclude_id is not None:
        query = query.filter(Register.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Register '{name}' already exists", details={"field": "name"})


def create_register(payload: dict, *, default_currency: str = "USD") -> Register:
    """
    Create a register from a request body.

    Registers start active with current balance equal to the opening balance.
    """
    patch = validate_payload(model=Register, payload=payload, policy=REGISTER_POLICY, partial=False)
    enforce_rules_register(patch)
    _ensure_unique_name(patch["name"])

    register = Register(
        name=patch["name"],
        location=patch.get("location"),
        description=patch.get("description"),
        currency=patch.get("currency") or default_currency,
        opening_balance_cents=patch.get("opening_balance_cents") or 0,
        current_balance_cents=patch.get("opening_balance_cents") or 0,
        is_active=patch.get("is_active", True) is not False,
    )
    db.session.add(register)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Register '{patch['name']}' already exists", details={"field": "name"})
    return register


def list_registers(is_active: bool | None = None) -> list[Register]:
    query = db.session.query(Register)
    if is_active is not None:
        query = query.filter(Register.is_active.is_(is_active))
    return query.order_by(Register.name).all()


def get_register(register_id: int) -> Register:
    register = db.session.get(Register, register_id)
    if register is None:
        raise NotFoundError(f"Register {register_id} not found", details={"register_id": register_id})
    return register


def update_register(register_id: int, payload: dict) -> Register:
    """Apply an allow-listed patch; refuses to deactivate a register mid-session."""
    patch = validate_payload(model=Register, payload=payload, policy=REGISTER_POLICY, partial=True)
    enforce_rules_register(patch)

    def _op():
        register = lock_for_update(db.session.query(Register).filter_by(id=register_id)).first()
        if register is None:
            raise NotFoundError(f"Register {register_id} not found", details={"register_id": register_id})

        if "name" in patch and patch["name"] != register.name:
            _ensure_unique_name(patch["name"], exclude_id=register.id)

        if patch.get("is_active") is False and register.is_active:
            open_session = db.session.query(RegisterSession).filter_by(
                register_id=register.id,
                status=SESSION_STATUS_OPEN,
            ).first()
            if open_session is not None:
                raise InvalidStateError(
                    "Cannot deactivate register with an open session",
                    details={"register_id": register.id, "session_id": open_session.id},
                )

        for key, value in patch.items():
            setattr(register, key, value)

        db.session.commit()
        return register

    return run_with_retry(_op)
