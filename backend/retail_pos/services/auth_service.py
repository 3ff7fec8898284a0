# Overview: Operator accounts, PIN hashing and bearer tokens.

"""
Operator authentication.

- PINs are 4-8 digits, hashed with bcrypt.
- Bearer tokens are secrets.token_hex(32); only their SHA-256 hash is stored.
- Tokens have an absolute lifetime and can be revoked at logout.
"""

from __future__ import annotations

import hashlib
import re
import secrets
from datetime import timedelta

import bcrypt

from ..errors import ConflictError, InvalidInputError, NotFoundError
from ..extensions import db
from ..models import AuthToken, Operator, Register
from ..time_utils import utcnow

BCRYPT_ROUNDS = 12

_PIN_RE = re.compile(r"^\d{4,8}$")


def validate_pin(pin) -> str:
    if not isinstance(pin, str) or not _PIN_RE.match(pin):
        raise InvalidInputError("PIN must be 4 to 8 digits", details={"field": "pin"})
    return pin


def hash_pin(pin: str) -> str:
    validate_pin(pin)
    return bcrypt.hashpw(pin.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_pin(pin: str, pin_hash: str) -> bool:
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        return False


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _load_registers(register_ids) -> list[Register]:
    ids = sorted(set(register_ids or []))
    registers = db.session.query(Register).filter(Register.id.in_(ids)).all() if ids else []
    missing = sorted(set(ids) - {r.id for r in registers})
    if missing:
        raise NotFoundError("Registers not found", details={"register_ids": missing})
    return registers


def create_operator(
    *,
    username: str,
    display_name: str,
    pin: str,
    is_admin: bool = False,
    can_access_all_registers: bool = False,
    register_ids: list[int] | None = None,
) -> Operator:
    username = (username or "").strip()
    display_name = (display_name or "").strip()
    if not username:
        raise InvalidInputError("username is required", details={"field": "username"})
    if not display_name:
        raise InvalidInputError("display_name is required", details={"field": "display_name"})

    if db.session.query(Operator).filter_by(username=username).first():
        raise ConflictError(f"Username '{username}' already exists", details={"field": "username"})

    operator = Operator(
        username=username,
        display_name=display_name,
        pin_hash=hash_pin(pin),
        is_admin=is_admin,
        can_access_all_registers=can_access_all_registers,
        is_active=True,
    )
    operator.registers = _load_registers(register_ids)

    db.session.add(operator)
    db.session.commit()
    return operator


def assign_registers(operator_id: int, register_ids: list[int]) -> Operator:
    """Replace the operator's register assignments."""
    operator = db.session.get(Operator, operator_id)
    if operator is None:
        raise NotFoundError(f"Operator {operator_id} not found", details={"operator_id": operator_id})

    operator.registers = _load_registers(register_ids)
    db.session.commit()
    return operator


def authenticate(username: str, pin: str, *, ttl_hours: int = 12) -> tuple[AuthToken, str] | None:
    """
    Check credentials and issue a token.

    Returns (token_record, plaintext_token), or None for unknown users,
    inactive operators and wrong PINs alike.
    """
    operator = db.session.query(Operator).filter_by(username=username, is_active=True).first()
    if operator is None or not isinstance(pin, str) or not verify_pin(pin, operator.pin_hash):
        return None

    plaintext = generate_token()
    now = utcnow()
    token = AuthToken(
        operator_id=operator.id,
        token_hash=hash_token(plaintext),
        created_at=now,
        expires_at=now + timedelta(hours=ttl_hours),
        is_revoked=False,
    )
    operator.last_login_at = now

    db.session.add(token)
    db.session.commit()
    return token, plaintext


def validate_token(token: str) -> Operator | None:
    record = db.session.query(AuthToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if record is None or record.expires_at < utcnow():
        return None

    operator = record.operator
    if operator is None or not operator.is_active:
        return None
    return operator


def revoke_token(token: str) -> bool:
    record = db.session.query(AuthToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if record is None:
        return False

    record.is_revoked = True
    record.revoked_at = utcnow()
    db.session.commit()
    return True
