# Overview: Shared helpers for POS blueprints (service lookup, error rendering, access checks).

from __future__ import annotations

from flask import current_app, g, jsonify, request

from ..errors import ForbiddenError, InconsistencyError, InvalidInputError, PosError
from ..services.pos_service import PosService


def pos_service() -> PosService:
    return current_app.extensions["pos"]


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise InvalidInputError("Invalid JSON payload")
    return payload


def error_response(exc: PosError):
    return jsonify(exc.to_dict()), exc.status_code


def inconsistency_response(exc: InconsistencyError):
    """The transaction exists; report it with the inventory warning."""
    return jsonify({
        "transaction": exc.transaction.to_dict(),
        "warning": exc.message,
        "inventory_failures": exc.details["inventory_failures"],
    }), 201


def ensure_register_access(register_id: int) -> None:
    operator = g.current_operator
    if not operator.can_access_register(register_id):
        raise ForbiddenError(
            "Operator is not assigned to this register",
            details={"register_id": register_id, "operator_id": operator.id},
        )


def parse_bool_arg(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None or raw == "" or raw.lower() == "all":
        return None
    if raw.lower() in {"1", "true", "yes"}:
        return True
    if raw.lower() in {"0", "false", "no"}:
        return False
    raise InvalidInputError(f"{name} must be true, false or all", details={"field": name})
