# Overview: Flask API routes for register administration and current-session lookup.

"""
Register API

- Create/update are admin only.
- Any authenticated operator can list registers and read the ones they may use.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import PosError
from ..extensions import db
from ..services import register_service
from .common import ensure_register_access, error_response, json_body, parse_bool_arg, pos_service

registers_bp = Blueprint("registers", __name__, url_prefix="/api/pos/registers")


def _register_with_session(register) -> dict:
    data = register.to_dict()
    session = pos_service().get_current_session(register.id)
    data["current_session"] = session.to_dict() if session else None
    return data


@registers_bp.post("")
@require_auth
@require_admin
def create_register_route():
    """
    Request body:
    {
        "name": "Front Counter",
        "location": "Main floor",       (optional)
        "currency": "USD",              (optional, defaults to POS_DEFAULT_CURRENCY)
        "opening_balance_cents": 10000  (optional)
    }
    """
    try:
        register = register_service.create_register(
            json_body(),
            default_currency=pos_service().settings.default_currency,
        )
        current_app.logger.info("Register created register_id=%s name=%s", register.id, register.name)
        return jsonify({"register": register.to_dict()}), 201

    except PosError as e:
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("")
@require_auth
def list_registers_route():
    """?is_active=true|false|all (default true)."""
    try:
        is_active = parse_bool_arg("is_active") if "is_active" in request.args else True
        operator = g.current_operator
        registers = [
            r for r in register_service.list_registers(is_active=is_active)
            if operator.can_access_register(r.id)
        ]
        return jsonify({"registers": [_register_with_session(r) for r in registers]}), 200

    except PosError as e:
        return error_response(e)


@registers_bp.get("/<int:register_id>")
@require_auth
def get_register_route(register_id: int):
    try:
        register = register_service.get_register(register_id)
        ensure_register_access(register.id)
        return jsonify({"register": _register_with_session(register)}), 200

    except PosError as e:
        return error_response(e)


@registers_bp.patch("/<int:register_id>")
@require_auth
@require_admin
def update_register_route(register_id: int):
    try:
        register = register_service.update_register(register_id, json_body())
        return jsonify({"register": register.to_dict()}), 200

    except PosError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/<int:register_id>/current-session")
@require_auth
def current_session_route(register_id: int):
    try:
        session = pos_service().get_current_session(register_id)
        ensure_register_access(register_id)
        return jsonify({"session": session.to_dict() if session else None}), 200

    except PosError as e:
        return error_response(e)