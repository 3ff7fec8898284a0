# Overview: Flask API routes for register session open/close and session reports.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_auth
from ..errors import PosError
from ..extensions import db
from ..services import reporting_service
from ..validation import BodySchema, coerce_int, validate_body
from .common import ensure_register_access, error_response, json_body, pos_service

sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/pos/sessions")

OPEN_SCHEMA = BodySchema(
    allowed={"register_id", "opening_balance_cents", "notes"},
    required={"register_id", "opening_balance_cents"},
)
CLOSE_SCHEMA = BodySchema(
    allowed={"closing_balance_cents", "notes"},
    required={"closing_balance_cents"},
)


@sessions_bp.post("/open")
@require_auth
def open_session_route():
    """
    Open a shift on a register.

    Request body:
    {
        "register_id": 1,
        "opening_balance_cents": 10000,
        "notes": "Morning float"   (optional)
    }
    """
    try:
        data = validate_body(json_body(), OPEN_SCHEMA)
        session = pos_service().open_session(
            coerce_int("register_id", data["register_id"], minimum=1),
            data["opening_balance_cents"],
            g.current_operator,
            notes=data.get("notes"),
        )
        return jsonify({"session": session.to_dict()}), 201

    except PosError as e:
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to open session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/<int:session_id>/close")
@require_auth
def close_session_route(session_id: int):
    """
    Close a shift with the counted drawer amount.

    Response includes expected_closing_balance_cents and variance_cents.
    """
    try:
        data = validate_body(json_body(), CLOSE_SCHEMA)
        session = pos_service().close_session(
            session_id,
            data["closing_balance_cents"],
            g.current_operator,
            notes=data.get("notes"),
        )
        return jsonify({"session": session.to_dict()}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to close session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/<int:session_id>")
@require_auth
def get_session_route(session_id: int):
    try:
        session = pos_service().get_session(session_id)
        ensure_register_access(session.register_id)
        return jsonify({"session": session.to_dict()}), 200

    except PosError as e:
        return error_response(e)


@sessions_bp.get("/<int:session_id>/report")
@require_auth
def session_report_route(session_id: int):
    try:
        session = pos_service().get_session(session_id)
        ensure_register_access(session.register_id)
        return jsonify(reporting_service.session_report(session_id)), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build session report")
        return jsonify({"error": "Internal server error"}), 500
