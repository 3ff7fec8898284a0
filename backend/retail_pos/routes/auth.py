# Overview: Flask API routes for operator login and logout.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_auth
from ..errors import PosError
from ..extensions import db
from ..services import auth_service
from ..time_utils import to_utc_z
from ..validation import BodySchema, validate_body
from .common import error_response, json_body, pos_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

LOGIN_SCHEMA = BodySchema(allowed={"username", "pin"}, required={"username", "pin"})


@auth_bp.post("/login")
def login_route():
    """
    Exchange username + PIN for a bearer token.

    The plaintext token is returned once; send it as
    `Authorization: Bearer <token>` on every other call.
    """
    try:
        data = validate_body(json_body(), LOGIN_SCHEMA)
        issued = auth_service.authenticate(
            str(data["username"]),
            data["pin"],
            ttl_hours=pos_service().settings.token_ttl_hours,
        )
        if issued is None:
            current_app.logger.info("Failed login for username=%s", data["username"])
            return jsonify({"error": "Invalid credentials"}), 401

        token, plaintext = issued
        return jsonify({
            "token": plaintext,
            "expires_at": to_utc_z(token.expires_at),
            "operator": token.operator.to_dict(),
        }), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    auth_service.revoke_token(g.auth_token)
    return jsonify({"status": "logged_out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"operator": g.current_operator.to_dict()}), 200
