# Overview: Health and POS settings endpoints.

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..decorators import require_auth
from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .common import pos_service

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "healthy", "latency_ms": round((time.time() - start_time) * 1000, 2)}
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), 200 if healthy else 503


@system_bp.get("/api/pos/settings")
@require_auth
def settings_route():
    return jsonify({"settings": pos_service().settings.to_dict()}), 200
