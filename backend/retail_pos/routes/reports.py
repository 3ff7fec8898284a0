# Overview: Flask API routes for period sales reports.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ForbiddenError, PosError
from ..services import reporting_service
from ..validation import coerce_int
from .common import ensure_register_access, error_response

reports_bp = Blueprint("reports", __name__, url_prefix="/api/pos/reports")


@reports_bp.get("/sales")
@require_auth
def sales_report_route():
    """
    Query params:
        register_id (optional; required for operators limited to some registers)
        date_from, date_to (ISO-8601)
        group_by: day | week | month (default day)
    """
    try:
        raw_register_id = request.args.get("register_id")
        register_id = coerce_int("register_id", raw_register_id) if raw_register_id else None

        operator = g.current_operator
        if register_id is not None:
            ensure_register_access(register_id)
        elif not (operator.is_admin or operator.can_access_all_registers):
            raise ForbiddenError("register_id is required", details={"field": "register_id"})

        report = reporting_service.sales_report(
            register_id=register_id,
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            group_by=request.args.get("group_by", "day"),
        )
        return jsonify(report), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return jsonify({"error": "Internal server error"}), 500
