# Overview: Flask API routes for sales, refunds, voids and transaction lookup.

"""
Transaction API

POST /api/pos/transactions records a sale. When the sale is stored but some
stock movements could not be written, the response is still 201 and carries
`warning` and `inventory_failures` next to the transaction.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ForbiddenError, InconsistencyError, PosError
from ..extensions import db
from ..validation import BodySchema, coerce_int, validate_body
from .common import (
    ensure_register_access,
    error_response,
    inconsistency_response,
    json_body,
    pos_service,
)

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/pos/transactions")

SALE_SCHEMA = BodySchema(
    allowed={"session_id", "items", "payment_method", "payments", "discounts", "customer", "notes"},
    required={"session_id", "items", "payment_method"},
)
REFUND_SCHEMA = BodySchema(
    allowed={"reason", "refund_amount_cents", "items"},
    required={"reason"},
)
VOID_SCHEMA = BodySchema(allowed={"reason"}, required={"reason"})


@transactions_bp.post("")
@require_auth
def create_transaction_route():
    """
    Request body:
    {
        "session_id": 1,
        "items": [{"product_id": 3, "variant_id": null, "quantity": 2}],
        "payment_method": "cash",
        "payments": [{"method": "cash", "amount_cents": 6000}],   (optional)
        "discounts": [{"type": "percentage", "value": 10}],       (optional)
        "customer": {"name": "...", "email": "...", "phone": "..."},  (optional)
        "notes": "..."                                            (optional)
    }
    """
    try:
        data = validate_body(json_body(), SALE_SCHEMA)
        transaction = pos_service().create_transaction(
            coerce_int("session_id", data["session_id"], minimum=1),
            data["items"],
            data["payment_method"],
            data.get("payments"),
            data.get("discounts"),
            actor=g.current_operator,
            customer=data.get("customer"),
            notes=data.get("notes"),
        )
        return jsonify({"transaction": transaction.to_dict()}), 201

    except InconsistencyError as e:
        return inconsistency_response(e)
    except PosError as e:
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """
    Query params: session_id, register_id, date_from, date_to, type, status,
    page, limit. Operators limited to specific registers must filter by one.
    """
    try:
        args = request.args
        register_id = args.get("register_id")
        session_id = args.get("session_id")
        operator = g.current_operator
        service = pos_service()

        if register_id is not None:
            ensure_register_access(coerce_int("register_id", register_id))
        if session_id is not None:
            ensure_register_access(service.get_session(coerce_int("session_id", session_id)).register_id)
        if register_id is None and session_id is None and not (operator.is_admin or operator.can_access_all_registers):
            raise ForbiddenError("register_id or session_id is required", details={"field": "register_id"})

        result = service.list_transactions(
            session_id=session_id,
            register_id=register_id,
            date_from=args.get("date_from"),
            date_to=args.get("date_to"),
            type=args.get("type"),
            status=args.get("status"),
            page=args.get("page", 1),
            limit=args.get("limit", 50),
        )
        return jsonify(result), 200

    except PosError as e:
        return error_response(e)


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        transaction = pos_service().get_transaction(transaction_id)
        ensure_register_access(transaction.register_id)
        return jsonify({"transaction": transaction.to_dict()}), 200

    except PosError as e:
        return error_response(e)


@transactions_bp.post("/<int:transaction_id>/refund")
@require_auth
def refund_transaction_route(transaction_id: int):
    """
    Request body:
    {
        "reason": "Damaged",
        "items": [{"line_number": 1, "quantity": 1}],   (optional; omit for a full refund)
        "refund_amount_cents": 2500                     (optional; needs items when partial)
    }
    """
    try:
        data = validate_body(json_body(), REFUND_SCHEMA)
        refund = pos_service().refund_transaction(
            transaction_id,
            data["reason"],
            data.get("refund_amount_cents"),
            actor=g.current_operator,
            items=data.get("items"),
        )
        return jsonify({"transaction": refund.to_dict()}), 201

    except InconsistencyError as e:
        return inconsistency_response(e)
    except PosError as e:
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to refund transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/<int:transaction_id>/void")
@require_auth
def void_transaction_route(transaction_id: int):
    try:
        data = validate_body(json_body(), VOID_SCHEMA)
        transaction = pos_service().void_transaction(
            transaction_id,
            data["reason"],
            actor=g.current_operator,
        )
        return jsonify({"transaction": transaction.to_dict()}), 200

    except InconsistencyError as e:
        return jsonify({
            "transaction": e.transaction.to_dict(),
            "warning": e.message,
            "inventory_failures": e.details["inventory_failures"],
        }), 200
    except PosError as e:
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to void transaction")
        return jsonify({"error": "Internal server error"}), 500
