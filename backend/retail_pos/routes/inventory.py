# Overview: Flask API routes for stock availability checks and receiving.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import PosError
from ..extensions import db
from ..validation import BodySchema, coerce_int, validate_body
from .common import error_response, json_body, pos_service

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/pos/inventory")

RECEIVE_SCHEMA = BodySchema(
    allowed={"product_id", "variant_id", "quantity", "notes"},
    required={"product_id", "quantity"},
)


@inventory_bp.get("/<int:product_id>/check")
@require_auth
def check_availability_route(product_id: int):
    """?variant_id=<id>&quantity=<n> (quantity defaults to 1)."""
    try:
        raw_variant = request.args.get("variant_id")
        variant_id = coerce_int("variant_id", raw_variant, minimum=1) if raw_variant else None
        quantity = coerce_int("quantity", request.args.get("quantity", "1"), minimum=1)

        availability = pos_service().inventory.check_availability(product_id, variant_id, quantity)
        return jsonify({
            "product_id": product_id,
            "variant_id": variant_id,
            "product_name": availability.product_name,
            "requested_quantity": quantity,
            "available": availability.available,
            "available_quantity": availability.available_quantity,
        }), 200

    except PosError as e:
        return error_response(e)


@inventory_bp.post("/receive")
@require_auth
@require_admin
def receive_stock_route():
    try:
        data = validate_body(json_body(), RECEIVE_SCHEMA)
        variant_id = data.get("variant_id")
        movement = pos_service().inventory.receive_stock(
            product_id=coerce_int("product_id", data["product_id"], minimum=1),
            variant_id=coerce_int("variant_id", variant_id, minimum=1) if variant_id is not None else None,
            quantity=coerce_int("quantity", data["quantity"], minimum=1),
            notes=data.get("notes"),
            actor_id=g.current_operator.id,
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except PosError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500
