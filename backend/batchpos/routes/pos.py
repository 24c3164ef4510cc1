# Overview: Flask API routes for POS batch allocation; parses input and returns JSON responses.

"""
POS allocation routes.

Everything here is advisory: nothing is reserved, and quantities are only
enforced when the sale is completed (POST /api/sales).
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import allocation_service, sales_service
from ..services.tenant_service import SALE_ROLES
from .responses import HANDLED_ERRORS, error_response, int_arg

pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


@pos_bp.get("/products/<int:product_id>/eligible-batches")
@require_auth
@require_role(*SALE_ROLES)
def eligible_batches(product_id: int):
    """Batches the operator may pick from, earliest expiry first."""
    try:
        allocations = allocation_service.list_eligible_batches(g.tenant_context, product_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"items": [a.to_dict() for a in allocations], "count": len(allocations)}), 200


@pos_bp.post("/allocate")
@require_auth
@require_role(*SALE_ROLES)
def allocate():
    """
    Body: product_id, quantity, mode (AUTO|MANUAL), batch_id (MANUAL only).

    MANUAL without batch_id answers with the eligible list instead of a
    single allocation.
    """
    payload = request.get_json(silent=True) or {}

    try:
        product_id = int_arg(payload.get("product_id"), "product_id")
        if product_id is None:
            return jsonify({"error": "product_id is required", "details": {}}), 400
        result = allocation_service.select_batch(
            g.tenant_context,
            product_id,
            payload.get("quantity"),
            payload.get("mode", allocation_service.AUTO),
            batch_id=int_arg(payload.get("batch_id"), "batch_id"),
        )
    except HANDLED_ERRORS as e:
        return error_response(e)

    if isinstance(result, list):
        return jsonify({"choices": [a.to_dict() for a in result]}), 200
    return jsonify({"allocation": result.to_dict()}), 200


@pos_bp.post("/cart-lines")
@require_auth
@require_role(*SALE_ROLES)
def cart_line():
    """Snapshot a product (and optionally a chosen batch) as a cart line."""
    payload = request.get_json(silent=True) or {}

    try:
        product_id = int_arg(payload.get("product_id"), "product_id")
        if product_id is None:
            return jsonify({"error": "product_id is required", "details": {}}), 400
        line = sales_service.build_cart_line(
            g.tenant_context,
            product_id,
            payload.get("quantity", 1),
            batch_id=int_arg(payload.get("batch_id"), "batch_id"),
        )
    except HANDLED_ERRORS as e:
        return error_response(e)

    return jsonify({"line": line.to_dict()}), 200
