# Overview: Flask API routes for the batch ledger; parses input and returns JSON responses.

"""
Batch ledger routes.

Receiving and retiring batches change Product.stock_quantity in the same
transaction (see services/batch_service.py). remaining_quantity is never
client-writable.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models import ProductBatch
from ..services import batch_service
from ..services.tenant_service import INVENTORY_ROLES
from ..validation import ModelValidationPolicy, validate_payload
from .responses import HANDLED_ERRORS, error_response, int_arg

BATCH_POLICY = ModelValidationPolicy(
    writable_fields=set(batch_service.BATCH_MUTABLE_FIELDS),
    required_on_create={"batch_number", "expiry_date", "quantity"},
)

batches_bp = Blueprint("batches", __name__, url_prefix="/api")


@batches_bp.get("/products/<int:product_id>/batches")
@require_auth
def list_batches(product_id: int):
    include_inactive = request.args.get("include_inactive", "false").lower() in ("1", "true", "yes")
    try:
        batches = batch_service.list_batches(g.tenant_context, product_id, include_inactive=include_inactive)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"items": [b.to_dict() for b in batches], "count": len(batches)}), 200


@batches_bp.post("/products/<int:product_id>/batches")
@require_auth
@require_role(*INVENTORY_ROLES)
def receive_batch(product_id: int):
    """
    Receive a new lot.

    Body: batch_number, expiry_date (YYYY-MM-DD), quantity,
    optional manufacturing_date, purchase_price.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=ProductBatch, payload=payload, policy=BATCH_POLICY, partial=False)
        batch = batch_service.receive_batch(g.tenant_context, product_id, patch)
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive batch for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"batch": batch.to_dict()}), 201


@batches_bp.delete("/batches/<int:batch_id>")
@require_auth
@require_role(*INVENTORY_ROLES)
def retire_batch(batch_id: int):
    try:
        batch = batch_service.retire_batch(g.tenant_context, batch_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to retire batch %s", batch_id)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"ok": True, "batch_id": batch.id}), 200


@batches_bp.get("/batches/invariant")
@require_auth
@require_role(*INVENTORY_ROLES)
def stock_invariant():
    """Read-only: products whose stock differs from their active batches."""
    violations = batch_service.stock_invariant_violations(g.tenant_context)
    return jsonify({"ok": not violations, "violations": violations}), 200


@batches_bp.post("/batches/reconcile")
@require_auth
@require_role(*INVENTORY_ROLES)
def reconcile():
    """Rewrite drifted product stock from the batch ledger. Body: optional product_id."""
    payload = request.get_json(silent=True) or {}

    try:
        product_id = int_arg(payload.get("product_id"), "product_id")
        corrected = batch_service.reconcile_product_stock(g.tenant_context, product_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Stock reconciliation failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"corrected": corrected, "count": len(corrected)}), 200
