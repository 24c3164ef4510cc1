# Overview: Flask API routes for stores operations; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models import Store
from ..services import tenant_service
from ..validation import ModelValidationPolicy, validate_payload
from .responses import HANDLED_ERRORS, error_response

STORE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "address", "gstin", "phone", "timezone", "currency"},
    required_on_create={"name"},
)

stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("")
@require_auth
def list_stores():
    include_inactive = request.args.get("include_inactive", "false").lower() in ("1", "true", "yes")
    stores = tenant_service.list_stores(g.tenant_context, active_only=not include_inactive)
    return jsonify([store.to_dict() for store in stores]), 200


@stores_bp.post("")
@require_auth
@require_role("owner")
def create_store():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Store, payload=payload, policy=STORE_POLICY, partial=False)
        store = tenant_service.create_store(g.tenant_context, patch)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify(store.to_dict()), 201


@stores_bp.delete("/<int:store_id>")
@require_auth
@require_role("owner")
def deactivate_store(store_id: int):
    try:
        store = tenant_service.deactivate_store(g.tenant_context, store_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"ok": True, "store": store.to_dict()}), 200
