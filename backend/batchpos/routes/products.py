# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

# backend/batchpos/routes/products.py
"""
Product catalog routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's tenant via
g.tenant_context (set by @require_auth).

SECURITY:
- Read operations are open to every authenticated role
- Write operations require owner or manager
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models import Product
from ..services import products_service
from ..services.tenant_service import INVENTORY_ROLES
from ..validation import ModelValidationPolicy, validate_payload
from .responses import HANDLED_ERRORS, error_response

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "barcode",
        "hsn_code",
        "unit",
        "purchase_price",
        "selling_price",
        "mrp",
        "tax_rate",
        "min_stock_level",
        "min_batch_stock_level",
        "is_active",
    },
    required_on_create={"sku", "name", "selling_price"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List products with optional pagination.

    Query params:
    - store_id: int (optional) - filter by store (must belong to caller's tenant)
    - in_stock: bool (optional) - only products with stock > 0 (POS grid)
    - include_inactive: bool (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    store_id = request.args.get("store_id", type=int)
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)
    in_stock = request.args.get("in_stock", "false").lower() in ("1", "true", "yes")
    include_inactive = request.args.get("include_inactive", "false").lower() in ("1", "true", "yes")

    try:
        result = products_service.list_products(
            g.tenant_context,
            store_id=store_id,
            in_stock_only=in_stock,
            include_inactive=include_inactive,
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@products_bp.get("/search")
@require_auth
def search_products():
    """POS search by name, SKU or barcode (case-insensitive)."""
    term = request.args.get("q", "")
    limit = min(request.args.get("limit", 50, type=int), 100)

    products = products_service.search_products(g.tenant_context, term, limit=limit)
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/barcode/<string:code>")
@require_auth
def lookup_barcode(code: str):
    try:
        product = products_service.lookup_by_barcode(g.tenant_context, code)
        return jsonify({"product": product.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    try:
        product = products_service.get_product(g.tenant_context, product_id)
        return jsonify({"product": product.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@products_bp.post("")
@require_auth
@require_role(*INVENTORY_ROLES)
def create_product_route():
    """
    Create a product in the caller's store.

    stock_quantity is not accepted; stock arrives only through batch receipts.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        product = products_service.create_product(g.tenant_context, patch)
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 201


@products_bp.patch("/<int:product_id>")
@require_auth
@require_role(*INVENTORY_ROLES)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        product = products_service.update_product(g.tenant_context, product_id, patch)
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(*INVENTORY_ROLES)
def deactivate_product_route(product_id: int):
    """Soft delete; sale history keeps its snapshot."""
    try:
        product = products_service.deactivate_product(g.tenant_context, product_id)
    except HANDLED_ERRORS as e:
        return error_response(e)

    return jsonify({"ok": True, "product": product.to_dict()}), 200
