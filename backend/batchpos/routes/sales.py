# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/batchpos/routes/sales.py
"""Sales API routes with role enforcement"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import sales_service
from ..services.tenant_service import REPORT_ROLES, SALE_ROLES
from ..time_utils import parse_iso_datetime
from .responses import HANDLED_ERRORS, error_response

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_role(*SALE_ROLES)
def complete_sale_route():
    """
    Complete a sale: persist it and decrement batch stock atomically.

    Body:
    {
        "items": [{"product_id": 1, "quantity": 2, "batch_id": 7,
                   "unit_price": "10.00", "tax_rate": "18"}],
        "customer": {"name": "...", "phone": "...", "gstin": "..."},
        "payment_method": "cash" | "card" | "upi",
        "notes": "..."
    }

    batch_id may be omitted per line; the line is then drawn FIFO by expiry.
    Returns 409 with the failing line in details when another terminal sold
    the stock first.
    """
    data = request.get_json(silent=True) or {}

    try:
        sale = sales_service.complete_sale(
            g.tenant_context,
            data.get("items") or [],
            customer=data.get("customer"),
            payment_method=data.get("payment_method", "cash"),
            notes=data.get("notes"),
        )
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict(include_items=True)}), 201


@sales_bp.get("")
@require_auth
@require_role(*(SALE_ROLES + REPORT_ROLES))
def list_sales_route():
    """
    Sales history, newest first.

    Query params: start, end (ISO-8601, UTC), store_id, page, per_page.
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 datetimes", "details": {}}), 400

    result = sales_service.list_sales(
        g.tenant_context,
        start=start,
        end=end,
        store_id=request.args.get("store_id", type=int),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_role(*(SALE_ROLES + REPORT_ROLES))
def get_sale_route(sale_id: int):
    """Receipt view: sale with its line items."""
    try:
        sale = sales_service.get_sale(g.tenant_context, sale_id)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify({"sale": sale.to_dict(include_items=True)}), 200
