# Overview: Flask API routes for stock and expiry alerts; read-only JSON projections.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import alert_service
from .responses import HANDLED_ERRORS, error_response

alerts_bp = Blueprint("alerts", __name__, url_prefix="/api/alerts")


@alerts_bp.get("/low-stock-batches")
@require_auth
def low_stock_batches():
    items = alert_service.low_stock_batches(g.tenant_context)
    return jsonify({"items": items, "count": len(items)}), 200


@alerts_bp.get("/expiry")
@require_auth
def expiry():
    """Query params: horizon_days (default EXPIRY_ALERT_HORIZON_DAYS)."""
    horizon_days = request.args.get("horizon_days", type=int)
    try:
        result = alert_service.expiry_alerts(g.tenant_context, horizon_days)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify(result), 200


@alerts_bp.get("/low-stock-products")
@require_auth
def low_stock_products():
    items = alert_service.low_stock_products(g.tenant_context)
    return jsonify({"items": items, "count": len(items)}), 200
