# Overview: Flask API routes for reports; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify

from ..decorators import require_auth, require_role
from ..services import reporting_service
from ..services.tenant_service import REPORT_ROLES
from .responses import HANDLED_ERRORS, error_response

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/batches")
@require_auth
@require_role(*REPORT_ROLES)
def batch_report():
    """Inventory levels, expiry counts and batch turnover."""
    return jsonify(reporting_service.batch_stock_report(g.tenant_context)), 200


@reports_bp.get("/summary")
@require_auth
@require_role(*REPORT_ROLES)
def summary():
    """Dashboard totals: revenue, today's revenue, sales, products, low stock."""
    try:
        result = reporting_service.sales_summary(g.tenant_context)
    except HANDLED_ERRORS as e:
        return error_response(e)
    return jsonify(result), 200
