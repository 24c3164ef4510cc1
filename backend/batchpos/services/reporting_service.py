# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Product, ProductBatch, Sale
from ..money import ZERO, format_money, quantize
from ..time_utils import day_start_utc, to_iso_date, to_utc_z
from .alert_service import low_stock_products
from .tenant_service import TenantContext, require_store_in_tenant, scoped_query, store_today


def _created_on(value: datetime | None, fallback: date) -> date:
    if value is None:
        return fallback
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def batch_stock_report(ctx: TenantContext, *, today: date | None = None, expiring_window_days: int = 30) -> dict:
    """
    Inventory levels, expiry counts and turnover over active batches.

    expiring: 0 < days to expiry <= window; expired: days to expiry < 0.
    Turnover rows are sorted by turnover_rate, highest first.
    """
    today = today or store_today(ctx)

    rows = (
        db.session.query(ProductBatch, Product)
        .join(Product, Product.id == ProductBatch.product_id)
        .filter(ProductBatch.tenant_id == ctx.tenant_id, ProductBatch.is_active.is_(True))
        .order_by(ProductBatch.expiry_date.asc(), ProductBatch.id.asc())
        .all()
    )

    batches = []
    turnover = []
    expiring = 0
    expired = 0
    total_value = ZERO

    for batch, product in rows:
        days_to_expiry = (batch.expiry_date - today).days
        if 0 < days_to_expiry <= expiring_window_days:
            expiring += 1
        elif days_to_expiry < 0:
            expired += 1

        value = quantize(Decimal(batch.remaining_quantity) * (batch.purchase_price or ZERO))
        total_value += value

        batches.append({
            "batch_id": batch.id,
            "batch_number": batch.batch_number,
            "product_id": product.id,
            "product_name": product.name,
            "product_sku": product.sku,
            "manufacturing_date": to_iso_date(batch.manufacturing_date),
            "expiry_date": to_iso_date(batch.expiry_date),
            "days_to_expiry": days_to_expiry,
            "quantity": batch.quantity,
            "remaining_quantity": batch.remaining_quantity,
            "purchase_price": format_money(batch.purchase_price),
            "inventory_value": format_money(value),
            "created_at": to_utc_z(batch.created_at),
        })

        sold = batch.quantity - batch.remaining_quantity
        days_active = max(1, (today - _created_on(batch.created_at, today)).days)
        turnover.append({
            "batch_id": batch.id,
            "batch_number": batch.batch_number,
            "product_name": product.name,
            "product_sku": product.sku,
            "sold_quantity": sold,
            "turnover_rate": round(sold / batch.quantity * 100, 2) if batch.quantity > 0 else 0.0,
            "days_active": days_active,
            "avg_daily_sales": round(sold / days_active, 2),
        })

    turnover.sort(key=lambda r: (-r["turnover_rate"], r["batch_id"]))

    return {
        "today": to_iso_date(today),
        "stats": {
            "total_batches": len(batches),
            "expiring_batches": expiring,
            "expired_batches": expired,
            "total_inventory_value": format_money(total_value),
        },
        "batches": batches,
        "turnover": turnover,
    }


def sales_summary(ctx: TenantContext, *, today: date | None = None) -> dict:
    """Dashboard figures for the caller's tenant."""
    today = today or store_today(ctx)

    tz_name = None
    if ctx.store_id is not None:
        tz_name = require_store_in_tenant(ctx.store_id, ctx.tenant_id).timezone
    since = day_start_utc(today, tz_name)

    total_revenue, sale_count = (
        db.session.query(func.coalesce(func.sum(Sale.total_amount), 0), func.count(Sale.id))
        .filter(Sale.tenant_id == ctx.tenant_id)
        .one()
    )
    today_revenue = (
        db.session.query(func.coalesce(func.sum(Sale.total_amount), 0))
        .filter(Sale.tenant_id == ctx.tenant_id, Sale.created_at >= since)
        .scalar()
    )
    active_products = scoped_query(Product, ctx).filter(Product.is_active.is_(True)).count()

    return {
        "today": to_iso_date(today),
        "total_revenue": format_money(total_revenue),
        "today_revenue": format_money(today_revenue),
        "sale_count": int(sale_count or 0),
        "active_products": active_products,
        "low_stock_products": len(low_stock_products(ctx)),
    }
