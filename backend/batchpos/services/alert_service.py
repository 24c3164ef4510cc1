# Overview: Read-only alert projections over current batch and product state.

"""
Alerting Projector

Pure reads: no writes, no caching. Calling any projection twice without an
intervening mutation returns identical results.
"""

from __future__ import annotations

from datetime import date, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, ProductBatch
from ..time_utils import to_iso_date
from ..validation import ValidationError
from .tenant_service import TenantContext, scoped_query, store_today


def _batch_row(batch: ProductBatch, product: Product, today: date) -> dict:
    return {
        "batch_id": batch.id,
        "batch_number": batch.batch_number,
        "product_id": product.id,
        "product_name": product.name,
        "product_sku": product.sku,
        "store_id": batch.store_id,
        "expiry_date": to_iso_date(batch.expiry_date),
        "days_remaining": (batch.expiry_date - today).days,
        "quantity": batch.quantity,
        "remaining_quantity": batch.remaining_quantity,
    }


def low_stock_batches(ctx: TenantContext, *, today: date | None = None) -> list[dict]:
    """
    Active batches with 0 < remaining_quantity <= the product's batch threshold.

    A product without min_batch_stock_level uses DEFAULT_MIN_BATCH_STOCK_LEVEL.
    Lowest remaining first.
    """
    today = today or store_today(ctx)
    default_threshold = current_app.config.get("DEFAULT_MIN_BATCH_STOCK_LEVEL", 5)
    threshold = func.coalesce(Product.min_batch_stock_level, default_threshold)

    rows = (
        db.session.query(ProductBatch, Product, threshold.label("threshold"))
        .join(Product, Product.id == ProductBatch.product_id)
        .filter(
            ProductBatch.tenant_id == ctx.tenant_id,
            ProductBatch.is_active.is_(True),
            ProductBatch.remaining_quantity > 0,
            ProductBatch.remaining_quantity <= threshold,
        )
        .order_by(ProductBatch.remaining_quantity.asc(), ProductBatch.id.asc())
        .all()
    )

    alerts = []
    for batch, product, level in rows:
        row = _batch_row(batch, product, today)
        row["threshold"] = int(level)
        alerts.append(row)
    return alerts


def expiry_alerts(ctx: TenantContext, horizon_days: int | None = None, *, today: date | None = None) -> dict:
    """
    Active batches expiring on or before today + horizon.

    expired:       expiry_date < today
    expiring_soon: today <= expiry_date <= today + horizon
    """
    if horizon_days is None:
        horizon_days = current_app.config.get("EXPIRY_ALERT_HORIZON_DAYS", 30)
    if horizon_days < 0:
        raise ValidationError("horizon_days must be >= 0")

    today = today or store_today(ctx)
    cutoff = today + timedelta(days=horizon_days)

    rows = (
        db.session.query(ProductBatch, Product)
        .join(Product, Product.id == ProductBatch.product_id)
        .filter(
            ProductBatch.tenant_id == ctx.tenant_id,
            ProductBatch.is_active.is_(True),
            ProductBatch.expiry_date <= cutoff,
        )
        .order_by(ProductBatch.expiry_date.asc(), ProductBatch.id.asc())
        .all()
    )

    expired, expiring_soon = [], []
    for batch, product in rows:
        row = _batch_row(batch, product, today)
        if batch.expiry_date < today:
            expired.append(row)
        else:
            expiring_soon.append(row)

    return {
        "today": to_iso_date(today),
        "horizon_days": horizon_days,
        "expired": expired,
        "expiring_soon": expiring_soon,
    }


def low_stock_products(ctx: TenantContext) -> list[dict]:
    """Active products whose aggregate stock is at or below min_stock_level."""
    products = (
        scoped_query(Product, ctx)
        .filter(
            Product.is_active.is_(True),
            Product.stock_quantity <= Product.min_stock_level,
        )
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .all()
    )
    return [
        {
            "product_id": p.id,
            "name": p.name,
            "sku": p.sku,
            "store_id": p.store_id,
            "stock_quantity": p.stock_quantity,
            "min_stock_level": p.min_stock_level,
        }
        for p in products
    ]
