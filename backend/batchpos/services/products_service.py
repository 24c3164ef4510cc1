# backend/batchpos/services/products_service.py
"""
Products Service (Catalog Store) with Multi-Tenant Support

MULTI-TENANT: All product operations are tenant-scoped through the
TenantContext passed by the caller.

STOCK: stock_quantity is deliberately absent from PRODUCT_MUTABLE_FIELDS.
Only batch_service and sales_service change it.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..errors import NotFoundError
from ..extensions import db
from ..models import Product
from ..validation import ConflictError, ValidationError, enforce_rules_product
from .concurrency import run_with_retry
from .tenant_service import TenantContext, require_store_in_tenant, scoped_query

PRODUCT_MUTABLE_FIELDS = {
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
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _sku_taken(ctx: TenantContext, sku: str, exclude_id: int | None = None) -> bool:
    query = scoped_query(Product, ctx).filter(func.lower(Product.sku) == sku.lower())
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def list_products(
    ctx: TenantContext,
    *,
    store_id: int | None = None,
    in_stock_only: bool = False,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Tenant-scoped product listing with optional pagination.

    Args:
        ctx: Caller's tenant context
        store_id: Filter by specific store (must belong to tenant)
        in_stock_only: Only products with stock_quantity > 0 (POS grid)
        include_inactive: Include deactivated products
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.

    Raises:
        TenantAccessError: If store_id doesn't belong to tenant
    """
    base_query = scoped_query(Product, ctx)

    if store_id is not None:
        require_store_in_tenant(store_id, ctx.tenant_id)
        base_query = base_query.filter(Product.store_id == store_id)

    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))

    if in_stock_only:
        base_query = base_query.filter(Product.stock_quantity > 0)

    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    # If no pagination requested, return all items
    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    # Pagination logic
    per_page = max(1, min(per_page or 20, 100))  # Default 20, range 1-100
    page = max(page, 1)  # Ensure page >= 1

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def search_products(ctx: TenantContext, term: str, *, limit: int = 50) -> list[Product]:
    """
    POS search: case-insensitive match on name, SKU or barcode.

    Only active products are returned.
    """
    term = (term or "").strip()
    if not term:
        return []

    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    return (
        scoped_query(Product, ctx)
        .filter(Product.is_active.is_(True))
        .filter(
            or_(
                func.lower(Product.name).like(pattern, escape="\\"),
                func.lower(Product.sku).like(pattern, escape="\\"),
                func.lower(Product.barcode).like(pattern, escape="\\"),
            )
        )
        .order_by(Product.name.asc(), Product.id.asc())
        .limit(limit)
        .all()
    )


def get_product(ctx: TenantContext, product_id: int, *, require_active: bool = False) -> Product:
    product = scoped_query(Product, ctx).filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    if require_active and not product.is_active:
        raise ValidationError("Product is inactive")
    return product


def lookup_by_barcode(ctx: TenantContext, barcode: str) -> Product:
    """Scan lookup; exact barcode match among active products."""
    code = (barcode or "").strip()
    if not code:
        raise ValidationError("barcode is required")

    product = (
        scoped_query(Product, ctx)
        .filter(Product.barcode == code, Product.is_active.is_(True))
        .order_by(Product.id.asc())
        .first()
    )
    if product is None:
        raise NotFoundError("Product not found", details={"barcode": code})
    return product


def create_product(ctx: TenantContext, patch: dict) -> Product:
    """
    Create product in the caller's store using a validated patch dict.

    stock_quantity starts at 0; stock arrives only through batch receipts.

    Raises:
        TenantAccessError: If ctx.store_id doesn't belong to tenant
        ConflictError: If SKU already exists in the tenant
    """
    enforce_rules_product(patch)
    store = require_store_in_tenant(ctx.store_id, ctx.tenant_id, require_active=True)

    sku = patch.get("sku")
    if sku and _sku_taken(ctx, sku):
        raise ConflictError(f"SKU already exists: {sku}")

    product = Product(tenant_id=ctx.tenant_id, store_id=store.id, stock_quantity=0)
    apply_product_patch(product, patch)

    db.session.add(product)
    db.session.commit()

    current_app.logger.info("Product %s (%s) created in store %s", product.id, product.sku, store.id)
    return product


def update_product(ctx: TenantContext, product_id: int, patch: dict) -> Product:
    """
    Patch mutable product fields.

    Optimistic locking (version_id) protects against concurrent edits; a
    conflicting edit is retried against the fresh row.
    """
    def _op():
        product = get_product(ctx, product_id)
        enforce_rules_product(patch, existing=product)

        sku = patch.get("sku")
        if sku and sku.lower() != (product.sku or "").lower() and _sku_taken(ctx, sku, exclude_id=product.id):
            raise ConflictError(f"SKU already exists: {sku}")

        apply_product_patch(product, patch)
        db.session.commit()
        return product

    return run_with_retry(_op)


def deactivate_product(ctx: TenantContext, product_id: int) -> Product:
    """Soft delete; historical sale items keep their snapshot."""
    def _op():
        product = get_product(ctx, product_id)
        product.is_active = False
        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info("Product %s deactivated by user %s", product.id, ctx.user_id)
    return product
