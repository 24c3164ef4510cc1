# Overview: Service-layer operations for the batch ledger; encapsulates business logic and database work.

# backend/batchpos/services/batch_service.py
"""
Batch Ledger Invariants (authoritative)

Stock model:
- ProductBatch.remaining_quantity is the per-lot source of truth.
- Product.stock_quantity is a materialized SUM(remaining_quantity) over the
  product's ACTIVE batches.

Single-writer rule:
- Only this module (receive / retire / reconcile) and sales_service
  (settlement) mutate remaining_quantity or stock_quantity.
- Every mutation of a batch quantity changes the product aggregate by the
  same delta in the SAME database transaction.
- Decrements are conditional UPDATEs (WHERE qty >= :delta) with affected
  row verification. Never read-then-write.

Lifecycle:
- quantity (lot size) is immutable after receipt.
- remaining_quantity never goes negative and never exceeds quantity.
- Retiring a batch (is_active=False) removes its remaining quantity from the
  product aggregate. Reaching zero remaining does NOT retire a batch.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, PersistenceError
from ..extensions import db
from ..models import Product, ProductBatch
from ..validation import ConflictError, ValidationError, enforce_rules_batch
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .tenant_service import TenantContext, scoped_query

BATCH_MUTABLE_FIELDS = {
    "batch_number",
    "manufacturing_date",
    "expiry_date",
    "purchase_price",
    "quantity",
}


def _get_product(ctx: TenantContext, product_id: int, *, lock: bool = False) -> Product:
    query = scoped_query(Product, ctx).filter(Product.id == product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def get_batch(ctx: TenantContext, batch_id: int, *, lock: bool = False) -> ProductBatch:
    query = scoped_query(ProductBatch, ctx).filter(ProductBatch.id == batch_id)
    if lock:
        query = lock_for_update(query)
    batch = query.first()
    if batch is None:
        raise NotFoundError("Batch not found", details={"batch_id": batch_id})
    return batch


def list_batches(ctx: TenantContext, product_id: int, *, include_inactive: bool = False) -> list[ProductBatch]:
    """Batches of a product, earliest expiry first."""
    _get_product(ctx, product_id)

    query = scoped_query(ProductBatch, ctx).filter(ProductBatch.product_id == product_id)
    if not include_inactive:
        query = query.filter(ProductBatch.is_active.is_(True))
    return query.order_by(ProductBatch.expiry_date.asc(), ProductBatch.id.asc()).all()


def adjust_product_stock(product_id: int, delta: int) -> bool:
    """
    Apply delta to Product.stock_quantity inside the caller's transaction.

    Negative deltas are conditional: the row only changes if the aggregate
    stays >= 0. Returns False when no row matched.
    """
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(
            stock_quantity=Product.stock_quantity + delta,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if delta < 0:
        stmt = stmt.where(Product.stock_quantity >= -delta)

    result = db.session.execute(stmt)
    return result.rowcount == 1


def decrement_batch(batch_id: int, quantity: int) -> bool:
    """
    Conditional decrement of one active batch inside the caller's transaction.

    UPDATE product_batches
       SET remaining_quantity = remaining_quantity - :qty
     WHERE id = :id AND is_active AND remaining_quantity >= :qty

    Returns False when the row did not match (oversold or retired).
    """
    stmt = (
        update(ProductBatch)
        .where(
            ProductBatch.id == batch_id,
            ProductBatch.is_active.is_(True),
            ProductBatch.remaining_quantity >= quantity,
        )
        .values(
            remaining_quantity=ProductBatch.remaining_quantity - quantity,
            version_id=ProductBatch.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1


def receive_batch(ctx: TenantContext, product_id: int, patch: dict) -> ProductBatch:
    """
    Receive a new lot into inventory.

    Inserts the batch with remaining_quantity = quantity and raises the
    product aggregate by the same amount, atomically.

    Raises:
        NotFoundError: product not in tenant
        ValidationError: inactive product, bad quantity/dates/price
        ConflictError: batch number already used for this product
    """
    enforce_rules_batch(patch)

    def _op():
        begin_write_transaction()
        product = _get_product(ctx, product_id, lock=True)
        if not product.is_active:
            raise ValidationError("Product is inactive")

        duplicate = (
            scoped_query(ProductBatch, ctx)
            .filter(
                ProductBatch.product_id == product.id,
                ProductBatch.batch_number == patch["batch_number"],
            )
            .first()
        )
        if duplicate is not None:
            raise ConflictError(f"Batch number already exists for product: {patch['batch_number']}")

        batch = ProductBatch(
            product_id=product.id,
            tenant_id=ctx.tenant_id,
            store_id=product.store_id,
            remaining_quantity=patch["quantity"],
            is_active=True,
        )
        for k, v in patch.items():
            if k in BATCH_MUTABLE_FIELDS:
                setattr(batch, k, v)

        db.session.add(batch)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Batch number already exists for product: {patch['batch_number']}")

        if not adjust_product_stock(product.id, batch.quantity):
            raise PersistenceError("Product row disappeared during receipt", retryable=True)

        db.session.commit()
        return batch

    try:
        batch = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Received batch %s (%s) qty=%s for product %s",
        batch.id, batch.batch_number, batch.quantity, batch.product_id,
    )
    return batch


def retire_batch(ctx: TenantContext, batch_id: int) -> ProductBatch:
    """
    Soft-delete a batch and remove its remaining quantity from the product
    aggregate in the same transaction.
    """
    def _op():
        begin_write_transaction()
        batch = get_batch(ctx, batch_id, lock=True)
        if not batch.is_active:
            raise ValidationError("Batch already retired")

        remaining = batch.remaining_quantity
        retired = db.session.execute(
            update(ProductBatch)
            .where(ProductBatch.id == batch.id, ProductBatch.is_active.is_(True))
            .values(is_active=False, version_id=ProductBatch.version_id + 1)
            .execution_options(synchronize_session=False)
        )
        if retired.rowcount != 1:
            raise ValidationError("Batch already retired")

        if remaining and not adjust_product_stock(batch.product_id, -remaining):
            # Aggregate lower than the batch it should contain: drift from legacy data
            raise ConflictError(
                "Product stock is out of sync with its batches; run stock reconciliation first"
            )

        db.session.commit()
        return batch

    try:
        batch = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Batch %s retired by user %s", batch.id, ctx.user_id)
    return batch


def active_batch_totals(ctx: TenantContext, product_id: int | None = None) -> dict[int, int]:
    """product_id -> SUM(remaining_quantity) over active batches."""
    query = (
        db.session.query(
            ProductBatch.product_id,
            func.coalesce(func.sum(ProductBatch.remaining_quantity), 0),
        )
        .filter(ProductBatch.tenant_id == ctx.tenant_id, ProductBatch.is_active.is_(True))
        .group_by(ProductBatch.product_id)
    )
    if product_id is not None:
        query = query.filter(ProductBatch.product_id == product_id)
    return {pid: int(total) for pid, total in query.all()}


def stock_invariant_violations(ctx: TenantContext, product_id: int | None = None) -> list[dict]:
    """
    Products whose stock_quantity != SUM(remaining_quantity of active batches).

    Read-only.
    """
    totals = active_batch_totals(ctx, product_id)

    query = scoped_query(Product, ctx)
    if product_id is not None:
        query = query.filter(Product.id == product_id)

    violations = []
    for product in query.order_by(Product.id.asc()).all():
        computed = totals.get(product.id, 0)
        if product.stock_quantity != computed:
            violations.append({
                "product_id": product.id,
                "sku": product.sku,
                "recorded": product.stock_quantity,
                "computed": computed,
                "drift": product.stock_quantity - computed,
            })
    return violations


def reconcile_product_stock(ctx: TenantContext, product_id: int | None = None) -> list[dict]:
    """
    Rewrite stock_quantity from the batch ledger for drifted products.

    Repair tool for rows written by the legacy read-then-write flow.
    Returns the drift that was corrected.
    """
    def _op():
        begin_write_transaction()
        drifted = stock_invariant_violations(ctx, product_id)
        for row in drifted:
            db.session.execute(
                update(Product)
                .where(Product.id == row["product_id"], Product.tenant_id == ctx.tenant_id)
                .values(stock_quantity=row["computed"], version_id=Product.version_id + 1)
                .execution_options(synchronize_session=False)
            )
        db.session.commit()
        return drifted

    corrected = run_with_retry(_op)
    for row in corrected:
        current_app.logger.warning(
            "Reconciled product %s stock %s -> %s", row["product_id"], row["recorded"], row["computed"]
        )
    return corrected
