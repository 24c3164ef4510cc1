"""
Allocation Engine - FIFO-by-expiry batch selection

WHY: Sales must draw from the lot that expires first so expiring stock
leaves the shelf before fresher stock. Selection is advisory: nothing is
reserved or locked here. sales_service re-validates every quantity with a
conditional decrement at commit time.

ELIGIBILITY (applied in this order):
1. Batch belongs to the product and the caller's tenant
2. is_active = TRUE and remaining_quantity > 0
3. expiry_date > today (a batch expiring today is already unsellable)
4. Ordered by expiry_date ASC, then id ASC for determinism

MODES:
- AUTO:   first eligible batch; never splits. If that batch cannot cover the
          requested quantity the caller must ask for less (unit-at-a-time
          add-to-cart).
- MANUAL: without batch_id returns the whole eligible list for the
          operator to choose; with batch_id validates that choice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app

from ..errors import InsufficientBatchQuantityError, NoEligibleBatchesError
from ..extensions import db
from ..models import ProductBatch
from ..time_utils import to_iso_date
from ..validation import ValidationError, require_positive_quantity
from .concurrency import lock_for_update
from .products_service import get_product
from .tenant_service import TenantContext, store_today

AUTO = "AUTO"
MANUAL = "MANUAL"
ALLOCATION_MODES = (AUTO, MANUAL)


@dataclass(frozen=True)
class ExpiringSoon:
    """Non-blocking warning: batch expires within the warning window."""
    days_remaining: int

    def to_dict(self) -> dict:
        return {"type": "EXPIRING_SOON", "days_remaining": self.days_remaining}


@dataclass(frozen=True)
class BatchAllocation:
    batch_id: int
    batch_number: str
    expiry_date: date
    available_qty: int
    warning: ExpiringSoon | None = None
    # Units drawn from this batch (split plans); None for plain selection
    quantity: int | None = None

    def to_dict(self) -> dict:
        data = {
            "batch_id": self.batch_id,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "available_qty": self.available_qty,
            "warning": self.warning.to_dict() if self.warning else None,
        }
        if self.quantity is not None:
            data["quantity"] = self.quantity
        return data


def normalize_mode(mode) -> str:
    value = (mode or "").strip().upper() if isinstance(mode, str) else ""
    if value not in ALLOCATION_MODES:
        raise ValidationError(f"mode must be one of: {', '.join(ALLOCATION_MODES)}")
    return value


def expiry_warning(expiry_date: date, today: date) -> ExpiringSoon | None:
    window = current_app.config.get("EXPIRY_WARNING_DAYS", 30)
    days_remaining = (expiry_date - today).days
    if days_remaining <= window:
        return ExpiringSoon(days_remaining=days_remaining)
    return None


def to_allocation(batch: ProductBatch, today: date, quantity: int | None = None) -> BatchAllocation:
    return BatchAllocation(
        batch_id=batch.id,
        batch_number=batch.batch_number,
        expiry_date=batch.expiry_date,
        available_qty=batch.remaining_quantity,
        warning=expiry_warning(batch.expiry_date, today),
        quantity=quantity,
    )


def eligible_batches_query(ctx: TenantContext, product_id: int, today: date, *, lock: bool = False):
    query = (
        db.session.query(ProductBatch)
        .filter(
            ProductBatch.tenant_id == ctx.tenant_id,
            ProductBatch.product_id == product_id,
            ProductBatch.is_active.is_(True),
            ProductBatch.remaining_quantity > 0,
            ProductBatch.expiry_date > today,
        )
        .order_by(ProductBatch.expiry_date.asc(), ProductBatch.id.asc())
    )
    if lock:
        # Settlement re-reads rows it already decremented in this transaction
        query = lock_for_update(query).populate_existing()
    return query


def list_eligible_batches(ctx: TenantContext, product_id: int, *, today: date | None = None) -> list[BatchAllocation]:
    """Eligible batches for a product, earliest expiry first. Read-only."""
    get_product(ctx, product_id, require_active=True)
    today = today or store_today(ctx)
    return [to_allocation(b, today) for b in eligible_batches_query(ctx, product_id, today).all()]


def select_batch(
    ctx: TenantContext,
    product_id: int,
    requested_qty,
    mode,
    *,
    batch_id: int | None = None,
    today: date | None = None,
) -> BatchAllocation | list[BatchAllocation]:
    """
    Decide which batch satisfies (product_id, requested_qty).

    Returns a single BatchAllocation, or for MANUAL without batch_id the full
    eligible list.

    Raises:
        ValidationError: bad quantity/mode (before any I/O), inactive product
        NotFoundError: product not in tenant
        NoEligibleBatchesError: nothing sellable, or chosen batch not eligible
        InsufficientBatchQuantityError: chosen batch holds fewer units
    """
    requested_qty = require_positive_quantity(requested_qty)
    mode = normalize_mode(mode)

    get_product(ctx, product_id, require_active=True)
    today = today or store_today(ctx)

    eligible = eligible_batches_query(ctx, product_id, today).all()
    if not eligible:
        raise NoEligibleBatchesError(
            "No active, unexpired batch in stock for this product",
            details={"product_id": product_id},
        )

    if mode == MANUAL and batch_id is None:
        return [to_allocation(b, today) for b in eligible]

    if mode == AUTO:
        chosen = eligible[0]
    else:
        chosen = next((b for b in eligible if b.id == batch_id), None)
        if chosen is None:
            raise NoEligibleBatchesError(
                "Selected batch is not available for sale",
                details={"product_id": product_id, "batch_id": batch_id},
            )

    if chosen.remaining_quantity < requested_qty:
        raise InsufficientBatchQuantityError(
            "Batch cannot cover the requested quantity",
            details={
                "product_id": product_id,
                "batch_id": chosen.id,
                "requested_quantity": requested_qty,
                "available_qty": chosen.remaining_quantity,
            },
        )

    return to_allocation(chosen, today)


def allocate(
    ctx: TenantContext,
    product_id: int,
    qty,
    mode,
    batch_id: int | None = None,
    *,
    today: date | None = None,
) -> BatchAllocation:
    """
    Cart-building entry point: always resolves to exactly one batch.

    MANUAL requires batch_id here; use list_eligible_batches to present the
    choice first.
    """
    if normalize_mode(mode) == MANUAL and batch_id is None:
        raise ValidationError("batch_id is required for MANUAL allocation")
    return select_batch(ctx, product_id, qty, mode, batch_id=batch_id, today=today)


def split_allocation(
    ctx: TenantContext,
    product_id: int,
    qty,
    *,
    today: date | None = None,
    lock: bool = False,
) -> list[BatchAllocation]:
    """
    FIFO plan drawing qty across as many eligible batches as needed.

    Used by settlement for cart lines that carry no batch_id. With lock=True
    the batch rows are selected FOR UPDATE (inside the caller's transaction).
    """
    qty = require_positive_quantity(qty)
    today = today or store_today(ctx)

    eligible = eligible_batches_query(ctx, product_id, today, lock=lock).all()
    if not eligible:
        raise NoEligibleBatchesError(
            "No active, unexpired batch in stock for this product",
            details={"product_id": product_id},
        )

    plan: list[BatchAllocation] = []
    outstanding = qty
    for batch in eligible:
        if outstanding <= 0:
            break
        take = min(batch.remaining_quantity, outstanding)
        plan.append(to_allocation(batch, today, quantity=take))
        outstanding -= take

    if outstanding > 0:
        raise InsufficientBatchQuantityError(
            "Eligible batches cannot cover the requested quantity",
            details={
                "product_id": product_id,
                "requested_quantity": qty,
                "available_qty": qty - outstanding,
            },
        )
    return plan
