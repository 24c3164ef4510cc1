"""
Sale Settlement Coordinator

WHY: A checkout must either land completely (sale header, every line item,
every batch decrement and the matching product aggregate decrement) or not
at all. Allocation is advisory; this module is where quantities are
actually enforced.

TRANSACTION:
    BEGIN IMMEDIATE (SQLite) / row locks (other engines)
    INSERT sales
    for each cart line (split FIFO when no batch was chosen):
        UPDATE product_batches ... WHERE remaining_quantity >= :qty
        UPDATE products ... WHERE stock_quantity >= :qty
        INSERT sale_items
    COMMIT

A conditional UPDATE matching zero rows means another terminal sold the
units first: the whole transaction is rolled back and BatchOversoldError
names the failing line. The caller's cart is left untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    BatchOversoldError,
    DuplicateInvoiceNumberError,
    NoEligibleBatchesError,
    NotFoundError,
    PersistenceError,
)
from ..extensions import db
from ..models import Product, ProductBatch, Sale, SaleItem
from ..money import ZERO, format_money, line_amounts, to_decimal
from ..time_utils import business_today
from ..validation import (
    MAX_TAX_RATE,
    ValidationError,
    require_payment_method,
    require_positive_quantity,
)
from .allocation_service import BatchAllocation, MANUAL, select_batch, split_allocation
from .batch_service import adjust_product_stock, decrement_batch
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .document_service import generate_invoice_number
from .products_service import get_product
from .tenant_service import TenantContext, resolve_store, scoped_query


@dataclass
class CartLine:
    """
    One line of a POS cart.

    Product fields are a snapshot taken when the line was added; settlement
    fills any that are missing from the product row. batch_id None means
    "draw FIFO at checkout".
    """
    product_id: int
    quantity: int
    unit_price: Decimal | None = None
    tax_rate: Decimal | None = None
    batch_id: int | None = None
    batch_number: str | None = None
    product_name: str | None = None
    product_sku: str | None = None
    hsn_code: str | None = None
    warning: dict | None = field(default=None, compare=False)

    def amounts(self) -> tuple[Decimal, Decimal]:
        return line_amounts(self.quantity, self.unit_price or ZERO, self.tax_rate or ZERO)

    def to_dict(self) -> dict:
        line_total, line_tax = self.amounts()
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "hsn_code": self.hsn_code,
            "batch_id": self.batch_id,
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "unit_price": format_money(self.unit_price),
            "tax_rate": format_money(self.tax_rate),
            "line_total": format_money(line_total),
            "tax_amount": format_money(line_tax),
            "total_amount": format_money(line_total + line_tax),
            "warning": self.warning,
        }


def _optional_amount(raw, field_name: str, *, upper: Decimal | None = None) -> Decimal | None:
    if raw is None:
        return None
    try:
        value = to_decimal(raw)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a decimal number")
    if not value.is_finite() or value < 0:
        raise ValidationError(f"{field_name} must be >= 0")
    if upper is not None and value > upper:
        raise ValidationError(f"{field_name} must be <= {upper}")
    return value


def _optional_id(raw, field_name: str) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, int) or raw <= 0:
        raise ValidationError(f"{field_name} must be a positive integer")
    return raw


def coerce_cart_line(raw) -> CartLine:
    """Validate one cart line (CartLine or JSON dict) without touching the database."""
    if isinstance(raw, CartLine):
        raw = {
            "product_id": raw.product_id,
            "quantity": raw.quantity,
            "unit_price": raw.unit_price,
            "tax_rate": raw.tax_rate,
            "batch_id": raw.batch_id,
            "batch_number": raw.batch_number,
            "product_name": raw.product_name,
            "product_sku": raw.product_sku,
            "hsn_code": raw.hsn_code,
        }
    if not isinstance(raw, dict):
        raise ValidationError("cart line must be an object")

    product_id = _optional_id(raw.get("product_id"), "product_id")
    if product_id is None:
        raise ValidationError("product_id is required")

    return CartLine(
        product_id=product_id,
        quantity=require_positive_quantity(raw.get("quantity")),
        unit_price=_optional_amount(raw.get("unit_price"), "unit_price"),
        tax_rate=_optional_amount(raw.get("tax_rate"), "tax_rate", upper=MAX_TAX_RATE),
        batch_id=_optional_id(raw.get("batch_id"), "batch_id"),
        batch_number=raw.get("batch_number"),
        product_name=raw.get("product_name"),
        product_sku=raw.get("product_sku"),
        hsn_code=raw.get("hsn_code"),
    )


def compute_totals(lines) -> dict[str, Decimal]:
    """
    Sale header amounts from quantized per-line values.

    Accepts CartLine or SaleItem objects.
    """
    subtotal = ZERO
    tax_amount = ZERO
    for line in lines:
        if isinstance(line, SaleItem):
            line_total, line_tax = line.line_total, line.tax_amount
        else:
            line_total, line_tax = line.amounts()
        subtotal += line_total
        tax_amount += line_tax
    return {"subtotal": subtotal, "tax_amount": tax_amount, "total_amount": subtotal + tax_amount}


def build_cart_line(ctx: TenantContext, product_id: int, quantity, batch_id: int | None = None) -> CartLine:
    """
    Add-to-cart: snapshot the product and, when a batch was picked, validate it.

    Advisory only; nothing is reserved.
    """
    quantity = require_positive_quantity(quantity)
    product = get_product(ctx, product_id, require_active=True)

    line = CartLine(
        product_id=product.id,
        quantity=quantity,
        unit_price=product.selling_price,
        tax_rate=product.tax_rate,
        product_name=product.name,
        product_sku=product.sku,
        hsn_code=product.hsn_code,
    )

    if batch_id is not None:
        allocation: BatchAllocation = select_batch(ctx, product.id, quantity, MANUAL, batch_id=batch_id)
        line.batch_id = allocation.batch_id
        line.batch_number = allocation.batch_number
        line.warning = allocation.warning.to_dict() if allocation.warning else None

    return line


def _normalize_customer(customer) -> dict:
    if customer is None:
        return {}
    if not isinstance(customer, dict):
        raise ValidationError("customer must be an object")
    normalized = {}
    for key in ("name", "phone", "gstin"):
        value = customer.get(key)
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"customer.{key} must be a string")
        normalized[key] = (value.strip() or None) if value else None
    return normalized


def _locked_product(ctx: TenantContext, product_id: int) -> Product:
    product = lock_for_update(
        scoped_query(Product, ctx).filter(Product.id == product_id)
    ).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    if not product.is_active:
        raise ValidationError("Product is inactive")
    return product


def _sellable_batch(ctx: TenantContext, product: Product, batch_id: int, today: date) -> ProductBatch:
    batch = (
        lock_for_update(
            scoped_query(ProductBatch, ctx).filter(
                ProductBatch.id == batch_id,
                ProductBatch.product_id == product.id,
            )
        )
        .populate_existing()
        .first()
    )
    if batch is None or not batch.is_active or batch.expiry_date <= today:
        raise NoEligibleBatchesError(
            "Selected batch is not available for sale",
            details={"product_id": product.id, "batch_id": batch_id},
        )
    return batch


def _draws_for_line(ctx: TenantContext, line: CartLine, product: Product, today: date) -> list[tuple[int, str, int]]:
    """(batch_id, batch_number, quantity) triples the line is settled from."""
    if line.batch_id is not None:
        batch = _sellable_batch(ctx, product, line.batch_id, today)
        return [(batch.id, batch.batch_number, line.quantity)]

    plan = split_allocation(ctx, product.id, line.quantity, today=today, lock=True)
    return [(a.batch_id, a.batch_number, a.quantity) for a in plan]


def _is_invoice_collision(exc: IntegrityError) -> bool:
    return "invoice" in str(exc.orig).lower()


def complete_sale(
    ctx: TenantContext,
    cart,
    customer: dict | None = None,
    payment_method: str = "cash",
    notes: str | None = None,
) -> Sale:
    """
    Persist a sale and apply all inventory decrements atomically.

    Raises:
        ValidationError: empty cart, bad line values, bad payment method (no writes)
        TenantAccessError: tenant or store inactive / foreign
        NotFoundError: product not in tenant
        NoEligibleBatchesError / InsufficientBatchQuantityError: nothing to draw from
        BatchOversoldError: a conditional decrement lost a race
        PersistenceError: store kept failing or invoice numbers kept colliding
    """
    if not cart:
        raise ValidationError("Cart is empty")
    lines = [coerce_cart_line(raw) for raw in cart]
    payment_method = require_payment_method(payment_method)
    customer = _normalize_customer(customer)

    def _op() -> Sale:
        begin_write_transaction()
        store = resolve_store(ctx)
        today = business_today(store.timezone)

        sale = Sale(
            tenant_id=ctx.tenant_id,
            store_id=store.id,
            user_id=ctx.user_id,
            invoice_number=generate_invoice_number(),
            customer_name=customer.get("name"),
            customer_phone=customer.get("phone"),
            customer_gstin=customer.get("gstin"),
            subtotal=ZERO,
            tax_amount=ZERO,
            total_amount=ZERO,
            payment_method=payment_method,
            payment_status="completed",
            notes=notes,
        )
        db.session.add(sale)
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            if _is_invoice_collision(exc):
                raise DuplicateInvoiceNumberError(
                    "Invoice number already used", details={"invoice_number": sale.invoice_number}
                ) from exc
            raise

        items: list[SaleItem] = []
        for index, line in enumerate(lines):
            product = _locked_product(ctx, line.product_id)
            unit_price = line.unit_price if line.unit_price is not None else product.selling_price
            tax_rate = line.tax_rate if line.tax_rate is not None else product.tax_rate

            for batch_id, batch_number, quantity in _draws_for_line(ctx, line, product, today):
                if not decrement_batch(batch_id, quantity):
                    db.session.rollback()
                    current_app.logger.warning(
                        "Oversell rejected: tenant=%s product=%s batch=%s qty=%s",
                        ctx.tenant_id, product.id, batch_id, quantity,
                    )
                    raise BatchOversoldError(
                        "Batch no longer has enough stock; re-allocate this line",
                        details={
                            "line_index": index,
                            "product_id": line.product_id,
                            "batch_id": batch_id,
                            "requested_quantity": quantity,
                        },
                    )
                if not adjust_product_stock(product.id, -quantity):
                    db.session.rollback()
                    current_app.logger.warning(
                        "Product stock below batch quantity: tenant=%s product=%s qty=%s",
                        ctx.tenant_id, product.id, quantity,
                    )
                    raise BatchOversoldError(
                        "Product stock is lower than the batch being sold",
                        details={
                            "line_index": index,
                            "product_id": line.product_id,
                            "batch_id": batch_id,
                            "requested_quantity": quantity,
                        },
                    )

                line_total, line_tax = line_amounts(quantity, unit_price, tax_rate)
                item = SaleItem(
                    product_id=product.id,
                    batch_id=batch_id,
                    product_name=line.product_name or product.name,
                    product_sku=line.product_sku or product.sku,
                    hsn_code=line.hsn_code or product.hsn_code,
                    batch_number=batch_number,
                    quantity=quantity,
                    unit_price=unit_price,
                    tax_rate=tax_rate,
                    line_total=line_total,
                    tax_amount=line_tax,
                    total_amount=line_total + line_tax,
                )
                sale.items.append(item)
                items.append(item)

        totals = compute_totals(items)
        sale.subtotal = totals["subtotal"]
        sale.tax_amount = totals["tax_amount"]
        sale.total_amount = totals["total_amount"]

        db.session.commit()
        return sale

    attempts = current_app.config.get("INVOICE_NUMBER_ATTEMPTS", 5)
    try:
        for attempt in range(1, attempts + 1):
            try:
                sale = run_with_retry(_op)
                break
            except DuplicateInvoiceNumberError as exc:
                current_app.logger.warning(
                    "Invoice number collision %s (attempt %d/%d)",
                    exc.details.get("invoice_number"), attempt, attempts,
                )
        else:
            raise PersistenceError(
                "Could not allocate a unique invoice number",
                details={"attempts": attempts},
            )
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Sale %s completed: invoice=%s store=%s items=%d total=%s",
        sale.id, sale.invoice_number, sale.store_id, len(sale.items), sale.total_amount,
    )
    return sale


def list_sales(
    ctx: TenantContext,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    store_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Sales history, newest first.

    start is inclusive, end exclusive (UTC).
    """
    query = scoped_query(Sale, ctx)
    if store_id is not None:
        query = query.filter(Sale.store_id == store_id)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at < end)
    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())

    if page is None:
        sales = query.all()
        return {"items": [s.to_dict() for s in sales], "count": len(sales)}

    per_page = max(1, min(per_page or 20, 100))
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    sales = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [s.to_dict() for s in sales],
        "count": len(sales),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_sale(ctx: TenantContext, sale_id: int) -> Sale:
    sale = scoped_query(Sale, ctx).filter(Sale.id == sale_id).first()
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale
