from __future__ import annotations

from ..extensions import db
from ..money import format_money
from batchpos.time_utils import to_utc_z, utcnow

class Sale(db.Model):
    """
    Completed sale (immutable once created).

    WHY: A sale is written exactly once per checkout, together with its items
    and the matching inventory decrements, in a single transaction.
    No amendments or voids.

    INVOICE NUMBERS:
    Unique per tenant (uq_sales_tenant_invoice). Collisions are regenerated
    and retried by sales_service.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "invoice_number", name="uq_sales_tenant_invoice"),
        # Composite index for store-scoped history by date
        db.Index("ix_sales_store_created", "store_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    # Actor supplied by the identity resolver
    user_id = db.Column(db.Integer, nullable=True, index=True)

    invoice_number = db.Column(db.String(64), nullable=False)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_gstin = db.Column(db.String(32), nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default="completed")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        index=True,
    )

    store = db.relationship("Store", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "store_id": self.store_id,
            "user_id": self.user_id,
            "invoice_number": self.invoice_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_gstin": self.customer_gstin,
            "subtotal": format_money(self.subtotal),
            "tax_amount": format_money(self.tax_amount),
            "total_amount": format_money(self.total_amount),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

class SaleItem(db.Model):
    """
    Frozen line-level snapshot of a sold product.

    product_id and batch_id are weak references kept for traceability.
    Name/SKU/HSN/price/tax are copied at sale time and are authoritative for
    the historical record even if the product is edited later.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.Index("ix_sale_items_product", "product_id"),
        db.Index("ix_sale_items_batch", "batch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(
        db.Integer,
        db.ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("product_batches.id", ondelete="SET NULL"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)
    hsn_code = db.Column(db.String(16), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False)
    # line_total + tax_amount
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "batch_id": self.batch_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "hsn_code": self.hsn_code,
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "unit_price": format_money(self.unit_price),
            "tax_rate": format_money(self.tax_rate),
            "line_total": format_money(self.line_total),
            "tax_amount": format_money(self.tax_amount),
            "total_amount": format_money(self.total_amount),
            "created_at": to_utc_z(self.created_at),
        }
