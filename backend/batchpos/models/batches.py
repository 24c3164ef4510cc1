from __future__ import annotations

from ..extensions import db
from ..money import format_money
from batchpos.time_utils import to_utc_z, to_iso_date

class ProductBatch(db.Model):
    """
    Dated lot of a product (Batch Ledger).

    LIFECYCLE:
    - Created by inventory receipt with remaining_quantity = quantity
    - remaining_quantity only decreases (sales), never below zero
    - quantity (original lot size) is immutable after creation
    - Soft-deleted via is_active=False on explicit retirement only;
      a batch that reaches zero remaining stays visible until retired

    CONCURRENCY:
    remaining_quantity is decremented with a conditional UPDATE
    (WHERE remaining_quantity >= :qty) and the affected row count is checked.
    Never read-then-write.
    """
    __tablename__ = "product_batches"
    __table_args__ = (
        db.UniqueConstraint("product_id", "batch_number", "tenant_id", name="uq_batches_product_number_tenant"),
        db.CheckConstraint("remaining_quantity >= 0", name="ck_batches_remaining_nonnegative"),
        db.CheckConstraint("remaining_quantity <= quantity", name="ck_batches_remaining_le_quantity"),
        # Eligible-batch and expiry-alert lookups
        db.Index("ix_batches_product_active_expiry", "product_id", "is_active", "expiry_date"),
        db.Index("ix_batches_tenant_active_expiry", "tenant_id", "is_active", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    batch_number = db.Column(db.String(64), nullable=False)
    manufacturing_date = db.Column(db.Date, nullable=True)
    expiry_date = db.Column(db.Date, nullable=False)

    # Cost basis per unit
    purchase_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False)
    remaining_quantity = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<ProductBatch id={self.id} product_id={self.product_id} "
            f"batch_number={self.batch_number!r} remaining={self.remaining_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "tenant_id": self.tenant_id,
            "store_id": self.store_id,
            "batch_number": self.batch_number,
            "manufacturing_date": to_iso_date(self.manufacturing_date),
            "expiry_date": to_iso_date(self.expiry_date),
            "purchase_price": format_money(self.purchase_price),
            "quantity": self.quantity,
            "remaining_quantity": self.remaining_quantity,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
