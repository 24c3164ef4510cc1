from __future__ import annotations

from ..extensions import db
from ..money import format_money
from batchpos.time_utils import to_utc_z

class Product(db.Model):
    """
    Sellable item (Catalog Store).

    MULTI-TENANT: Products carry tenant_id and store_id.

    SKU DESIGN DECISION:
    SKUs are unique per tenant, enforced by products_service (ConflictError),
    not by a database constraint. Legacy data may contain duplicates.

    STOCK DESIGN DECISION:
    stock_quantity is a materialized SUM(remaining_quantity) over the
    product's active batches. It is never client-writable; batch_service and
    sales_service change it in the same transaction as the batch rows.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_tenant_sku", "tenant_id", "sku"),
        db.Index("ix_products_tenant_barcode", "tenant_id", "barcode"),
        db.Index("ix_products_store_active", "store_id", "is_active"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)
    hsn_code = db.Column(db.String(16), nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="PCS")

    purchase_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    selling_price = db.Column(db.Numeric(12, 2), nullable=False)
    mrp = db.Column(db.Numeric(12, 2), nullable=True)
    # Percentage, e.g. 18.00 = 18% GST
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=18)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=10)
    # Per-batch low-stock threshold; NULL falls back to DEFAULT_MIN_BATCH_STOCK_LEVEL
    min_batch_stock_level = db.Column(db.Integer, nullable=True, default=5)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "store_id": self.store_id,
            "sku": self.sku,
            "name": self.name,
            "barcode": self.barcode,
            "hsn_code": self.hsn_code,
            "unit": self.unit,
            "purchase_price": format_money(self.purchase_price),
            "selling_price": format_money(self.selling_price),
            "mrp": format_money(self.mrp),
            "tax_rate": format_money(self.tax_rate),
            "stock_quantity": self.stock_quantity,
            "min_stock_level": self.min_stock_level,
            "min_batch_stock_level": self.min_batch_stock_level,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
