from __future__ import annotations

from ..extensions import db
from batchpos.time_utils import to_utc_z

class Tenant(db.Model):
    """
    Multi-tenant root: every business account is a Tenant.

    WHY: Shared-database multi-tenancy with strict isolation.
    Stores, products, batches and sales carry a denormalized tenant_id so
    every query can be scoped without joins.

    DESIGN:
    - Created at signup together with its first store
    - Membership is immutable (no merge/split)
    - Deactivating a tenant blocks all core operations
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    plan = db.Column(db.String(32), nullable=False, default="free")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "plan": self.plan,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

class Store(db.Model):
    """
    Physical sales location within a tenant.

    MULTI-TENANT: Store names are unique within a tenant, not globally.
    Soft-deleted via is_active; inactive stores cannot settle sales.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_stores_tenant_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.Text, nullable=True)
    gstin = db.Column(db.String(32), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    # Expiry checks use the store's calendar date
    timezone = db.Column(db.String(64), nullable=False, default="Asia/Kolkata")
    currency = db.Column(db.String(8), nullable=False, default="INR")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("stores", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "address": self.address,
            "gstin": self.gstin,
            "phone": self.phone,
            "timezone": self.timezone,
            "currency": self.currency,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
