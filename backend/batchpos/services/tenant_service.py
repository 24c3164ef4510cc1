"""
Multi-Tenant Service: Tenant Context, Validation and Scoping Helpers

WHY: Centralize tenant validation logic for reuse across services and routes.
Every core operation receives an explicit TenantContext (never ambient
global state), so services stay testable without a live access-control
layer.

SECURITY INVARIANTS:
1. Every core call carries a TenantContext with tenant_id set
2. Store IDs from client input must be validated against ctx.tenant_id
3. Queries touching tenant-owned data filter by ctx.tenant_id
4. Cross-tenant access attempts are logged and reported as "not found"

USAGE:
    from batchpos.services.tenant_service import TenantContext, require_store_in_tenant

    ctx = TenantContext(user_id=7, tenant_id=1, store_id=3, role="cashier")
    store = require_store_in_tenant(ctx.store_id, ctx.tenant_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Store, Tenant
from ..time_utils import business_today
from ..validation import ConflictError, ValidationError

ROLES = ("owner", "manager", "cashier", "accountant", "auditor")

SALE_ROLES = ("owner", "manager", "cashier")
INVENTORY_ROLES = ("owner", "manager")
REPORT_ROLES = ("owner", "manager", "accountant", "auditor")


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted."""
    pass


@dataclass(frozen=True)
class TenantContext:
    """
    Caller identity as supplied by the identity/tenant resolver.

    The core trusts this value as given; it only checks that the tenant and
    store exist, are active and belong together.
    """
    user_id: int | None
    tenant_id: int
    store_id: int | None
    role: str

    def has_role(self, *roles: str) -> bool:
        return self.role in roles


def validate_tenant_active(tenant_id: int) -> Tenant:
    """
    Validate that a tenant exists and is active.

    Raises:
        TenantAccessError if tenant doesn't exist or is inactive
    """
    tenant = db.session.get(Tenant, tenant_id)

    if not tenant:
        raise TenantAccessError("Tenant not found")

    if not tenant.is_active:
        raise TenantAccessError("Tenant is not active")

    return tenant


def require_store_in_tenant(store_id: int | None, tenant_id: int, *, require_active: bool = False) -> Store:
    """
    Validate that a store belongs to the specified tenant.

    SECURITY: Core tenant isolation check. Call this before any operation
    that uses a store_id from client input.

    Raises:
        TenantAccessError if store doesn't exist or belongs to different tenant
    """
    if store_id is None:
        raise TenantAccessError("Store context required")

    store = db.session.get(Store, store_id)

    if not store:
        _log_cross_tenant_attempt(f"Store {store_id} not found", tenant_id=tenant_id)
        raise TenantAccessError("Store not found")

    if store.tenant_id != tenant_id:
        # CRITICAL: Cross-tenant access attempt
        _log_cross_tenant_attempt(
            f"Store {store_id} belongs to tenant {store.tenant_id}, not {tenant_id}",
            tenant_id=tenant_id,
        )
        raise TenantAccessError("Store not found")  # Don't reveal it exists in another tenant

    if require_active and not store.is_active:
        raise TenantAccessError("Store is not active")

    return store


def resolve_store(ctx: TenantContext) -> Store:
    """Tenant active + store active and owned by tenant. Used before any write."""
    validate_tenant_active(ctx.tenant_id)
    return require_store_in_tenant(ctx.store_id, ctx.tenant_id, require_active=True)


def store_today(ctx: TenantContext) -> date:
    """
    Business date for expiry checks: today in the caller's store timezone.

    Tenant-level callers without a store (or with a foreign store id) get the
    UTC date.
    """
    if ctx.store_id is not None:
        store = db.session.get(Store, ctx.store_id)
        if store is not None and store.tenant_id == ctx.tenant_id:
            return business_today(store.timezone)
    return business_today(None)


def get_tenant_store_ids(tenant_id: int) -> set[int]:
    """Set of store IDs for a tenant, for quick membership checks."""
    stores = db.session.query(Store.id).filter_by(tenant_id=tenant_id).all()
    return {s.id for s in stores}


def scoped_query(model, ctx: TenantContext):
    """
    Base query scoped to the caller's tenant.

    For models with a tenant_id column.

    Usage:
        batches = scoped_query(ProductBatch, ctx).filter_by(is_active=True).all()
    """
    return db.session.query(model).filter(model.tenant_id == ctx.tenant_id)


def list_stores(ctx: TenantContext, active_only: bool = True) -> list[Store]:
    query = db.session.query(Store).filter_by(tenant_id=ctx.tenant_id)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(Store.name).all()


def create_tenant(*, name: str, store_name: str, plan: str = "free", timezone: str | None = None) -> tuple[Tenant, Store]:
    """
    Signup: create a tenant together with its first store.
    """
    if not name or not name.strip():
        raise ValidationError("name is required")
    if not store_name or not store_name.strip():
        raise ValidationError("store_name is required")

    tenant = Tenant(name=name.strip(), plan=plan, is_active=True)
    db.session.add(tenant)
    db.session.flush()

    store = Store(tenant_id=tenant.id, name=store_name.strip())
    if timezone:
        store.timezone = timezone
    db.session.add(store)
    db.session.commit()

    current_app.logger.info("Created tenant %s with store %s", tenant.id, store.id)
    return tenant, store


def create_store(ctx: TenantContext, patch: dict) -> Store:
    validate_tenant_active(ctx.tenant_id)

    store = Store(tenant_id=ctx.tenant_id, **patch)
    db.session.add(store)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Store name already exists: {patch.get('name')}")
    return store


def deactivate_store(ctx: TenantContext, store_id: int) -> Store:
    store = require_store_in_tenant(store_id, ctx.tenant_id)
    store.is_active = False
    db.session.commit()
    current_app.logger.info("Store %s deactivated by user %s", store.id, ctx.user_id)
    return store


def _log_cross_tenant_attempt(reason: str, tenant_id: int | None = None) -> None:
    """
    Log a cross-tenant access attempt.

    SECURITY: Audit trail for detecting unauthorized access attempts.
    """
    current_app.logger.warning("CROSS_TENANT_ACCESS_DENIED tenant=%s: %s", tenant_id, reason)
