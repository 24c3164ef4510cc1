# Overview: Resolves the caller's TenantContext from identity headers set by the upstream gateway.

"""
Identity / tenant resolver.

Authentication happens upstream (gateway or auth proxy). It forwards the
authenticated actor as headers:

    X-User-Id:   integer user id
    X-Tenant-Id: integer tenant id (required)
    X-Store-Id:  integer store id (optional for tenant-level users)
    X-Role:      one of owner, manager, cashier, accountant, auditor

The core trusts these values as given. Malformed or missing values resolve
to None so the route layer can answer 401.
"""

from __future__ import annotations

from typing import Mapping

from .tenant_service import ROLES, TenantContext


def _int_header(headers: Mapping[str, str], name: str) -> int | None:
    raw = headers.get(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw.isdigit():
        raise ValueError(f"{name} must be an integer")
    return int(raw)


def resolve_context(headers: Mapping[str, str]) -> TenantContext | None:
    try:
        tenant_id = _int_header(headers, "X-Tenant-Id")
        user_id = _int_header(headers, "X-User-Id")
        store_id = _int_header(headers, "X-Store-Id")
    except ValueError:
        return None

    role = (headers.get("X-Role") or "").strip().lower()

    if tenant_id is None or role not in ROLES:
        return None

    return TenantContext(user_id=user_id, tenant_id=tenant_id, store_id=store_id, role=role)


def context_headers(ctx: TenantContext) -> dict[str, str]:
    """Inverse of resolve_context; used by the CLI and tests to build requests."""
    headers = {"X-Tenant-Id": str(ctx.tenant_id), "X-Role": ctx.role}
    if ctx.user_id is not None:
        headers["X-User-Id"] = str(ctx.user_id)
    if ctx.store_id is not None:
        headers["X-Store-Id"] = str(ctx.store_id)
    return headers
