# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import current_app, g, jsonify, request

from .services.identity_service import resolve_context


def _is_authenticated() -> bool:
    return getattr(g, "tenant_context", None) is not None


def require_auth(f):
    """
    Require an upstream identity and establish tenant context.

    MULTI-TENANT: Sets g.tenant_context (an immutable TenantContext) from the
    X-User-Id / X-Tenant-Id / X-Store-Id / X-Role headers. Routes pass it
    explicitly into every service call.

    SECURITY: Returns 401 if the tenant or role header is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        context = resolve_context(request.headers)

        if context is None:
            return jsonify({"error": "Authentication required"}), 401

        g.tenant_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the caller's role to be one of `roles`.

    Must be stacked below @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            ctx = g.tenant_context
            if not ctx.has_role(*roles):
                current_app.logger.warning(
                    "ROLE_DENIED user=%s tenant=%s role=%s path=%s",
                    ctx.user_id, ctx.tenant_id, ctx.role, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                    "message": f"Requires one of: {', '.join(roles)}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
