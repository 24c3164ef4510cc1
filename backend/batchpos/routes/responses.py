# Overview: Maps domain exceptions to JSON error responses for the API routes.

from __future__ import annotations

from flask import jsonify

from ..errors import (
    BatchOversoldError,
    BatchPosError,
    InsufficientBatchQuantityError,
    NoEligibleBatchesError,
    NotFoundError,
    PersistenceError,
)
from ..services.tenant_service import TenantAccessError
from ..validation import ConflictError, ValidationError

# Exceptions a route may hand to error_response
HANDLED_ERRORS = (ValidationError, ConflictError, TenantAccessError, BatchPosError)


def error_response(exc: Exception):
    """JSON body {"error", "details"} with the status the error maps to."""
    details = getattr(exc, "details", None) or {}

    if isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, (TenantAccessError, NotFoundError)):
        status = 404
    elif isinstance(exc, (ConflictError, NoEligibleBatchesError, InsufficientBatchQuantityError, BatchOversoldError)):
        status = 409
    elif isinstance(exc, PersistenceError):
        status = 503
        details = {**details, "retryable": exc.retryable}
    else:
        status = 500

    return jsonify({"error": str(exc), "details": details}), status


def int_arg(value, name: str) -> int | None:
    """Optional positive int from a JSON body."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer")
    return value
