# Overview: Domain error taxonomy shared by the allocation and settlement services.

from __future__ import annotations


class BatchPosError(Exception):
    """Base for domain errors that are reported back to the caller."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(BatchPosError):
    """Referenced row does not exist in the caller's tenant."""


class NoEligibleBatchesError(BatchPosError):
    """No active, non-expired, in-stock batch exists for the product."""


class InsufficientBatchQuantityError(BatchPosError):
    """Selected batch (or all eligible batches) cannot cover the requested quantity."""


class BatchOversoldError(BatchPosError):
    """
    Conditional decrement matched zero rows at settlement time.

    Another sale committed first; the cart line must be re-allocated.
    """


class DuplicateInvoiceNumberError(BatchPosError):
    """Invoice number collided with an existing sale in the tenant."""


class PersistenceError(BatchPosError):
    """Underlying store unavailable or kept failing; safe to retry the request."""

    def __init__(self, message: str, details: dict | None = None, retryable: bool = True):
        super().__init__(message, details)
        self.retryable = retryable
