# Overview: Invoice number allocation for completed sales.

"""
Invoice numbers have the form INV-<epoch milliseconds>.

Within one process numbers are strictly increasing: two sales completed in
the same millisecond get consecutive values. Across processes the
(tenant_id, invoice_number) unique constraint is the backstop and
sales_service regenerates on collision.
"""

from __future__ import annotations

import threading
import time

INVOICE_PREFIX = "INV"

_sequence_lock = threading.Lock()
_last_issued_ms = 0


def generate_invoice_number(now_ms: int | None = None) -> str:
    global _last_issued_ms

    with _sequence_lock:
        candidate = now_ms if now_ms is not None else int(time.time() * 1000)
        if candidate <= _last_issued_ms:
            candidate = _last_issued_ms + 1
        _last_issued_ms = candidate

    return f"{INVOICE_PREFIX}-{candidate}"
