# Overview: Fixed-point currency helpers (2 decimal places, half-up).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """
    Convert an int/str/Decimal amount to Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1") and not its binary
    expansion.
    """
    if value is None:
        raise InvalidOperation("amount is required")
    if isinstance(value, bool):
        raise InvalidOperation("amount must be numeric")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_amounts(quantity: int, unit_price, tax_rate) -> tuple[Decimal, Decimal]:
    """
    Return (line_total, line_tax) for one cart line.

    line_total = quantity * unit_price
    line_tax   = line_total * tax_rate / 100
    Both quantized to cents; totals are sums of these quantized values so
    the sale header always equals the sum of its lines.
    """
    line_total = quantize(Decimal(quantity) * to_decimal(unit_price))
    line_tax = quantize(line_total * to_decimal(tax_rate) / HUNDRED)
    return line_total, line_tax


def format_money(value) -> str | None:
    if value is None:
        return None
    return str(quantize(value))
