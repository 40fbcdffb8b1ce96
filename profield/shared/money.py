"""Money arithmetic for invoices and quotes - always Decimal, rounded half-up to cents"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

CENTS = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.1 from dragging binary noise along
    return Decimal(str(value))


def quantize(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def line_amount(quantity: Number, rate: Number) -> Decimal:
    return quantize(to_decimal(quantity) * to_decimal(rate))


def compute_totals(amounts: Iterable[Decimal], tax_rate: Number) -> tuple[Decimal, Decimal, Decimal]:
    """
    Returns (subtotal, tax_amount, total) for already-rounded line amounts.
    tax_rate is a percentage.
    """
    subtotal = quantize(sum(amounts, Decimal("0")))
    tax_amount = quantize(subtotal * to_decimal(tax_rate or 0) / Decimal("100"))
    return subtotal, tax_amount, subtotal + tax_amount
