"""Transaction-level consumption tax."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from payroll_compliance.calculators.types import ZERO, to_decimal, to_money

ONE = Decimal("1")
# Scale of the stored rate column
RATE_PLACES = Decimal("0.0001")


def clamp_rate(rate: Any) -> Decimal:
    """Clamp a tax rate into [0, 1] at four decimal places."""
    value = to_decimal(rate, "rate", allow_negative=True)
    return min(max(value, ZERO), ONE).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def compute_consumption_tax(amount: Any, is_taxable: bool, rate: Any) -> Decimal:
    """Return amount × rate for a taxable line item, else zero.

    Raises:
        InvalidInputError: amount is negative or not numeric.
    """
    value = to_decimal(amount, "amount")
    if not is_taxable:
        return to_money(ZERO)
    return to_money(value * clamp_rate(rate))


def total_payable(amount: Any, tax_amount: Decimal) -> Decimal:
    """Amount plus its consumption tax."""
    return to_money(to_decimal(amount, "amount") + tax_amount)
