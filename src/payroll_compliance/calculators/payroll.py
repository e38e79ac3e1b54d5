"""Full recomputation of a payroll record's derived fields."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from payroll_compliance.calculators.statutory import compute_deductions
from payroll_compliance.calculators.types import (
    EarningsBreakdown,
    OtherDeduction,
    PayCadence,
    PayrollComputation,
    TaxYearRules,
    to_money,
)
from payroll_compliance.errors import InvalidInputError

SALARY_FREQUENCIES_PER_YEAR: dict[str, int] = {
    "weekly": 52,
    "bi-weekly": 26,
    "monthly": 12,
    "annually": 1,
}


def recompute(
    earnings: EarningsBreakdown,
    rules: TaxYearRules,
    cadence: PayCadence | str,
    other_deductions: Iterable[OtherDeduction] = (),
) -> PayrollComputation:
    """Derive gross, deductions and net pay from raw earnings inputs.

    Pure: the same inputs always produce an equal computation, so running it
    on every save never drifts.
    """
    deductions = compute_deductions(
        earnings.gross_earnings,
        rules,
        cadence=cadence,
        other_deductions=other_deductions,
    )
    return PayrollComputation(earnings=earnings, deductions=deductions, tax_year=rules.effective_year)


def convert_salary(amount: Decimal, salary_frequency: str, cadence: PayCadence | str) -> Decimal:
    """Convert a base salary quoted at one frequency into one pay period's amount."""
    cadence = PayCadence(cadence)
    if salary_frequency not in SALARY_FREQUENCIES_PER_YEAR:
        raise InvalidInputError(f"Unknown salary frequency {salary_frequency!r}", field="salary_frequency")
    if salary_frequency == cadence.value:
        return to_money(amount)
    annual = amount * SALARY_FREQUENCIES_PER_YEAR[salary_frequency]
    return to_money(annual / cadence.periods_per_year)
