"""Statutory deduction calculation from a versioned rule table.

Bands and caps are defined annually while payroll is recomputed per pay
period, so period gross is annualized by the cadence factor, the annual
levies are computed, and each is divided back by the same factor. Amounts
are kept at full precision until the final rounding to cents.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

from payroll_compliance.calculators.types import (
    ZERO,
    BandTax,
    DeductionsBreakdown,
    EducationLevy,
    IncomeTax,
    IncomeTaxEstimate,
    OtherDeduction,
    PayCadence,
    Pension,
    SocialInsurance,
    TaxBracket,
    TaxYearRules,
    TrainingLevy,
    to_decimal,
    to_money,
)
from payroll_compliance.errors import InvalidInputError

HUNDRED = Decimal("100")


def _band_taxes(
    annual_income: Decimal,
    allowance: Decimal,
    brackets: Iterable[TaxBracket],
) -> list[BandTax]:
    """Marginal tax per band.

    The first ``allowance`` of income is exempt; the remainder is taxed at
    the rate of the band it falls in. Zero-rate bands still consume their
    width.
    """
    bands: list[BandTax] = []
    for bracket in brackets:
        start = max(bracket.lower_bound, allowance)
        end = annual_income if bracket.upper_bound is None else min(bracket.upper_bound, annual_income)
        if end <= start:
            continue
        portion = end - start
        bands.append(
            BandTax(
                lower_bound=bracket.lower_bound,
                upper_bound=bracket.upper_bound,
                rate=bracket.rate,
                taxable_amount=portion,
                tax=portion * bracket.rate,
            )
        )
    return bands


def annual_income_tax(annual_income: Decimal, rules: TaxYearRules, allowance: Decimal | None = None) -> Decimal:
    """Unrounded annual income tax."""
    if allowance is None:
        allowance = rules.personal_allowance
    return sum((b.tax for b in _band_taxes(annual_income, allowance, rules.brackets)), ZERO)


def compute_deductions(
    gross_earnings: Any,
    rules: TaxYearRules,
    cadence: PayCadence | str = PayCadence.MONTHLY,
    other_deductions: Iterable[OtherDeduction] = (),
) -> DeductionsBreakdown:
    """Compute the deduction breakdown for one pay period's gross earnings.

    Raises:
        InvalidInputError: gross is negative or not numeric, the cadence is
            unknown, or the rule table is malformed.
    """
    gross = to_decimal(gross_earnings, "gross_earnings")
    try:
        cadence = PayCadence(cadence)
    except ValueError as exc:
        raise InvalidInputError(f"Unknown pay cadence {cadence!r}", field="cadence") from exc
    rules.validate()
    others = tuple(other_deductions)

    periods = Decimal(cadence.periods_per_year)
    annual_gross = gross * periods

    taxable_income = max(ZERO, annual_gross - rules.personal_allowance)
    income_tax = annual_income_tax(annual_gross, rules) / periods

    insurable = min(annual_gross, rules.social_insurance_cap)
    social_insurance = insurable * rules.social_insurance_rate / periods
    social_insurance_employer = insurable * rules.social_insurance_employer_rate / periods

    education_base = max(ZERO, annual_gross - rules.education_levy_threshold)
    education_levy = education_base * rules.education_levy_rate / periods

    training_levy = annual_gross * rules.training_levy_rate / periods
    training_levy_employer = annual_gross * rules.training_levy_employer_rate / periods

    return DeductionsBreakdown(
        income_tax=IncomeTax(taxable_income=to_money(taxable_income), amount=to_money(income_tax)),
        social_insurance=SocialInsurance(
            contribution=to_money(social_insurance),
            employer_contribution=to_money(social_insurance_employer),
        ),
        education_levy=EducationLevy(amount=to_money(education_levy)),
        training_levy=TrainingLevy(
            amount=to_money(training_levy),
            employer_contribution=to_money(training_levy_employer),
        ),
        pension=Pension(
            employee_contribution=to_money(gross * rules.pension_employee_rate),
            employer_contribution=to_money(gross * rules.pension_employer_rate),
        ),
        other_deductions=others,
    )


def estimate_income_tax(annual_income: Any, rules: TaxYearRules, dependents: int = 0) -> IncomeTaxEstimate:
    """Estimate annual income tax, with a per-dependent allowance uplift."""
    income = to_decimal(annual_income, "annual_income")
    if dependents < 0:
        raise InvalidInputError("dependents cannot be negative", field="dependents")
    rules.validate()

    allowance = rules.personal_allowance + rules.dependent_allowance * dependents
    taxable_income = max(ZERO, income - allowance)
    bands = _band_taxes(income, allowance, rules.brackets)
    annual_tax = sum((b.tax for b in bands), ZERO)

    marginal = ZERO
    if taxable_income > 0 and bands:
        marginal = bands[-1].rate * HUNDRED
    effective = annual_tax / income * HUNDRED if income > 0 else ZERO

    return IncomeTaxEstimate(
        annual_income=to_money(income),
        allowance=to_money(allowance),
        dependents=dependents,
        taxable_income=to_money(taxable_income),
        annual_tax=to_money(annual_tax),
        monthly_tax=to_money(annual_tax / 12),
        effective_rate=to_money(effective),
        marginal_rate=to_money(marginal),
        breakdown=tuple(
            BandTax(
                lower_bound=b.lower_bound,
                upper_bound=b.upper_bound,
                rate=b.rate,
                taxable_amount=to_money(b.taxable_amount),
                tax=to_money(b.tax),
            )
            for b in bands
        ),
    )
