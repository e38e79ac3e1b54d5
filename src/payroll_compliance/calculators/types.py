"""Type definitions for the gross-to-net calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from payroll_compliance.errors import InvalidInputError

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    """Round to cents using round-half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field_name: str, *, allow_negative: bool = False) -> Decimal:
    """Coerce a numeric input to Decimal, rejecting floats' binary noise and bad values."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise InvalidInputError(f"{field_name} must be numeric", field=field_name)
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError) as exc:
            raise InvalidInputError(f"{field_name} must be numeric, got {value!r}", field=field_name) from exc

    if not result.is_finite():
        raise InvalidInputError(f"{field_name} must be finite", field=field_name)
    if not allow_negative and result < 0:
        raise InvalidInputError(f"{field_name} cannot be negative", field=field_name)
    return result


class PayCadence(str, Enum):
    """Recurring interval a payroll record covers."""

    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"

    @property
    def periods_per_year(self) -> int:
        return _PERIODS_PER_YEAR[self]


_PERIODS_PER_YEAR = {
    PayCadence.WEEKLY: 52,
    PayCadence.BI_WEEKLY: 26,
    PayCadence.MONTHLY: 12,
}


class Levy(str, Enum):
    """Statutory levies reported on monthly returns."""

    INCOME_TAX = "income_tax"
    SOCIAL_INSURANCE = "social_insurance"
    EDUCATION_LEVY = "education_levy"
    TRAINING_LEVY = "training_levy"
    CONSUMPTION_TAX = "consumption_tax"


class AllowanceType(str, Enum):
    TRANSPORT = "transport"
    MEAL = "meal"
    HOUSING = "housing"
    COMMUNICATION = "communication"
    OTHER = "other"


class OtherDeductionType(str, Enum):
    LOAN_REPAYMENT = "loan_repayment"
    UNION_DUES = "union_dues"
    INSURANCE = "insurance"
    GARNISHMENT = "garnishment"
    ADVANCE = "advance"
    OTHER = "other"


# ===== Tax rule tables =====


@dataclass(frozen=True)
class TaxBracket:
    """Progressive income tax band on the annual income scale."""

    lower_bound: Decimal
    upper_bound: Decimal | None  # None = no upper limit
    rate: Decimal  # As decimal, e.g., 0.25 for 25%


@dataclass(frozen=True)
class TaxYearRules:
    """Statutory rates, caps and bands in force for one tax year."""

    effective_year: int
    brackets: tuple[TaxBracket, ...]
    personal_allowance: Decimal
    social_insurance_rate: Decimal
    social_insurance_cap: Decimal
    education_levy_rate: Decimal
    education_levy_threshold: Decimal
    training_levy_rate: Decimal
    pension_employee_rate: Decimal
    pension_employer_rate: Decimal
    social_insurance_employer_rate: Decimal = ZERO
    training_levy_employer_rate: Decimal = ZERO
    dependent_allowance: Decimal = ZERO

    def validate(self) -> None:
        """Raise InvalidInputError unless the table is well formed.

        Brackets must start at zero, be sorted and contiguous (each lower
        bound equals the previous upper bound) and only the last one may be
        unbounded.
        """
        if not self.brackets:
            raise InvalidInputError("Tax rules must define at least one bracket", field="brackets")

        expected_lower = ZERO
        last_index = len(self.brackets) - 1
        for index, bracket in enumerate(self.brackets):
            if bracket.lower_bound != expected_lower:
                kind = "overlap" if bracket.lower_bound < expected_lower else "gap"
                raise InvalidInputError(
                    f"Bracket {index} starts at {bracket.lower_bound}, expected {expected_lower} ({kind})",
                    field="brackets",
                )
            if not ZERO <= bracket.rate <= 1:
                raise InvalidInputError(f"Bracket {index} rate {bracket.rate} outside [0, 1]", field="brackets")
            if bracket.upper_bound is None:
                if index != last_index:
                    raise InvalidInputError(f"Only the last bracket may be unbounded (bracket {index})", field="brackets")
                break
            if bracket.upper_bound <= bracket.lower_bound:
                raise InvalidInputError(f"Bracket {index} upper bound must exceed its lower bound", field="brackets")
            expected_lower = bracket.upper_bound
        else:
            raise InvalidInputError("The last bracket must be unbounded", field="brackets")

        for name in (
            "social_insurance_rate",
            "social_insurance_employer_rate",
            "education_levy_rate",
            "training_levy_rate",
            "training_levy_employer_rate",
            "pension_employee_rate",
            "pension_employer_rate",
        ):
            rate = getattr(self, name)
            if not ZERO <= rate <= 1:
                raise InvalidInputError(f"{name} {rate} outside [0, 1]", field=name)

        for name in (
            "personal_allowance",
            "social_insurance_cap",
            "education_levy_threshold",
            "dependent_allowance",
        ):
            if getattr(self, name) < 0:
                raise InvalidInputError(f"{name} cannot be negative", field=name)


# ===== Earnings =====


@dataclass(frozen=True)
class Overtime:
    hours: Decimal = ZERO
    rate: Decimal = ZERO

    @property
    def amount(self) -> Decimal:
        return to_money(self.hours * self.rate)


@dataclass(frozen=True)
class Allowance:
    type: AllowanceType
    amount: Decimal
    taxable: bool = True
    description: str | None = None


@dataclass(frozen=True)
class EarningsBreakdown:
    """Earnings components of one pay period.

    ``gross_earnings`` is always derived from the components and can never be
    supplied directly.
    """

    basic_salary: Decimal
    overtime: Overtime = field(default_factory=Overtime)
    allowances: tuple[Allowance, ...] = ()
    bonus: Decimal = ZERO
    commission: Decimal = ZERO
    back_pay: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in ("basic_salary", "bonus", "commission", "back_pay"):
            object.__setattr__(self, name, to_decimal(getattr(self, name), name))
        object.__setattr__(
            self,
            "overtime",
            Overtime(
                hours=to_decimal(self.overtime.hours, "overtime.hours"),
                rate=to_decimal(self.overtime.rate, "overtime.rate"),
            ),
        )
        object.__setattr__(
            self,
            "allowances",
            tuple(
                Allowance(
                    type=AllowanceType(a.type),
                    amount=to_decimal(a.amount, "allowances.amount"),
                    taxable=bool(a.taxable),
                    description=a.description,
                )
                for a in self.allowances
            ),
        )

    @property
    def taxable_allowances(self) -> Decimal:
        return sum((a.amount for a in self.allowances if a.taxable), ZERO)

    @property
    def gross_earnings(self) -> Decimal:
        return to_money(
            self.basic_salary
            + self.overtime.amount
            + self.bonus
            + self.commission
            + self.back_pay
            + self.taxable_allowances
        )

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-safe dict (amounts as strings) for persistence."""
        return {
            "basic_salary": str(self.basic_salary),
            "overtime": {"hours": str(self.overtime.hours), "rate": str(self.overtime.rate)},
            "allowances": [
                {
                    "type": a.type.value,
                    "amount": str(a.amount),
                    "taxable": a.taxable,
                    "description": a.description,
                }
                for a in self.allowances
            ],
            "bonus": str(self.bonus),
            "commission": str(self.commission),
            "back_pay": str(self.back_pay),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> EarningsBreakdown:
        overtime = payload.get("overtime") or {}
        return cls(
            basic_salary=payload["basic_salary"],
            overtime=Overtime(hours=overtime.get("hours", "0"), rate=overtime.get("rate", "0")),
            allowances=tuple(
                Allowance(
                    type=AllowanceType(a["type"]),
                    amount=a["amount"],
                    taxable=a.get("taxable", True),
                    description=a.get("description"),
                )
                for a in payload.get("allowances", [])
            ),
            bonus=payload.get("bonus", "0"),
            commission=payload.get("commission", "0"),
            back_pay=payload.get("back_pay", "0"),
        )


# ===== Deductions =====


@dataclass(frozen=True)
class OtherDeduction:
    type: OtherDeductionType
    amount: Decimal
    description: str | None = None
    recurring: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", OtherDeductionType(self.type))
        object.__setattr__(self, "amount", to_decimal(self.amount, "other_deductions.amount"))


@dataclass(frozen=True)
class IncomeTax:
    taxable_income: Decimal
    amount: Decimal


@dataclass(frozen=True)
class SocialInsurance:
    contribution: Decimal
    employer_contribution: Decimal = ZERO  # informational


@dataclass(frozen=True)
class EducationLevy:
    amount: Decimal


@dataclass(frozen=True)
class TrainingLevy:
    amount: Decimal
    employer_contribution: Decimal = ZERO  # informational


@dataclass(frozen=True)
class Pension:
    employee_contribution: Decimal
    employer_contribution: Decimal  # informational, never subtracted from net pay


@dataclass(frozen=True)
class DeductionsBreakdown:
    """Statutory and voluntary deductions of one pay period."""

    income_tax: IncomeTax
    social_insurance: SocialInsurance
    education_levy: EducationLevy
    training_levy: TrainingLevy
    pension: Pension
    other_deductions: tuple[OtherDeduction, ...] = ()

    @property
    def other_deductions_total(self) -> Decimal:
        return sum((d.amount for d in self.other_deductions), ZERO)

    @property
    def total_deductions(self) -> Decimal:
        """Sum of every employee-side component. Employer shares are excluded."""
        return to_money(
            self.income_tax.amount
            + self.social_insurance.contribution
            + self.education_levy.amount
            + self.training_levy.amount
            + self.pension.employee_contribution
            + self.other_deductions_total
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "income_tax": {
                "taxable_income": str(self.income_tax.taxable_income),
                "amount": str(self.income_tax.amount),
            },
            "social_insurance": {
                "contribution": str(self.social_insurance.contribution),
                "employer_contribution": str(self.social_insurance.employer_contribution),
            },
            "education_levy": {"amount": str(self.education_levy.amount)},
            "training_levy": {
                "amount": str(self.training_levy.amount),
                "employer_contribution": str(self.training_levy.employer_contribution),
            },
            "pension": {
                "employee_contribution": str(self.pension.employee_contribution),
                "employer_contribution": str(self.pension.employer_contribution),
            },
            "other_deductions": [
                {
                    "type": d.type.value,
                    "amount": str(d.amount),
                    "description": d.description,
                    "recurring": d.recurring,
                }
                for d in self.other_deductions
            ],
            "total_deductions": str(self.total_deductions),
        }


@dataclass(frozen=True)
class PayrollComputation:
    """Every derived field of a payroll record, produced by one recomputation."""

    earnings: EarningsBreakdown
    deductions: DeductionsBreakdown
    tax_year: int

    @property
    def gross_earnings(self) -> Decimal:
        return self.earnings.gross_earnings

    @property
    def total_deductions(self) -> Decimal:
        return self.deductions.total_deductions

    @property
    def net_pay(self) -> Decimal:
        return max(ZERO, self.gross_earnings - self.total_deductions)


@dataclass(frozen=True)
class BandTax:
    """Tax accrued inside one bracket, used for estimate breakdowns."""

    lower_bound: Decimal
    upper_bound: Decimal | None
    rate: Decimal
    taxable_amount: Decimal
    tax: Decimal


@dataclass(frozen=True)
class IncomeTaxEstimate:
    """Annual income tax estimate with a per-band breakdown."""

    annual_income: Decimal
    allowance: Decimal
    dependents: int
    taxable_income: Decimal
    annual_tax: Decimal
    monthly_tax: Decimal
    effective_rate: Decimal  # percent, 2dp
    marginal_rate: Decimal  # percent, 2dp
    breakdown: tuple[BandTax, ...] = ()
