"""Versioned statutory rule tables.

Rule tables are plain data. Each tax year is described by a JSON-shaped
payload:

{
    "effective_year": 2024,
    "personal_allowance": 1500000,
    "dependent_allowance": 100000,
    "brackets": [
        {"min": 0, "max": 1500000, "rate": 0},
        {"min": 1500000, "max": 6000000, "rate": 0.25},
        {"min": 6000000, "max": null, "rate": 0.30}
    ],
    "social_insurance": {"rate": 0.03, "employer_rate": 0.03, "annual_cap": 1000000},
    "education_levy": {"rate": 0.025, "threshold": 500000},
    "training_levy": {"rate": 0.03, "employer_rate": 0.03},
    "pension": {"employee_rate": 0.05, "employer_rate": 0.05}
}

Payloads are parsed with pydantic and then checked with
``TaxYearRules.validate`` so malformed tables never reach a calculator.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from payroll_compliance.calculators.types import TaxBracket, TaxYearRules
from payroll_compliance.errors import InvalidInputError, TaxRulesNotFoundError


class BracketPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    lower: Decimal = Field(alias="min", ge=0)
    upper: Decimal | None = Field(default=None, alias="max")
    rate: Decimal = Field(ge=0, le=1)


class SocialInsurancePayload(BaseModel):
    rate: Decimal = Field(ge=0, le=1)
    employer_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    annual_cap: Decimal = Field(ge=0)


class EducationLevyPayload(BaseModel):
    rate: Decimal = Field(ge=0, le=1)
    threshold: Decimal = Field(default=Decimal("0"), ge=0)


class TrainingLevyPayload(BaseModel):
    rate: Decimal = Field(ge=0, le=1)
    employer_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)


class PensionPayload(BaseModel):
    employee_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    employer_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)


class TaxYearRulesPayload(BaseModel):
    """Schema of a stored rule table payload."""

    effective_year: int = Field(ge=1900, le=9999)
    personal_allowance: Decimal = Field(ge=0)
    dependent_allowance: Decimal = Field(default=Decimal("0"), ge=0)
    brackets: list[BracketPayload]
    social_insurance: SocialInsurancePayload
    education_levy: EducationLevyPayload
    training_levy: TrainingLevyPayload
    pension: PensionPayload = Field(default_factory=PensionPayload)

    def to_rules(self) -> TaxYearRules:
        return TaxYearRules(
            effective_year=self.effective_year,
            brackets=tuple(
                TaxBracket(lower_bound=b.lower, upper_bound=b.upper, rate=b.rate)
                for b in self.brackets
            ),
            personal_allowance=self.personal_allowance,
            dependent_allowance=self.dependent_allowance,
            social_insurance_rate=self.social_insurance.rate,
            social_insurance_employer_rate=self.social_insurance.employer_rate,
            social_insurance_cap=self.social_insurance.annual_cap,
            education_levy_rate=self.education_levy.rate,
            education_levy_threshold=self.education_levy.threshold,
            training_levy_rate=self.training_levy.rate,
            training_levy_employer_rate=self.training_levy.employer_rate,
            pension_employee_rate=self.pension.employee_rate,
            pension_employer_rate=self.pension.employer_rate,
        )


DEFAULT_RULE_PAYLOADS: tuple[dict[str, Any], ...] = (
    {
        "effective_year": 2024,
        "personal_allowance": "1500000",
        "dependent_allowance": "100000",
        "brackets": [
            {"min": "0", "max": "1500000", "rate": "0"},
            {"min": "1500000", "max": "6000000", "rate": "0.25"},
            {"min": "6000000", "max": None, "rate": "0.30"},
        ],
        "social_insurance": {"rate": "0.03", "employer_rate": "0.03", "annual_cap": "1000000"},
        "education_levy": {"rate": "0.025", "threshold": "500000"},
        "training_levy": {"rate": "0.03", "employer_rate": "0.03"},
        "pension": {"employee_rate": "0.05", "employer_rate": "0.05"},
    },
)


def parse_rules(payload: Mapping[str, Any]) -> TaxYearRules:
    """Parse and validate one rule table payload."""
    try:
        parsed = TaxYearRulesPayload.model_validate(dict(payload))
    except ValidationError as exc:
        raise InvalidInputError(f"Malformed tax rule payload: {exc}", field="rules") from exc

    rules = parsed.to_rules()
    rules.validate()
    return rules


class RuleBook:
    """Resolves the rule table in force for a tax year.

    A table stays in force until a later effective year supersedes it, so
    historical pay periods are always recomputed with their own rules.
    """

    def __init__(self, tables: Iterable[TaxYearRules]):
        self._tables: dict[int, TaxYearRules] = {}
        for table in tables:
            table.validate()
            self._tables[table.effective_year] = table
        self._years = sorted(self._tables)

    @classmethod
    def from_payloads(cls, payloads: Iterable[Mapping[str, Any]]) -> RuleBook:
        return cls(parse_rules(p) for p in payloads)

    @classmethod
    def default(cls) -> RuleBook:
        return cls.from_payloads(DEFAULT_RULE_PAYLOADS)

    @property
    def years(self) -> list[int]:
        return list(self._years)

    def for_year(self, tax_year: int) -> TaxYearRules:
        """Return the most recent table with effective_year <= tax_year."""
        candidates = [y for y in self._years if y <= tax_year]
        if not candidates:
            raise TaxRulesNotFoundError(tax_year)
        return self._tables[candidates[-1]]
