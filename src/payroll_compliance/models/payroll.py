"""Payroll record model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_compliance.calculators.types import (
    ZERO,
    EarningsBreakdown,
    OtherDeduction,
    PayCadence,
    PayrollComputation,
    to_money,
)
from payroll_compliance.models.base import Base, TenantScopedMixin, TimestampMixin


class PayrollRecord(Base, TenantScopedMixin, TimestampMixin):
    """One employee's pay for one pay period.

    Earnings inputs are stored as a JSON payload; every derived amount is
    also flattened into its own column so reports can aggregate without
    decoding payloads. ``version`` drives optimistic concurrency: a flush
    against a row whose version moved raises StaleDataError.
    """

    __tablename__ = "payroll_record"

    payroll_record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payroll_number: Mapped[str] = mapped_column(String, nullable=False)

    # Pay period
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    cadence: Mapped[str] = mapped_column(String, nullable=False)

    # Inputs
    earnings_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    other_deductions_json: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # Derived
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    deductions_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    gross_earnings: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    taxable_income: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    income_tax: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    social_insurance: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    social_insurance_employer: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    education_levy: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    training_levy: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    training_levy_employer: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    pension_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    pension_employer: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    other_deductions_total: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    # Lifecycle
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    approvals_json: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    pay_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_method: Mapped[str] = mapped_column(String, nullable=False, default="bank_transfer")
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    processed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    __table_args__ = (
        UniqueConstraint("tenant_id", "payroll_number", name="payroll_record_number_unique"),
        CheckConstraint(
            "status IN ('draft', 'calculated', 'approved', 'paid', 'cancelled')",
            name="payroll_record_status_check",
        ),
        CheckConstraint(
            "cadence IN ('weekly', 'bi-weekly', 'monthly')",
            name="payroll_record_cadence_check",
        ),
        CheckConstraint(
            "payment_method IN ('bank_transfer', 'check', 'cash', 'mobile_payment')",
            name="payroll_record_payment_method_check",
        ),
        CheckConstraint("period_end >= period_start", name="payroll_record_dates_check"),
    )

    @property
    def pay_cadence(self) -> PayCadence:
        return PayCadence(self.cadence)

    def earnings(self) -> EarningsBreakdown:
        return EarningsBreakdown.from_payload(self.earnings_json)

    def other_deductions(self) -> tuple[OtherDeduction, ...]:
        return tuple(
            OtherDeduction(
                type=d["type"],
                amount=d["amount"],
                description=d.get("description"),
                recurring=d.get("recurring", False),
            )
            for d in self.other_deductions_json
        )

    def apply_computation(self, computation: PayrollComputation) -> None:
        """Copy every derived field of a recomputation onto the row."""
        deductions = computation.deductions
        self.earnings_json = computation.earnings.to_payload()
        self.other_deductions_json = deductions.to_payload()["other_deductions"]
        self.deductions_json = deductions.to_payload()
        self.tax_year = computation.tax_year
        self.gross_earnings = computation.gross_earnings
        self.taxable_income = deductions.income_tax.taxable_income
        self.income_tax = deductions.income_tax.amount
        self.social_insurance = deductions.social_insurance.contribution
        self.social_insurance_employer = deductions.social_insurance.employer_contribution
        self.education_levy = deductions.education_levy.amount
        self.training_levy = deductions.training_levy.amount
        self.training_levy_employer = deductions.training_levy.employer_contribution
        self.pension_employee = deductions.pension.employee_contribution
        self.pension_employer = deductions.pension.employer_contribution
        self.other_deductions_total = to_money(deductions.other_deductions_total)
        self.total_deductions = computation.total_deductions
        self.net_pay = computation.net_pay

    def consistency_errors(self) -> list[str]:
        """Stored totals that disagree with their components (empty if consistent)."""
        errors: list[str] = []
        component_sum = (
            self.income_tax
            + self.social_insurance
            + self.education_levy
            + self.training_levy
            + self.pension_employee
            + self.other_deductions_total
        )
        if to_money(component_sum) != to_money(self.total_deductions):
            errors.append(
                f"total_deductions {self.total_deductions} != sum of components {component_sum}"
            )
        expected_net = max(ZERO, self.gross_earnings - self.total_deductions)
        if to_money(expected_net) != to_money(self.net_pay):
            errors.append(f"net_pay {self.net_pay} != max(0, gross - deductions) {expected_net}")
        if self.total_deductions < 0 or self.net_pay < 0:
            errors.append("negative totals")
        return errors
