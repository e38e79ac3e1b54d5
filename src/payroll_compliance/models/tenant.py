"""Tenant (business) and employee master data.

The calculation core only reads these rows; it never mutates them.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_compliance.models.base import Base, TenantScopedMixin, TimestampMixin


class Tenant(Base, TimestampMixin):
    """Business that owns payroll and transaction records."""

    __tablename__ = "tenant"

    tenant_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    registration_number: Mapped[str | None] = mapped_column(String, nullable=True)
    tax_id: Mapped[str | None] = mapped_column(String, nullable=True)
    legal_form: Mapped[str] = mapped_column(String, nullable=False, default="other")
    paye_registered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    social_insurance_registered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    education_levy_registered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    training_levy_registered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consumption_tax_registered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "legal_form IN ('sole_proprietorship', 'partnership', 'limited_liability_company', "
            "'corporation', 'non_profit', 'cooperative', 'other')",
            name="tenant_legal_form_check",
        ),
    )

    def is_registered(self, item: str) -> bool:
        """Registration status for "tax_id" or a levy name."""
        if item == "tax_id":
            return bool(self.tax_id)
        flags = {
            "income_tax": self.paye_registered,
            "social_insurance": self.social_insurance_registered,
            "education_levy": self.education_levy_registered,
            "training_levy": self.training_levy_registered,
            "consumption_tax": self.consumption_tax_registered,
        }
        if item not in flags:
            raise KeyError(f"Unknown registration item {item!r}")
        return bool(flags[item])


class Employee(Base, TenantScopedMixin, TimestampMixin):
    """Employee master record."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_number: Mapped[str | None] = mapped_column(String, nullable=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    tax_id: Mapped[str | None] = mapped_column(String, nullable=True)
    social_insurance_number: Mapped[str | None] = mapped_column(String, nullable=True)
    base_salary: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    salary_frequency: Mapped[str] = mapped_column(String, nullable=False, default="monthly")
    allowances_json: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "salary_frequency IN ('weekly', 'bi-weekly', 'monthly', 'annually')",
            name="employee_salary_frequency_check",
        ),
    )

    @property
    def full_name(self) -> str:
        """Get full name."""
        return f"{self.first_name} {self.last_name}"
