"""Financial transaction model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_compliance.calculators.types import ZERO, to_money
from payroll_compliance.models.base import Base, TenantScopedMixin, TimestampMixin

TRANSACTION_TYPES = (
    "income",
    "expense",
    "asset_purchase",
    "asset_sale",
    "liability",
    "equity",
    "transfer",
    "adjustment",
)

TRANSACTION_STATUSES = ("pending", "completed", "cancelled", "on_hold")


class TransactionRecord(Base, TenantScopedMixin, TimestampMixin):
    """Income, expense or balance-sheet movement of a tenant.

    Once reconciled the row is immutable.
    """

    __tablename__ = "transaction_record"

    transaction_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    transaction_number: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, default="other")
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="completed")

    # Consumption tax
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False, default=ZERO)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    # Reconciliation
    reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reconciled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reconciled_by: Mapped[str | None] = mapped_column(String, nullable=True)

    reference: Mapped[str | None] = mapped_column(String, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    __table_args__ = (
        UniqueConstraint("tenant_id", "transaction_number", name="transaction_record_number_unique"),
        CheckConstraint(
            "type IN ('income', 'expense', 'asset_purchase', 'asset_sale', "
            "'liability', 'equity', 'transfer', 'adjustment')",
            name="transaction_record_type_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'completed', 'cancelled', 'on_hold')",
            name="transaction_record_status_check",
        ),
        CheckConstraint("amount >= 0", name="transaction_record_amount_check"),
    )

    @property
    def total_amount(self) -> Decimal:
        return to_money(self.amount + self.tax_amount)
