"""Statutory filing log and per-key sequence counters."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_compliance.models.base import Base, TenantScopedMixin, TimestampMixin


class StatutoryFiling(Base, TenantScopedMixin, TimestampMixin):
    """A monthly return filed with the authority for one levy.

    ``period_key`` is the ``YYYY-MM`` month the return covers.
    """

    __tablename__ = "statutory_filing"

    filing_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    levy: Mapped[str] = mapped_column(String, nullable=False)
    period_key: Mapped[str] = mapped_column(String(7), nullable=False)
    filed_on: Mapped[date] = mapped_column(Date, nullable=False)
    reference: Mapped[str | None] = mapped_column(String, nullable=True)
    amount_paid: Mapped[Decimal | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "levy", "period_key", name="statutory_filing_unique"),
        CheckConstraint(
            "levy IN ('income_tax', 'social_insurance', 'education_levy', "
            "'training_levy', 'consumption_tax')",
            name="statutory_filing_levy_check",
        ),
    )


class SequenceCounter(Base):
    """Last ordinal issued for a (tenant, kind, period) key.

    Only ever advanced by a single atomic upsert; values are never reused.
    """

    __tablename__ = "sequence_counter"

    tenant_id: Mapped[UUID] = mapped_column(primary_key=True)
    kind: Mapped[str] = mapped_column(String, primary_key=True)
    period_key: Mapped[str] = mapped_column(String, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (CheckConstraint("last_value >= 0", name="sequence_counter_value_check"),)
