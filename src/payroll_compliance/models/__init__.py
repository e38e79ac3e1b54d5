"""ORM models."""

from payroll_compliance.models.base import Base, Money, TenantScopedMixin, TimestampMixin
from payroll_compliance.models.filing import SequenceCounter, StatutoryFiling
from payroll_compliance.models.payroll import PayrollRecord
from payroll_compliance.models.tenant import Employee, Tenant
from payroll_compliance.models.transaction import (
    TRANSACTION_STATUSES,
    TRANSACTION_TYPES,
    TransactionRecord,
)

__all__ = [
    "Base",
    "Employee",
    "Money",
    "PayrollRecord",
    "SequenceCounter",
    "StatutoryFiling",
    "Tenant",
    "TenantScopedMixin",
    "TimestampMixin",
    "TRANSACTION_STATUSES",
    "TRANSACTION_TYPES",
    "TransactionRecord",
]
