"""Payroll, transaction, numbering and reporting services."""

from payroll_compliance.services.payroll_service import BulkCreateResult, PayrollService
from payroll_compliance.services.reporting import ReportingService
from payroll_compliance.services.sequence import (
    EMPLOYEE_FORMAT,
    PAYROLL_FORMAT,
    TRANSACTION_FORMAT,
    IssuedNumber,
    NumberFormat,
    SequenceNumberGenerator,
)
from payroll_compliance.services.state_machine import PayrollStateMachine, PayrollStatus
from payroll_compliance.services.transaction_service import TransactionService

__all__ = [
    "BulkCreateResult",
    "EMPLOYEE_FORMAT",
    "IssuedNumber",
    "NumberFormat",
    "PAYROLL_FORMAT",
    "PayrollService",
    "PayrollStateMachine",
    "PayrollStatus",
    "ReportingService",
    "SequenceNumberGenerator",
    "TRANSACTION_FORMAT",
    "TransactionService",
]
