"""Error taxonomy shared by calculators, services and the record store."""

from __future__ import annotations


class PayrollComplianceError(Exception):
    """Base class for all errors raised by the payroll compliance core."""


class InvalidInputError(PayrollComplianceError):
    """Raised when numeric input or rule configuration is malformed or out of range."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class TaxRulesNotFoundError(InvalidInputError):
    """Raised when no tax rule table is in force for the requested year."""

    def __init__(self, tax_year: int):
        self.tax_year = tax_year
        super().__init__(f"No tax rules in force for tax year {tax_year}", field="tax_year")


class InvalidTransitionError(PayrollComplianceError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ImmutableRecordError(PayrollComplianceError):
    """Raised when a paid payroll record or reconciled transaction is edited."""

    def __init__(self, record_ref: str, status: str):
        self.record_ref = record_ref
        self.status = status
        super().__init__(f"Record {record_ref} is {status} and can no longer be modified")


class ConflictError(PayrollComplianceError):
    """Raised on an optimistic-concurrency collision. Callers retry the whole operation."""

    def __init__(self, key: str, reason: str | None = None):
        self.key = key
        self.reason = reason
        msg = f"Conflict on {key}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class DataUnavailableError(PayrollComplianceError):
    """Raised when underlying records are missing, unreachable or inconsistent."""

    def __init__(self, resource: str, reason: str | None = None):
        self.resource = resource
        self.reason = reason
        msg = f"Data unavailable: {resource}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class StoreUnavailableError(PayrollComplianceError):
    """Raised when a record store call exceeds its timeout."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"Record store operation '{operation}' timed out after {timeout}s")
