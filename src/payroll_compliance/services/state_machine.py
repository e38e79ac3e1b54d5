"""Payroll record state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from payroll_compliance.errors import ImmutableRecordError, InvalidTransitionError


class PayrollStatus(str, Enum):
    """Payroll record status values."""

    DRAFT = "draft"
    CALCULATED = "calculated"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else status


class PayrollStateMachine:
    """State machine for payroll record status transitions.

    Allowed transitions:
    - draft → calculated
    - calculated → calculated (recompute after an edit)
    - calculated → approved
    - approved → calculated (reopen; approval must be repeated)
    - approved → paid
    - draft / calculated / approved → cancelled

    Paid records are immutable and cancelled records are terminal.
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollStatus.DRAFT: [PayrollStatus.CALCULATED, PayrollStatus.CANCELLED],
        PayrollStatus.CALCULATED: [
            PayrollStatus.CALCULATED,
            PayrollStatus.APPROVED,
            PayrollStatus.CANCELLED,
        ],
        PayrollStatus.APPROVED: [
            PayrollStatus.CALCULATED,
            PayrollStatus.PAID,
            PayrollStatus.CANCELLED,
        ],
        PayrollStatus.PAID: [],  # Immutable
        PayrollStatus.CANCELLED: [],  # Terminal state
    }

    # Statuses where earnings may be edited
    EDITABLE = {
        PayrollStatus.DRAFT,
        PayrollStatus.CALCULATED,
        PayrollStatus.APPROVED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str, record_ref: str = "") -> None:
        """Validate a transition.

        Raises:
            ImmutableRecordError: the record is paid and the target would
                modify it.
            InvalidTransitionError: any other transition outside the table,
                including cancelling a paid record.
        """
        if cls.can_transition(from_status, to_status):
            return
        if from_status == PayrollStatus.PAID and to_status != PayrollStatus.CANCELLED:
            raise ImmutableRecordError(record_ref or "payroll record", _value(from_status))
        reason = None
        if from_status == PayrollStatus.PAID:
            reason = "paid records cannot be cancelled"
        elif from_status == PayrollStatus.CANCELLED:
            reason = "cancelled records are terminal"
        elif to_status not in cls.VALID_TRANSITIONS:
            reason = "unknown status"
        raise InvalidTransitionError(_value(from_status), _value(to_status), reason)

    @classmethod
    def can_edit(cls, status: str) -> bool:
        """Check if earnings and deductions can still be modified."""
        return status in cls.EDITABLE

    @classmethod
    def is_reopen(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a reopen (approved → calculated)."""
        return from_status == PayrollStatus.APPROVED and to_status == PayrollStatus.CALCULATED

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
