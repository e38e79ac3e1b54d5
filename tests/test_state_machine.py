"""Tests for the payroll record state machine."""

import pytest

from payroll_compliance.errors import ImmutableRecordError, InvalidTransitionError
from payroll_compliance.services.state_machine import PayrollStateMachine, PayrollStatus


class TestPayrollStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        assert PayrollStateMachine.can_transition("draft", "calculated") is True
        assert PayrollStateMachine.can_transition("calculated", "calculated") is True
        assert PayrollStateMachine.can_transition("calculated", "approved") is True
        assert PayrollStateMachine.can_transition("approved", "paid") is True

        # approved → calculated (reopen)
        assert PayrollStateMachine.can_transition("approved", "calculated") is True

        for status in ("draft", "calculated", "approved"):
            assert PayrollStateMachine.can_transition(status, "cancelled") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't skip calculation or approval
        assert PayrollStateMachine.can_transition("draft", "approved") is False
        assert PayrollStateMachine.can_transition("calculated", "paid") is False

        # No way back to draft
        assert PayrollStateMachine.can_transition("calculated", "draft") is False

        # Paid and cancelled are final
        assert PayrollStateMachine.get_next_statuses("paid") == []
        assert PayrollStateMachine.get_next_statuses("cancelled") == []

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollStateMachine.validate_transition("draft", PayrollStatus.PAID)

        assert exc_info.value.from_status == "draft"
        assert exc_info.value.to_status == "paid"

    def test_paid_record_is_immutable(self):
        with pytest.raises(ImmutableRecordError) as exc_info:
            PayrollStateMachine.validate_transition("paid", "calculated", "PAY-202503-00001")

        assert exc_info.value.record_ref == "PAY-202503-00001"
        assert exc_info.value.status == "paid"

    def test_paid_record_cannot_be_cancelled(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollStateMachine.validate_transition("paid", "cancelled")

        assert exc_info.value.reason == "paid records cannot be cancelled"

    def test_cancelled_is_terminal(self):
        with pytest.raises(InvalidTransitionError):
            PayrollStateMachine.validate_transition("cancelled", "calculated")

    def test_is_reopen(self):
        assert PayrollStateMachine.is_reopen("approved", "calculated") is True
        assert PayrollStateMachine.is_reopen("calculated", "calculated") is False

    def test_can_edit(self):
        assert PayrollStateMachine.can_edit("approved") is True
        assert PayrollStateMachine.can_edit("paid") is False
        assert PayrollStateMachine.can_edit("cancelled") is False
