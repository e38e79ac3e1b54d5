"""Payroll record lifecycle: creation, edits, transitions and recomputation.

Every persisted transition (other than a cancellation) recomputes the
record's derived fields from its raw inputs, so stored totals always match
what the calculators would produce for the tax year in force. Inputs are
validated before the record is touched; a failed call leaves it unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy.orm.exc import StaleDataError

from payroll_compliance.calculators.payroll import convert_salary, recompute
from payroll_compliance.calculators.rules import RuleBook
from payroll_compliance.calculators.types import (
    Allowance,
    EarningsBreakdown,
    OtherDeduction,
    PayCadence,
    PayrollComputation,
)
from payroll_compliance.errors import (
    ConflictError,
    ImmutableRecordError,
    InvalidInputError,
    InvalidTransitionError,
)
from payroll_compliance.models import Employee, PayrollRecord
from payroll_compliance.services.sequence import PAYROLL_FORMAT, SequenceNumberGenerator
from payroll_compliance.services.state_machine import PayrollStateMachine, PayrollStatus
from payroll_compliance.store import RecordStore

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("bank_transfer", "check", "cash", "mobile_payment")


@dataclass
class BulkCreateResult:
    """Outcome of creating drafts for every active employee."""

    created: list[PayrollRecord] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_payment_method(payment_method: str) -> None:
    if payment_method not in PAYMENT_METHODS:
        raise InvalidInputError(f"Unknown payment method {payment_method!r}", field="payment_method")


class PayrollService:
    """Create and advance payroll records through their lifecycle."""

    def __init__(
        self,
        store: RecordStore,
        rule_book: RuleBook | None = None,
        sequences: SequenceNumberGenerator | None = None,
    ):
        self.store = store
        self.rule_book = rule_book or RuleBook.default()
        self.sequences = sequences or SequenceNumberGenerator(store)

    def _compute(
        self,
        period_start: date,
        cadence: PayCadence | str,
        earnings: EarningsBreakdown,
        other_deductions: Iterable[OtherDeduction],
    ) -> PayrollComputation:
        rules = self.rule_book.for_year(period_start.year)
        return recompute(earnings, rules, cadence, other_deductions)

    async def _flush(self, record: PayrollRecord) -> None:
        # A failed flush expires the instance; read the number first.
        number = record.payroll_number
        try:
            await self.store.flush()
        except StaleDataError as exc:
            logger.warning("Concurrent modification of payroll record %s", number)
            raise ConflictError(number, "record was modified concurrently") from exc

    @staticmethod
    def _ensure_editable(record: PayrollRecord) -> None:
        if record.status == PayrollStatus.PAID:
            raise ImmutableRecordError(record.payroll_number, record.status)
        if record.status == PayrollStatus.CANCELLED:
            raise InvalidTransitionError(
                record.status,
                PayrollStatus.CALCULATED.value,
                "cancelled records are terminal",
            )

    async def create_draft(
        self,
        tenant_id: UUID,
        employee_id: UUID,
        period_start: date,
        period_end: date,
        earnings: EarningsBreakdown,
        *,
        cadence: PayCadence | str = PayCadence.MONTHLY,
        other_deductions: Iterable[OtherDeduction] = (),
        pay_date: date | None = None,
        payment_method: str = "bank_transfer",
        created_by: str | None = None,
        notes: str | None = None,
    ) -> PayrollRecord:
        """Create a draft record with a freshly issued PAY number.

        Raises:
            InvalidInputError: bad period, cadence, payment method, employee
                or earnings.
            ConflictError: the employee already has a record for the period.
        """
        if period_end < period_start:
            raise InvalidInputError("period_end cannot precede period_start", field="period_end")
        try:
            cadence = PayCadence(cadence)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown pay cadence {cadence!r}", field="cadence") from exc
        _validate_payment_method(payment_method)

        employee = await self.store.get_employee(employee_id)
        if employee is None or employee.tenant_id != tenant_id:
            raise InvalidInputError(f"Employee {employee_id} not found for tenant", field="employee_id")

        existing = await self.store.find_payroll_record(tenant_id, employee_id, period_start, period_end)
        if existing is not None:
            raise ConflictError(existing.payroll_number, "payroll already exists for this employee and period")

        others = tuple(other_deductions)
        computation = self._compute(period_start, cadence, earnings, others)

        issued = await self.sequences.next_for(tenant_id, PAYROLL_FORMAT, period_start)
        record = PayrollRecord(
            tenant_id=tenant_id,
            employee_id=employee_id,
            payroll_number=issued.identifier,
            period_start=period_start,
            period_end=period_end,
            cadence=cadence.value,
            status=PayrollStatus.DRAFT.value,
            approvals_json=[],
            pay_date=pay_date,
            payment_method=payment_method,
            is_paid=False,
            created_by=created_by,
            notes=notes,
        )
        record.apply_computation(computation)
        await self.store.add(record)

        logger.info(
            "Created payroll record %s for employee %s (net %s)",
            record.payroll_number,
            employee_id,
            record.net_pay,
        )
        return record

    async def update_earnings(
        self,
        record: PayrollRecord,
        earnings: EarningsBreakdown | None = None,
        other_deductions: Iterable[OtherDeduction] | None = None,
        *,
        actor: str | None = None,
        timestamp: datetime | None = None,
    ) -> PayrollRecord:
        """Replace earnings inputs and recompute.

        A draft moves to calculated. An approved record falls back to
        calculated and must be approved again.

        Raises:
            ImmutableRecordError: the record is paid.
            InvalidTransitionError: the record is cancelled.
        """
        self._ensure_editable(record)
        new_earnings = earnings if earnings is not None else record.earnings()
        new_others = tuple(other_deductions) if other_deductions is not None else record.other_deductions()
        computation = self._compute(record.period_start, record.cadence, new_earnings, new_others)

        from_status = record.status
        reopened = PayrollStateMachine.is_reopen(from_status, PayrollStatus.CALCULATED)
        record.apply_computation(computation)
        if from_status == PayrollStatus.DRAFT:
            record.status = PayrollStatus.CALCULATED.value
        elif reopened:
            record.status = PayrollStatus.CALCULATED.value
            record.approvals_json = [
                *record.approvals_json,
                {
                    "action": "reopened",
                    "actor": actor,
                    "timestamp": (timestamp or _utcnow()).isoformat(),
                },
            ]
        await self._flush(record)

        if reopened:
            logger.info("Payroll record %s reopened by an edit", record.payroll_number)
        return record

    async def transition(
        self,
        record: PayrollRecord,
        target: PayrollStatus | str,
        actor: str | None = None,
        timestamp: datetime | None = None,
        *,
        payment_date: date | None = None,
        payment_method: str | None = None,
        comments: str | None = None,
    ) -> PayrollRecord:
        """Move a record to ``target``, recomputing its derived fields first.

        Raises:
            InvalidTransitionError: the transition is not allowed.
            ImmutableRecordError: the record is paid.
            InvalidInputError: approval without an actor, payment without a
                payment date, or an unknown payment method.
            ConflictError: the record changed since it was loaded. The
                in-memory record still shows the attempted change; roll the
                session back, which expires it, and reload before retrying.
        """
        try:
            target = PayrollStatus(target)
        except ValueError as exc:
            raise InvalidTransitionError(record.status, str(target), "unknown status") from exc

        from_status = record.status
        PayrollStateMachine.validate_transition(from_status, target, record.payroll_number)

        if target == PayrollStatus.APPROVED and not actor:
            raise InvalidInputError("Approval requires an actor", field="actor")
        if target == PayrollStatus.PAID and payment_date is None and record.pay_date is None:
            raise InvalidInputError("Payment requires a payment date", field="payment_date")
        if payment_method is not None:
            _validate_payment_method(payment_method)

        computation = None
        if target != PayrollStatus.CANCELLED:
            computation = self._compute(
                record.period_start,
                record.cadence,
                record.earnings(),
                record.other_deductions(),
            )

        # Validation passed; mutate.
        now = timestamp or _utcnow()
        if computation is not None:
            record.apply_computation(computation)
        record.status = target.value

        if target == PayrollStatus.APPROVED:
            approvals = record.approvals_json or []
            level = sum(1 for a in approvals if a.get("action") == "approved") + 1
            record.approvals_json = [
                *approvals,
                {
                    "action": "approved",
                    "level": level,
                    "actor": actor,
                    "timestamp": now.isoformat(),
                    "comments": comments,
                },
            ]
        elif target == PayrollStatus.PAID:
            record.is_paid = True
            record.paid_at = now
            record.processed_by = actor
            if payment_date is not None:
                record.pay_date = payment_date
            if payment_method is not None:
                record.payment_method = payment_method
        elif target == PayrollStatus.CANCELLED and comments:
            record.notes = comments

        await self._flush(record)
        logger.info(
            "Payroll record %s: %s -> %s",
            record.payroll_number,
            from_status,
            target.value,
        )
        return record

    async def recompute(self, record: PayrollRecord) -> PayrollRecord:
        """Recompute derived fields in place. Idempotent.

        Raises:
            ImmutableRecordError: the record is paid.
            InvalidTransitionError: the record is cancelled.
        """
        self._ensure_editable(record)
        computation = self._compute(
            record.period_start,
            record.cadence,
            record.earnings(),
            record.other_deductions(),
        )
        record.apply_computation(computation)
        await self._flush(record)
        return record

    async def bulk_create(
        self,
        tenant_id: UUID,
        period_start: date,
        period_end: date,
        *,
        pay_date: date | None = None,
        cadence: PayCadence | str = PayCadence.MONTHLY,
        created_by: str | None = None,
    ) -> BulkCreateResult:
        """Create drafts for every active employee of a tenant.

        Employees that already have a record for the period, or whose master
        data cannot produce a valid record, are reported in ``errors``.
        """
        result = BulkCreateResult()
        for employee in await self.store.list_employees(tenant_id, active_only=True):
            try:
                earnings = self._earnings_from_master(employee, cadence)
                record = await self.create_draft(
                    tenant_id,
                    employee.employee_id,
                    period_start,
                    period_end,
                    earnings,
                    cadence=cadence,
                    pay_date=pay_date,
                    created_by=created_by,
                )
            except (ConflictError, InvalidInputError) as exc:
                result.errors.append(
                    {
                        "employee_id": employee.employee_id,
                        "employee_name": employee.full_name,
                        "error": str(exc),
                    }
                )
                continue
            result.created.append(record)

        logger.info(
            "Bulk payroll for tenant %s %s..%s: %d created, %d errors",
            tenant_id,
            period_start,
            period_end,
            len(result.created),
            len(result.errors),
        )
        return result

    @staticmethod
    def _earnings_from_master(employee: Employee, cadence: PayCadence | str) -> EarningsBreakdown:
        try:
            allowances = tuple(
                Allowance(
                    type=a["type"],
                    amount=a["amount"],
                    taxable=a.get("taxable", True),
                    description=a.get("description"),
                )
                for a in employee.allowances_json or []
            )
            return EarningsBreakdown(
                basic_salary=convert_salary(employee.base_salary, employee.salary_frequency, cadence),
                allowances=allowances,
            )
        except (KeyError, ValueError) as exc:
            raise InvalidInputError(f"Invalid master data for employee {employee.employee_id}: {exc}") from exc
