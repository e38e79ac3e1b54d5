"""Tests for the payroll record lifecycle."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_compliance.calculators.types import Allowance, EarningsBreakdown, OtherDeduction
from payroll_compliance.errors import (
    ConflictError,
    ImmutableRecordError,
    InvalidInputError,
    InvalidTransitionError,
)
from payroll_compliance.services.payroll_service import PayrollService
from payroll_compliance.services.state_machine import PayrollStatus
from payroll_compliance.store import RecordStore

pytestmark = pytest.mark.asyncio

MARCH_START = date(2025, 3, 1)
MARCH_END = date(2025, 3, 31)
NOW = datetime(2025, 3, 28, 12, 0, tzinfo=timezone.utc)

DERIVED_FIELDS = (
    "gross_earnings",
    "taxable_income",
    "income_tax",
    "social_insurance",
    "education_levy",
    "training_levy",
    "pension_employee",
    "other_deductions_total",
    "total_deductions",
    "net_pay",
    "deductions_json",
)


def derived(record):
    return {name: getattr(record, name) for name in DERIVED_FIELDS}


@pytest.fixture
def service(store) -> PayrollService:
    return PayrollService(store)


async def create_march(service, tenant, employee, basic="200000"):
    return await service.create_draft(
        tenant.tenant_id,
        employee.employee_id,
        MARCH_START,
        MARCH_END,
        EarningsBreakdown(basic_salary=Decimal(basic)),
        created_by="payroll-clerk",
    )


async def pay(service, record):
    await service.transition(record, "calculated", "payroll-clerk", NOW)
    await service.transition(record, "approved", "finance-manager", NOW, comments="ok")
    return await service.transition(record, "paid", "finance-manager", NOW, payment_date=date(2025, 3, 31))


class TestCreateDraft:
    """Draft creation with numbering and derived fields."""

    async def test_draft_fields(self, service, tenant, employee):
        record = await create_march(service, tenant, employee)

        assert record.payroll_number == "PAY-202503-00001"
        assert record.status == "draft"
        assert record.cadence == "monthly"
        assert record.tax_year == 2024
        assert record.gross_earnings == Decimal("200000.00")
        assert record.income_tax == Decimal("18750.00")
        assert record.total_deductions == Decimal("41208.33")
        assert record.net_pay == Decimal("158791.67")
        assert record.consistency_errors() == []

    async def test_numbers_are_scoped_to_period_month(self, service, tenant, employee):
        march = await create_march(service, tenant, employee)
        april = await service.create_draft(
            tenant.tenant_id,
            employee.employee_id,
            date(2025, 4, 1),
            date(2025, 4, 30),
            EarningsBreakdown(basic_salary=Decimal("200000")),
        )

        assert march.payroll_number == "PAY-202503-00001"
        assert april.payroll_number == "PAY-202504-00001"

    async def test_duplicate_period_conflicts(self, service, tenant, employee):
        await create_march(service, tenant, employee)

        with pytest.raises(ConflictError):
            await create_march(service, tenant, employee)

    async def test_unknown_employee(self, service, tenant):
        with pytest.raises(InvalidInputError) as exc_info:
            await service.create_draft(
                tenant.tenant_id,
                uuid4(),
                MARCH_START,
                MARCH_END,
                EarningsBreakdown(basic_salary=Decimal("1000")),
            )

        assert exc_info.value.field == "employee_id"

    async def test_period_end_before_start(self, service, tenant, employee):
        with pytest.raises(InvalidInputError):
            await service.create_draft(
                tenant.tenant_id,
                employee.employee_id,
                MARCH_END,
                MARCH_START,
                EarningsBreakdown(basic_salary=Decimal("1000")),
            )

    async def test_weekly_cadence(self, service, tenant, employee):
        record = await service.create_draft(
            tenant.tenant_id,
            employee.employee_id,
            date(2025, 3, 3),
            date(2025, 3, 9),
            EarningsBreakdown(basic_salary=Decimal("50000")),
            cadence="weekly",
        )

        assert record.cadence == "weekly"
        assert record.income_tax == Decimal("5288.46")


class TestTransitions:
    """Lifecycle transitions."""

    async def test_full_lifecycle(self, service, tenant, employee):
        record = await create_march(service, tenant, employee)

        await pay(service, record)

        assert record.status == "paid"
        assert record.is_paid is True
        assert record.pay_date == date(2025, 3, 31)
        assert record.processed_by == "finance-manager"
        assert len(record.approvals_json) == 1
        approval = record.approvals_json[0]
        assert approval["actor"] == "finance-manager"
        assert approval["level"] == 1
        assert approval["comments"] == "ok"

    async def test_paid_to_calculated_is_immutable_and_leaves_record_unchanged(self, service, tenant, employee):
        record = await pay(service, await create_march(service, tenant, employee))
        before = record.to_dict()

        with pytest.raises(ImmutableRecordError) as exc_info:
            await service.transition(record, PayrollStatus.CALCULATED, "someone", NOW)

        assert exc_info.value.record_ref == record.payroll_number
        assert record.to_dict() == before

    async def test_paid_cannot_be_cancelled(self, service, tenant, employee):
        record = await pay(service, await create_march(service, tenant, employee))

        with pytest.raises(InvalidTransitionError):
            await service.transition(record, "cancelled", "someone", NOW)

        assert record.status == "paid"

    async def test_approval_requires_actor(self, service, tenant, employee):
        record = await create_march(service, tenant, employee)
        await service.transition(record, "calculated", "payroll-clerk", NOW)

        with pytest.raises(InvalidInputError) as exc_info:
            await service.transition(record, "approved", None, NOW)

        assert exc_info.value.field == "actor"
        assert record.status == "calculated"
        assert record.approvals_json == []

    async def test_payment_requires_date(self, service, tenant, employee):
        record = await create_march(service, tenant, employee)
        await service.transition(record, "calculated", "payroll-clerk", NOW)
        await service.transition(record, "approved", "finance-manager", NOW)

        with pytest.raises(InvalidInputError):
            await service.transition(record, "paid", "finance-manager", NOW)

        assert record.status == "approved"
        assert record.is_paid is False

    async def test_cannot_skip_approval(self, service, tenant, employee):
        record = await create_march(service, tenant, employee)
        await service.transition(record, "calculated", "payroll-clerk", NOW)

        with pytest.raises(InvalidTransitionError):
            await service.transition(record, "paid", "finance-manager", NOW, payment_date=MARCH_END)

    async def test_unknown_target(self, service, tenant, employee):
        record = await create_march(service, tenant, employee)

        with pytest.raises(InvalidTransitionError):
            await service.transition(record, "archived", "someone", NOW)

    async def test_cancel_keeps_totals_and_records_reason(self, service, tenant, employee):
        record = await create_march(service, tenant, employee)
        totals = derived(record)

        await service.transition(record, "cancelled", "payroll-clerk", NOW, comments="entered twice")

        assert record.status == "cancelled"
        assert record.notes == "entered twice"
        assert derived(record) == totals

        with pytest.raises(InvalidTransitionError):
            await service.transition(record, "calculated", "payroll-clerk", NOW)


class TestEdits:
    """Earnings edits and recomputation."""

    async def test_edit_reopens_approved_record(self, service, tenant, employee):
        record = await create_march(service, tenant, employee)
        await service.transition(record, "calculated", "payroll-clerk", NOW)
        await service.transition(record, "approved", "finance-manager", NOW)

        await service.update_earnings(
            record,
            EarningsBreakdown(basic_salary=Decimal("200000"), bonus=Decimal("40000")),
            actor="payroll-clerk",
            timestamp=NOW,
        )

        assert record.status == "calculated"
        assert record.gross_earnings == Decimal("240000.00")
        assert [a["action"] for a in record.approvals_json] == ["approved", "reopened"]

        await service.transition(record, "approved", "finance-manager", NOW)
        assert record.approvals_json[-1]["level"] == 2

    async def test_edit_moves_draft_to_calculated(self, service, tenant, employee):
        record = await create_march(service, tenant, employee)

        await service.update_earnings(
            record,
            other_deductions=[OtherDeduction(type="union_dues", amount=Decimal("1500"))],
        )

        assert record.status == "calculated"
        assert record.approvals_json == []
        assert record.other_deductions_total == Decimal("1500.00")
        assert record.total_deductions == Decimal("42708.33")

    async def test_edit_paid_is_immutable(self, service, tenant, employee):
        record = await pay(service, await create_march(service, tenant, employee))

        with pytest.raises(ImmutableRecordError):
            await service.update_earnings(record, EarningsBreakdown(basic_salary=Decimal("1")))

        assert record.gross_earnings == Decimal("200000.00")

    async def test_invalid_edit_leaves_record_unchanged(self, service, tenant, employee):
        record = await create_march(service, tenant, employee)
        before = derived(record)

        with pytest.raises(InvalidInputError):
            await service.update_earnings(
                record,
                other_deductions=[OtherDeduction(type="loan_repayment", amount=Decimal("-10"))],
            )

        assert derived(record) == before

    async def test_recompute_is_idempotent(self, service, tenant, employee):
        record = await create_march(service, tenant, employee)
        first = derived(await service.recompute(record))
        second = derived(await service.recompute(record))

        assert first == second


class TestConcurrency:
    """Optimistic concurrency on the record version."""

    async def test_stale_transition_conflicts(self, session, session_factory, tenant, employee):
        record = await create_march(PayrollService(RecordStore(session)), tenant, employee)
        await session.commit()

        async with session_factory() as session_a, session_factory() as session_b:
            store_a, store_b = RecordStore(session_a), RecordStore(session_b)
            copy_a = await store_a.get_payroll_record(record.payroll_record_id)
            copy_b = await store_b.get_payroll_record(record.payroll_record_id)

            await PayrollService(store_a).transition(copy_a, "calculated", "clerk-a", NOW)
            await session_a.commit()

            with pytest.raises(ConflictError) as exc_info:
                await PayrollService(store_b).transition(copy_b, "cancelled", "clerk-b", NOW)

            assert exc_info.value.key == record.payroll_number
            # Rolling back discards the attempted cancellation
            await session_b.rollback()
            await session_b.refresh(copy_b)
            assert copy_b.status == "calculated"


class TestBulkCreate:
    """Drafts for every active employee."""

    async def test_creates_one_draft_per_employee(self, service, tenant, employee, second_employee):
        result = await service.bulk_create(tenant.tenant_id, MARCH_START, MARCH_END, pay_date=MARCH_END)

        assert result.errors == []
        assert len(result.created) == 2
        by_employee = {r.employee_id: r for r in result.created}
        assert by_employee[employee.employee_id].gross_earnings == Decimal("200000.00")
        # 1,560,000 a year paid monthly; the meal allowance is not taxable
        assert by_employee[second_employee.employee_id].gross_earnings == Decimal("130000.00")
        assert sorted(r.payroll_number for r in result.created) == ["PAY-202503-00001", "PAY-202503-00002"]

    async def test_skips_employees_already_paid_for_period(self, service, tenant, employee, second_employee):
        await create_march(service, tenant, employee)

        result = await service.bulk_create(tenant.tenant_id, MARCH_START, MARCH_END)

        assert [r.employee_id for r in result.created] == [second_employee.employee_id]
        assert len(result.errors) == 1
        assert result.errors[0]["employee_id"] == employee.employee_id

    async def test_master_allowances_are_carried(self, service, tenant, second_employee):
        result = await service.bulk_create(tenant.tenant_id, MARCH_START, MARCH_END)

        earnings = result.created[0].earnings()
        assert earnings.allowances == (Allowance(type="meal", amount=Decimal("5000"), taxable=False),)
