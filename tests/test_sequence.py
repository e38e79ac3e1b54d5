"""Tests for tenant-scoped sequence numbers."""

import asyncio
from datetime import date
from uuid import uuid4

import pytest

from payroll_compliance.errors import ConflictError, InvalidInputError
from payroll_compliance.services.sequence import (
    EMPLOYEE_FORMAT,
    PAYROLL_FORMAT,
    TRANSACTION_FORMAT,
    NumberFormat,
    SequenceNumberGenerator,
)
from payroll_compliance.store import RecordStore

pytestmark = pytest.mark.asyncio


async def issue(session_factory, tenant_id, period_key="2025-03", fmt=PAYROLL_FORMAT):
    """Issue one number in its own session and commit it."""
    async with session_factory() as session:
        generator = SequenceNumberGenerator(RecordStore(session, timeout=30))
        issued = await generator.next_number(tenant_id, fmt.kind, period_key, fmt)
        await session.commit()
        return issued


class TestNumberFormat:
    """Identifier rendering."""

    def test_render(self):
        assert PAYROLL_FORMAT.render("2025-03", 1) == "PAY-202503-00001"
        assert TRANSACTION_FORMAT.render("2025", 42) == "TXN-2025-000042"
        assert EMPLOYEE_FORMAT.render("2025", 7) == "EMP-2025-0007"

    def test_period_key(self):
        assert PAYROLL_FORMAT.period_key(date(2025, 3, 17)) == "2025-03"
        assert TRANSACTION_FORMAT.period_key(date(2025, 3, 17)) == "2025"

    def test_ordinal_wider_than_padding(self):
        assert EMPLOYEE_FORMAT.render("2025", 12345) == "EMP-2025-12345"

    def test_invalid_format(self):
        with pytest.raises(ValueError):
            NumberFormat(kind="x", prefix="X", width=0, period="YYYY")
        with pytest.raises(ValueError):
            NumberFormat(kind="x", prefix="X", width=4, period="YYYY-WW")


class TestSequenceNumberGenerator:
    """Issuing numbers through the atomic counter."""

    async def test_first_numbers(self, store, tenant):
        generator = SequenceNumberGenerator(store)

        first = await generator.next_number(tenant.tenant_id, "payroll", "2025-03", PAYROLL_FORMAT)
        second = await generator.next_number(tenant.tenant_id, "payroll", "2025-03", PAYROLL_FORMAT)

        assert (first.ordinal, first.identifier) == (1, "PAY-202503-00001")
        assert (second.ordinal, second.identifier) == (2, "PAY-202503-00002")

    async def test_two_concurrent_calls_get_distinct_numbers(self, session_factory, tenant):
        results = await asyncio.gather(
            issue(session_factory, tenant.tenant_id),
            issue(session_factory, tenant.tenant_id),
        )

        assert sorted(r.identifier for r in results) == ["PAY-202503-00001", "PAY-202503-00002"]

    async def test_concurrent_issuance_is_gapless(self, session_factory, tenant):
        n = 12
        results = await asyncio.gather(*(issue(session_factory, tenant.tenant_id) for _ in range(n)))

        assert sorted(r.ordinal for r in results) == list(range(1, n + 1))
        assert len({r.identifier for r in results}) == n

    async def test_keys_are_independent(self, store, tenant):
        generator = SequenceNumberGenerator(store)
        other_tenant = uuid4()

        march = await generator.next_number(tenant.tenant_id, "payroll", "2025-03", PAYROLL_FORMAT)
        april = await generator.next_number(tenant.tenant_id, "payroll", "2025-04", PAYROLL_FORMAT)
        elsewhere = await generator.next_number(other_tenant, "payroll", "2025-03", PAYROLL_FORMAT)
        txn = await generator.next_number(tenant.tenant_id, "transaction", "2025", TRANSACTION_FORMAT)

        assert march.identifier == "PAY-202503-00001"
        assert april.identifier == "PAY-202504-00001"
        assert elsewhere.identifier == "PAY-202503-00001"
        assert txn.identifier == "TXN-2025-000001"

    async def test_next_for_date(self, store, tenant):
        generator = SequenceNumberGenerator(store)

        issued = await generator.next_for(tenant.tenant_id, TRANSACTION_FORMAT, date(2025, 11, 2))

        assert issued.identifier == "TXN-2025-000001"

    async def test_existing_identifier_conflicts(self, store, tenant, employee):
        """The employee fixture already holds EMP-2025-0001."""
        generator = SequenceNumberGenerator(store)

        with pytest.raises(ConflictError) as exc_info:
            await generator.next_number(tenant.tenant_id, "employee", "2025", EMPLOYEE_FORMAT)

        assert exc_info.value.key == "EMP-2025-0001"

        # The counter moved on; the next number is free.
        issued = await generator.next_number(tenant.tenant_id, "employee", "2025", EMPLOYEE_FORMAT)
        assert issued.identifier == "EMP-2025-0002"

    async def test_period_key_must_match_format(self, store, tenant):
        generator = SequenceNumberGenerator(store)

        with pytest.raises(InvalidInputError):
            await generator.next_number(tenant.tenant_id, "payroll", "2025-13", PAYROLL_FORMAT)
        with pytest.raises(InvalidInputError):
            await generator.next_number(tenant.tenant_id, "transaction", "2025-03", TRANSACTION_FORMAT)
