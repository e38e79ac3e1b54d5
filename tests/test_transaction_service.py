"""Tests for transaction numbering, consumption tax and reconciliation."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from payroll_compliance.errors import ConflictError, ImmutableRecordError, InvalidInputError
from payroll_compliance.services.reporting import ReportingService
from payroll_compliance.services.transaction_service import TransactionService
from payroll_compliance.store import RecordStore

pytestmark = pytest.mark.asyncio


@pytest.fixture
def service(store) -> TransactionService:
    return TransactionService(store)


async def sale(service, tenant, amount="100000", **kwargs):
    return await service.create(
        tenant.tenant_id,
        transaction_type=kwargs.pop("transaction_type", "income"),
        amount=Decimal(amount),
        transaction_date=kwargs.pop("transaction_date", date(2025, 3, 10)),
        description=kwargs.pop("description", "Catering contract"),
        **kwargs,
    )


class TestCreate:
    """Creating numbered transactions."""

    async def test_taxable_sale(self, service, tenant):
        record = await sale(service, tenant, is_taxable=True, tax_rate=Decimal("0.15"))

        assert record.transaction_number == "TXN-2025-000001"
        assert record.tax_amount == Decimal("15000.00")
        assert record.total_amount == Decimal("115000.00")
        assert record.reconciled is False

    async def test_non_taxable_has_no_tax(self, service, tenant):
        record = await sale(service, tenant, is_taxable=False)

        assert record.tax_amount == Decimal("0.00")
        assert record.tax_rate == Decimal("0")

    async def test_numbers_increase_within_year(self, service, tenant):
        first = await sale(service, tenant)
        second = await sale(service, tenant, transaction_date=date(2025, 12, 31))
        next_year = await sale(service, tenant, transaction_date=date(2026, 1, 1))

        assert first.transaction_number == "TXN-2025-000001"
        assert second.transaction_number == "TXN-2025-000002"
        assert next_year.transaction_number == "TXN-2026-000001"

    async def test_negative_amount(self, service, tenant):
        with pytest.raises(InvalidInputError):
            await sale(service, tenant, amount="-5")

    async def test_unknown_type(self, service, tenant):
        with pytest.raises(InvalidInputError) as exc_info:
            await sale(service, tenant, transaction_type="gift")

        assert exc_info.value.field == "type"


class TestUpdateAndReconcile:
    """Edits re-derive tax until the transaction is reconciled."""

    async def test_update_rederives_tax(self, service, tenant):
        record = await sale(service, tenant, is_taxable=True, tax_rate=Decimal("0.15"))

        await service.update(record, amount=Decimal("200000"))

        assert record.tax_amount == Decimal("30000.00")

    async def test_update_can_drop_taxability(self, service, tenant):
        record = await sale(service, tenant, is_taxable=True, tax_rate=Decimal("0.15"))

        await service.update(record, is_taxable=False)

        assert record.tax_amount == Decimal("0.00")

    async def test_unknown_field(self, service, tenant):
        record = await sale(service, tenant)

        with pytest.raises(InvalidInputError):
            await service.update(record, transaction_number="TXN-2025-999999")

    async def test_reconciled_transaction_is_immutable(self, service, tenant):
        record = await sale(service, tenant)
        reconciled_at = datetime(2025, 4, 2, 9, 30, tzinfo=timezone.utc)

        await service.reconcile(record, "accountant", reconciled_at)

        assert record.reconciled is True
        assert record.reconciled_by == "accountant"
        with pytest.raises(ImmutableRecordError):
            await service.update(record, amount=Decimal("1"))
        with pytest.raises(ImmutableRecordError):
            await service.reconcile(record, "accountant")
        assert record.amount == Decimal("100000")


class TestPersistence:
    """Stored values agree with the derived tax after a reload."""

    async def test_fine_grained_rate_survives_reload(self, session_factory, tenant):
        async with session_factory() as writer:
            record = await sale(
                TransactionService(RecordStore(writer)),
                tenant,
                amount="100000.004",
                is_taxable=True,
                tax_rate=Decimal("0.16665"),
            )
            await writer.commit()

        assert record.tax_rate == Decimal("0.1667")
        assert record.amount == Decimal("100000.00")
        assert record.tax_amount == Decimal("16670.00")

        async with session_factory() as reader:
            summary = await ReportingService(RecordStore(reader)).aggregate_period(
                tenant.tenant_id, date(2025, 3, 1), date(2025, 3, 31)
            )

        assert summary.excluded_records == []
        assert summary.total_income == Decimal("100000")
        assert summary.consumption_tax_collected == Decimal("16670.00")

    async def test_stale_update_conflicts(self, session_factory, tenant):
        async with session_factory() as setup:
            record = await sale(TransactionService(RecordStore(setup)), tenant)
            await setup.commit()

        async with session_factory() as session_a, session_factory() as session_b:
            store_a, store_b = RecordStore(session_a), RecordStore(session_b)
            copy_a = await store_a.get_transaction(record.transaction_id)
            copy_b = await store_b.get_transaction(record.transaction_id)

            await TransactionService(store_a).update(copy_a, amount=Decimal("120000"))
            await session_a.commit()

            with pytest.raises(ConflictError) as exc_info:
                await TransactionService(store_b).update(copy_b, amount=Decimal("90000"))

            assert exc_info.value.key == record.transaction_number
            await session_b.rollback()
            await session_b.refresh(copy_b)
            assert copy_b.amount == Decimal("120000")
