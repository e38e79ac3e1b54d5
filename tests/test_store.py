"""Tests for record store timeouts and failure mapping."""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import text

from payroll_compliance.errors import DataUnavailableError, StoreUnavailableError
from payroll_compliance.services.transaction_service import TransactionService
from payroll_compliance.store import RecordStore

pytestmark = pytest.mark.asyncio


class TestRecordStore:
    """Store calls are bounded and failures are typed."""

    async def test_timeout_raises_unavailable(self, session):
        store = RecordStore(session, timeout=0.01)

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.call("slow_query", asyncio.sleep(1))

        assert exc_info.value.operation == "slow_query"
        assert exc_info.value.timeout == 0.01

    async def test_operational_error_raises_data_unavailable(self, store):
        with pytest.raises(DataUnavailableError) as exc_info:
            await store.call("broken", store.session.execute(text("SELECT * FROM no_such_table")))

        assert exc_info.value.resource == "broken"

    async def test_missing_tenant(self, store):
        with pytest.raises(DataUnavailableError):
            await store.require_tenant(uuid4())

    async def test_atomic_increment(self, store, tenant):
        values = [await store.atomic_increment(tenant.tenant_id, "payroll", "2025-01") for _ in range(3)]

        assert values == [1, 2, 3]

    async def test_range_queries_are_tenant_scoped(self, store, tenant):
        assert await store.list_transactions(uuid4(), date(2025, 1, 1), date(2025, 12, 31)) == []
        assert await store.list_payroll_records(tenant.tenant_id, date(2025, 1, 1), date(2025, 12, 31)) == []

    async def test_get_transaction(self, store, tenant):
        record = await TransactionService(store).create(
            tenant.tenant_id,
            transaction_type="income",
            amount=Decimal("2500"),
            transaction_date=date(2025, 2, 3),
            description="consulting",
        )

        assert await store.get_transaction(record.transaction_id) is record
        assert await store.get_transaction(uuid4()) is None
