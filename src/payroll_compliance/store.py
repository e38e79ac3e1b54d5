"""Record store: async repository over the ORM models.

Every call is bounded by the store timeout. A call that exceeds it raises
StoreUnavailableError; a driver-level operational failure raises
DataUnavailableError. Writes are flushed, never committed: the caller owns
the transaction.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Awaitable, Iterable, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_compliance.config import get_settings
from payroll_compliance.errors import DataUnavailableError, StoreUnavailableError
from payroll_compliance.models import (
    Employee,
    PayrollRecord,
    SequenceCounter,
    StatutoryFiling,
    Tenant,
    TransactionRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Identifier column per sequence kind, used for the post-increment uniqueness check.
IDENTIFIER_COLUMNS = {
    "payroll": PayrollRecord.payroll_number,
    "transaction": TransactionRecord.transaction_number,
    "employee": Employee.employee_number,
}


class RecordStore:
    """Persistence for tenants, employees, payroll, transactions and counters."""

    def __init__(self, session: AsyncSession, timeout: float | None = None):
        self.session = session
        self.timeout = timeout if timeout is not None else get_settings().store_timeout_seconds

    async def call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await a store operation under the timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Store operation %s timed out after %ss", operation, self.timeout)
            raise StoreUnavailableError(operation, self.timeout) from exc
        except OperationalError as exc:
            logger.exception("Store operation %s failed", operation)
            raise DataUnavailableError(operation, str(exc.orig)) from exc

    async def _scalars(self, operation: str, stmt: Any) -> list[Any]:
        async def run() -> list[Any]:
            result = await self.session.execute(stmt)
            return list(result.scalars().all())

        return await self.call(operation, run())

    async def _scalar(self, operation: str, stmt: Any) -> Any:
        async def run() -> Any:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

        return await self.call(operation, run())

    # ===== Writes =====

    async def add(self, *instances: Any) -> None:
        """Stage rows and flush them."""
        self.session.add_all(instances)
        await self.flush()

    async def flush(self) -> None:
        await self.call("flush", self.session.flush())

    async def atomic_increment(self, tenant_id: UUID, kind: str, period_key: str) -> int:
        """Advance the counter for a key and return its new value.

        One INSERT ... ON CONFLICT DO UPDATE ... RETURNING statement, so two
        callers on the same key always observe distinct values and callers on
        different keys never touch the same row.
        """
        table = SequenceCounter.__table__
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise DataUnavailableError("sequence_counter", f"atomic upsert not supported on {dialect}")

        stmt = insert(table).values(tenant_id=tenant_id, kind=kind, period_key=period_key, last_value=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.tenant_id, table.c.kind, table.c.period_key],
            set_={"last_value": table.c.last_value + 1},
        ).returning(table.c.last_value)

        async def run() -> int:
            result = await self.session.execute(stmt)
            return int(result.scalar_one())

        return await self.call("atomic_increment", run())

    # ===== Tenants and employees =====

    async def get_tenant(self, tenant_id: UUID) -> Tenant | None:
        return await self.call("get_tenant", self.session.get(Tenant, tenant_id))

    async def require_tenant(self, tenant_id: UUID) -> Tenant:
        tenant = await self.get_tenant(tenant_id)
        if tenant is None:
            raise DataUnavailableError("tenant", f"tenant {tenant_id} not found")
        return tenant

    async def get_employee(self, employee_id: UUID) -> Employee | None:
        return await self.call("get_employee", self.session.get(Employee, employee_id))

    async def list_employees(self, tenant_id: UUID, active_only: bool = True) -> list[Employee]:
        stmt = select(Employee).where(Employee.tenant_id == tenant_id)
        if active_only:
            stmt = stmt.where(Employee.is_active.is_(True))
        return await self._scalars("list_employees", stmt.order_by(Employee.last_name, Employee.first_name))

    async def identifier_exists(self, kind: str, tenant_id: UUID, identifier: str) -> bool:
        """Whether a record of this kind already carries the identifier."""
        column = IDENTIFIER_COLUMNS.get(kind)
        if column is None:
            return False
        model = column.class_
        stmt = select(exists().where(model.tenant_id == tenant_id, column == identifier))
        return bool(await self._scalar("identifier_exists", stmt))

    # ===== Payroll =====

    async def get_payroll_record(self, payroll_record_id: UUID) -> PayrollRecord | None:
        return await self.call(
            "get_payroll_record",
            self.session.get(PayrollRecord, payroll_record_id),
        )

    async def find_payroll_record(
        self,
        tenant_id: UUID,
        employee_id: UUID,
        period_start: date,
        period_end: date,
    ) -> PayrollRecord | None:
        """Non-cancelled record of an employee for exactly this period."""
        stmt = select(PayrollRecord).where(
            PayrollRecord.tenant_id == tenant_id,
            PayrollRecord.employee_id == employee_id,
            PayrollRecord.period_start == period_start,
            PayrollRecord.period_end == period_end,
            PayrollRecord.status != "cancelled",
        )
        records = await self._scalars("find_payroll_record", stmt)
        return records[0] if records else None

    async def list_payroll_records(
        self,
        tenant_id: UUID,
        start: date,
        end: date,
        statuses: Iterable[str] | None = None,
    ) -> list[PayrollRecord]:
        """Records whose pay period starts within [start, end]."""
        stmt = select(PayrollRecord).where(
            PayrollRecord.tenant_id == tenant_id,
            PayrollRecord.period_start >= start,
            PayrollRecord.period_start <= end,
        )
        if statuses is not None:
            stmt = stmt.where(PayrollRecord.status.in_(tuple(statuses)))
        stmt = stmt.order_by(PayrollRecord.period_start, PayrollRecord.payroll_number)
        return await self._scalars("list_payroll_records", stmt)

    # ===== Transactions =====

    async def get_transaction(self, transaction_id: UUID) -> TransactionRecord | None:
        return await self.call(
            "get_transaction",
            self.session.get(TransactionRecord, transaction_id),
        )

    async def list_transactions(
        self,
        tenant_id: UUID,
        start: date,
        end: date,
        statuses: Iterable[str] | None = None,
    ) -> list[TransactionRecord]:
        """Transactions dated within [start, end]."""
        stmt = select(TransactionRecord).where(
            TransactionRecord.tenant_id == tenant_id,
            TransactionRecord.transaction_date >= start,
            TransactionRecord.transaction_date <= end,
        )
        if statuses is not None:
            stmt = stmt.where(TransactionRecord.status.in_(tuple(statuses)))
        stmt = stmt.order_by(TransactionRecord.transaction_date, TransactionRecord.transaction_number)
        return await self._scalars("list_transactions", stmt)

    # ===== Filings =====

    async def list_filings(
        self,
        tenant_id: UUID,
        period_keys: Sequence[str],
    ) -> list[StatutoryFiling]:
        stmt = select(StatutoryFiling).where(
            StatutoryFiling.tenant_id == tenant_id,
            StatutoryFiling.period_key.in_(tuple(period_keys)),
        )
        return await self._scalars("list_filings", stmt)
