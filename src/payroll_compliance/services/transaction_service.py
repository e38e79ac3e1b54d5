"""Transaction creation, editing and reconciliation."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm.exc import StaleDataError

from payroll_compliance.calculators.consumption_tax import clamp_rate, compute_consumption_tax
from payroll_compliance.calculators.types import ZERO, to_decimal, to_money
from payroll_compliance.errors import ConflictError, ImmutableRecordError, InvalidInputError
from payroll_compliance.models import TRANSACTION_STATUSES, TRANSACTION_TYPES, TransactionRecord
from payroll_compliance.services.sequence import TRANSACTION_FORMAT, SequenceNumberGenerator
from payroll_compliance.store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_CONSUMPTION_TAX_RATE = Decimal("0.15")

EDITABLE_FIELDS = frozenset(
    {"type", "category", "description", "amount", "transaction_date", "status", "is_taxable", "tax_rate", "reference"}
)


def _validate_type(transaction_type: str) -> None:
    if transaction_type not in TRANSACTION_TYPES:
        raise InvalidInputError(f"Unknown transaction type {transaction_type!r}", field="type")


def _validate_status(status: str) -> None:
    if status not in TRANSACTION_STATUSES:
        raise InvalidInputError(f"Unknown transaction status {status!r}", field="status")


class TransactionService:
    """Numbered transactions with derived consumption tax."""

    def __init__(self, store: RecordStore, sequences: SequenceNumberGenerator | None = None):
        self.store = store
        self.sequences = sequences or SequenceNumberGenerator(store)

    async def create(
        self,
        tenant_id: UUID,
        *,
        transaction_type: str,
        amount: Any,
        transaction_date: date,
        description: str,
        category: str = "other",
        status: str = "completed",
        is_taxable: bool = False,
        tax_rate: Any = DEFAULT_CONSUMPTION_TAX_RATE,
        reference: str | None = None,
        created_by: str | None = None,
    ) -> TransactionRecord:
        """Record a transaction under a freshly issued TXN number.

        Raises:
            InvalidInputError: unknown type or status, or a negative amount.
        """
        _validate_type(transaction_type)
        _validate_status(status)
        value = to_money(to_decimal(amount, "amount"))
        rate = clamp_rate(tax_rate)
        tax_amount = compute_consumption_tax(value, is_taxable, rate)

        issued = await self.sequences.next_for(tenant_id, TRANSACTION_FORMAT, transaction_date)
        record = TransactionRecord(
            tenant_id=tenant_id,
            transaction_number=issued.identifier,
            type=transaction_type,
            category=category,
            description=description,
            amount=value,
            transaction_date=transaction_date,
            status=status,
            is_taxable=is_taxable,
            tax_rate=rate if is_taxable else ZERO,
            tax_amount=tax_amount,
            reconciled=False,
            reference=reference,
            created_by=created_by,
        )
        await self.store.add(record)
        logger.info("Created transaction %s (%s %s)", record.transaction_number, transaction_type, value)
        return record

    async def update(self, record: TransactionRecord, **changes: Any) -> TransactionRecord:
        """Apply field changes and re-derive the consumption tax.

        Raises:
            ImmutableRecordError: the transaction is reconciled.
            InvalidInputError: unknown field, type, status or a bad amount.
            ConflictError: the transaction changed since it was loaded.
        """
        if record.reconciled:
            raise ImmutableRecordError(record.transaction_number, "reconciled")

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        transaction_type = changes.get("type", record.type)
        status = changes.get("status", record.status)
        _validate_type(transaction_type)
        _validate_status(status)
        amount = to_money(to_decimal(changes.get("amount", record.amount), "amount"))
        is_taxable = bool(changes.get("is_taxable", record.is_taxable))
        rate = clamp_rate(changes.get("tax_rate", record.tax_rate if record.is_taxable else DEFAULT_CONSUMPTION_TAX_RATE))
        tax_amount = compute_consumption_tax(amount, is_taxable, rate)

        for name in ("category", "description", "transaction_date", "reference"):
            if name in changes:
                setattr(record, name, changes[name])
        record.type = transaction_type
        record.status = status
        record.amount = amount
        record.is_taxable = is_taxable
        record.tax_rate = rate if is_taxable else ZERO
        record.tax_amount = tax_amount
        await self._flush(record)
        return record

    async def reconcile(
        self,
        record: TransactionRecord,
        actor: str,
        timestamp: datetime | None = None,
    ) -> TransactionRecord:
        """Mark a transaction reconciled. It cannot be edited afterwards."""
        if record.reconciled:
            raise ImmutableRecordError(record.transaction_number, "reconciled")
        record.reconciled = True
        record.reconciled_at = timestamp or datetime.now(timezone.utc)
        record.reconciled_by = actor
        await self._flush(record)
        logger.info("Transaction %s reconciled by %s", record.transaction_number, actor)
        return record

    async def _flush(self, record: TransactionRecord) -> None:
        # A failed flush expires the instance; read the number first.
        number = record.transaction_number
        try:
            await self.store.flush()
        except StaleDataError as exc:
            logger.warning("Concurrent modification of transaction %s", number)
            raise ConflictError(number, "record was modified concurrently") from exc
