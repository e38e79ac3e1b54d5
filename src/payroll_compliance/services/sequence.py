"""Tenant-scoped sequential identifiers.

Identifiers look like ``PAY-202503-00001``: a prefix, the period key with
separators removed, and the ordinal zero-padded to the format's width.
Ordinals come from an atomic per-key counter in the record store, so there
is no process-wide lock and callers on different keys never contend.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from payroll_compliance.errors import ConflictError, InvalidInputError
from payroll_compliance.store import RecordStore

logger = logging.getLogger(__name__)

_PERIOD_PATTERNS = {
    "YYYY": re.compile(r"^\d{4}$"),
    "YYYY-MM": re.compile(r"^\d{4}-(0[1-9]|1[0-2])$"),
}


@dataclass(frozen=True)
class NumberFormat:
    """Shape of an identifier for one sequence kind."""

    kind: str
    prefix: str
    width: int
    period: str  # "YYYY" or "YYYY-MM"

    def __post_init__(self) -> None:
        if self.width < 1:
            raise ValueError("width must be positive")
        if self.period not in _PERIOD_PATTERNS:
            raise ValueError(f"Unsupported period granularity {self.period!r}")

    def period_key(self, on: date) -> str:
        """Period key of a date at this format's granularity."""
        if self.period == "YYYY":
            return f"{on.year:04d}"
        return f"{on.year:04d}-{on.month:02d}"

    def validate_period_key(self, period_key: str) -> None:
        if not _PERIOD_PATTERNS[self.period].match(period_key):
            raise InvalidInputError(
                f"Period key {period_key!r} does not match {self.period}",
                field="period_key",
            )

    def render(self, period_key: str, ordinal: int) -> str:
        return f"{self.prefix}-{period_key.replace('-', '')}-{ordinal:0{self.width}d}"


PAYROLL_FORMAT = NumberFormat(kind="payroll", prefix="PAY", width=5, period="YYYY-MM")
TRANSACTION_FORMAT = NumberFormat(kind="transaction", prefix="TXN", width=6, period="YYYY")
EMPLOYEE_FORMAT = NumberFormat(kind="employee", prefix="EMP", width=4, period="YYYY")


@dataclass(frozen=True)
class IssuedNumber:
    """An issued ordinal and its rendered identifier."""

    ordinal: int
    identifier: str


class SequenceNumberGenerator:
    """Issue strictly increasing, never reused identifiers per (tenant, kind, period)."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def next_number(
        self,
        tenant_id: UUID,
        kind: str,
        period_key: str,
        fmt: NumberFormat,
    ) -> IssuedNumber:
        """Advance the counter for the key and render its identifier.

        Raises:
            InvalidInputError: the period key does not fit the format.
            ConflictError: the rendered identifier is already used by a
                record of this kind, which means the counter was reset or
                records were imported without advancing it.
            StoreUnavailableError: the counter could not be advanced in time.
        """
        fmt.validate_period_key(period_key)
        ordinal = await self.store.atomic_increment(tenant_id, kind, period_key)
        identifier = fmt.render(period_key, ordinal)

        if await self.store.identifier_exists(kind, tenant_id, identifier):
            logger.error("Sequence collision for %s %s (tenant %s)", kind, identifier, tenant_id)
            raise ConflictError(identifier, "identifier already in use")

        logger.debug("Issued %s number %s for tenant %s", kind, identifier, tenant_id)
        return IssuedNumber(ordinal=ordinal, identifier=identifier)

    async def next_for(self, tenant_id: UUID, fmt: NumberFormat, on: date) -> IssuedNumber:
        """Issue the next number of a format for the period containing ``on``."""
        return await self.next_number(tenant_id, fmt.kind, fmt.period_key(on), fmt)
