"""Configuration management for the payroll compliance core.

Two layers:
    - ``Settings``: process-level settings loaded from the environment
      (database, store timeout, logging).
    - Explicit report configuration (``ReportingConfig``,
      ``ComplianceConfig``): immutable objects passed to the services that
      use them. Weights and category membership are data, never hard-coded
      at the call site.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv

from payroll_compliance.calculators.types import Levy


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    engine_version: str
    store_timeout_seconds: float
    default_tax_year: int
    log_level: str
    debug: bool

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv(
                "DATABASE_URL",
                "sqlite+aiosqlite:///./payroll_compliance.db",
            ),
            engine_version=os.getenv("ENGINE_VERSION", "1.0.0"),
            store_timeout_seconds=float(os.getenv("STORE_TIMEOUT_SECONDS", "5")),
            default_tax_year=int(os.getenv("DEFAULT_TAX_YEAR", str(date.today().year))),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            debug=os.getenv("DEBUG", "false").lower() == "true",
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()


def _default_due_days() -> dict[Levy, int]:
    return {
        Levy.INCOME_TAX: 14,
        Levy.SOCIAL_INSURANCE: 15,
        Levy.EDUCATION_LEVY: 14,
        Levy.TRAINING_LEVY: 14,
        Levy.CONSUMPTION_TAX: 14,
    }


def _default_annual_due_dates() -> dict[str, tuple[int, int]]:
    # (month, day) in the year following the tax year
    return {
        "corporate_income_tax": (3, 31),
        "consumption_tax_return": (1, 14),
        "payroll_returns": (1, 14),
        "annual_payroll_summary": (2, 28),
    }


@dataclass(frozen=True)
class ReportingConfig:
    """
    Aggregation and filing configuration.

    Attributes:
        corporate_tax_rate: Rate applied to positive net profit for tenants
            taxable as corporations. Default 0.25.
        corporate_legal_forms: Legal forms taxed as corporations.
        return_due_days: Day of the following month each monthly return is
            due. Clamped to the month's length.
        annual_due_dates: (month, day) in the following year for annual
            filings.
        payroll_statuses: Payroll record statuses included in aggregates.
        transaction_statuses: Transaction statuses included in aggregates.
    """

    corporate_tax_rate: Decimal = Decimal("0.25")
    corporate_legal_forms: frozenset[str] = frozenset({"corporation"})
    return_due_days: dict[Levy, int] = field(default_factory=_default_due_days)
    annual_due_dates: dict[str, tuple[int, int]] = field(default_factory=_default_annual_due_dates)
    payroll_statuses: tuple[str, ...] = ("approved", "paid")
    transaction_statuses: tuple[str, ...] = ("completed",)

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not Decimal("0") <= self.corporate_tax_rate <= Decimal("1"):
            raise ValueError("corporate_tax_rate must be between 0 and 1")
        for levy, day in self.return_due_days.items():
            if not 1 <= day <= 31:
                raise ValueError(f"return_due_days[{levy}] must be between 1 and 31")
        if not self.payroll_statuses:
            raise ValueError("payroll_statuses cannot be empty")


@dataclass(frozen=True)
class ComplianceConfig:
    """
    Compliance score configuration.

    The score is a weighted sum of three categories, each contributing
    ``weight × passed / checked``, normalized over the categories that had
    at least one check.

    Attributes:
        registration_weight: Weight of the registration category. Default 40.
        filing_weight: Weight of the filing category. Default 40.
        payment_weight: Weight of the payment category. Default 20.
        registration_items: Registrations checked ("tax_id" plus levies).
        filing_levies: Levies whose monthly returns must be filed.
        lookback_months: Number of completed months checked for filings.
        liability_lookback_months: Window for the outstanding liability check.
    """

    registration_weight: int = 40
    filing_weight: int = 40
    payment_weight: int = 20
    registration_items: tuple[str, ...] = (
        "tax_id",
        Levy.INCOME_TAX.value,
        Levy.SOCIAL_INSURANCE.value,
        Levy.CONSUMPTION_TAX.value,
        Levy.EDUCATION_LEVY.value,
        Levy.TRAINING_LEVY.value,
    )
    filing_levies: tuple[Levy, ...] = (
        Levy.INCOME_TAX,
        Levy.SOCIAL_INSURANCE,
        Levy.EDUCATION_LEVY,
        Levy.TRAINING_LEVY,
    )
    lookback_months: int = 1
    liability_lookback_months: int = 12

    def __post_init__(self) -> None:
        """Validate configuration."""
        weights = (self.registration_weight, self.filing_weight, self.payment_weight)
        if any(w < 0 for w in weights):
            raise ValueError("weights cannot be negative")
        if sum(weights) == 0:
            raise ValueError("at least one weight must be positive")
        if self.lookback_months < 1:
            raise ValueError("lookback_months must be at least 1")
        if self.liability_lookback_months < 1:
            raise ValueError("liability_lookback_months must be at least 1")
