"""Payroll compliance command line interface.

Provides:
- Schema creation
- Income tax estimates and per-period deduction breakdowns
- Period summaries, annual reports, monthly returns and compliance checks

Usage:
    python -m payroll_compliance init-db
    python -m payroll_compliance estimate-tax --annual-income 2400000 --dependents 1
    python -m payroll_compliance deductions --gross 200000 --cadence monthly
    python -m payroll_compliance period-summary --tenant-id X --start 2025-01-01 --end 2025-03-31
    python -m payroll_compliance annual-report --tenant-id X --year 2025
    python -m payroll_compliance monthly-return --tenant-id X --year 2025 --month 3
    python -m payroll_compliance compliance --tenant-id X
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable
from uuid import UUID

from payroll_compliance.calculators.rules import RuleBook
from payroll_compliance.calculators.statutory import compute_deductions, estimate_income_tax
from payroll_compliance.calculators.types import PayCadence
from payroll_compliance.config import get_settings
from payroll_compliance.database import create_schema, get_engine, make_session_factory
from payroll_compliance.errors import PayrollComplianceError
from payroll_compliance.services.reporting import ReportingService, as_jsonable
from payroll_compliance.store import RecordStore

logger = logging.getLogger(__name__)


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def print_json(value: Any) -> None:
    print(json.dumps(as_jsonable(value), indent=2))


class PayrollComplianceCli:
    """Payroll compliance command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m payroll_compliance",
            description="Payroll and statutory compliance tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: DATABASE_URL setting)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create database tables")

        estimate = subparsers.add_parser("estimate-tax", help="Estimate annual income tax")
        estimate.add_argument("--annual-income", type=Decimal, required=True, help="Annual income")
        estimate.add_argument("--dependents", type=int, default=0, help="Number of dependents (default: 0)")
        estimate.add_argument("--tax-year", type=int, help="Tax year (default: DEFAULT_TAX_YEAR setting)")

        deductions = subparsers.add_parser("deductions", help="Deduction breakdown for one pay period")
        deductions.add_argument("--gross", type=Decimal, required=True, help="Gross earnings for the period")
        deductions.add_argument(
            "--cadence",
            choices=[c.value for c in PayCadence],
            default=PayCadence.MONTHLY.value,
            help="Pay cadence (default: monthly)",
        )
        deductions.add_argument("--tax-year", type=int, help="Tax year (default: DEFAULT_TAX_YEAR setting)")

        summary = subparsers.add_parser("period-summary", help="Income, expense and consumption tax summary")
        summary.add_argument("--tenant-id", type=parse_uuid, required=True, help="Tenant ID")
        summary.add_argument("--start", type=parse_date, required=True, help="First day (ISO format)")
        summary.add_argument("--end", type=parse_date, required=True, help="Last day (ISO format)")

        annual = subparsers.add_parser("annual-report", help="Annual tax report")
        annual.add_argument("--tenant-id", type=parse_uuid, required=True, help="Tenant ID")
        annual.add_argument("--year", type=int, required=True, help="Tax year")

        monthly = subparsers.add_parser("monthly-return", help="Monthly statutory return figures")
        monthly.add_argument("--tenant-id", type=parse_uuid, required=True, help="Tenant ID")
        monthly.add_argument("--year", type=int, required=True, help="Year")
        monthly.add_argument("--month", type=int, choices=range(1, 13), required=True, help="Month (1-12)")

        compliance = subparsers.add_parser("compliance", help="Compliance score and recommendations")
        compliance.add_argument("--tenant-id", type=parse_uuid, required=True, help="Tenant ID")
        compliance.add_argument("--as-of", type=parse_date, help="Evaluation date (default: today)")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        settings = get_settings()
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "init-db": self._cmd_init_db,
            "estimate-tax": self._cmd_estimate_tax,
            "deductions": self._cmd_deductions,
            "period-summary": self._cmd_period_summary,
            "annual-report": self._cmd_annual_report,
            "monthly-return": self._cmd_monthly_return,
            "compliance": self._cmd_compliance,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except PayrollComplianceError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

    def _tax_year(self, args: argparse.Namespace) -> int:
        return args.tax_year or get_settings().default_tax_year

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create database tables."""

        async def run() -> None:
            engine = get_engine(args.database_url)
            try:
                await create_schema(engine)
            finally:
                await engine.dispose()

        asyncio.run(run())
        print("Schema created")
        return 0

    def _cmd_estimate_tax(self, args: argparse.Namespace) -> int:
        """Estimate annual income tax."""
        rules = RuleBook.default().for_year(self._tax_year(args))
        print_json(estimate_income_tax(args.annual_income, rules, dependents=args.dependents))
        return 0

    def _cmd_deductions(self, args: argparse.Namespace) -> int:
        """Deduction breakdown for one pay period."""
        rules = RuleBook.default().for_year(self._tax_year(args))
        breakdown = compute_deductions(args.gross, rules, cadence=args.cadence)
        print_json(breakdown.to_payload())
        return 0

    def _with_reporting(
        self,
        args: argparse.Namespace,
        action: Callable[[ReportingService], Awaitable[Any]],
    ) -> Any:
        async def run() -> Any:
            engine = get_engine(args.database_url)
            try:
                async with make_session_factory(engine)() as session:
                    return await action(ReportingService(RecordStore(session)))
            finally:
                await engine.dispose()

        return asyncio.run(run())

    def _cmd_period_summary(self, args: argparse.Namespace) -> int:
        """Income, expense and consumption tax summary."""
        print_json(self._with_reporting(args, lambda svc: svc.aggregate_period(args.tenant_id, args.start, args.end)))
        return 0

    def _cmd_annual_report(self, args: argparse.Namespace) -> int:
        """Annual tax report."""
        report = self._with_reporting(args, lambda svc: svc.generate_annual_tax_report(args.tenant_id, args.year))
        print_json(report)
        return 0 if not report.unavailable else 2

    def _cmd_monthly_return(self, args: argparse.Namespace) -> int:
        """Monthly statutory return figures."""
        result = self._with_reporting(
            args,
            lambda svc: svc.generate_monthly_return(args.tenant_id, args.year, args.month),
        )
        print_json(result)
        return 0 if not result.unavailable else 2

    def _cmd_compliance(self, args: argparse.Namespace) -> int:
        """Compliance score and recommendations."""
        print_json(self._with_reporting(args, lambda svc: svc.compliance_check(args.tenant_id, args.as_of)))
        return 0


def main() -> int:
    """CLI entry point."""
    cli = PayrollComplianceCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
