"""Financial aggregation: period summaries, payroll totals, returns and compliance.

Reports read ranges of transactions and payroll records through the record
store and never write. Records whose stored totals disagree with their own
components are left out of every sum and listed in ``excluded_records``.
Annual reports and compliance checks degrade section by section: a section
whose data cannot be read is ``None`` and named in ``unavailable``.
"""

from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from dataclasses import dataclass, field, fields
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Awaitable, Callable, TypeVar
from uuid import UUID

from payroll_compliance.calculators.consumption_tax import compute_consumption_tax
from payroll_compliance.calculators.types import ZERO, Levy, to_money
from payroll_compliance.config import ComplianceConfig, ReportingConfig
from payroll_compliance.errors import DataUnavailableError, StoreUnavailableError
from payroll_compliance.models import PayrollRecord, Tenant, TransactionRecord
from payroll_compliance.store import RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

HUNDRED = Decimal("100")

CASH_IN_TYPES = ("income", "asset_sale")
CASH_OUT_TYPES = ("expense", "asset_purchase")

# Levy → (employee-side column, employer-side column or None)
PAYROLL_LEVY_COLUMNS: dict[Levy, tuple[str, str | None]] = {
    Levy.INCOME_TAX: ("income_tax", None),
    Levy.SOCIAL_INSURANCE: ("social_insurance", "social_insurance_employer"),
    Levy.EDUCATION_LEVY: ("education_levy", None),
    Levy.TRAINING_LEVY: ("training_levy", "training_levy_employer"),
}


# ===== Date helpers =====


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a month."""
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def period_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def clamped_date(year: int, month: int, day: int) -> date:
    """Date with ``day`` clamped to the month's length."""
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def following_month(year: int, month: int) -> tuple[int, int]:
    return (year + 1, 1) if month == 12 else (year, month + 1)


def previous_month(year: int, month: int) -> tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)


def months_between(start: date, end: date) -> list[tuple[int, int]]:
    """Every (year, month) touched by [start, end], ascending."""
    months = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        months.append((year, month))
        year, month = following_month(year, month)
    return months


def return_due_date(year: int, month: int, due_day: int) -> date:
    """Due date of a monthly return: ``due_day`` of the following month."""
    next_year, next_month = following_month(year, month)
    return clamped_date(next_year, next_month, due_day)


# ===== Report types =====


@dataclass
class TypeBreakdown:
    count: int = 0
    total: Decimal = ZERO
    tax: Decimal = ZERO


@dataclass
class PeriodSummary:
    """Transaction roll-up for one tenant and date range."""

    tenant_id: UUID
    start: date
    end: date
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_profit: Decimal = ZERO
    profit_margin: Decimal = ZERO  # percent, 2dp
    consumption_tax_collected: Decimal = ZERO
    consumption_tax_paid: Decimal = ZERO
    net_consumption_tax_payable: Decimal = ZERO
    transaction_count: int = 0
    by_type: dict[str, TypeBreakdown] = field(default_factory=dict)
    by_category: dict[str, Decimal] = field(default_factory=dict)
    excluded_records: list[str] = field(default_factory=list)


@dataclass
class PayrollTotals:
    """Sums of the flattened payroll columns over a set of records."""

    record_count: int = 0
    employee_ids: set[UUID] = field(default_factory=set)
    gross_earnings: Decimal = ZERO
    income_tax: Decimal = ZERO
    social_insurance: Decimal = ZERO
    social_insurance_employer: Decimal = ZERO
    education_levy: Decimal = ZERO
    training_levy: Decimal = ZERO
    training_levy_employer: Decimal = ZERO
    pension_employee: Decimal = ZERO
    pension_employer: Decimal = ZERO
    other_deductions_total: Decimal = ZERO
    total_deductions: Decimal = ZERO
    net_pay: Decimal = ZERO

    @property
    def employee_count(self) -> int:
        return len(self.employee_ids)

    def add_record(self, record: PayrollRecord) -> None:
        self.record_count += 1
        self.employee_ids.add(record.employee_id)
        for name in AMOUNT_FIELDS:
            setattr(self, name, getattr(self, name) + getattr(record, name))

    def add_totals(self, other: PayrollTotals) -> None:
        self.record_count += other.record_count
        self.employee_ids |= other.employee_ids
        for name in AMOUNT_FIELDS:
            setattr(self, name, getattr(self, name) + getattr(other, name))


AMOUNT_FIELDS = tuple(f.name for f in fields(PayrollTotals) if f.name not in ("record_count", "employee_ids"))


@dataclass
class MonthlyPayrollTotals:
    year: int
    month: int
    totals: PayrollTotals = field(default_factory=PayrollTotals)


@dataclass
class EmployeePayrollTotals:
    """One employee's annual totals for statutory filing."""

    employee_id: UUID
    employee_name: str | None
    tax_id: str | None
    social_insurance_number: str | None
    totals: PayrollTotals = field(default_factory=PayrollTotals)


@dataclass
class CorporateTax:
    applicable: bool
    taxable_profit: Decimal
    rate: Decimal
    amount: Decimal


@dataclass
class ConsumptionTaxSummary:
    registered: bool
    collected: Decimal
    paid: Decimal
    net_payable: Decimal


@dataclass
class AnnualTaxReport:
    tenant_id: UUID
    tenant_name: str
    tax_id: str | None
    legal_form: str
    year: int
    financial_summary: PeriodSummary | None = None
    corporate_tax: CorporateTax | None = None
    payroll_totals: PayrollTotals | None = None
    monthly_payroll: list[MonthlyPayrollTotals] | None = None
    employees: list[EmployeePayrollTotals] | None = None
    consumption_tax: ConsumptionTaxSummary | None = None
    filing_requirements: dict[str, bool] = field(default_factory=dict)
    due_dates: dict[str, date] = field(default_factory=dict)
    registration: dict[str, bool] = field(default_factory=dict)
    excluded_records: list[str] = field(default_factory=list)
    unavailable: list[str] = field(default_factory=list)


@dataclass
class ReturnLine:
    """One levy on a monthly statutory return."""

    levy: Levy
    employee_amount: Decimal
    employer_amount: Decimal
    total: Decimal
    status: str  # "required" or "nil_return"
    due_date: date


@dataclass
class EmployeeReturnLine:
    employee_id: UUID
    payroll_number: str
    gross_earnings: Decimal
    income_tax: Decimal
    social_insurance: Decimal
    education_levy: Decimal
    training_levy: Decimal


@dataclass
class MonthlyReturn:
    tenant_id: UUID
    year: int
    month: int
    period_key: str
    employee_count: int | None = None
    lines: list[ReturnLine] = field(default_factory=list)
    employees: list[EmployeeReturnLine] | None = None
    excluded_records: list[str] = field(default_factory=list)
    unavailable: list[str] = field(default_factory=list)

    def line(self, levy: Levy | str) -> ReturnLine:
        levy = Levy(levy)
        for line in self.lines:
            if line.levy == levy:
                return line
        raise KeyError(levy)


@dataclass
class FilingCheck:
    levy: Levy
    period_key: str
    due_date: date
    status: str  # "filed", "overdue" or "pending"
    reference: str | None = None


@dataclass
class CategoryScore:
    weight: int
    checked: int
    passed: int


@dataclass
class ComplianceReport:
    tenant_id: UUID
    as_of: date
    score: int
    registration: dict[str, bool] = field(default_factory=dict)
    filings: list[FilingCheck] = field(default_factory=list)
    outstanding_liabilities: dict[str, Decimal] | None = None
    categories: dict[str, CategoryScore] = field(default_factory=dict)
    recommendations: list[dict[str, str]] = field(default_factory=list)
    unavailable: list[str] = field(default_factory=list)


@dataclass
class CashFlowMonth:
    year: int
    month: int
    cash_in: Decimal = ZERO
    cash_out: Decimal = ZERO
    net: Decimal = ZERO
    cumulative: Decimal = ZERO


# ===== Service =====


def transaction_is_consistent(record: TransactionRecord) -> bool:
    """Whether the stored tax amount matches the amount, flag and rate."""
    if record.amount < 0:
        return False
    expected = compute_consumption_tax(record.amount, record.is_taxable, record.tax_rate)
    return to_money(record.tax_amount) == expected


class ReportingService:
    """Read-only aggregation over a tenant's records."""

    def __init__(
        self,
        store: RecordStore,
        reporting_config: ReportingConfig | None = None,
        compliance_config: ComplianceConfig | None = None,
    ):
        self.store = store
        self.config = reporting_config or ReportingConfig()
        self.compliance = compliance_config or ComplianceConfig()

    async def _section(self, name: str, unavailable: list[str], load: Callable[[], Awaitable[T]]) -> T | None:
        try:
            return await load()
        except (DataUnavailableError, StoreUnavailableError) as exc:
            logger.warning("Report section %s unavailable: %s", name, exc)
            unavailable.append(name)
            return None

    async def _load_transactions(
        self, tenant_id: UUID, start: date, end: date
    ) -> tuple[list[TransactionRecord], list[str]]:
        records = await self.store.list_transactions(
            tenant_id, start, end, statuses=self.config.transaction_statuses
        )
        consistent, excluded = [], []
        for record in records:
            if transaction_is_consistent(record):
                consistent.append(record)
            else:
                logger.warning("Excluding inconsistent transaction %s", record.transaction_number)
                excluded.append(record.transaction_number)
        return consistent, excluded

    async def _load_payroll(
        self, tenant_id: UUID, start: date, end: date
    ) -> tuple[list[PayrollRecord], list[str]]:
        records = await self.store.list_payroll_records(
            tenant_id, start, end, statuses=self.config.payroll_statuses
        )
        consistent, excluded = [], []
        for record in records:
            errors = record.consistency_errors()
            if errors:
                logger.warning("Excluding inconsistent payroll record %s: %s", record.payroll_number, "; ".join(errors))
                excluded.append(record.payroll_number)
            else:
                consistent.append(record)
        return consistent, excluded

    # ----- Period summary -----

    @staticmethod
    def _summarize(tenant_id: UUID, start: date, end: date, records: list[TransactionRecord]) -> PeriodSummary:
        summary = PeriodSummary(tenant_id=tenant_id, start=start, end=end)
        by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for record in records:
            breakdown = summary.by_type.setdefault(record.type, TypeBreakdown())
            breakdown.count += 1
            breakdown.total += record.amount
            breakdown.tax += record.tax_amount
            by_category[record.category] += record.amount
            summary.transaction_count += 1

            if record.type == "income":
                summary.total_income += record.amount
                summary.consumption_tax_collected += record.tax_amount
            elif record.type == "expense":
                summary.total_expenses += record.amount
                summary.consumption_tax_paid += record.tax_amount

        summary.by_category = dict(by_category)
        summary.net_profit = summary.total_income - summary.total_expenses
        if summary.total_income > 0:
            summary.profit_margin = to_money(summary.net_profit / summary.total_income * HUNDRED)
        summary.net_consumption_tax_payable = max(
            ZERO, summary.consumption_tax_collected - summary.consumption_tax_paid
        )
        return summary

    async def aggregate_period(self, tenant_id: UUID, start: date, end: date) -> PeriodSummary:
        """Income, expense and consumption tax over completed transactions.

        Raises:
            DataUnavailableError: transactions cannot be read.
        """
        records, excluded = await self._load_transactions(tenant_id, start, end)
        summary = self._summarize(tenant_id, start, end, records)
        summary.excluded_records = excluded
        return summary

    # ----- Payroll totals -----

    @staticmethod
    def _group_by_month(records: list[PayrollRecord], start: date, end: date) -> list[MonthlyPayrollTotals]:
        months = {key: MonthlyPayrollTotals(year=key[0], month=key[1]) for key in months_between(start, end)}
        for record in records:
            key = (record.period_start.year, record.period_start.month)
            months[key].totals.add_record(record)
        return [months[key] for key in sorted(months)]

    async def monthly_payroll_totals(self, tenant_id: UUID, start: date, end: date) -> list[MonthlyPayrollTotals]:
        """Approved and paid payroll grouped by the month its period starts in.

        Every month in the range is present, empty months included.
        """
        records, _ = await self._load_payroll(tenant_id, start, end)
        return self._group_by_month(records, start, end)

    # ----- Annual report -----

    async def generate_annual_tax_report(self, tenant_id: UUID, year: int) -> AnnualTaxReport:
        """Year-end filing figures for a tenant.

        Raises:
            DataUnavailableError: the tenant cannot be read. Other failures
                only mark the affected sections unavailable.
        """
        tenant = await self.store.require_tenant(tenant_id)
        start, end = date(year, 1, 1), date(year, 12, 31)
        report = AnnualTaxReport(
            tenant_id=tenant_id,
            tenant_name=tenant.name,
            tax_id=tenant.tax_id,
            legal_form=tenant.legal_form,
            year=year,
            registration=self._registration(tenant, ("tax_id", *(levy.value for levy in Levy))),
        )

        transactions = await self._section(
            "financial_summary", report.unavailable, lambda: self._load_transactions(tenant_id, start, end)
        )
        if transactions is not None:
            records, excluded = transactions
            summary = self._summarize(tenant_id, start, end, records)
            summary.excluded_records = excluded
            report.excluded_records.extend(excluded)
            report.financial_summary = summary
            report.corporate_tax = self._corporate_tax(tenant, summary)
            report.consumption_tax = ConsumptionTaxSummary(
                registered=tenant.consumption_tax_registered,
                collected=summary.consumption_tax_collected,
                paid=summary.consumption_tax_paid,
                net_payable=summary.net_consumption_tax_payable,
            )
        else:
            report.unavailable.extend(["corporate_tax", "consumption_tax"])

        payroll = await self._section(
            "payroll", report.unavailable, lambda: self._load_payroll(tenant_id, start, end)
        )
        if payroll is not None:
            records, excluded = payroll
            report.excluded_records.extend(excluded)
            report.monthly_payroll = self._group_by_month(records, start, end)
            totals = PayrollTotals()
            for month in report.monthly_payroll:
                totals.add_totals(month.totals)
            report.payroll_totals = totals

            employees = await self._section(
                "employees", report.unavailable, lambda: self._employee_totals(tenant_id, records)
            )
            report.employees = employees

        report.filing_requirements = self._filing_requirements(tenant, report)
        report.due_dates = {
            name: clamped_date(year + 1, month, day) for name, (month, day) in self.config.annual_due_dates.items()
        }
        logger.info(
            "Annual report %s for tenant %s (unavailable: %s)",
            year,
            tenant_id,
            ", ".join(report.unavailable) or "none",
        )
        return report

    def _corporate_tax(self, tenant: Tenant, summary: PeriodSummary) -> CorporateTax:
        applicable = tenant.legal_form in self.config.corporate_legal_forms
        taxable = max(ZERO, summary.net_profit)
        amount = to_money(taxable * self.config.corporate_tax_rate) if applicable else to_money(ZERO)
        return CorporateTax(
            applicable=applicable,
            taxable_profit=taxable,
            rate=self.config.corporate_tax_rate,
            amount=amount,
        )

    async def _employee_totals(self, tenant_id: UUID, records: list[PayrollRecord]) -> list[EmployeePayrollTotals]:
        employees = {e.employee_id: e for e in await self.store.list_employees(tenant_id, active_only=False)}
        grouped: dict[UUID, EmployeePayrollTotals] = {}
        for record in records:
            entry = grouped.get(record.employee_id)
            if entry is None:
                employee = employees.get(record.employee_id)
                entry = EmployeePayrollTotals(
                    employee_id=record.employee_id,
                    employee_name=employee.full_name if employee else None,
                    tax_id=employee.tax_id if employee else None,
                    social_insurance_number=employee.social_insurance_number if employee else None,
                )
                grouped[record.employee_id] = entry
            entry.totals.add_record(record)
        return sorted(grouped.values(), key=lambda e: (e.employee_name or "", str(e.employee_id)))

    def _filing_requirements(self, tenant: Tenant, report: AnnualTaxReport) -> dict[str, bool]:
        requirements: dict[str, bool] = {
            "corporate_income_tax": tenant.legal_form in self.config.corporate_legal_forms,
        }
        if report.consumption_tax is not None:
            requirements["consumption_tax_return"] = (
                tenant.consumption_tax_registered or report.consumption_tax.collected > 0
            )
        if report.payroll_totals is not None:
            for levy, (column, _) in PAYROLL_LEVY_COLUMNS.items():
                requirements[f"{levy.value}_returns"] = getattr(report.payroll_totals, column) > 0
        return requirements

    @staticmethod
    def _registration(tenant: Tenant, items: tuple[str, ...]) -> dict[str, bool]:
        return {item: tenant.is_registered(item) for item in items}

    # ----- Monthly return -----

    async def generate_monthly_return(self, tenant_id: UUID, year: int, month: int) -> MonthlyReturn:
        """Per-levy figures for one month's statutory returns.

        When payroll cannot be read the four payroll levy lines and the
        employee breakdown are left out and "payroll" is named in
        ``unavailable``; likewise "consumption_tax" for transactions.
        """
        start, end = month_bounds(year, month)
        result = MonthlyReturn(
            tenant_id=tenant_id,
            year=year,
            month=month,
            period_key=period_key(year, month),
        )

        payroll = await self._section(
            "payroll", result.unavailable, lambda: self._load_payroll(tenant_id, start, end)
        )
        if payroll is not None:
            records, excluded = payroll
            result.excluded_records.extend(excluded)
            self._add_payroll_lines(result, records)

        transactions = await self._section(
            "consumption_tax", result.unavailable, lambda: self._load_transactions(tenant_id, start, end)
        )
        if transactions is not None:
            records, excluded = transactions
            result.excluded_records.extend(excluded)
            summary = self._summarize(tenant_id, start, end, records)
            result.lines.append(
                self._return_line(Levy.CONSUMPTION_TAX, summary.net_consumption_tax_payable, ZERO, year, month)
            )
        return result

    def _add_payroll_lines(self, result: MonthlyReturn, payroll: list[PayrollRecord]) -> None:
        totals = PayrollTotals()
        for record in payroll:
            totals.add_record(record)
        result.employee_count = totals.employee_count
        for levy, (employee_column, employer_column) in PAYROLL_LEVY_COLUMNS.items():
            employee_amount = getattr(totals, employee_column)
            employer_amount = getattr(totals, employer_column) if employer_column else ZERO
            result.lines.append(
                self._return_line(levy, employee_amount, employer_amount, result.year, result.month)
            )
        result.employees = [
            EmployeeReturnLine(
                employee_id=record.employee_id,
                payroll_number=record.payroll_number,
                gross_earnings=record.gross_earnings,
                income_tax=record.income_tax,
                social_insurance=record.social_insurance,
                education_levy=record.education_levy,
                training_levy=record.training_levy,
            )
            for record in payroll
        ]

    def _return_line(
        self,
        levy: Levy,
        employee_amount: Decimal,
        employer_amount: Decimal,
        year: int,
        month: int,
    ) -> ReturnLine:
        total = to_money(employee_amount + employer_amount)
        return ReturnLine(
            levy=levy,
            employee_amount=to_money(employee_amount),
            employer_amount=to_money(employer_amount),
            total=total,
            status="required" if total != 0 else "nil_return",
            due_date=return_due_date(year, month, self.config.return_due_days[levy]),
        )

    # ----- Compliance -----

    async def compliance_check(self, tenant_id: UUID, as_of: date | None = None) -> ComplianceReport:
        """Weighted registration, filing and payment score, 0 to 100.

        A filing is checked for every configured levy the tenant is
        registered for, over the configured number of completed months
        before ``as_of``. A return whose due date has not passed yet is
        pending and does not count either way. The payment category checks
        each levy with an amount due and passes it when filed payments
        cover that amount.
        """
        as_of = as_of or date.today()
        cfg = self.compliance
        tenant = await self.store.require_tenant(tenant_id)
        report = ComplianceReport(tenant_id=tenant_id, as_of=as_of, score=0)

        report.registration = self._registration(tenant, cfg.registration_items)
        report.categories["registration"] = CategoryScore(
            weight=cfg.registration_weight,
            checked=len(report.registration),
            passed=sum(1 for ok in report.registration.values() if ok),
        )

        filings = await self._section("filing", report.unavailable, lambda: self._filing_checks(tenant, as_of))
        if filings is not None:
            report.filings = filings
            decided = [f for f in filings if f.status != "pending"]
            report.categories["filing"] = CategoryScore(
                weight=cfg.filing_weight,
                checked=len(decided),
                passed=sum(1 for f in decided if f.status == "filed"),
            )

        liabilities = await self._section(
            "payment", report.unavailable, lambda: self._outstanding_liabilities(tenant_id, as_of)
        )
        if liabilities is not None:
            owing = [levy for levy, (due, _) in liabilities.items() if due > 0]
            report.outstanding_liabilities = {
                levy: max(ZERO, due - paid) for levy, (due, paid) in liabilities.items()
            }
            report.categories["payment"] = CategoryScore(
                weight=cfg.payment_weight,
                checked=len(owing),
                passed=sum(1 for levy in owing if report.outstanding_liabilities[levy] == 0),
            )

        report.score = self._score(report.categories)
        report.recommendations = await self._recommendations(tenant, report)
        logger.info("Compliance score for tenant %s as of %s: %d", tenant_id, as_of, report.score)
        return report

    async def _filing_checks(self, tenant: Tenant, as_of: date) -> list[FilingCheck]:
        cfg = self.compliance
        months = []
        year, month = previous_month(as_of.year, as_of.month)
        for _ in range(cfg.lookback_months):
            months.append((year, month))
            year, month = previous_month(year, month)

        levies = [levy for levy in cfg.filing_levies if tenant.is_registered(levy.value)]
        if not levies:
            return []

        keys = [period_key(y, m) for y, m in months]
        filed = {
            (f.levy, f.period_key): f
            for f in await self.store.list_filings(tenant.tenant_id, keys)
        }

        checks = []
        for y, m in months:
            key = period_key(y, m)
            for levy in levies:
                due = return_due_date(y, m, self.config.return_due_days[levy])
                filing = filed.get((levy.value, key))
                if filing is not None:
                    status = "filed"
                elif as_of > due:
                    status = "overdue"
                else:
                    status = "pending"
                checks.append(
                    FilingCheck(
                        levy=levy,
                        period_key=key,
                        due_date=due,
                        status=status,
                        reference=filing.reference if filing else None,
                    )
                )
        return checks

    async def _outstanding_liabilities(self, tenant_id: UUID, as_of: date) -> dict[str, tuple[Decimal, Decimal]]:
        """Levy -> (amount due, amount paid) over the liability window.

        Amounts withheld on paid payroll, employer shares included, become
        due once the month's return due date has passed. They are matched
        against ``amount_paid`` on the filings for the same months.
        """
        year, month = as_of.year, as_of.month
        for _ in range(self.compliance.liability_lookback_months):
            year, month = previous_month(year, month)
        records, _ = await self._load_payroll(tenant_id, date(year, month, 1), as_of)

        due = {levy.value: ZERO for levy in PAYROLL_LEVY_COLUMNS}
        keys = set()
        for record in records:
            if record.status != "paid":
                continue
            y, m = record.period_start.year, record.period_start.month
            for levy, (employee_column, employer_column) in PAYROLL_LEVY_COLUMNS.items():
                if as_of <= return_due_date(y, m, self.config.return_due_days[levy]):
                    continue
                due[levy.value] += getattr(record, employee_column)
                if employer_column:
                    due[levy.value] += getattr(record, employer_column)
                keys.add(period_key(y, m))

        paid = {levy: ZERO for levy in due}
        if keys:
            for filing in await self.store.list_filings(tenant_id, sorted(keys)):
                if filing.levy in paid and filing.amount_paid is not None:
                    paid[filing.levy] += filing.amount_paid
        return {levy: (to_money(due[levy]), to_money(paid[levy])) for levy in due}

    @staticmethod
    def _score(categories: dict[str, CategoryScore]) -> int:
        weighted = ZERO
        total_weight = 0
        for category in categories.values():
            if category.checked == 0 or category.weight == 0:
                continue
            weighted += Decimal(category.weight) * category.passed / category.checked
            total_weight += category.weight
        if total_weight == 0:
            return 0
        score = (weighted / total_weight * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return int(score)

    async def _recommendations(self, tenant: Tenant, report: ComplianceReport) -> list[dict[str, str]]:
        recommendations: list[dict[str, str]] = []
        if not tenant.tax_id:
            recommendations.append(
                {
                    "priority": "high",
                    "action": "Register for a tax identification number",
                    "description": "Every business needs a tax identification number to file returns",
                }
            )
        if not tenant.paye_registered:
            employees = await self._section(
                "employees", report.unavailable, lambda: self.store.list_employees(tenant.tenant_id)
            )
            if employees:
                recommendations.append(
                    {
                        "priority": "high",
                        "action": "Register for income tax withholding",
                        "description": "Businesses with employees must withhold income tax",
                    }
                )
        if report.outstanding_liabilities and any(report.outstanding_liabilities.values()):
            recommendations.append(
                {
                    "priority": "high",
                    "action": "Pay outstanding statutory liabilities",
                    "description": "Amounts withheld from paid payroll have not been remitted in full",
                }
            )
        if any(check.status == "overdue" for check in report.filings):
            recommendations.append(
                {
                    "priority": "urgent",
                    "action": "File overdue tax returns",
                    "description": "Submit all outstanding returns to avoid penalties",
                }
            )
        for item, registered in report.registration.items():
            if not registered and item not in ("tax_id", Levy.INCOME_TAX.value):
                recommendations.append(
                    {
                        "priority": "medium",
                        "action": f"Review {item.replace('_', ' ')} registration",
                        "description": f"The business is not registered for {item.replace('_', ' ')}",
                    }
                )
        return recommendations

    # ----- Cash flow -----

    async def cash_flow(self, tenant_id: UUID, year: int) -> list[CashFlowMonth]:
        """Monthly cash in and out with a running total.

        Raises:
            DataUnavailableError: transactions cannot be read.
        """
        records, _ = await self._load_transactions(tenant_id, date(year, 1, 1), date(year, 12, 31))
        months = [CashFlowMonth(year=year, month=m) for m in range(1, 13)]
        for record in records:
            entry = months[record.transaction_date.month - 1]
            if record.type in CASH_IN_TYPES:
                entry.cash_in += record.amount
            elif record.type in CASH_OUT_TYPES:
                entry.cash_out += record.amount

        cumulative = ZERO
        for entry in months:
            entry.net = entry.cash_in - entry.cash_out
            cumulative += entry.net
            entry.cumulative = cumulative
        return months


def as_jsonable(value: Any) -> Any:
    """Convert report dataclasses into JSON-safe structures."""
    if hasattr(value, "__dataclass_fields__"):
        data = {f.name: as_jsonable(getattr(value, f.name)) for f in fields(value)}
        if isinstance(value, PayrollTotals):
            data.pop("employee_ids")
            data["employee_count"] = value.employee_count
        return data
    if isinstance(value, dict):
        return {str(as_jsonable(k)): as_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [as_jsonable(v) for v in value]
    if isinstance(value, Levy):
        return value.value
    if isinstance(value, (Decimal, date, UUID)):
        return str(value)
    return value
