"""Pytest fixtures for payroll compliance tests."""

from __future__ import annotations

from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payroll_compliance.calculators.rules import RuleBook
from payroll_compliance.calculators.types import TaxYearRules
from payroll_compliance.database import create_schema, make_session_factory
from payroll_compliance.models import Employee, Tenant
from payroll_compliance.store import RecordStore


@pytest.fixture
def rules() -> TaxYearRules:
    """Shipped rule table (allowance 1.5M, bands 0% / 25% / 30%)."""
    return RuleBook.default().for_year(2025)


# A file database rather than :memory: so several sessions (and so several
# connections) can work on the same data concurrently.
@pytest_asyncio.fixture
async def engine(tmp_path):
    """Create test database engine."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def store(session: AsyncSession) -> RecordStore:
    return RecordStore(session, timeout=5)


@pytest_asyncio.fixture
async def tenant(session: AsyncSession) -> Tenant:
    """A fully registered corporation, committed so other sessions see it."""
    tenant = Tenant(
        tenant_id=uuid4(),
        name="Blue Mountain Traders Ltd",
        registration_number="BN-2019-0042",
        tax_id="123-456-789",
        legal_form="corporation",
        paye_registered=True,
        social_insurance_registered=True,
        education_levy_registered=True,
        training_levy_registered=True,
        consumption_tax_registered=True,
    )
    session.add(tenant)
    await session.commit()
    return tenant


@pytest_asyncio.fixture
async def employee(session: AsyncSession, tenant: Tenant) -> Employee:
    """Monthly-salaried employee earning 200,000 per month."""
    employee = Employee(
        employee_id=uuid4(),
        tenant_id=tenant.tenant_id,
        employee_number="EMP-2025-0001",
        first_name="Marcia",
        last_name="Campbell",
        tax_id="987-654-321",
        social_insurance_number="SI-0001",
        base_salary=Decimal("200000"),
        salary_frequency="monthly",
        allowances_json=[],
    )
    session.add(employee)
    await session.commit()
    return employee


@pytest_asyncio.fixture
async def second_employee(session: AsyncSession, tenant: Tenant) -> Employee:
    """Employee on an annual salary of 1,560,000 with a non-taxable meal allowance."""
    employee = Employee(
        employee_id=uuid4(),
        tenant_id=tenant.tenant_id,
        employee_number="EMP-2025-0002",
        first_name="Devon",
        last_name="Brown",
        tax_id="111-222-333",
        social_insurance_number="SI-0002",
        base_salary=Decimal("1560000"),
        salary_frequency="annually",
        allowances_json=[{"type": "meal", "amount": "5000", "taxable": False}],
    )
    session.add(employee)
    await session.commit()
    return employee
