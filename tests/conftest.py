"""Pytest fixtures for workforce payroll tests."""

from __future__ import annotations

import dataclasses
from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from workforce_payroll.config import Settings, get_settings
from workforce_payroll.database import enable_sqlite_savepoints
from workforce_payroll.models import Base, Company, Concept, Employee, PayPeriod
from workforce_payroll.services.authorization import StaticAuthorizer
from workforce_payroll.services.period_service import PeriodService

# In-memory SQLite shared across sessions of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# A Wednesday; periods run Wednesday to Tuesday
FIRST_PERIOD_START = date(2025, 1, 1)


@pytest.fixture
def settings() -> Settings:
    """Settings pinned to the defaults the tests are written against."""
    return dataclasses.replace(
        get_settings(),
        database_url=TEST_DATABASE_URL,
        time_entry_batch_size=50,
        import_chunk_size=50,
        period_length_days=7,
        period_start_weekday=2,
    )


@pytest.fixture
def authorizer() -> StaticAuthorizer:
    """Authorizer granting every capability."""
    return StaticAuthorizer.allow_all()


@pytest_asyncio.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def company(session: AsyncSession) -> Company:
    """Create a test company."""
    company = Company(name="Acme Staffing", status="active")
    session.add(company)
    await session.flush()
    return company


@pytest_asyncio.fixture
async def other_company(session: AsyncSession) -> Company:
    """A second tenant, for isolation checks."""
    company = Company(name="Other Staffing", status="active")
    session.add(company)
    await session.flush()
    return company


@pytest_asyncio.fixture
async def employees(session: AsyncSession, company: Company) -> dict[str, Employee]:
    """Create test employees keyed by first name."""
    people = {
        "ana": Employee(
            company_id=company.company_id,
            first_name="Ana",
            last_name="Ruiz",
            phone_number="555-010-2020",
            external_id="CT-100",
        ),
        "jorge": Employee(
            company_id=company.company_id,
            first_name="Jorge",
            last_name="Cortés",
            phone_number="555-010-3030",
        ),
        "maria": Employee(
            company_id=company.company_id,
            first_name="Maria",
            last_name="Lopez",
        ),
    }
    session.add_all(people.values())
    await session.flush()
    return people


@pytest_asyncio.fixture
async def concepts(session: AsyncSession, company: Company) -> dict[str, Concept]:
    """Create test concepts keyed by name."""
    items = [
        Concept(
            company_id=company.company_id,
            name="Weekend Job",
            category="extra",
            calc_mode="quantity_x_rate",
            default_rate=Decimal("12.50"),
            unit_label="days",
        ),
        Concept(
            company_id=company.company_id,
            name="Propinas",
            category="extra",
            calc_mode="manual_value",
        ),
        Concept(
            company_id=company.company_id,
            name="Pago de Transporte Regular",
            category="extra",
            calc_mode="manual_value",
        ),
        Concept(
            company_id=company.company_id,
            name="Descuentos",
            category="deduction",
            calc_mode="manual_value",
        ),
        Concept(
            company_id=company.company_id,
            name="Bono antiguo",
            category="extra",
            calc_mode="manual_value",
            is_active=False,
        ),
    ]
    session.add_all(items)
    await session.flush()
    return {c.name: c for c in items}


@pytest_asyncio.fixture
async def periods(
    session: AsyncSession,
    company: Company,
    authorizer: StaticAuthorizer,
    settings: Settings,
) -> list[PayPeriod]:
    """Three consecutive weekly periods, all closed and never opened."""
    service = PeriodService(session, authorizer, settings)
    created = []
    start = FIRST_PERIOD_START
    for _ in range(3):
        period = await service.create_period(company.company_id, start)
        created.append(period)
        start = period.end_date + timedelta(days=1)
    return created


@pytest_asyncio.fixture
async def open_period(
    session: AsyncSession,
    company: Company,
    authorizer: StaticAuthorizer,
    settings: Settings,
    periods: list[PayPeriod],
) -> PayPeriod:
    """The first period, opened."""
    service = PeriodService(session, authorizer, settings)
    return await service.open_period(company.company_id, periods[0].pay_period_id)
