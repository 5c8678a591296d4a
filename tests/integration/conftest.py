"""Integration test fixtures: API client over the in-memory test database."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_payroll.api.app import create_app
from workforce_payroll.api.dependencies import get_db_session
from workforce_payroll.config import Settings, get_settings
from workforce_payroll.models import Company
from workforce_payroll.services.authorization import Capability


@pytest_asyncio.fixture
async def client(session: AsyncSession, settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing, bound to the test session."""
    app = create_app()

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        yield session

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def headers(company: Company) -> dict[str, str]:
    """Tenant header plus every capability."""
    return {
        "X-Company-ID": str(company.company_id),
        "X-Capabilities": ",".join(c.value for c in Capability),
    }
