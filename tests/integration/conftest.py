"""Integration fixtures: orchestrator, filing coordinator and HTTP client."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from payroll_core.api.app import create_app
from payroll_core.services.filing_service import FilingCoordinator
from payroll_core.services.period_service import PeriodOrchestrator


@pytest.fixture
def orchestrator(session_factory, settings) -> PeriodOrchestrator:
    return PeriodOrchestrator(session_factory, settings=settings)


@pytest.fixture
def filings(session_factory, orchestrator) -> FilingCoordinator:
    return FilingCoordinator(session_factory, orchestrator)


@pytest.fixture
def app(settings, session_factory):
    """App wired to the test database; the lifespan never runs under ASGITransport."""
    return create_app(settings=settings, session_factory=session_factory)


@pytest.fixture
async def client(app, org_id) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client scoped to the test organization."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Org-ID": str(org_id)},
    ) as client:
        yield client
