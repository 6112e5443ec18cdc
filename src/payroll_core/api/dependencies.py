"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_core.config import Settings
from payroll_core.services.filing_service import FilingCoordinator
from payroll_core.services.period_service import PeriodOrchestrator


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    factory = request.app.state.session_factory
    if factory is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is not initialized",
        )
    return factory


async def get_db_session(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def _parse_uuid_header(value: str | None, header: str, required: bool) -> UUID | None:
    if not value:
        if required:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{header} header is required",
            )
        return None
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header} format",
        ) from None


async def get_org_id(x_org_id: Annotated[str | None, Header()] = None) -> UUID:
    """Extract the organization from the X-Org-ID header."""
    return _parse_uuid_header(x_org_id, "X-Org-ID", required=True)


async def get_actor_id(x_user_id: Annotated[str | None, Header()] = None) -> UUID | None:
    return _parse_uuid_header(x_user_id, "X-User-ID", required=False)


def get_orchestrator(
    request: Request,
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> PeriodOrchestrator:
    state = request.app.state
    return PeriodOrchestrator(
        factory,
        evaluator=state.evaluator,
        settings=state.settings,
        locks=state.period_locks,
    )


def get_filing_coordinator(
    request: Request,
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    orchestrator: Annotated[PeriodOrchestrator, Depends(get_orchestrator)],
) -> FilingCoordinator:
    return FilingCoordinator(factory, orchestrator, request.app.state.filing_generator)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
OrgId = Annotated[UUID, Depends(get_org_id)]
ActorId = Annotated[UUID | None, Depends(get_actor_id)]
AppSettings = Annotated[Settings, Depends(get_settings_dep)]
Orchestrator = Annotated[PeriodOrchestrator, Depends(get_orchestrator)]
Filings = Annotated[FilingCoordinator, Depends(get_filing_coordinator)]
