"""Statutory filing endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from payroll_core.api.dependencies import ActorId, Filings, OrgId
from payroll_core.api.schemas import ErrorResponse, FilingRequest, FilingResponse

router = APIRouter(tags=["filings"])


@router.get(
    "/periods/{period_id}/filings",
    response_model=list[FilingResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_filings(
    coordinator: Filings,
    org_id: OrgId,
    period_id: Annotated[UUID, Path()],
) -> list[FilingResponse]:
    filings = await coordinator.list_filings(org_id, period_id)
    return [FilingResponse.model_validate(f) for f in filings]


@router.post(
    "/periods/{period_id}/filings",
    response_model=FilingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def generate_filing(
    coordinator: Filings,
    org_id: OrgId,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
    payload: FilingRequest,
) -> FilingResponse:
    """Generate (or regenerate) a filing; the period must be locked or later."""
    filing = await coordinator.generate(org_id, period_id, payload.filing_type, actor_id)
    return FilingResponse.model_validate(filing)


@router.post(
    "/filings/{filing_id}/filed",
    response_model=FilingResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def mark_filing_filed(
    coordinator: Filings,
    org_id: OrgId,
    filing_id: Annotated[UUID, Path()],
) -> FilingResponse:
    filing = await coordinator.mark_filed(org_id, filing_id)
    return FilingResponse.model_validate(filing)
