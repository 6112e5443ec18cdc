"""Payroll period and run endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, Path, Query, status

from payroll_core.api.dependencies import ActorId, Orchestrator, OrgId
from payroll_core.api.schemas import (
    BatchReportResponse,
    BulkActionRequest,
    ErrorResponse,
    PeriodEnsureRequest,
    PeriodResponse,
    PeriodTotalsResponse,
    RunListResponse,
    RunResponse,
)
from payroll_core.services.batch import BatchReport

router = APIRouter(prefix="/periods", tags=["periods"])

PeriodPath = Annotated[UUID, Path()]
EmployeePath = Annotated[UUID, Path()]
BulkBody = Annotated[BulkActionRequest | None, Body()]


def _report(report: BatchReport) -> BatchReportResponse:
    return BatchReportResponse.model_validate(report.to_dict())


# ============================================================================
# Period lifecycle
# ============================================================================


@router.post(
    "",
    response_model=PeriodResponse,
    status_code=status.HTTP_200_OK,
    responses={422: {"model": ErrorResponse}},
)
async def ensure_period(
    orchestrator: Orchestrator,
    org_id: OrgId,
    actor_id: ActorId,
    payload: PeriodEnsureRequest,
) -> PeriodResponse:
    """Return the period for the month, creating it in draft if needed."""
    period = await orchestrator.ensure_period(org_id, payload.month, payload.year, actor_id)
    return PeriodResponse.model_validate(period)


@router.get(
    "/{period_id}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(
    orchestrator: Orchestrator,
    org_id: OrgId,
    period_id: PeriodPath,
) -> PeriodResponse:
    period = await orchestrator.get_period(org_id, period_id)
    return PeriodResponse.model_validate(period)


@router.post(
    "/{period_id}/lock",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def lock_period(
    orchestrator: Orchestrator,
    org_id: OrgId,
    actor_id: ActorId,
    period_id: PeriodPath,
) -> PeriodResponse:
    """draft → locked."""
    period = await orchestrator.lock(org_id, period_id, actor_id)
    return PeriodResponse.model_validate(period)


@router.post(
    "/{period_id}/reopen",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reopen_period(
    orchestrator: Orchestrator,
    org_id: OrgId,
    actor_id: ActorId,
    period_id: PeriodPath,
) -> PeriodResponse:
    """locked → draft."""
    period = await orchestrator.reopen(org_id, period_id, actor_id)
    return PeriodResponse.model_validate(period)


@router.post(
    "/{period_id}/post",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def post_period(
    orchestrator: Orchestrator,
    org_id: OrgId,
    actor_id: ActorId,
    period_id: PeriodPath,
) -> PeriodResponse:
    """locked → posted; 409 lists the employees still blocking."""
    period = await orchestrator.post(org_id, period_id, actor_id)
    return PeriodResponse.model_validate(period)


@router.get(
    "/{period_id}/totals",
    response_model=PeriodTotalsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def period_totals(
    orchestrator: Orchestrator,
    org_id: OrgId,
    period_id: PeriodPath,
) -> PeriodTotalsResponse:
    totals = await orchestrator.totals(org_id, period_id)
    return PeriodTotalsResponse.model_validate(totals.to_dict())


# ============================================================================
# Runs
# ============================================================================


@router.get(
    "/{period_id}/runs",
    response_model=RunListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_runs(
    orchestrator: Orchestrator,
    org_id: OrgId,
    period_id: PeriodPath,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> RunListResponse:
    runs = await orchestrator.list_runs(org_id, period_id, status_filter)
    return RunListResponse(
        items=[RunResponse.model_validate(run) for run in runs],
        total=len(runs),
    )


@router.post("/{period_id}/runs/recalculate", response_model=BatchReportResponse)
async def recalculate_runs(
    orchestrator: Orchestrator,
    org_id: OrgId,
    actor_id: ActorId,
    period_id: PeriodPath,
    payload: BulkBody = None,
) -> BatchReportResponse:
    """Bulk calculate; per-employee failures are reported, not raised."""
    employee_ids = payload.employee_ids if payload else None
    report = await orchestrator.recalc_all(
        org_id, period_id, employee_ids, actor_user_id=actor_id
    )
    return _report(report)


@router.post("/{period_id}/runs/finalize", response_model=BatchReportResponse)
async def finalize_runs(
    orchestrator: Orchestrator,
    org_id: OrgId,
    actor_id: ActorId,
    period_id: PeriodPath,
    payload: BulkBody = None,
) -> BatchReportResponse:
    employee_ids = payload.employee_ids if payload else None
    report = await orchestrator.finalize_all(
        org_id, period_id, employee_ids, actor_user_id=actor_id
    )
    return _report(report)


@router.post("/{period_id}/runs/unfinalize", response_model=BatchReportResponse)
async def unfinalize_runs(
    orchestrator: Orchestrator,
    org_id: OrgId,
    actor_id: ActorId,
    period_id: PeriodPath,
    payload: BulkBody = None,
) -> BatchReportResponse:
    employee_ids = payload.employee_ids if payload else None
    report = await orchestrator.unfinalize_all(
        org_id, period_id, employee_ids, actor_user_id=actor_id
    )
    return _report(report)


@router.post(
    "/{period_id}/runs/{employee_id}/recalculate",
    response_model=RunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def recalculate_run(
    orchestrator: Orchestrator,
    org_id: OrgId,
    period_id: PeriodPath,
    employee_id: EmployeePath,
) -> RunResponse:
    run = await orchestrator.recalc_one(org_id, period_id, employee_id)
    return RunResponse.model_validate(run)


@router.post(
    "/{period_id}/runs/{employee_id}/finalize",
    response_model=RunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def finalize_run(
    orchestrator: Orchestrator,
    org_id: OrgId,
    period_id: PeriodPath,
    employee_id: EmployeePath,
) -> RunResponse:
    run = await orchestrator.finalize_one(org_id, period_id, employee_id)
    return RunResponse.model_validate(run)


@router.post(
    "/{period_id}/runs/{employee_id}/unfinalize",
    response_model=RunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def unfinalize_run(
    orchestrator: Orchestrator,
    org_id: OrgId,
    period_id: PeriodPath,
    employee_id: EmployeePath,
) -> RunResponse:
    run = await orchestrator.unfinalize_one(org_id, period_id, employee_id)
    return RunResponse.model_validate(run)
