"""Compensation ledger and draft intake endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from payroll_core.api.dependencies import AppSettings, DbSession, OrgId
from payroll_core.api.schemas import (
    CompensationResponse,
    CompensationUpsertRequest,
    CompensationUpsertResponse,
    CoverageResponse,
    DraftRequest,
    DraftResponse,
    EmployeeSummary,
    ErrorResponse,
    ResolvedLineResponse,
    UnmappedLineResponse,
)
from payroll_core.models import Employee
from payroll_core.services.compensation_ledger import CompensationInput, CompensationLedger
from payroll_core.services.draft_intake import DraftIntake, DraftResult

router = APIRouter(prefix="/compensation", tags=["compensation"])


async def _require_employee(db: DbSession, org_id: UUID, employee_id: UUID) -> Employee:
    employee = await db.get(Employee, employee_id)
    if employee is None or employee.org_id != org_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Employee not found",
        )
    return employee


def _draft_response(result: DraftResult) -> DraftResponse:
    return DraftResponse(
        ctc_annual=result.ctc_annual,
        resolved=[ResolvedLineResponse(code=r.code, amount=r.amount) for r in result.resolved],
        unmapped=[
            UnmappedLineResponse(raw_code=u.raw_code, amount=u.amount) for u in result.unmapped
        ],
        warnings=[w.to_dict() for w in result.warnings],
        record=CompensationResponse.model_validate(result.record) if result.record else None,
    )


@router.post(
    "",
    response_model=CompensationUpsertResponse,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def upsert_compensation(
    db: DbSession,
    settings: AppSettings,
    org_id: OrgId,
    payload: CompensationUpsertRequest,
) -> CompensationUpsertResponse:
    """Create or update a record; overlaps come back as warnings unless rejected."""
    ledger = CompensationLedger(db, settings)
    data = CompensationInput(
        employee_id=payload.employee_id,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
        ctc_annual=payload.ctc_annual,
        pay_schedule=payload.pay_schedule,
        currency=payload.currency,
        components=[(c.component_code, c.annual_amount) for c in payload.components],
        notes=payload.notes,
        compensation_id=payload.compensation_id,
    )
    if payload.supersede:
        result = await ledger.supersede(org_id, data)
    else:
        result = await ledger.upsert(org_id, data)
    await db.commit()

    return CompensationUpsertResponse(
        record=CompensationResponse.model_validate(result.record),
        created=result.created,
        warnings=[w.to_dict() for w in result.warnings],
    )


@router.get(
    "/employees/{employee_id}",
    response_model=list[CompensationResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_employee_compensation(
    db: DbSession,
    settings: AppSettings,
    org_id: OrgId,
    employee_id: Annotated[UUID, Path()],
) -> list[CompensationResponse]:
    await _require_employee(db, org_id, employee_id)
    records = await CompensationLedger(db, settings).list_for_employee(employee_id)
    return [CompensationResponse.model_validate(r) for r in records]


@router.get(
    "/employees/{employee_id}/active",
    response_model=CompensationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def active_compensation(
    db: DbSession,
    settings: AppSettings,
    org_id: OrgId,
    employee_id: Annotated[UUID, Path()],
    as_of: Annotated[date, Query()],
) -> CompensationResponse:
    await _require_employee(db, org_id, employee_id)
    record = await CompensationLedger(db, settings).resolve_active(employee_id, as_of)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No active compensation on {as_of.isoformat()}",
        )
    return CompensationResponse.model_validate(record)


@router.get("/coverage", response_model=CoverageResponse)
async def compensation_coverage(
    db: DbSession,
    settings: AppSettings,
    org_id: OrgId,
    period_start: Annotated[date, Query()],
    period_end: Annotated[date, Query()],
) -> CoverageResponse:
    """Active employees with and without compensation in the date range."""
    report = await CompensationLedger(db, settings).coverage(org_id, period_start, period_end)
    return CoverageResponse(
        employees_total=report.employees_total,
        employees_with_compensation=report.employees_with_compensation,
        missing=[EmployeeSummary.model_validate(e) for e in report.missing],
    )


@router.post(
    "/drafts/preview",
    response_model=DraftResponse,
    responses={422: {"model": ErrorResponse}},
)
async def preview_draft(
    db: DbSession,
    settings: AppSettings,
    org_id: OrgId,
    payload: DraftRequest,
) -> DraftResponse:
    await _require_employee(db, org_id, payload.employee_id)
    result = await DraftIntake(db, settings).preview_draft(
        org_id,
        payload.employee_id,
        payload.effective_from,
        payload.document,
        payload.effective_to,
    )
    return _draft_response(result)


@router.post(
    "/drafts",
    response_model=DraftResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def accept_draft(
    db: DbSession,
    settings: AppSettings,
    org_id: OrgId,
    payload: DraftRequest,
) -> DraftResponse:
    """Persist an assistant draft; unmapped lines are reported, not saved."""
    result = await DraftIntake(db, settings).accept_draft(
        org_id,
        payload.employee_id,
        payload.effective_from,
        payload.document,
        payload.effective_to,
        payload.supersede,
        payload.allow_unmapped,
    )
    await db.commit()
    return _draft_response(result)
