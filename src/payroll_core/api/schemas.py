"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None


# ============================================================================
# Period schemas
# ============================================================================


class PeriodEnsureRequest(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1)


class PeriodResponse(BaseModel):
    """Schema for payroll period response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_period_id: UUID
    org_id: UUID
    month: int
    year: int
    status: str
    lock_at: datetime | None = None
    posted_at: datetime | None = None
    version: int


class SnapshotLineResponse(BaseModel):
    code: str
    name: str
    type: str
    amount: Decimal


class RunResponse(BaseModel):
    """Schema for a per-employee payroll run."""

    model_config = ConfigDict(from_attributes=True)

    payroll_run_id: UUID
    payroll_period_id: UUID
    employee_id: UUID
    compensation_id: UUID | None = None
    status: str
    snapshot: list[SnapshotLineResponse]
    gross_earnings: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    employer_cost: Decimal
    pf_wages: Decimal
    esic_wages: Decimal
    pt_amount: Decimal
    tds_amount: Decimal
    attendance_summary: dict[str, Any]
    warnings: list[str]
    calculated_at: datetime | None = None
    finalized_at: datetime | None = None


class RunListResponse(BaseModel):
    items: list[RunResponse]
    total: int


class BulkActionRequest(BaseModel):
    """Optional employee filter; omitted means every employee of the period."""

    employee_ids: list[UUID] | None = None


class BatchErrorResponse(BaseModel):
    employee_id: UUID
    message: str
    code: str


class BatchReportResponse(BaseModel):
    """Aggregate outcome of a bulk action."""

    action: str
    succeeded: int
    failed: int
    skipped: int
    cancelled: bool
    errors: list[BatchErrorResponse]


class PeriodTotalsResponse(BaseModel):
    payroll_period_id: UUID
    status: str
    run_count: int
    runs_by_status: dict[str, int]
    gross_earnings: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    employer_cost: Decimal
    pf_wages: Decimal
    esic_wages: Decimal
    pt_amount: Decimal
    tds_amount: Decimal


# ============================================================================
# Filing schemas
# ============================================================================


class FilingRequest(BaseModel):
    filing_type: str


class FilingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    filing_id: UUID
    payroll_period_id: UUID
    filing_type: str
    status: str
    payload: dict[str, Any]
    generated_at: datetime | None = None
    filed_at: datetime | None = None


# ============================================================================
# Compensation schemas
# ============================================================================


class CompensationLine(BaseModel):
    component_code: str = Field(min_length=1)
    annual_amount: Decimal


class CompensationUpsertRequest(BaseModel):
    """Schema for creating or updating a compensation record."""

    employee_id: UUID
    effective_from: date
    effective_to: date | None = None
    ctc_annual: Decimal | None = None
    pay_schedule: str = "monthly"
    currency: str = "INR"
    components: list[CompensationLine] = Field(default_factory=list)
    notes: str | None = None
    compensation_id: UUID | None = None
    # Close the employee's open record the day before effective_from.
    supersede: bool = False


class CompensationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    compensation_id: UUID
    org_id: UUID
    employee_id: UUID
    effective_from: date
    effective_to: date | None = None
    ctc_annual: Decimal
    pay_schedule: str
    currency: str
    components: list[CompensationLine]
    notes: str | None = None
    source: str


class CompensationUpsertResponse(BaseModel):
    record: CompensationResponse
    created: bool
    warnings: list[ErrorResponse]


class EmployeeSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    name: str


class CoverageResponse(BaseModel):
    employees_total: int
    employees_with_compensation: int
    missing: list[EmployeeSummary]


class DraftRequest(BaseModel):
    """An assistant-drafted structure to validate against the catalog."""

    employee_id: UUID
    effective_from: date
    effective_to: date | None = None
    document: dict[str, Any]
    supersede: bool = False
    # False refuses drafts with lines that match no catalog component.
    allow_unmapped: bool = True


class ResolvedLineResponse(BaseModel):
    code: str
    amount: Decimal


class UnmappedLineResponse(BaseModel):
    raw_code: str
    amount: Decimal


class DraftResponse(BaseModel):
    ctc_annual: Decimal
    resolved: list[ResolvedLineResponse]
    unmapped: list[UnmappedLineResponse]
    warnings: list[ErrorResponse]
    record: CompensationResponse | None = None


# ============================================================================
# Catalog schemas
# ============================================================================


class ComponentCreate(BaseModel):
    code: str = Field(min_length=1)
    name: str = Field(min_length=1)
    type: str
    calc_method: str = "fixed_amount"
    calc_value: Decimal = Decimal("0")
    calc_base_code: str | None = None
    taxable: bool = True
    pf_wage_participates: bool = False
    esic_wage_participates: bool = False
    prorate: bool = True
    sort_order: int = 0
    active: bool = True


class ComponentUpdate(BaseModel):
    """Partial update; only fields that are sent are changed."""

    code: str | None = Field(default=None, min_length=1)
    name: str | None = None
    type: str | None = None
    calc_method: str | None = None
    calc_value: Decimal | None = None
    calc_base_code: str | None = None
    taxable: bool | None = None
    pf_wage_participates: bool | None = None
    esic_wage_participates: bool | None = None
    prorate: bool | None = None
    sort_order: int | None = None
    active: bool | None = None


class ComponentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    component_id: UUID
    org_id: UUID
    code: str
    name: str
    type: str
    calc_method: str
    calc_value: Decimal
    calc_base_code: str | None = None
    taxable: bool
    pf_wage_participates: bool
    esic_wage_participates: bool
    prorate: bool
    sort_order: int
    active: bool


class ComponentRemoveResponse(BaseModel):
    code: str
    deleted: bool


class StructureRequest(BaseModel):
    ctc_annual: Decimal = Field(gt=0)


class StructureResponse(BaseModel):
    lines: list[ResolvedLineResponse]
    needs_amount: list[str]
