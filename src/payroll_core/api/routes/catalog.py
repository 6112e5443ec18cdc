"""Pay component catalog endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from payroll_core.api.dependencies import DbSession, OrgId
from payroll_core.api.schemas import (
    ComponentCreate,
    ComponentRemoveResponse,
    ComponentResponse,
    ComponentUpdate,
    ErrorResponse,
    ResolvedLineResponse,
    StructureRequest,
    StructureResponse,
)
from payroll_core.services.catalog_service import CatalogService, ComponentInput

router = APIRouter(prefix="/catalog", tags=["catalog"])

CodePath = Annotated[str, Path(min_length=1)]


@router.get("/components", response_model=list[ComponentResponse])
async def list_components(
    db: DbSession,
    org_id: OrgId,
    include_inactive: Annotated[bool, Query()] = False,
) -> list[ComponentResponse]:
    components = await CatalogService(db).list_components(org_id, include_inactive)
    return [ComponentResponse.model_validate(c) for c in components]


@router.post(
    "/components",
    response_model=ComponentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_component(
    db: DbSession,
    org_id: OrgId,
    payload: ComponentCreate,
) -> ComponentResponse:
    component = await CatalogService(db).create(org_id, ComponentInput(**payload.model_dump()))
    await db.commit()
    return ComponentResponse.model_validate(component)


@router.get(
    "/components/{code}",
    response_model=ComponentResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_component(db: DbSession, org_id: OrgId, code: CodePath) -> ComponentResponse:
    component = await CatalogService(db).get(org_id, code)
    return ComponentResponse.model_validate(component)


@router.patch(
    "/components/{code}",
    response_model=ComponentResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_component(
    db: DbSession,
    org_id: OrgId,
    code: CodePath,
    payload: ComponentUpdate,
) -> ComponentResponse:
    """Partial update. Code and type are frozen once the component is referenced."""
    component = await CatalogService(db).update(org_id, code, payload.model_dump(exclude_unset=True))
    await db.commit()
    return ComponentResponse.model_validate(component)


@router.post(
    "/components/{code}/deactivate",
    response_model=ComponentResponse,
    responses={404: {"model": ErrorResponse}},
)
async def deactivate_component(db: DbSession, org_id: OrgId, code: CodePath) -> ComponentResponse:
    component = await CatalogService(db).deactivate(org_id, code)
    await db.commit()
    return ComponentResponse.model_validate(component)


@router.delete(
    "/components/{code}",
    response_model=ComponentRemoveResponse,
    responses={404: {"model": ErrorResponse}},
)
async def remove_component(db: DbSession, org_id: OrgId, code: CodePath) -> ComponentRemoveResponse:
    """Delete, or deactivate when compensation or runs still reference the code."""
    deleted = await CatalogService(db).remove(org_id, code)
    await db.commit()
    return ComponentRemoveResponse(code=code, deleted=deleted)


@router.post("/structure", response_model=StructureResponse)
async def build_structure(
    db: DbSession,
    org_id: OrgId,
    payload: StructureRequest,
) -> StructureResponse:
    """Suggest annual component amounts for a CTC from the active catalog."""
    result = await CatalogService(db).build_structure(org_id, payload.ctc_annual)
    return StructureResponse(
        lines=[ResolvedLineResponse(code=line.code, amount=line.amount) for line in result.lines],
        needs_amount=result.needs_amount,
    )
