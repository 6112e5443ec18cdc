"""Pay component catalog administration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core.calculators.structure import StructureResult, build_structure
from payroll_core.calculators.types import CalcMethod, ComponentType
from payroll_core.exceptions import ComponentNotFound, ValidationError
from payroll_core.models import CompensationRecord, PayComponent, PayrollPeriod, PayrollRun

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "code",
        "name",
        "type",
        "calc_method",
        "calc_value",
        "calc_base_code",
        "taxable",
        "pf_wage_participates",
        "esic_wage_participates",
        "prorate",
        "sort_order",
        "active",
    }
)

# Changing these would reinterpret amounts already recorded under the code.
REFERENCE_LOCKED_FIELDS = frozenset({"code", "type"})


@dataclass
class ComponentInput:
    code: str
    name: str
    type: str
    calc_method: str = CalcMethod.FIXED_AMOUNT.value
    calc_value: Decimal = Decimal("0")
    calc_base_code: str | None = None
    taxable: bool = True
    pf_wage_participates: bool = False
    esic_wage_participates: bool = False
    prorate: bool = True
    sort_order: int = 0
    active: bool = True


def _check_enum_fields(values: dict[str, Any]) -> None:
    if "type" in values:
        try:
            ComponentType(values["type"])
        except ValueError:
            raise ValidationError(f"Unknown component type '{values['type']}'", field="type") from None
    if "calc_method" in values:
        try:
            CalcMethod(values["calc_method"])
        except ValueError:
            raise ValidationError(
                f"Unknown calc_method '{values['calc_method']}'", field="calc_method"
            ) from None
    if "code" in values and (not isinstance(values["code"], str) or not values["code"].strip()):
        raise ValidationError("code must be a non-empty string", field="code")


class CatalogService:
    """CRUD over an org's pay components.

    Codes are unique per org and frozen once any compensation record or run
    snapshot refers to them; removing a referenced component deactivates it.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, org_id: UUID, code: str) -> PayComponent:
        result = await self.session.execute(
            select(PayComponent).where(PayComponent.org_id == org_id, PayComponent.code == code)
        )
        component = result.scalar_one_or_none()
        if component is None:
            raise ComponentNotFound(org_id, code)
        return component

    async def list_components(self, org_id: UUID, include_inactive: bool = False) -> list[PayComponent]:
        query = select(PayComponent).where(PayComponent.org_id == org_id)
        if not include_inactive:
            query = query.where(PayComponent.active.is_(True))
        result = await self.session.execute(
            query.order_by(PayComponent.sort_order, PayComponent.code)
        )
        return list(result.scalars().all())

    async def create(self, org_id: UUID, data: ComponentInput) -> PayComponent:
        values = {k: getattr(data, k) for k in UPDATABLE_FIELDS}
        values["code"] = data.code.strip() if isinstance(data.code, str) else data.code
        _check_enum_fields(values)

        component = PayComponent(org_id=org_id, **values)
        self.session.add(component)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise ValidationError(
                f"Component code '{values['code']}' already exists", field="code"
            ) from None

        logger.info("pay component created org_id=%s code=%s", org_id, component.code)
        return component

    async def update(self, org_id: UUID, code: str, changes: dict[str, Any]) -> PayComponent:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown component field(s): {', '.join(sorted(unknown))}", field=sorted(unknown)[0]
            )
        _check_enum_fields(changes)

        component = await self.get(org_id, code)
        locked_changes = {
            k for k in REFERENCE_LOCKED_FIELDS & set(changes)
            if changes[k] != getattr(component, k)
        }
        if locked_changes and await self.is_referenced(org_id, code):
            raise ValidationError(
                f"Component '{code}' is referenced by compensation or runs; "
                f"{', '.join(sorted(locked_changes))} cannot change",
                field=sorted(locked_changes)[0],
            )

        for key, value in changes.items():
            setattr(component, key, value)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise ValidationError(
                f"Component code '{changes.get('code')}' already exists", field="code"
            ) from None
        return component

    async def deactivate(self, org_id: UUID, code: str) -> PayComponent:
        component = await self.get(org_id, code)
        component.active = False
        await self.session.flush()
        return component

    async def remove(self, org_id: UUID, code: str) -> bool:
        """Delete the component, or deactivate it when referenced.

        Returns True when the row was deleted.
        """
        component = await self.get(org_id, code)
        if await self.is_referenced(org_id, code):
            component.active = False
            await self.session.flush()
            logger.info("pay component referenced, deactivated org_id=%s code=%s", org_id, code)
            return False

        await self.session.delete(component)
        await self.session.flush()
        logger.info("pay component deleted org_id=%s code=%s", org_id, code)
        return True

    async def is_referenced(self, org_id: UUID, code: str) -> bool:
        records = await self.session.execute(
            select(CompensationRecord.components).where(CompensationRecord.org_id == org_id)
        )
        for components in records.scalars():
            if any(line.get("component_code") == code for line in components or []):
                return True

        snapshots = await self.session.execute(
            select(PayrollRun.snapshot)
            .join(PayrollPeriod, PayrollPeriod.payroll_period_id == PayrollRun.payroll_period_id)
            .where(PayrollPeriod.org_id == org_id)
        )
        for snapshot in snapshots.scalars():
            if any(line.get("code") == code for line in snapshot or []):
                return True
        return False

    async def build_structure(self, org_id: UUID, ctc_annual: Decimal) -> StructureResult:
        """Suggest annual component lines for a CTC from the active catalog."""
        catalog = await self.list_components(org_id)
        return build_structure(ctc_annual, catalog)
