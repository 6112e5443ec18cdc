"""Effective-dated compensation ledger."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core.calculators.canonicalizer import parse_amount
from payroll_core.calculators.line_builder import LineItemBuilder
from payroll_core.calculators.types import ComponentType, PaySchedule
from payroll_core.config import OVERLAP_REJECT, Settings, get_settings
from payroll_core.exceptions import OverlapWarning, ValidationError
from payroll_core.models import CompensationRecord, Employee, PayComponent

logger = logging.getLogger(__name__)


@dataclass
class CompensationInput:
    """Validated-at-the-boundary shape of a compensation record write.

    ``components`` is a list of ``(component_code, annual_amount)`` pairs or
    mappings with those keys.
    """

    employee_id: UUID
    effective_from: date
    effective_to: date | None = None
    ctc_annual: Decimal | None = None
    pay_schedule: str = PaySchedule.MONTHLY.value
    currency: str = "INR"
    components: list[Any] = field(default_factory=list)
    notes: str | None = None
    source: str = "manual"
    compensation_id: UUID | None = None


@dataclass
class UpsertResult:
    record: CompensationRecord
    warnings: list[OverlapWarning] = field(default_factory=list)
    created: bool = True


@dataclass
class CoverageReport:
    employees_total: int
    employees_with_compensation: int
    missing: list[Employee] = field(default_factory=list)


def derive_ctc(components: Iterable[tuple[str, Decimal]]) -> Decimal:
    """CTC fallback: sum of the positive (earning) annual amounts."""
    return sum((amount for _, amount in components if amount > 0), Decimal("0"))


def _component_pairs(components: list[Any]) -> list[tuple[str, Decimal]]:
    pairs: list[tuple[str, Decimal]] = []
    for i, line in enumerate(components):
        if isinstance(line, dict):
            code = line.get("component_code") or line.get("code")
            raw_amount = line.get("annual_amount", line.get("amount"))
        elif isinstance(line, (tuple, list)) and len(line) == 2:
            code, raw_amount = line
        else:
            code = getattr(line, "code", None)
            raw_amount = getattr(line, "amount", None)

        if not isinstance(code, str) or not code.strip():
            raise ValidationError(
                f"Component line {i} has an empty code", field=f"components[{i}].component_code"
            )
        amount = parse_amount(raw_amount, field=f"components[{i}].annual_amount")
        pairs.append((code.strip(), amount))
    return pairs


class CompensationLedger:
    """Reads and writes effective-dated compensation records.

    Overlap between an employee's intervals is checked on every write. Under
    the default ``warn`` policy the write proceeds and the overlaps come back
    as warnings; under ``reject`` the first overlap is raised.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()

    async def upsert(
        self,
        org_id: UUID,
        data: CompensationInput,
        overlap_policy: str | None = None,
    ) -> UpsertResult:
        """Validate and insert or update a compensation record."""
        record, ctc, components, warnings = await self._prepare(org_id, data, overlap_policy)
        return await self._write(org_id, data, record, ctc, components, warnings)

    async def supersede(self, org_id: UUID, data: CompensationInput) -> UpsertResult:
        """Close the employee's open record the day before ``effective_from`` and insert.

        Open records starting on or after the new start date cannot be closed
        before it and are left alone; they surface as overlap warnings. Nothing
        is closed when the new record fails validation.
        """
        result = await self.session.execute(
            select(CompensationRecord).where(
                CompensationRecord.employee_id == data.employee_id,
                CompensationRecord.effective_to.is_(None),
                CompensationRecord.effective_from < data.effective_from,
            )
        )
        previous = list(result.scalars().all())
        record, ctc, components, warnings = await self._prepare(
            org_id, data, closing={r.compensation_id for r in previous}
        )

        for prior in previous:
            prior.effective_to = data.effective_from - timedelta(days=1)
        return await self._write(org_id, data, record, ctc, components, warnings)

    async def _prepare(
        self,
        org_id: UUID,
        data: CompensationInput,
        overlap_policy: str | None = None,
        closing: set[UUID] | None = None,
    ) -> tuple[CompensationRecord | None, Decimal, list[tuple[str, Decimal]], list[OverlapWarning]]:
        """Run every check for a write; raises before anything is touched."""
        policy = overlap_policy or self.settings.compensation_overlap_policy
        components = await self._validate(org_id, data)

        ctc = data.ctc_annual
        if ctc is None or ctc <= 0:
            ctc = derive_ctc(components)
        if ctc <= 0:
            raise ValidationError(
                "ctc_annual must be positive or derivable from earning components",
                field="ctc_annual",
            )

        overlaps = await self.find_overlaps(
            data.employee_id, data.effective_from, data.effective_to, exclude_id=data.compensation_id
        )
        # Records about to be closed before the new start no longer overlap.
        warnings = [
            OverlapWarning(data.employee_id, r.compensation_id, r.effective_from, r.effective_to)
            for r in overlaps
            if r.compensation_id not in (closing or set())
        ]
        if warnings and policy == OVERLAP_REJECT:
            raise warnings[0]

        record: CompensationRecord | None = None
        if data.compensation_id is not None:
            record = await self.session.get(CompensationRecord, data.compensation_id)
            if record is None or record.org_id != org_id or record.employee_id != data.employee_id:
                raise ValidationError(
                    f"Compensation record {data.compensation_id} not found for employee",
                    field="compensation_id",
                )
        return record, ctc, components, warnings

    async def _write(
        self,
        org_id: UUID,
        data: CompensationInput,
        record: CompensationRecord | None,
        ctc: Decimal,
        components: list[tuple[str, Decimal]],
        warnings: list[OverlapWarning],
    ) -> UpsertResult:
        created = record is None
        if record is None:
            record = CompensationRecord(org_id=org_id, employee_id=data.employee_id)
            self.session.add(record)

        record.effective_from = data.effective_from
        record.effective_to = data.effective_to
        record.ctc_annual = LineItemBuilder.round_money(ctc)
        record.pay_schedule = data.pay_schedule
        record.currency = data.currency
        record.components = [
            {"component_code": code, "annual_amount": str(amount)} for code, amount in components
        ]
        record.notes = data.notes
        record.source = data.source
        await self.session.flush()

        for warning in warnings:
            logger.warning("compensation overlap accepted: %s", warning.message)

        return UpsertResult(record=record, warnings=warnings, created=created)

    async def resolve_active(self, employee_id: UUID, as_of_date: date) -> CompensationRecord | None:
        """Record covering ``as_of_date``; the latest ``effective_from`` wins."""
        result = await self.session.execute(
            select(CompensationRecord)
            .where(
                CompensationRecord.employee_id == employee_id,
                CompensationRecord.effective_from <= as_of_date,
                (
                    CompensationRecord.effective_to.is_(None)
                    | (CompensationRecord.effective_to >= as_of_date)
                ),
            )
            .order_by(
                CompensationRecord.effective_from.desc(),
                CompensationRecord.created_at.desc(),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_overlaps(
        self,
        employee_id: UUID,
        start: date,
        end: date | None,
        exclude_id: UUID | None = None,
    ) -> list[CompensationRecord]:
        """Existing records intersecting [start, end], end None = open-ended."""
        query = select(CompensationRecord).where(
            CompensationRecord.employee_id == employee_id,
            (
                CompensationRecord.effective_to.is_(None)
                | (CompensationRecord.effective_to >= start)
            ),
        )
        if end is not None:
            query = query.where(CompensationRecord.effective_from <= end)
        if exclude_id is not None:
            query = query.where(CompensationRecord.compensation_id != exclude_id)

        result = await self.session.execute(query.order_by(CompensationRecord.effective_from))
        return list(result.scalars().all())

    async def list_for_employee(self, employee_id: UUID) -> list[CompensationRecord]:
        result = await self.session.execute(
            select(CompensationRecord)
            .where(CompensationRecord.employee_id == employee_id)
            .order_by(CompensationRecord.effective_from)
        )
        return list(result.scalars().all())

    async def coverage(self, org_id: UUID, period_start: date, period_end: date) -> CoverageReport:
        """Which active employees have compensation intersecting the period."""
        employees = (
            await self.session.execute(
                select(Employee)
                .where(Employee.org_id == org_id, Employee.active.is_(True))
                .order_by(Employee.name)
            )
        ).scalars().all()

        covered = set(
            (
                await self.session.execute(
                    select(CompensationRecord.employee_id).where(
                        CompensationRecord.org_id == org_id,
                        CompensationRecord.effective_from <= period_end,
                        (
                            CompensationRecord.effective_to.is_(None)
                            | (CompensationRecord.effective_to >= period_start)
                        ),
                    )
                )
            ).scalars().all()
        )

        return CoverageReport(
            employees_total=len(employees),
            employees_with_compensation=sum(1 for e in employees if e.employee_id in covered),
            missing=[e for e in employees if e.employee_id not in covered],
        )

    async def _validate(self, org_id: UUID, data: CompensationInput) -> list[tuple[str, Decimal]]:
        if data.effective_to is not None and data.effective_to < data.effective_from:
            raise ValidationError("effective_to precedes effective_from", field="effective_to")

        try:
            PaySchedule(data.pay_schedule)
        except ValueError:
            raise ValidationError(
                f"Unknown pay_schedule '{data.pay_schedule}'", field="pay_schedule"
            ) from None

        employee = await self.session.get(Employee, data.employee_id)
        if employee is None or employee.org_id != org_id:
            raise ValidationError(
                f"Employee {data.employee_id} not found in organization", field="employee_id"
            )

        components = _component_pairs(data.components)
        if not components:
            if data.ctc_annual is None or data.ctc_annual <= 0:
                raise ValidationError(
                    "ctc_annual must be positive when no components are given", field="ctc_annual"
                )
            return components

        catalog = await self._catalog_types(org_id)
        seen: set[str] = set()
        for code, amount in components:
            if code not in catalog:
                raise ValidationError(f"Unknown component code '{code}'", field="components")
            if code in seen:
                raise ValidationError(f"Duplicate component code '{code}'", field="components")
            seen.add(code)
            if LineItemBuilder.signed(catalog[code], amount) != amount:
                expected = "negative" if catalog[code] == ComponentType.DEDUCTION else "non-negative"
                raise ValidationError(
                    f"Component '{code}' is a {catalog[code]}; amount must be {expected}",
                    field="components",
                )
        return components

    async def _catalog_types(self, org_id: UUID) -> dict[str, str]:
        # Inactive entries still count: old structures keep their codes.
        result = await self.session.execute(
            select(PayComponent.code, PayComponent.type).where(PayComponent.org_id == org_id)
        )
        return {code: ctype for code, ctype in result.all()}
