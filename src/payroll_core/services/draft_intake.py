"""Intake of AI-drafted compensation structures.

Draft documents are untrusted: they are validated into ``CompensationDraft``,
canonicalized against the org catalog and then written through the ledger
exactly like manual input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core.calculators.canonicalizer import Canonicalizer
from payroll_core.calculators.line_builder import LineItemBuilder
from payroll_core.calculators.types import PaySchedule, ResolvedLine, UnmappedLine
from payroll_core.config import Settings
from payroll_core.exceptions import OverlapWarning, UnmappedComponent, ValidationError
from payroll_core.models import CompensationRecord, PayComponent
from payroll_core.services.compensation_ledger import (
    CompensationInput,
    CompensationLedger,
    derive_ctc,
)

logger = logging.getLogger(__name__)

DRAFT_SOURCE = "ai_draft"


class DraftComponent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    component_code: str = Field(
        min_length=1, validation_alias=AliasChoices("component_code", "code")
    )
    amount: Decimal = Field(validation_alias=AliasChoices("amount", "annual_amount"))


class CompensationDraft(BaseModel):
    """Shape of a draft proposed by the assistant."""

    ctc_annual: Decimal | None = None
    pay_schedule: PaySchedule = PaySchedule.MONTHLY
    currency: str = "INR"
    components: list[DraftComponent] = Field(default_factory=list)
    notes: str | None = None


@dataclass
class DraftResult:
    resolved: list[ResolvedLine]
    unmapped: list[UnmappedLine]
    ctc_annual: Decimal
    record: CompensationRecord | None = None
    warnings: list[OverlapWarning] = field(default_factory=list)


def parse_draft(document: Any) -> CompensationDraft:
    """Validate an oracle document, mapping pydantic errors to ValidationError."""
    try:
        return CompensationDraft.model_validate(document)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(part) for part in first["loc"])
        raise ValidationError(f"Invalid draft: {loc}: {first['msg']}", field=loc or None) from None


class DraftIntake:
    """Turns a draft document into a compensation record."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.ledger = CompensationLedger(session, settings)

    async def preview_draft(
        self,
        org_id: UUID,
        employee_id: UUID,
        effective_from: date,
        document: Any,
        effective_to: date | None = None,
    ) -> DraftResult:
        """Canonicalize and check a draft without persisting anything."""
        draft = parse_draft(document)
        result = await self._canonicalize(org_id, draft)
        overlaps = await self.ledger.find_overlaps(employee_id, effective_from, effective_to)
        result.warnings = [
            OverlapWarning(employee_id, r.compensation_id, r.effective_from, r.effective_to)
            for r in overlaps
        ]
        return result

    async def accept_draft(
        self,
        org_id: UUID,
        employee_id: UUID,
        effective_from: date,
        document: Any,
        effective_to: date | None = None,
        supersede: bool = False,
        allow_unmapped: bool = True,
    ) -> DraftResult:
        """Persist a draft through the ledger.

        Unmapped lines are left out and reported, or refused with
        UnmappedComponent when ``allow_unmapped`` is False.
        """
        draft = parse_draft(document)
        result = await self._canonicalize(org_id, draft)
        if result.unmapped and not allow_unmapped:
            raise UnmappedComponent([u.raw_code for u in result.unmapped])

        data = CompensationInput(
            employee_id=employee_id,
            effective_from=effective_from,
            effective_to=effective_to,
            ctc_annual=draft.ctc_annual,
            pay_schedule=draft.pay_schedule.value,
            currency=draft.currency,
            components=[(line.code, line.amount) for line in result.resolved],
            notes=draft.notes,
            source=DRAFT_SOURCE,
        )
        if supersede:
            saved = await self.ledger.supersede(org_id, data)
        else:
            saved = await self.ledger.upsert(org_id, data)

        result.record = saved.record
        result.ctc_annual = saved.record.ctc_annual
        result.warnings = saved.warnings
        if result.unmapped:
            logger.warning(
                "draft accepted with unmapped components employee_id=%s codes=%s",
                employee_id, [u.raw_code for u in result.unmapped],
            )
        return result

    async def _canonicalize(self, org_id: UUID, draft: CompensationDraft) -> DraftResult:
        catalog = (
            await self.session.execute(select(PayComponent).where(PayComponent.org_id == org_id))
        ).scalars().all()
        canonical = Canonicalizer(catalog).canonicalize(
            {"code": c.component_code, "amount": c.amount} for c in draft.components
        )
        if draft.components and not canonical.resolved:
            raise ValidationError(
                "No draft component matched the catalog", field="components"
            )

        ctc = draft.ctc_annual
        if ctc is None or ctc <= 0:
            ctc = derive_ctc((line.code, line.amount) for line in canonical.resolved)
        return DraftResult(
            resolved=canonical.resolved,
            unmapped=canonical.unmapped,
            ctc_annual=LineItemBuilder.round_money(ctc),
        )
