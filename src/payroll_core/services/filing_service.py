"""Statutory filing coordination.

Document generation itself is external: a ``FilingGenerator`` receives the
period id, the filing type and the period totals and returns an opaque
handle. This module only tracks the filing record's lifecycle.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_core.exceptions import (
    FilingError,
    FilingNotFound,
    InvalidTransitionError,
    PeriodNotEditable,
    ValidationError,
)
from payroll_core.models import PayrollPeriod, StatutoryFiling
from payroll_core.models.base import utcnow
from payroll_core.services.period_service import PeriodOrchestrator, PeriodTotals
from payroll_core.services.state_machine import PeriodStateMachine, PeriodStatus

logger = logging.getLogger(__name__)


class FilingType(str, Enum):
    PF = "pf"
    ESIC = "esic"
    PT = "pt"
    TDS = "tds"
    CHALLAN = "challan"


class FilingStatus(str, Enum):
    DRAFT = "draft"
    GENERATED = "generated"
    FILED = "filed"


@runtime_checkable
class FilingGenerator(Protocol):
    """Produces a statutory document and returns a handle to it."""

    async def generate(
        self,
        payroll_period_id: UUID,
        filing_type: str,
        totals: PeriodTotals,
    ) -> Any:
        ...


class TotalsFilingGenerator:
    """Default generator: the handle is the period's aggregated bases."""

    async def generate(
        self,
        payroll_period_id: UUID,
        filing_type: str,
        totals: PeriodTotals,
    ) -> dict[str, Any]:
        return {
            "document": f"{filing_type}-{payroll_period_id}",
            "pf_wages": str(totals.pf_wages),
            "esic_wages": str(totals.esic_wages),
            "pt_amount": str(totals.pt_amount),
            "tds_amount": str(totals.tds_amount),
        }


class FilingCoordinator:
    """Tracks statutory filings: draft → generated → filed.

    Filings may be generated once the period is locked. Generating the
    challan of a posted period advances the period to challan_generated.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        orchestrator: PeriodOrchestrator,
        generator: FilingGenerator | None = None,
    ):
        self.session_factory = session_factory
        self.orchestrator = orchestrator
        self.generator = generator or TotalsFilingGenerator()

    async def generate(
        self,
        org_id: UUID,
        payroll_period_id: UUID,
        filing_type: str,
        actor_user_id: UUID | None = None,
    ) -> StatutoryFiling:
        try:
            ftype = FilingType(filing_type)
        except ValueError:
            raise ValidationError(
                f"Unknown filing_type '{filing_type}'", field="filing_type"
            ) from None

        period = await self.orchestrator.get_period(org_id, payroll_period_id)
        if not PeriodStateMachine.can_generate_filings(period.status):
            raise PeriodNotEditable(payroll_period_id, period.status, "generate filings")

        # Stable once posted; before that the filing reflects the current runs.
        totals = await self.orchestrator.totals(org_id, payroll_period_id)

        async with self.session_factory() as session:
            filing = await self._find(session, payroll_period_id, ftype.value)
            if filing is not None and filing.status == FilingStatus.FILED.value:
                raise FilingError(
                    f"{ftype.value} filing for period {payroll_period_id} is already filed",
                    filing_id=filing.filing_id,
                )
            if filing is None:
                filing = StatutoryFiling(
                    payroll_period_id=payroll_period_id,
                    filing_type=ftype.value,
                    status=FilingStatus.DRAFT.value,
                )
                session.add(filing)
                await session.commit()

            try:
                handle = await self.generator.generate(payroll_period_id, ftype.value, totals)
            except Exception as e:
                logger.warning(
                    "filing generation failed period_id=%s filing_type=%s error=%s",
                    payroll_period_id, ftype.value, e,
                )
                raise FilingError(
                    f"Generating {ftype.value} filing failed: {e}",
                    payroll_period_id=payroll_period_id,
                    filing_type=ftype.value,
                ) from e

            filing.status = FilingStatus.GENERATED.value
            filing.payload = {"handle": handle, "totals": totals.to_dict()}
            filing.generated_at = utcnow()
            await session.commit()
            await session.refresh(filing)

        logger.info(
            "filing generated period_id=%s filing_type=%s filing_id=%s",
            payroll_period_id, ftype.value, filing.filing_id,
        )

        if ftype == FilingType.CHALLAN and period.status == PeriodStatus.POSTED.value:
            await self.orchestrator.mark_challan_generated(
                org_id, payroll_period_id, actor_user_id
            )
        return filing

    async def mark_filed(self, org_id: UUID, filing_id: UUID) -> StatutoryFiling:
        """generated → filed. Terminal."""
        async with self.session_factory() as session:
            filing = await self._load(session, org_id, filing_id)
            if filing.status != FilingStatus.GENERATED.value:
                raise InvalidTransitionError(
                    filing.status,
                    FilingStatus.FILED.value,
                    "only a generated filing can be marked filed",
                )
            filing.status = FilingStatus.FILED.value
            filing.filed_at = utcnow()
            await session.commit()
            await session.refresh(filing)
            return filing

    async def list_filings(self, org_id: UUID, payroll_period_id: UUID) -> list[StatutoryFiling]:
        await self.orchestrator.get_period(org_id, payroll_period_id)
        async with self.session_factory() as session:
            result = await session.execute(
                select(StatutoryFiling)
                .where(StatutoryFiling.payroll_period_id == payroll_period_id)
                .order_by(StatutoryFiling.filing_type)
            )
            return list(result.scalars().all())

    async def _find(
        self, session: AsyncSession, payroll_period_id: UUID, filing_type: str
    ) -> StatutoryFiling | None:
        result = await session.execute(
            select(StatutoryFiling).where(
                StatutoryFiling.payroll_period_id == payroll_period_id,
                StatutoryFiling.filing_type == filing_type,
            )
        )
        return result.scalar_one_or_none()

    async def _load(self, session: AsyncSession, org_id: UUID, filing_id: UUID) -> StatutoryFiling:
        result = await session.execute(
            select(StatutoryFiling)
            .join(PayrollPeriod, PayrollPeriod.payroll_period_id == StatutoryFiling.payroll_period_id)
            .where(StatutoryFiling.filing_id == filing_id, PayrollPeriod.org_id == org_id)
        )
        filing = result.scalar_one_or_none()
        if filing is None:
            raise FilingNotFound(filing_id)
        return filing
