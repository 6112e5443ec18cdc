"""Period orchestrator - period lifecycle and bulk run actions."""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from payroll_core.calculators.statutory import WAGE_BASE_KEYS, StatutoryEvaluator
from payroll_core.calculators.types import StatutoryProfile
from payroll_core.config import Settings, get_settings
from payroll_core.exceptions import (
    ConcurrentModification,
    PeriodNotEditable,
    PeriodNotFound,
    PeriodTransitionBlocked,
    ValidationError,
)
from payroll_core.models import (
    AuditEvent,
    CompensationRecord,
    Employee,
    PayComponent,
    PayrollPeriod,
    PayrollRun,
)
from payroll_core.models.base import utcnow
from payroll_core.services.batch import (
    BatchCancellation,
    BatchReport,
    UnitOutcome,
    run_bounded,
)
from payroll_core.services.run_engine import (
    RunEngine,
    load_statutory_profile,
    period_window,
)
from payroll_core.services.state_machine import (
    PeriodStateMachine,
    PeriodStatus,
    RunStatus,
)

logger = logging.getLogger(__name__)

MONEY_TOTAL_KEYS = ("gross_earnings", "total_deductions", "net_pay", "employer_cost")


class PeriodLocks:
    """Per-period mutexes.

    Status transitions and bulk actions on the same period run one at a time,
    so a post can never interleave with a finalize_all still writing runs.
    Only valid within one process. Across processes, transitions and bulk
    actions both bump the period's version column, and a bulk action that
    finds the version moved under it raises ConcurrentModification.

    Locks are held weakly and disappear once no caller holds or waits on them.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def __len__(self) -> int:
        return len(self._locks)

    def for_period(self, payroll_period_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(payroll_period_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[payroll_period_id] = lock
        return lock


@dataclass
class PeriodTotals:
    """Aggregates across every run of a period."""

    payroll_period_id: UUID
    status: str
    run_count: int = 0
    runs_by_status: dict[str, int] = field(default_factory=dict)
    gross_earnings: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    net_pay: Decimal = Decimal("0")
    employer_cost: Decimal = Decimal("0")
    pf_wages: Decimal = Decimal("0")
    esic_wages: Decimal = Decimal("0")
    pt_amount: Decimal = Decimal("0")
    tds_amount: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "payroll_period_id": str(self.payroll_period_id),
            "status": self.status,
            "run_count": self.run_count,
            "runs_by_status": dict(self.runs_by_status),
        }
        for key in MONEY_TOTAL_KEYS + WAGE_BASE_KEYS:
            data[key] = str(getattr(self, key))
        return data


class PeriodOrchestrator:
    """Owns the payroll period state machine and batch operations.

    Every per-employee unit of a bulk action runs in its own session and
    commits on its own, so a failed employee leaves no run row behind and
    a cancelled batch keeps whatever already completed.

    Operations:
    - ensure_period: idempotent bootstrap in draft
    - lock / reopen / post / mark_challan_generated: period transitions
    - recalc_all / finalize_all / unfinalize_all: bulk run actions
    - recalc_one / finalize_one / unfinalize_one: single-employee variants
    - totals / list_runs: read side
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        evaluator: StatutoryEvaluator | None = None,
        settings: Settings | None = None,
        locks: PeriodLocks | None = None,
    ):
        self.session_factory = session_factory
        self.evaluator = evaluator
        self.settings = settings or get_settings()
        self.locks = locks or PeriodLocks()

    # ------------------------------------------------------------------
    # Period bootstrap and reads
    # ------------------------------------------------------------------

    async def ensure_period(
        self,
        org_id: UUID,
        month: int,
        year: int,
        actor_user_id: UUID | None = None,
    ) -> PayrollPeriod:
        """Return the period for (org, month, year), creating it in draft."""
        if not 1 <= month <= 12:
            raise ValidationError(f"month must be 1-12, got {month}", field="month")
        if year < 1:
            raise ValidationError(f"year must be positive, got {year}", field="year")

        async with self.session_factory() as session:
            existing = await self._find_period(session, org_id, month, year)
            if existing is not None:
                return existing

            period = PayrollPeriod(
                org_id=org_id, month=month, year=year, status=PeriodStatus.DRAFT.value
            )
            session.add(period)
            try:
                await session.flush()
                self._audit(session, period, "created", actor_user_id, {"month": month, "year": year})
                await session.commit()
            except IntegrityError:
                # Lost a creation race; the winner's row is the period.
                await session.rollback()
                existing = await self._find_period(session, org_id, month, year)
                if existing is None:
                    raise
                return existing

            logger.info(
                "payroll period created org_id=%s period_id=%s month=%d year=%d",
                org_id, period.payroll_period_id, month, year,
            )
            return period

    async def get_period(self, org_id: UUID, payroll_period_id: UUID) -> PayrollPeriod:
        async with self.session_factory() as session:
            return await self._load_period(session, org_id, payroll_period_id)

    async def list_runs(
        self,
        org_id: UUID,
        payroll_period_id: UUID,
        status: str | None = None,
    ) -> list[PayrollRun]:
        async with self.session_factory() as session:
            await self._load_period(session, org_id, payroll_period_id)
            query = select(PayrollRun).where(PayrollRun.payroll_period_id == payroll_period_id)
            if status is not None:
                query = query.where(PayrollRun.status == status)
            result = await session.execute(query.order_by(PayrollRun.employee_id))
            return list(result.scalars().all())

    async def totals(self, org_id: UUID, payroll_period_id: UUID) -> PeriodTotals:
        """Sum money and wage-base columns over all runs of the period."""
        async with self.session_factory() as session:
            period = await self._load_period(session, org_id, payroll_period_id)
            runs = (
                await session.execute(
                    select(PayrollRun).where(PayrollRun.payroll_period_id == payroll_period_id)
                )
            ).scalars().all()

        totals = PeriodTotals(payroll_period_id=payroll_period_id, status=period.status)
        totals.run_count = len(runs)
        totals.runs_by_status = dict(Counter(run.status for run in runs))
        for key in MONEY_TOTAL_KEYS + WAGE_BASE_KEYS:
            setattr(totals, key, sum((getattr(run, key) for run in runs), Decimal("0")))
        return totals

    # ------------------------------------------------------------------
    # Period transitions
    # ------------------------------------------------------------------

    async def lock(
        self, org_id: UUID, payroll_period_id: UUID, actor_user_id: UUID | None = None
    ) -> PayrollPeriod:
        """draft → locked. No run-count precondition."""

        async def apply(session: AsyncSession, period: PayrollPeriod) -> None:
            period.lock_at = utcnow()

        return await self._transition(
            org_id, payroll_period_id, PeriodStatus.LOCKED, actor_user_id, apply
        )

    async def reopen(
        self, org_id: UUID, payroll_period_id: UUID, actor_user_id: UUID | None = None
    ) -> PayrollPeriod:
        """locked → draft, clearing lock_at."""

        async def apply(session: AsyncSession, period: PayrollPeriod) -> None:
            period.lock_at = None

        return await self._transition(
            org_id, payroll_period_id, PeriodStatus.DRAFT, actor_user_id, apply
        )

    async def post(
        self, org_id: UUID, payroll_period_id: UUID, actor_user_id: UUID | None = None
    ) -> PayrollPeriod:
        """locked → posted.

        Blocked while any eligible employee (active, with compensation in
        force on the period's last day) lacks a finalized run. Employees
        without compensation never block; use the ledger's coverage report
        to find them.
        """

        async def apply(session: AsyncSession, period: PayrollPeriod) -> None:
            blocking = await self.blocking_employees(session, period)
            if blocking:
                raise PeriodTransitionBlocked(
                    period.status, PeriodStatus.POSTED.value, blocking
                )
            period.posted_at = utcnow()

        return await self._transition(
            org_id, payroll_period_id, PeriodStatus.POSTED, actor_user_id, apply
        )

    async def mark_challan_generated(
        self, org_id: UUID, payroll_period_id: UUID, actor_user_id: UUID | None = None
    ) -> PayrollPeriod:
        """posted → challan_generated."""
        return await self._transition(
            org_id, payroll_period_id, PeriodStatus.CHALLAN_GENERATED, actor_user_id
        )

    async def blocking_employees(
        self, session: AsyncSession, period: PayrollPeriod
    ) -> list[UUID]:
        """Eligible employees whose run is missing or not finalized."""
        window = period_window(period)
        eligible = set(
            (
                await session.execute(
                    select(CompensationRecord.employee_id)
                    .join(Employee, Employee.employee_id == CompensationRecord.employee_id)
                    .where(
                        Employee.org_id == period.org_id,
                        Employee.active.is_(True),
                        CompensationRecord.effective_from <= window.end,
                        (
                            CompensationRecord.effective_to.is_(None)
                            | (CompensationRecord.effective_to >= window.end)
                        ),
                    )
                )
            ).scalars().all()
        )
        finalized = set(
            (
                await session.execute(
                    select(PayrollRun.employee_id).where(
                        PayrollRun.payroll_period_id == period.payroll_period_id,
                        PayrollRun.status == RunStatus.FINALIZED.value,
                    )
                )
            ).scalars().all()
        )
        return sorted(eligible - finalized, key=str)

    async def _transition(
        self,
        org_id: UUID,
        payroll_period_id: UUID,
        to_status: PeriodStatus,
        actor_user_id: UUID | None,
        apply: Callable[[AsyncSession, PayrollPeriod], Awaitable[None]] | None = None,
    ) -> PayrollPeriod:
        async with self.locks.for_period(payroll_period_id):
            async with self.session_factory() as session:
                period = await self._load_period(session, org_id, payroll_period_id)
                from_status = period.status
                PeriodStateMachine.validate_transition(from_status, to_status.value)

                if apply is not None:
                    await apply(session, period)

                period.status = to_status.value
                self._audit(
                    session,
                    period,
                    f"status_change:{from_status}:{to_status.value}",
                    actor_user_id,
                )
                try:
                    await session.commit()
                except StaleDataError:
                    await session.rollback()
                    raise ConcurrentModification("payroll_period", payroll_period_id) from None

        logger.info(
            "payroll period transition org_id=%s period_id=%s from=%s to=%s",
            org_id, payroll_period_id, from_status, to_status.value,
        )
        return period

    # ------------------------------------------------------------------
    # Bulk run actions
    # ------------------------------------------------------------------

    async def recalc_all(
        self,
        org_id: UUID,
        payroll_period_id: UUID,
        employee_ids: Iterable[UUID] | None = None,
        cancellation: BatchCancellation | None = None,
        actor_user_id: UUID | None = None,
    ) -> BatchReport:
        """Calculate runs for the selected (default: all active) employees.

        Finalized runs are skipped; employees without compensation fail with
        NoActiveCompensation and get no run row.
        """

        async def prepare(session: AsyncSession, period: PayrollPeriod):
            if not PeriodStateMachine.can_mutate_runs(period.status):
                raise PeriodNotEditable(payroll_period_id, period.status, "recalculate runs")
            profile = await load_statutory_profile(session, org_id)
            catalog = list(
                (
                    await session.execute(
                        select(PayComponent).where(PayComponent.org_id == org_id)
                    )
                ).scalars().all()
            )
            return profile, catalog

        async def unit(
            session: AsyncSession,
            engine: RunEngine,
            period: PayrollPeriod,
            employee_id: UUID,
            shared: tuple[StatutoryProfile, list[PayComponent]],
        ) -> UnitOutcome:
            existing = await engine.get_run(payroll_period_id, employee_id)
            if existing is not None and existing.status == RunStatus.FINALIZED.value:
                return UnitOutcome.SKIPPED
            profile, catalog = shared
            await engine.compute_run(employee_id, period, profile, catalog)
            return UnitOutcome.SUCCEEDED

        return await self._bulk(
            "recalc_all", org_id, payroll_period_id, employee_ids, prepare, unit,
            cancellation, actor_user_id,
        )

    async def finalize_all(
        self,
        org_id: UUID,
        payroll_period_id: UUID,
        employee_ids: Iterable[UUID] | None = None,
        cancellation: BatchCancellation | None = None,
        actor_user_id: UUID | None = None,
    ) -> BatchReport:
        """processed → finalized for the selection; the period must be locked.

        Already-finalized runs and employees with neither a run nor
        compensation are skipped. An employee with compensation but no run
        fails: they must be calculated first.
        """

        async def prepare(session: AsyncSession, period: PayrollPeriod):
            if not PeriodStateMachine.can_finalize_runs(period.status):
                raise PeriodNotEditable(payroll_period_id, period.status, "finalize runs")
            return None

        async def unit(
            session: AsyncSession,
            engine: RunEngine,
            period: PayrollPeriod,
            employee_id: UUID,
            shared: None,
        ) -> UnitOutcome:
            run = await engine.get_run(payroll_period_id, employee_id)
            if run is None:
                compensation = await engine.ledger.resolve_active(
                    employee_id, period_window(period).end
                )
                if compensation is None:
                    return UnitOutcome.SKIPPED
            elif run.status == RunStatus.FINALIZED.value:
                return UnitOutcome.SKIPPED
            await engine.finalize_run(employee_id, period)
            return UnitOutcome.SUCCEEDED

        return await self._bulk(
            "finalize_all", org_id, payroll_period_id, employee_ids, prepare, unit,
            cancellation, actor_user_id,
        )

    async def unfinalize_all(
        self,
        org_id: UUID,
        payroll_period_id: UUID,
        employee_ids: Iterable[UUID] | None = None,
        cancellation: BatchCancellation | None = None,
        actor_user_id: UUID | None = None,
    ) -> BatchReport:
        """finalized → processed for the selection while the period is not posted."""

        async def prepare(session: AsyncSession, period: PayrollPeriod):
            if not PeriodStateMachine.can_mutate_runs(period.status):
                raise PeriodNotEditable(payroll_period_id, period.status, "unfinalize runs")
            return None

        async def unit(
            session: AsyncSession,
            engine: RunEngine,
            period: PayrollPeriod,
            employee_id: UUID,
            shared: None,
        ) -> UnitOutcome:
            run = await engine.get_run(payroll_period_id, employee_id)
            if run is None or run.status != RunStatus.FINALIZED.value:
                return UnitOutcome.SKIPPED
            await engine.unfinalize_run(employee_id, period)
            return UnitOutcome.SUCCEEDED

        return await self._bulk(
            "unfinalize_all", org_id, payroll_period_id, employee_ids, prepare, unit,
            cancellation, actor_user_id,
        )

    async def _bulk(
        self,
        action: str,
        org_id: UUID,
        payroll_period_id: UUID,
        employee_ids: Iterable[UUID] | None,
        prepare: Callable[[AsyncSession, PayrollPeriod], Awaitable[Any]],
        unit: Callable[..., Awaitable[UnitOutcome]],
        cancellation: BatchCancellation | None,
        actor_user_id: UUID | None,
    ) -> BatchReport:
        async with self.locks.for_period(payroll_period_id):
            async with self.session_factory() as session:
                period = await self._load_period(session, org_id, payroll_period_id)
                shared = await prepare(session, period)
                if employee_ids is None:
                    targets = await self._default_targets(session, period)
                else:
                    targets = list(dict.fromkeys(employee_ids))
                claimed = await self._bump_version(session, payroll_period_id, period.version)
                if not claimed:
                    raise ConcurrentModification("payroll_period", payroll_period_id)
                await session.commit()

            async def run_unit(employee_id: UUID) -> UnitOutcome:
                async with self.session_factory() as unit_session:
                    engine = RunEngine(unit_session, self.evaluator, self.settings)
                    outcome = await unit(unit_session, engine, period, employee_id, shared)
                    await unit_session.commit()
                    return outcome

            report = await run_bounded(
                action,
                targets,
                run_unit,
                self.settings.batch_concurrency,
                cancellation,
            )

            async with self.session_factory() as session:
                self._audit(session, period, action, actor_user_id, report.to_dict())
                released = await self._bump_version(session, payroll_period_id, claimed)
                await session.commit()

        if not released:
            logger.warning(
                "payroll period changed during %s org_id=%s period_id=%s",
                action, org_id, payroll_period_id,
            )
            raise ConcurrentModification("payroll_period", payroll_period_id)
        return report

    async def _bump_version(
        self, session: AsyncSession, payroll_period_id: UUID, expected: int
    ) -> int:
        """Advance the period version if it still equals ``expected``.

        Returns the new version, or 0 when another writer moved it first.
        """
        result = await session.execute(
            update(PayrollPeriod)
            .where(
                PayrollPeriod.payroll_period_id == payroll_period_id,
                PayrollPeriod.version == expected,
            )
            .values(version=expected + 1)
            .execution_options(synchronize_session=False)
        )
        return expected + 1 if result.rowcount == 1 else 0

    async def _default_targets(self, session: AsyncSession, period: PayrollPeriod) -> list[UUID]:
        """Active employees of the org plus anyone already holding a run."""
        active = (
            await session.execute(
                select(Employee.employee_id)
                .where(Employee.org_id == period.org_id, Employee.active.is_(True))
                .order_by(Employee.name, Employee.employee_id)
            )
        ).scalars().all()
        with_runs = (
            await session.execute(
                select(PayrollRun.employee_id)
                .where(PayrollRun.payroll_period_id == period.payroll_period_id)
                .order_by(PayrollRun.employee_id)
            )
        ).scalars().all()
        return list(dict.fromkeys([*active, *with_runs]))

    # ------------------------------------------------------------------
    # Single-employee variants
    # ------------------------------------------------------------------

    async def recalc_one(
        self, org_id: UUID, payroll_period_id: UUID, employee_id: UUID
    ) -> PayrollRun:
        """Calculate one run; raises instead of reporting."""
        return await self._single(
            org_id, payroll_period_id,
            lambda engine, period: engine.compute_run(employee_id, period),
        )

    async def finalize_one(
        self, org_id: UUID, payroll_period_id: UUID, employee_id: UUID
    ) -> PayrollRun:
        return await self._single(
            org_id, payroll_period_id,
            lambda engine, period: engine.finalize_run(employee_id, period),
        )

    async def unfinalize_one(
        self, org_id: UUID, payroll_period_id: UUID, employee_id: UUID
    ) -> PayrollRun:
        return await self._single(
            org_id, payroll_period_id,
            lambda engine, period: engine.unfinalize_run(employee_id, period),
        )

    async def _single(
        self,
        org_id: UUID,
        payroll_period_id: UUID,
        op: Callable[[RunEngine, PayrollPeriod], Awaitable[PayrollRun]],
    ) -> PayrollRun:
        async with self.locks.for_period(payroll_period_id):
            async with self.session_factory() as session:
                period = await self._load_period(session, org_id, payroll_period_id)
                engine = RunEngine(session, self.evaluator, self.settings)
                run = await op(engine, period)
                await session.commit()
                return run

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _find_period(
        self, session: AsyncSession, org_id: UUID, month: int, year: int
    ) -> PayrollPeriod | None:
        result = await session.execute(
            select(PayrollPeriod).where(
                PayrollPeriod.org_id == org_id,
                PayrollPeriod.month == month,
                PayrollPeriod.year == year,
            )
        )
        return result.scalar_one_or_none()

    async def _load_period(
        self, session: AsyncSession, org_id: UUID, payroll_period_id: UUID
    ) -> PayrollPeriod:
        period = await session.get(PayrollPeriod, payroll_period_id)
        if period is None or period.org_id != org_id:
            raise PeriodNotFound(payroll_period_id)
        return period

    def _audit(
        self,
        session: AsyncSession,
        period: PayrollPeriod,
        action: str,
        actor_user_id: UUID | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        session.add(
            AuditEvent(
                org_id=period.org_id,
                actor_user_id=actor_user_id,
                entity_type="payroll_period",
                entity_id=period.payroll_period_id,
                action=action,
                details=details,
            )
        )
