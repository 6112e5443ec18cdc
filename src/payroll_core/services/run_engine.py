"""Run engine - computes and stores one payroll run per employee per period."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core.calculators.attendance import AttendanceAggregator
from payroll_core.calculators.canonicalizer import Canonicalizer
from payroll_core.calculators.line_builder import LineItemBuilder
from payroll_core.calculators.statutory import (
    WAGE_BASE_KEYS,
    StatutoryEvaluator,
    WageBaseEvaluator,
    evaluate_with_timeout,
)
from payroll_core.calculators.structure import build_structure
from payroll_core.calculators.types import (
    AttendanceSummary,
    ComponentType,
    EmployeeContext,
    GrossComponent,
    PeriodWindow,
    RunTotals,
    SnapshotLine,
    StatutoryProfile,
)
from payroll_core.config import Settings, get_settings
from payroll_core.exceptions import (
    ConcurrentModification,
    NoActiveCompensation,
    PeriodNotEditable,
    RunLocked,
    RunNotFound,
    ValidationError,
)
from payroll_core.models import (
    Employee,
    OrgStatutoryProfile,
    PayComponent,
    PayrollPeriod,
    PayrollRun,
)
from payroll_core.models.base import utcnow
from payroll_core.services.compensation_ledger import CompensationLedger
from payroll_core.services.state_machine import (
    PeriodStateMachine,
    RunStateMachine,
    RunStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class RunComputation:
    """Result of calculating one employee, before persistence."""

    employee_id: UUID
    compensation_id: UUID
    snapshot: list[SnapshotLine]
    totals: RunTotals
    wage_bases: dict[str, Decimal]
    attendance: AttendanceSummary
    warnings: list[str] = field(default_factory=list)


def period_window(period: PayrollPeriod) -> PeriodWindow:
    return PeriodWindow(
        payroll_period_id=period.payroll_period_id,
        org_id=period.org_id,
        month=period.month,
        year=period.year,
    )


async def load_statutory_profile(session: AsyncSession, org_id: UUID) -> StatutoryProfile:
    row = await session.get(OrgStatutoryProfile, org_id)
    if row is None:
        return StatutoryProfile(org_id=org_id)
    return StatutoryProfile(
        org_id=org_id,
        state=row.state,
        pf_enabled=row.pf_enabled,
        esic_enabled=row.esic_enabled,
        pt_enabled=row.pt_enabled,
    )


class RunEngine:
    """Per-employee payroll computation.

    Calculation pipeline (stable order per employee):
    1) Resolve compensation active on the period's last day
    2) Canonicalize its lines against the org's full catalog
    3) Prorate earnings by present/working days unless the component opts out
    4) Run the statutory evaluator (one attempt, bounded by a timeout)
    5) Sum totals; net = gross - deductions
    6) Upsert the run row keyed by (period, employee); finalized rows refuse
    """

    def __init__(
        self,
        session: AsyncSession,
        evaluator: StatutoryEvaluator | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.evaluator = evaluator or WageBaseEvaluator()
        self.ledger = CompensationLedger(session, self.settings)
        self.attendance = AttendanceAggregator(session, self.settings)

    async def get_run(self, payroll_period_id: UUID, employee_id: UUID) -> PayrollRun | None:
        result = await self.session.execute(
            select(PayrollRun).where(
                PayrollRun.payroll_period_id == payroll_period_id,
                PayrollRun.employee_id == employee_id,
            )
        )
        return result.scalar_one_or_none()

    async def calculate(
        self,
        employee_id: UUID,
        period: PayrollPeriod,
        profile: StatutoryProfile | None = None,
        catalog: list[PayComponent] | None = None,
    ) -> RunComputation:
        """Compute a run without writing anything."""
        window = period_window(period)

        employee = await self.session.get(Employee, employee_id)
        if employee is None or employee.org_id != period.org_id:
            raise ValidationError(
                f"Employee {employee_id} not found in organization", field="employee_id"
            )

        # 1) Compensation
        compensation = await self.ledger.resolve_active(employee_id, window.end)
        if compensation is None:
            raise NoActiveCompensation(employee_id, window.end)

        # 2) Canonicalize
        if catalog is None:
            catalog = await self._load_catalog(period.org_id)
        by_code = {c.code: c for c in catalog}
        lines = compensation.component_amounts()
        warnings: list[str] = []
        if not lines:
            # CTC-only record: expand through the catalog calc methods.
            structure = build_structure(compensation.ctc_annual, catalog)
            lines = [line for line in structure.lines if line.amount != 0]
            warnings.extend(
                f"Component '{code}' needs an explicit amount; left out of CTC expansion"
                for code in structure.needs_amount
            )
        canonical = Canonicalizer(catalog).canonicalize(lines)
        if not canonical.resolved:
            raise ValidationError(
                f"Compensation {compensation.compensation_id} has no resolvable component lines",
                field="components",
            )
        warnings.extend(
            f"Unmapped component '{u.raw_code}' ({u.amount}) excluded from totals"
            for u in canonical.unmapped
        )

        # 3) Attendance and proration
        attendance = await self.attendance.summarize(employee_id, window.start, window.end)
        factor = attendance.proration_factor

        resolved = sorted(
            canonical.resolved, key=lambda r: (by_code[r.code].sort_order, r.code)
        )
        snapshot: list[SnapshotLine] = []
        gross_components: list[GrossComponent] = []
        for line in resolved:
            component = by_code[line.code]
            monthly = LineItemBuilder.monthly_amount(line.amount)
            if component.type == ComponentType.EARNING and component.prorate:
                monthly = LineItemBuilder.prorate(monthly, factor)
            snapshot_line = LineItemBuilder.create_line(
                component.code, component.name, component.type, monthly
            )
            snapshot.append(snapshot_line)
            if snapshot_line.type == ComponentType.EARNING:
                gross_components.append(
                    GrossComponent(
                        code=component.code,
                        name=component.name,
                        amount=snapshot_line.amount,
                        taxable=component.taxable,
                        pf_wage_participates=component.pf_wage_participates,
                        esic_wage_participates=component.esic_wage_participates,
                    )
                )

        # 4) Statutory evaluation
        if profile is None:
            profile = await load_statutory_profile(self.session, period.org_id)
        context = EmployeeContext(
            employee_id=employee_id,
            org_id=period.org_id,
            work_state=employee.work_state,
            profile=profile,
        )
        statutory = await evaluate_with_timeout(
            self.evaluator,
            gross_components,
            context,
            window,
            self.settings.evaluator_timeout_seconds,
        )
        for line in statutory.deduction_lines:
            snapshot.append(
                LineItemBuilder.create_deduction_line(line.code, line.name, line.amount)
            )
        for line in statutory.employer_cost_lines:
            snapshot.append(
                LineItemBuilder.create_employer_cost_line(line.code, line.name, line.amount)
            )

        sign_errors = LineItemBuilder.validate_line_signs(snapshot)
        if sign_errors:
            raise ValidationError("; ".join(sign_errors), field="snapshot")

        # 5) Totals
        totals = LineItemBuilder.calculate_totals(snapshot)
        if totals.net_pay != totals.gross_earnings - totals.total_deductions:
            raise ValidationError("net pay identity violated", field="net_pay")

        wage_bases = {
            key: LineItemBuilder.round_money(Decimal(statutory.wage_bases.get(key, Decimal("0"))))
            for key in WAGE_BASE_KEYS
        }

        return RunComputation(
            employee_id=employee_id,
            compensation_id=compensation.compensation_id,
            snapshot=snapshot,
            totals=totals,
            wage_bases=wage_bases,
            attendance=attendance,
            warnings=warnings,
        )

    async def compute_run(
        self,
        employee_id: UUID,
        period: PayrollPeriod,
        profile: StatutoryProfile | None = None,
        catalog: list[PayComponent] | None = None,
    ) -> PayrollRun:
        """Calculate and upsert the employee's run for the period.

        Raises RunLocked if the existing run is finalized.
        """
        if not PeriodStateMachine.can_mutate_runs(period.status):
            raise PeriodNotEditable(period.payroll_period_id, period.status, "recalculate runs")

        existing = await self.get_run(period.payroll_period_id, employee_id)
        if existing is not None and not RunStateMachine.can_recalculate(existing.status):
            raise RunLocked(employee_id, period.payroll_period_id)

        computation = await self.calculate(employee_id, period, profile, catalog)
        values = self._row_values(computation)

        if existing is None:
            run = PayrollRun(
                payroll_period_id=period.payroll_period_id,
                employee_id=employee_id,
                **values,
            )
            self.session.add(run)
            try:
                await self.session.flush()
            except IntegrityError:
                await self.session.rollback()
                raise ConcurrentModification("payroll_run", employee_id) from None
            await self.session.refresh(run)
            return run

        # Conditional update: a concurrent finalize must win over this write.
        result = await self.session.execute(
            update(PayrollRun)
            .where(
                PayrollRun.payroll_run_id == existing.payroll_run_id,
                PayrollRun.status == RunStatus.PROCESSED.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise RunLocked(employee_id, period.payroll_period_id)
        await self.session.refresh(existing)
        return existing

    async def finalize_run(self, employee_id: UUID, period: PayrollPeriod) -> PayrollRun:
        """processed → finalized; the period must be locked."""
        return await self._advance(
            employee_id, period, RunStatus.FINALIZED, finalized_at=utcnow()
        )

    async def unfinalize_run(self, employee_id: UUID, period: PayrollPeriod) -> PayrollRun:
        """finalized → processed; the period must not be posted."""
        return await self._advance(employee_id, period, RunStatus.PROCESSED, finalized_at=None)

    async def _advance(
        self,
        employee_id: UUID,
        period: PayrollPeriod,
        to_status: RunStatus,
        finalized_at: datetime | None,
    ) -> PayrollRun:
        run = await self.get_run(period.payroll_period_id, employee_id)
        if run is None:
            raise RunNotFound(employee_id, period.payroll_period_id)

        from_status = run.status
        RunStateMachine.validate_transition(from_status, to_status.value, period.status)

        result = await self.session.execute(
            update(PayrollRun)
            .where(
                PayrollRun.payroll_run_id == run.payroll_run_id,
                PayrollRun.status == from_status,
            )
            .values(status=to_status.value, finalized_at=finalized_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConcurrentModification("payroll_run", run.payroll_run_id)
        await self.session.refresh(run)
        return run

    def _row_values(self, computation: RunComputation) -> dict:
        totals = computation.totals
        return {
            "compensation_id": computation.compensation_id,
            "status": RunStatus.PROCESSED.value,
            "snapshot": [line.to_dict() for line in computation.snapshot],
            "gross_earnings": totals.gross_earnings,
            "total_deductions": totals.total_deductions,
            "net_pay": totals.net_pay,
            "employer_cost": totals.employer_cost,
            "attendance_summary": computation.attendance.to_dict(),
            "warnings": computation.warnings,
            "calculated_at": utcnow(),
            **computation.wage_bases,
        }

    async def _load_catalog(self, org_id: UUID) -> list[PayComponent]:
        # Inactive entries included so renamed/retired codes still resolve.
        result = await self.session.execute(
            select(PayComponent).where(PayComponent.org_id == org_id)
        )
        return list(result.scalars().all())
