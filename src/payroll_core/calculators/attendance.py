"""Attendance aggregation for proration."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core.calculators.types import AttendanceSummary
from payroll_core.config import Settings, get_settings
from payroll_core.models import AttendanceFact, AttendanceOverride

FULL_DAY = Decimal("1")
HALF_DAY = Decimal("0.5")
SUNDAY = 6


def count_present_days(facts: Iterable[AttendanceFact]) -> Decimal:
    """Σ over payable attendance rows; a half day counts 0.5.

    Weekend, holiday and absent rows contribute nothing.
    """
    total = Decimal("0")
    for fact in facts:
        if fact.is_absent or fact.is_weekend or fact.is_holiday:
            continue
        total += HALF_DAY if fact.is_half_day else FULL_DAY
    return total


def count_working_days(
    period_start: date,
    period_end: date,
    weekly_off_days: frozenset[int] = frozenset({SUNDAY}),
) -> int:
    """Calendar days in range minus weekly offs. Holidays stay in the count."""
    if period_end < period_start:
        return 0
    days = 0
    current = period_start
    while current <= period_end:
        if current.weekday() not in weekly_off_days:
            days += 1
        current += timedelta(days=1)
    return days


class AttendanceAggregator:
    """Converts raw attendance rows into per-employee present-day counts."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()

    async def present_days(
        self,
        employee_id: UUID,
        period_start: date,
        period_end: date,
    ) -> Decimal:
        facts = await self._get_facts(employee_id, period_start, period_end)
        return count_present_days(facts)

    def working_days(self, period_start: date, period_end: date) -> int:
        return count_working_days(period_start, period_end, self.settings.weekly_off_days)

    async def summarize(
        self,
        employee_id: UUID,
        period_start: date,
        period_end: date,
    ) -> AttendanceSummary:
        """Build the attendance basis used for proration.

        A monthly override replaces the computed present days. An employee
        with no attendance rows at all is treated as fully present when
        ``assume_full_attendance_when_untracked`` is set.
        """
        facts = await self._get_facts(employee_id, period_start, period_end)
        working = self.working_days(period_start, period_end)

        summary = AttendanceSummary(
            present_days=count_present_days(facts),
            working_days=working,
            absent_days=sum(
                1 for f in facts if f.is_absent and not (f.is_weekend or f.is_holiday)
            ),
            half_days=sum(
                1 for f in facts
                if f.is_half_day and not (f.is_absent or f.is_weekend or f.is_holiday)
            ),
            holidays=sum(1 for f in facts if f.is_holiday),
            tracked=len(facts) > 0,
        )

        override = await self._get_override(employee_id, period_start)
        if override is not None:
            summary.present_days = Decimal(override.present_days)
            summary.overridden = True
        elif not summary.tracked and self.settings.assume_full_attendance_when_untracked:
            summary.present_days = Decimal(working)

        return summary

    async def _get_facts(
        self,
        employee_id: UUID,
        period_start: date,
        period_end: date,
    ) -> list[AttendanceFact]:
        result = await self.session.execute(
            select(AttendanceFact).where(
                AttendanceFact.employee_id == employee_id,
                AttendanceFact.work_date >= period_start,
                AttendanceFact.work_date <= period_end,
            )
        )
        return list(result.scalars().all())

    async def _get_override(
        self,
        employee_id: UUID,
        period_start: date,
    ) -> AttendanceOverride | None:
        result = await self.session.execute(
            select(AttendanceOverride).where(
                AttendanceOverride.employee_id == employee_id,
                AttendanceOverride.month == period_start.month,
                AttendanceOverride.year == period_start.year,
            )
        )
        return result.scalar_one_or_none()
