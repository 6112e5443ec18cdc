"""Tests for attendance aggregation."""

from datetime import date
from decimal import Decimal

from payroll_core.calculators.attendance import (
    AttendanceAggregator,
    count_present_days,
    count_working_days,
)
from payroll_core.models import AttendanceFact, AttendanceOverride

APRIL_START = date(2024, 4, 1)
APRIL_END = date(2024, 4, 30)


async def add_april_facts(session, employee):
    rows = [
        AttendanceFact(employee_id=employee.employee_id, work_date=date(2024, 4, 1)),
        AttendanceFact(employee_id=employee.employee_id, work_date=date(2024, 4, 2)),
        AttendanceFact(employee_id=employee.employee_id, work_date=date(2024, 4, 3)),
        AttendanceFact(employee_id=employee.employee_id, work_date=date(2024, 4, 4), is_half_day=True),
        AttendanceFact(employee_id=employee.employee_id, work_date=date(2024, 4, 5), is_absent=True),
        AttendanceFact(employee_id=employee.employee_id, work_date=date(2024, 4, 6), is_holiday=True),
        AttendanceFact(employee_id=employee.employee_id, work_date=date(2024, 4, 7), is_weekend=True),
        # Outside the period
        AttendanceFact(employee_id=employee.employee_id, work_date=date(2024, 5, 1)),
    ]
    session.add_all(rows)
    await session.commit()


class TestWorkingDays:
    def test_sundays_excluded_holidays_kept(self):
        """April 2024 has four Sundays."""
        assert count_working_days(APRIL_START, APRIL_END) == 26

    def test_configurable_weekly_offs(self):
        # Saturdays and Sundays
        assert count_working_days(APRIL_START, APRIL_END, frozenset({5, 6})) == 22

    def test_empty_range(self):
        assert count_working_days(APRIL_END, APRIL_START) == 0

    def test_count_present_days_weights(self):
        facts = [
            AttendanceFact(is_absent=False, is_half_day=False, is_weekend=False, is_holiday=False),
            AttendanceFact(is_absent=False, is_half_day=True, is_weekend=False, is_holiday=False),
            AttendanceFact(is_absent=True, is_half_day=False, is_weekend=False, is_holiday=False),
            AttendanceFact(is_absent=False, is_half_day=False, is_weekend=True, is_holiday=False),
        ]
        assert count_present_days(facts) == Decimal("1.5")


class TestAttendanceAggregator:
    async def test_present_days(self, session, settings, make_employee):
        employee = await make_employee()
        await add_april_facts(session, employee)

        aggregator = AttendanceAggregator(session, settings)

        assert await aggregator.present_days(employee.employee_id, APRIL_START, APRIL_END) == Decimal("3.5")

    async def test_summarize_tracked(self, session, settings, make_employee):
        employee = await make_employee()
        await add_april_facts(session, employee)

        summary = await AttendanceAggregator(session, settings).summarize(
            employee.employee_id, APRIL_START, APRIL_END
        )

        assert summary.present_days == Decimal("3.5")
        assert summary.working_days == 26
        assert summary.absent_days == 1
        assert summary.half_days == 1
        assert summary.holidays == 1
        assert summary.tracked is True
        assert summary.overridden is False

    async def test_untracked_assumes_full_attendance(self, session, settings, make_employee):
        employee = await make_employee()

        summary = await AttendanceAggregator(session, settings).summarize(
            employee.employee_id, APRIL_START, APRIL_END
        )

        assert summary.tracked is False
        assert summary.present_days == Decimal("26")
        assert summary.proration_factor == Decimal("1")

    async def test_untracked_without_assumption(self, session, make_settings, make_employee):
        employee = await make_employee()
        settings = make_settings(assume_full_attendance_when_untracked=False)

        summary = await AttendanceAggregator(session, settings).summarize(
            employee.employee_id, APRIL_START, APRIL_END
        )

        assert summary.present_days == Decimal("0")
        assert summary.proration_factor == Decimal("0")

    async def test_override_wins_over_facts(self, session, settings, make_employee):
        employee = await make_employee()
        await add_april_facts(session, employee)
        session.add(
            AttendanceOverride(
                employee_id=employee.employee_id,
                month=4,
                year=2024,
                present_days=Decimal("20"),
                remarks="Manual correction",
            )
        )
        await session.commit()

        summary = await AttendanceAggregator(session, settings).summarize(
            employee.employee_id, APRIL_START, APRIL_END
        )

        assert summary.present_days == Decimal("20")
        assert summary.overridden is True
        assert Decimal(summary.to_dict()["present_days"]) == Decimal("20")
