"""Tests for the bounded batch runner."""

import asyncio
from datetime import date
from uuid import uuid4

from payroll_core.exceptions import NoActiveCompensation, RunLocked
from payroll_core.services.batch import BatchCancellation, UnitOutcome, run_bounded


class TestRunBounded:
    """Aggregation, concurrency bound and cancellation."""

    async def test_aggregates_outcomes(self):
        ids = [uuid4() for _ in range(5)]
        failing = ids[1]
        locked = ids[3]
        skipped = ids[4]

        async def unit(employee_id):
            if employee_id == failing:
                raise NoActiveCompensation(employee_id, date(2024, 4, 30))
            if employee_id == locked:
                raise RunLocked(employee_id, uuid4())
            if employee_id == skipped:
                return UnitOutcome.SKIPPED
            return UnitOutcome.SUCCEEDED

        report = await run_bounded("recalc_all", ids, unit, concurrency=2)

        assert report.succeeded == 2
        assert report.failed == 2
        assert report.skipped == 1
        assert report.total == 5
        assert set(report.succeeded_ids) == {ids[0], ids[2]}
        codes = {e.employee_id: e.code for e in report.errors}
        assert codes == {failing: "NO_ACTIVE_COMPENSATION", locked: "RUN_LOCKED"}
        assert all(e.message for e in report.errors)

    async def test_unexpected_exception_is_a_failure(self):
        employee_id = uuid4()

        async def unit(_):
            raise KeyError("boom")

        report = await run_bounded("recalc_all", [employee_id], unit, concurrency=1)

        assert report.failed == 1
        assert report.errors[0].employee_id == employee_id
        assert report.errors[0].code == "INTERNAL_ERROR"

    async def test_never_exceeds_concurrency(self):
        in_flight = 0
        peak = 0

        async def unit(_):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return UnitOutcome.SUCCEEDED

        report = await run_bounded("recalc_all", [uuid4() for _ in range(10)], unit, concurrency=3)

        assert report.succeeded == 10
        assert peak == 3

    async def test_cancellation_skips_remaining_units(self):
        ids = [uuid4() for _ in range(6)]
        cancellation = BatchCancellation()
        started = []

        async def unit(employee_id):
            started.append(employee_id)
            if len(started) == 2:
                cancellation.cancel()
            return UnitOutcome.SUCCEEDED

        report = await run_bounded("finalize_all", ids, unit, concurrency=1, cancellation=cancellation)

        assert report.cancelled is True
        assert report.succeeded == 2
        assert report.skipped == 4
        assert started == ids[:2]

    async def test_report_to_dict(self):
        employee_id = uuid4()

        async def unit(_):
            raise RunLocked(employee_id, uuid4())

        report = await run_bounded("recalc_all", [employee_id], unit, concurrency=1)
        data = report.to_dict()

        assert data["action"] == "recalc_all"
        assert data["failed"] == 1
        assert data["errors"][0]["employee_id"] == str(employee_id)
        assert data["errors"][0]["code"] == "RUN_LOCKED"
