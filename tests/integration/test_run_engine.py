"""Tests for per-employee run computation."""

from datetime import date
from decimal import Decimal

import pytest

from payroll_core.exceptions import (
    EvaluatorError,
    EvaluatorTimeout,
    InvalidTransitionError,
    NoActiveCompensation,
    PeriodNotEditable,
    RunLocked,
    RunNotFound,
)
from payroll_core.services.compensation_ledger import CompensationInput, CompensationLedger
from payroll_core.services.run_engine import RunEngine

STRUCTURE = [
    ("BASIC", "600000"),
    ("HRA", "240000"),
    ("CONV", "19200"),
    ("PF", "-57600"),
]


def amounts(run) -> dict[str, Decimal]:
    return {line["code"]: Decimal(line["amount"]) for line in run.snapshot}


class TestComputeRun:
    """Proration, statutory lines and totals."""

    async def test_prorated_basic(
        self, session, settings, catalog, make_employee, add_compensation, make_period, set_present_days
    ):
        """20 of 26 working days on 600000 a year."""
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000")])
        await set_present_days(employee, "20")
        period = await make_period()

        run = await RunEngine(session, settings=settings).compute_run(employee.employee_id, period)

        assert run.status == "processed"
        assert amounts(run) == {"BASIC": Decimal("38461.54")}
        assert run.gross_earnings == Decimal("38461.54")
        assert run.attendance_summary["working_days"] == 26
        assert run.attendance_summary["overridden"] is True

    async def test_full_structure_with_statutory_lines(
        self,
        session,
        settings,
        catalog,
        make_employee,
        add_compensation,
        make_period,
        set_present_days,
        flat_evaluator,
    ):
        employee = await make_employee()
        compensation = await add_compensation(employee, STRUCTURE)
        await set_present_days(employee, "20")
        period = await make_period()

        run = await RunEngine(session, flat_evaluator, settings).compute_run(
            employee.employee_id, period
        )

        assert [line["code"] for line in run.snapshot] == ["BASIC", "HRA", "CONV", "PF", "PT", "PF_ER"]
        assert amounts(run) == {
            "BASIC": Decimal("38461.54"),
            "HRA": Decimal("15384.62"),
            # Not prorated
            "CONV": Decimal("1600.00"),
            "PF": Decimal("-4800.00"),
            "PT": Decimal("-200.00"),
            "PF_ER": Decimal("4615.38"),
        }
        assert run.gross_earnings == Decimal("55446.16")
        assert run.total_deductions == Decimal("5000.00")
        assert run.net_pay == Decimal("50446.16")
        assert run.employer_cost == Decimal("60061.54")
        assert run.net_pay == run.gross_earnings - run.total_deductions
        assert run.pf_wages == Decimal("38461.54")
        assert run.pt_amount == Decimal("200.00")
        assert run.esic_wages == Decimal("0")
        assert run.compensation_id == compensation.compensation_id
        assert flat_evaluator.calls == [employee.employee_id]

    async def test_untracked_attendance_pays_full_month(
        self, session, settings, catalog, make_employee, add_compensation, make_period
    ):
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000"), ("HRA", "240000")])
        period = await make_period()

        run = await RunEngine(session, settings=settings).compute_run(employee.employee_id, period)

        assert amounts(run) == {"BASIC": Decimal("50000.00"), "HRA": Decimal("20000.00")}
        assert run.attendance_summary["tracked"] is False

    async def test_default_evaluator_fills_wage_bases(
        self, session, settings, catalog, make_employee, add_compensation, make_period
    ):
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000"), ("HRA", "240000"), ("CONV", "19200")])
        period = await make_period()

        run = await RunEngine(session, settings=settings).compute_run(employee.employee_id, period)

        assert run.pf_wages == Decimal("50000.00")
        assert run.esic_wages == Decimal("71600.00")
        assert run.employer_cost == run.gross_earnings

    async def test_unmapped_lines_become_warnings(
        self, session, settings, catalog, make_employee, add_compensation, make_period
    ):
        employee = await make_employee()
        await add_compensation(employee, [("basic", "600000"), ("Car Lease", "12000")])
        period = await make_period()

        run = await RunEngine(session, settings=settings).compute_run(employee.employee_id, period)

        assert amounts(run) == {"BASIC": Decimal("50000.00")}
        assert len(run.warnings) == 1
        assert "Car Lease" in run.warnings[0]

    async def test_uses_compensation_in_force_at_period_end(
        self, session, settings, catalog, make_employee, add_compensation, make_period
    ):
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000")], effective_from=date(2024, 1, 1))
        raise_record = await add_compensation(
            employee, [("BASIC", "720000")], effective_from=date(2024, 4, 15)
        )
        period = await make_period()

        run = await RunEngine(session, settings=settings).compute_run(employee.employee_id, period)

        assert run.compensation_id == raise_record.compensation_id
        assert amounts(run) == {"BASIC": Decimal("60000.00")}

    async def test_recalculate_overwrites_processed_run(
        self, session, settings, catalog, make_employee, add_compensation, make_period, set_present_days
    ):
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000")])
        period = await make_period()
        engine = RunEngine(session, settings=settings)

        first = await engine.compute_run(employee.employee_id, period)
        await set_present_days(employee, "13")
        second = await engine.compute_run(employee.employee_id, period)

        assert second.payroll_run_id == first.payroll_run_id
        assert amounts(second) == {"BASIC": Decimal("25000.00")}

    async def test_ctc_only_record_expands_through_catalog(
        self, session, settings, catalog, make_employee, make_period, org_id
    ):
        catalog["BASIC"].calc_method = "percent_of_gross"
        catalog["BASIC"].calc_value = Decimal("50")
        catalog["HRA"].calc_method = "percent_of_component"
        catalog["HRA"].calc_value = Decimal("40")
        catalog["HRA"].calc_base_code = "BASIC"
        catalog["CONV"].calc_method = "formula"
        employee = await make_employee()
        await CompensationLedger(session, settings).upsert(
            org_id,
            CompensationInput(
                employee_id=employee.employee_id,
                effective_from=date(2024, 1, 1),
                ctc_annual=Decimal("600000"),
                components=[],
            ),
        )
        await session.commit()
        period = await make_period()

        run = await RunEngine(session, settings=settings).compute_run(employee.employee_id, period)

        assert amounts(run) == {"BASIC": Decimal("25000.00"), "HRA": Decimal("10000.00")}
        assert run.gross_earnings == Decimal("35000.00")
        assert any("CONV" in warning for warning in run.warnings)


class TestComputeRunFailures:
    async def test_no_active_compensation(self, session, settings, catalog, make_employee, make_period):
        employee = await make_employee()
        period = await make_period()
        engine = RunEngine(session, settings=settings)

        with pytest.raises(NoActiveCompensation) as exc_info:
            await engine.compute_run(employee.employee_id, period)

        assert exc_info.value.as_of_date == date(2024, 4, 30)
        assert await engine.get_run(period.payroll_period_id, employee.employee_id) is None

    async def test_finalized_run_is_locked(
        self, session, settings, catalog, make_employee, add_compensation, make_period
    ):
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000")])
        period = await make_period(status="locked")
        engine = RunEngine(session, settings=settings)
        await engine.compute_run(employee.employee_id, period)
        await engine.finalize_run(employee.employee_id, period)

        with pytest.raises(RunLocked):
            await engine.compute_run(employee.employee_id, period)

    async def test_posted_period_not_editable(
        self, session, settings, catalog, make_employee, add_compensation, make_period
    ):
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000")])
        period = await make_period(status="posted")

        with pytest.raises(PeriodNotEditable):
            await RunEngine(session, settings=settings).compute_run(employee.employee_id, period)

    async def test_evaluator_timeout(
        self, session, make_settings, catalog, make_employee, add_compensation, make_period, slow_evaluator
    ):
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000")])
        period = await make_period()
        engine = RunEngine(
            session, slow_evaluator, make_settings(evaluator_timeout_seconds=0.05)
        )

        with pytest.raises(EvaluatorTimeout) as exc_info:
            await engine.compute_run(employee.employee_id, period)

        assert exc_info.value.code == "EVALUATOR_TIMEOUT"
        assert await engine.get_run(period.payroll_period_id, employee.employee_id) is None

    async def test_evaluator_error(
        self, session, settings, catalog, make_employee, add_compensation, make_period, broken_evaluator
    ):
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000")])
        period = await make_period()

        with pytest.raises(EvaluatorError, match="rule table missing"):
            await RunEngine(session, broken_evaluator, settings).compute_run(
                employee.employee_id, period
            )


class TestRunTransitions:
    async def test_finalize_and_unfinalize(
        self, session, settings, catalog, make_employee, add_compensation, make_period
    ):
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000")])
        period = await make_period(status="locked")
        engine = RunEngine(session, settings=settings)
        await engine.compute_run(employee.employee_id, period)

        run = await engine.finalize_run(employee.employee_id, period)
        assert run.status == "finalized"
        assert run.finalized_at is not None

        run = await engine.unfinalize_run(employee.employee_id, period)
        assert run.status == "processed"
        assert run.finalized_at is None

    async def test_finalize_requires_locked_period(
        self, session, settings, catalog, make_employee, add_compensation, make_period
    ):
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000")])
        period = await make_period()
        engine = RunEngine(session, settings=settings)
        await engine.compute_run(employee.employee_id, period)

        with pytest.raises(InvalidTransitionError):
            await engine.finalize_run(employee.employee_id, period)

    async def test_finalize_without_run(self, session, settings, catalog, make_employee, make_period):
        employee = await make_employee()
        period = await make_period(status="locked")

        with pytest.raises(RunNotFound):
            await RunEngine(session, settings=settings).finalize_run(employee.employee_id, period)
