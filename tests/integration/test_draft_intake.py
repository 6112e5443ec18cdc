"""Tests for drafted compensation intake."""

from datetime import date
from decimal import Decimal

import pytest

from payroll_core.calculators.types import ResolvedLine, UnmappedLine
from payroll_core.exceptions import UnmappedComponent, ValidationError
from payroll_core.services.compensation_ledger import CompensationLedger
from payroll_core.services.draft_intake import DraftIntake, parse_draft

DRAFT = {
    "pay_schedule": "monthly",
    "components": [
        {"code": "Basic Salary", "amount": 600000},
        {"component_code": "hra", "annual_amount": "240000"},
        {"code": "provident fund", "amount": 72000},
        {"code": "Car Lease", "amount": 12000},
    ],
    "notes": "Drafted from offer letter",
}


class TestParseDraft:
    def test_accepts_either_key_spelling(self):
        draft = parse_draft(DRAFT)

        assert [c.component_code for c in draft.components] == [
            "Basic Salary",
            "hra",
            "provident fund",
            "Car Lease",
        ]
        assert draft.components[1].amount == Decimal("240000")

    def test_bad_pay_schedule(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_draft({"pay_schedule": "daily"})
        assert exc_info.value.field == "pay_schedule"

    def test_missing_amount(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_draft({"components": [{"code": "BASIC"}]})
        assert "components.0" in exc_info.value.field

    def test_not_a_mapping(self):
        with pytest.raises(ValidationError):
            parse_draft(["BASIC", 1000])


class TestDraftIntake:
    async def test_preview_persists_nothing(self, session, settings, catalog, make_employee, org_id):
        employee = await make_employee()
        intake = DraftIntake(session, settings)

        result = await intake.preview_draft(org_id, employee.employee_id, date(2024, 4, 1), DRAFT)

        assert result.resolved == [
            ResolvedLine("BASIC", Decimal("600000")),
            ResolvedLine("HRA", Decimal("240000")),
            ResolvedLine("PF", Decimal("-72000")),
        ]
        assert result.unmapped == [UnmappedLine("Car Lease", Decimal("12000"))]
        assert result.ctc_annual == Decimal("840000.00")
        assert result.record is None
        assert await CompensationLedger(session, settings).list_for_employee(employee.employee_id) == []

    async def test_preview_reports_overlap(
        self, session, settings, catalog, make_employee, add_compensation, org_id
    ):
        employee = await make_employee()
        existing = await add_compensation(employee, [("BASIC", "500000")])

        result = await DraftIntake(session, settings).preview_draft(
            org_id, employee.employee_id, date(2024, 4, 1), DRAFT
        )

        assert [w.conflicting_record_id for w in result.warnings] == [existing.compensation_id]

    async def test_accept_writes_resolved_lines_only(self, session, settings, catalog, make_employee, org_id):
        employee = await make_employee()

        result = await DraftIntake(session, settings).accept_draft(
            org_id, employee.employee_id, date(2024, 4, 1), DRAFT
        )

        record = result.record
        assert record.source == "ai_draft"
        assert record.ctc_annual == Decimal("840000.00")
        assert record.notes == "Drafted from offer letter"
        assert [line["component_code"] for line in record.components] == ["BASIC", "HRA", "PF"]
        assert result.unmapped == [UnmappedLine("Car Lease", Decimal("12000"))]

    async def test_accept_keeps_explicit_ctc(self, session, settings, catalog, make_employee, org_id):
        employee = await make_employee()

        result = await DraftIntake(session, settings).accept_draft(
            org_id, employee.employee_id, date(2024, 4, 1), {**DRAFT, "ctc_annual": "900000"}
        )

        assert result.ctc_annual == Decimal("900000.00")

    async def test_accept_with_supersede(
        self, session, settings, catalog, make_employee, add_compensation, org_id
    ):
        employee = await make_employee()
        previous = await add_compensation(employee, [("BASIC", "500000")])

        result = await DraftIntake(session, settings).accept_draft(
            org_id, employee.employee_id, date(2024, 4, 1), DRAFT, supersede=True
        )

        assert result.warnings == []
        assert previous.effective_to == date(2024, 3, 31)

    async def test_nothing_resolvable(self, session, settings, catalog, make_employee, org_id):
        employee = await make_employee()

        with pytest.raises(ValidationError, match="matched the catalog"):
            await DraftIntake(session, settings).accept_draft(
                org_id,
                employee.employee_id,
                date(2024, 4, 1),
                {"components": [{"code": "Stock Options", "amount": 100}]},
            )

    async def test_strict_accept_refuses_unmapped(self, session, settings, catalog, make_employee, org_id):
        employee = await make_employee()

        with pytest.raises(UnmappedComponent) as exc_info:
            await DraftIntake(session, settings).accept_draft(
                org_id, employee.employee_id, date(2024, 4, 1), DRAFT, allow_unmapped=False
            )

        assert exc_info.value.raw_codes == ["Car Lease"]
        assert await CompensationLedger(session, settings).list_for_employee(
            employee.employee_id
        ) == []
