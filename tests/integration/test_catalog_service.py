"""Tests for pay component catalog administration."""

from decimal import Decimal

import pytest

from payroll_core.exceptions import ComponentNotFound, ValidationError
from payroll_core.services.catalog_service import CatalogService, ComponentInput
from payroll_core.services.run_engine import RunEngine


class TestCatalogCrud:
    async def test_create_and_get(self, session, org_id):
        service = CatalogService(session)

        created = await service.create(
            org_id,
            ComponentInput(code=" SPECIAL ", name="Special Allowance", type="earning", sort_order=5),
        )
        fetched = await service.get(org_id, "SPECIAL")

        assert fetched.component_id == created.component_id
        assert fetched.prorate is True

    async def test_duplicate_code_rejected(self, session, catalog, org_id):
        service = CatalogService(session)

        with pytest.raises(ValidationError) as exc_info:
            await service.create(org_id, ComponentInput(code="BASIC", name="Basic", type="earning"))
        assert exc_info.value.field == "code"

    async def test_same_code_in_other_org(self, session, catalog, other_org_id):
        service = CatalogService(session)

        component = await service.create(
            other_org_id, ComponentInput(code="BASIC", name="Basic", type="earning")
        )

        assert component.org_id == other_org_id

    @pytest.mark.parametrize(
        "changes,field",
        [
            ({"type": "bonus"}, "type"),
            ({"calc_method": "magic"}, "calc_method"),
            ({"code": " "}, "code"),
        ],
    )
    async def test_invalid_values(self, session, org_id, changes, field):
        service = CatalogService(session)
        values = {"code": "X", "name": "X", "type": "earning", **changes}

        with pytest.raises(ValidationError) as exc_info:
            await service.create(org_id, ComponentInput(**values))
        assert exc_info.value.field == field

    async def test_missing_component(self, session, catalog, other_org_id):
        with pytest.raises(ComponentNotFound):
            await CatalogService(session).get(other_org_id, "BASIC")

    async def test_list_excludes_inactive_by_default(self, session, catalog, org_id):
        service = CatalogService(session)
        await service.deactivate(org_id, "CONV")

        active = await service.list_components(org_id)
        everything = await service.list_components(org_id, include_inactive=True)

        assert [c.code for c in active] == ["BASIC", "HRA", "PF", "PF_ER"]
        assert len(everything) == 5


class TestCatalogUpdate:
    async def test_update_fields(self, session, catalog, org_id):
        service = CatalogService(session)

        updated = await service.update(org_id, "HRA", {"name": "HRA", "prorate": False})

        assert updated.name == "HRA"
        assert updated.prorate is False

    async def test_unknown_field(self, session, catalog, org_id):
        with pytest.raises(ValidationError, match="org_id"):
            await CatalogService(session).update(org_id, "HRA", {"org_id": None})

    async def test_rename_allowed_while_unreferenced(self, session, catalog, org_id):
        updated = await CatalogService(session).update(org_id, "CONV", {"code": "TRAVEL"})
        assert updated.code == "TRAVEL"

    async def test_referenced_code_and_type_frozen(
        self, session, catalog, org_id, make_employee, add_compensation
    ):
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000")])
        service = CatalogService(session)

        with pytest.raises(ValidationError) as exc_info:
            await service.update(org_id, "BASIC", {"type": "deduction"})
        assert exc_info.value.field == "type"

        # Unchanged values and unlocked fields are fine.
        updated = await service.update(org_id, "BASIC", {"code": "BASIC", "name": "Basic Pay"})
        assert updated.name == "Basic Pay"


class TestCatalogRemove:
    async def test_unreferenced_component_deleted(self, session, catalog, org_id):
        service = CatalogService(session)

        assert await service.remove(org_id, "CONV") is True
        with pytest.raises(ComponentNotFound):
            await service.get(org_id, "CONV")

    async def test_referenced_component_deactivated(
        self, session, catalog, org_id, make_employee, add_compensation
    ):
        employee = await make_employee()
        await add_compensation(employee, [("BASIC", "600000"), ("HRA", "240000")])
        service = CatalogService(session)

        assert await service.remove(org_id, "HRA") is False
        assert (await service.get(org_id, "HRA")).active is False

    async def test_run_snapshot_counts_as_reference(
        self, session, settings, catalog, org_id, make_employee, add_compensation, make_period
    ):
        employee = await make_employee()
        record = await add_compensation(employee, [("BASIC", "600000"), ("CONV", "19200")])
        period = await make_period()
        await RunEngine(session, settings=settings).compute_run(employee.employee_id, period)
        # Drop CONV from the structure; the run still carries it.
        record.components = [{"component_code": "BASIC", "annual_amount": "600000"}]
        await session.commit()

        assert await CatalogService(session).is_referenced(org_id, "CONV") is True


class TestBuildStructure:
    async def test_uses_active_catalog(self, session, org_id):
        service = CatalogService(session)
        await service.create(
            org_id,
            ComponentInput(
                code="BASIC",
                name="Basic",
                type="earning",
                calc_method="percent_of_gross",
                calc_value=Decimal("50"),
                sort_order=1,
            ),
        )
        await service.create(
            org_id,
            ComponentInput(
                code="PF",
                name="PF",
                type="deduction",
                calc_method="percent_of_component",
                calc_value=Decimal("12"),
                calc_base_code="BASIC",
                sort_order=2,
            ),
        )

        result = await service.build_structure(org_id, Decimal("1000000"))

        assert [(line.code, line.amount) for line in result.lines] == [
            ("BASIC", Decimal("500000.00")),
            ("PF", Decimal("-60000.00")),
        ]

    async def test_requires_positive_ctc(self, session, catalog, org_id):
        with pytest.raises(ValidationError):
            await CatalogService(session).build_structure(org_id, Decimal("0"))
