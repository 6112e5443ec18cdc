"""Pytest fixtures for payroll core tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payroll_core.calculators.line_builder import LineItemBuilder
from payroll_core.calculators.types import (
    EmployeeContext,
    GrossComponent,
    PeriodWindow,
    StatutoryResult,
)
from payroll_core.config import OVERLAP_WARN, Settings
from payroll_core.database import make_session_factory
from payroll_core.models import (
    AttendanceOverride,
    Base,
    CompensationRecord,
    Employee,
    PayComponent,
    PayrollPeriod,
)

ORG_ID = UUID("00000000-0000-0000-0000-0000000000a1")
OTHER_ORG_ID = UUID("00000000-0000-0000-0000-0000000000b2")

# (code, name, type, prorate, pf, esic, sort_order)
CATALOG = [
    ("BASIC", "Basic Salary", "earning", True, True, True, 1),
    ("HRA", "House Rent Allowance", "earning", True, False, True, 2),
    ("CONV", "Conveyance", "earning", False, False, True, 3),
    ("PF", "Provident Fund", "deduction", True, False, False, 10),
    ("PF_ER", "Employer PF", "employer_cost", True, False, False, 20),
]


@pytest.fixture
def settings() -> Settings:
    """Deterministic settings; sequential batches keep SQLite writers apart."""
    return Settings(
        database_url="sqlite+aiosqlite://",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
        batch_concurrency=1,
        evaluator_timeout_seconds=2.0,
        weekly_off_days=frozenset({6}),
        assume_full_attendance_when_untracked=True,
        compensation_overlap_policy=OVERLAP_WARN,
    )


@pytest.fixture
def make_settings(settings: Settings):
    def _make(**overrides) -> Settings:
        return replace(settings, **overrides)

    return _make


@pytest.fixture
async def engine(tmp_path):
    """Throw-away SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll_core.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def catalog(session: AsyncSession) -> dict[str, PayComponent]:
    """Org catalog: BASIC, HRA, CONV (non-prorated), PF, PF_ER."""
    components = {}
    for code, name, ctype, prorate, pf, esic, sort_order in CATALOG:
        component = PayComponent(
            org_id=ORG_ID,
            code=code,
            name=name,
            type=ctype,
            prorate=prorate,
            pf_wage_participates=pf,
            esic_wage_participates=esic,
            sort_order=sort_order,
        )
        session.add(component)
        components[code] = component
    await session.commit()
    return components


@pytest.fixture
def make_employee(session: AsyncSession):
    async def _make(name: str = "Asha", org_id: UUID = ORG_ID, active: bool = True) -> Employee:
        employee = Employee(org_id=org_id, name=name, work_state="KA", active=active)
        session.add(employee)
        await session.commit()
        return employee

    return _make


@pytest.fixture
def add_compensation(session: AsyncSession):
    """Insert a compensation record directly, bypassing ledger validation."""

    async def _add(
        employee: Employee,
        components: list[tuple[str, str]],
        effective_from: date = date(2024, 1, 1),
        effective_to: date | None = None,
    ) -> CompensationRecord:
        ctc = sum((Decimal(a) for _, a in components if Decimal(a) > 0), Decimal("0"))
        record = CompensationRecord(
            org_id=employee.org_id,
            employee_id=employee.employee_id,
            effective_from=effective_from,
            effective_to=effective_to,
            ctc_annual=ctc,
            components=[{"component_code": c, "annual_amount": a} for c, a in components],
        )
        session.add(record)
        await session.commit()
        return record

    return _add


class FlatStatutoryEvaluator:
    """Fixed PT deduction and 12% employer PF on PF wages."""

    def __init__(self, pt: Decimal = Decimal("200")):
        self.pt = pt
        self.calls: list[UUID] = []

    async def evaluate(
        self,
        gross_components: list[GrossComponent],
        employee: EmployeeContext,
        period: PeriodWindow,
    ) -> StatutoryResult:
        self.calls.append(employee.employee_id)
        pf_wages = sum((c.amount for c in gross_components if c.pf_wage_participates), Decimal("0"))
        return StatutoryResult(
            deduction_lines=[
                LineItemBuilder.create_deduction_line("PT", "Professional Tax", self.pt)
            ],
            employer_cost_lines=[
                LineItemBuilder.create_employer_cost_line(
                    "PF_ER", "Employer PF", pf_wages * Decimal("0.12")
                )
            ],
            wage_bases={"pf_wages": pf_wages, "pt_amount": self.pt},
        )


class SlowEvaluator:
    async def evaluate(self, gross_components, employee, period) -> StatutoryResult:
        await asyncio.sleep(5)
        return StatutoryResult()


class BrokenEvaluator:
    async def evaluate(self, gross_components, employee, period) -> StatutoryResult:
        raise RuntimeError("rule table missing")


@pytest.fixture
def org_id() -> UUID:
    return ORG_ID


@pytest.fixture
def other_org_id() -> UUID:
    return OTHER_ORG_ID


@pytest.fixture
def flat_evaluator() -> FlatStatutoryEvaluator:
    return FlatStatutoryEvaluator()


@pytest.fixture
def slow_evaluator() -> SlowEvaluator:
    return SlowEvaluator()


@pytest.fixture
def broken_evaluator() -> BrokenEvaluator:
    return BrokenEvaluator()


@pytest.fixture
def make_period(session: AsyncSession):
    async def _make(
        month: int = 4,
        year: int = 2024,
        status: str = "draft",
        org_id: UUID = ORG_ID,
    ) -> PayrollPeriod:
        period = PayrollPeriod(org_id=org_id, month=month, year=year, status=status)
        session.add(period)
        await session.commit()
        return period

    return _make


@pytest.fixture
def set_present_days(session: AsyncSession):
    """Record a monthly attendance override."""

    async def _set(employee: Employee, days: str, month: int = 4, year: int = 2024) -> None:
        session.add(
            AttendanceOverride(
                employee_id=employee.employee_id,
                month=month,
                year=year,
                present_days=Decimal(days),
            )
        )
        await session.commit()

    return _set
