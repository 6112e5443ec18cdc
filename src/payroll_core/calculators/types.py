"""Type definitions for the calculation pipeline."""

from __future__ import annotations

import calendar
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class ComponentType(str, Enum):
    """Pay component types."""

    EARNING = "earning"
    DEDUCTION = "deduction"
    EMPLOYER_COST = "employer_cost"


class CalcMethod(str, Enum):
    """How a catalog component derives its amount when built from a CTC."""

    FIXED_AMOUNT = "fixed_amount"
    PERCENT_OF_COMPONENT = "percent_of_component"
    PERCENT_OF_GROSS = "percent_of_gross"
    FORMULA = "formula"


class PaySchedule(str, Enum):
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"


@dataclass(frozen=True)
class ResolvedLine:
    """A component line whose code is an authoritative catalog code."""

    code: str
    amount: Decimal


@dataclass(frozen=True)
class UnmappedLine:
    """A raw line that matched nothing in the catalog."""

    raw_code: str
    amount: Decimal


@dataclass
class CanonicalizationResult:
    resolved: list[ResolvedLine] = field(default_factory=list)
    unmapped: list[UnmappedLine] = field(default_factory=list)

    @property
    def has_unmapped(self) -> bool:
        return len(self.unmapped) > 0


@dataclass
class SnapshotLine:
    """One line of a run snapshot (signed per conventions)."""

    code: str
    name: str
    type: ComponentType
    amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "type": self.type.value,
            "amount": str(self.amount),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapshotLine:
        return cls(
            code=data["code"],
            name=data.get("name", data["code"]),
            type=ComponentType(data["type"]),
            amount=Decimal(str(data["amount"])),
        )


@dataclass
class RunTotals:
    gross_earnings: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    employer_cost: Decimal


@dataclass(frozen=True)
class PeriodWindow:
    """Calendar boundaries of a payroll month."""

    payroll_period_id: UUID
    org_id: UUID
    month: int
    year: int

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])


@dataclass(frozen=True)
class StatutoryProfile:
    """Org statutory registration, shared read-only across a batch."""

    org_id: UUID
    state: str | None = None
    pf_enabled: bool = True
    esic_enabled: bool = True
    pt_enabled: bool = True


@dataclass(frozen=True)
class EmployeeContext:
    """What the statutory evaluator may know about the employee."""

    employee_id: UUID
    org_id: UUID
    work_state: str | None
    profile: StatutoryProfile


@dataclass
class GrossComponent:
    """A prorated earning handed to the statutory evaluator."""

    code: str
    name: str
    amount: Decimal
    taxable: bool
    pf_wage_participates: bool
    esic_wage_participates: bool


@dataclass
class StatutoryResult:
    """Output of the statutory rule evaluator."""

    deduction_lines: list[SnapshotLine] = field(default_factory=list)
    employer_cost_lines: list[SnapshotLine] = field(default_factory=list)
    # pf_wages, esic_wages, pt_amount, tds_amount
    wage_bases: dict[str, Decimal] = field(default_factory=dict)


@dataclass
class AttendanceSummary:
    """Attendance basis of a run."""

    present_days: Decimal
    working_days: int
    absent_days: int = 0
    half_days: int = 0
    holidays: int = 0
    tracked: bool = True
    overridden: bool = False

    @property
    def proration_factor(self) -> Decimal:
        if self.working_days <= 0:
            return Decimal("1")
        return self.present_days / Decimal(self.working_days)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["present_days"] = str(self.present_days)
        return data
