"""Payroll period, per-employee run, and statutory filing models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_core.models.base import Base, JSONType, TimestampMixin

MONEY = Numeric(14, 2)


class PayrollPeriod(Base, TimestampMixin):
    """One payroll month for an organization."""

    __tablename__ = "payroll_period"

    payroll_period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    org_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    lock_at: Mapped[datetime | None] = mapped_column(nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("org_id", "month", "year", name="payroll_period_org_month_year_unique"),
        CheckConstraint("month BETWEEN 1 AND 12", name="payroll_period_month_check"),
        CheckConstraint(
            "status IN ('draft', 'locked', 'posted', 'challan_generated')",
            name="payroll_period_status_check",
        ),
    )

    # Status changes bump the version; a stale writer gets StaleDataError.
    __mapper_args__ = {"version_id_col": version}

    runs: Mapped[list[PayrollRun]] = relationship(back_populates="period")


class PayrollRun(Base, TimestampMixin):
    """Computed payroll result for one employee in one period."""

    __tablename__ = "payroll_run"

    payroll_run_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.payroll_period_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    compensation_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="processed")
    snapshot: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    gross_earnings: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    net_pay: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    employer_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    pf_wages: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    esic_wages: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    pt_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    tds_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    attendance_summary: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    warnings: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    calculated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("payroll_period_id", "employee_id", name="payroll_run_period_employee_unique"),
        CheckConstraint(
            "status IN ('pending', 'processed', 'finalized')",
            name="payroll_run_status_check",
        ),
    )

    period: Mapped[PayrollPeriod] = relationship(back_populates="runs")


class StatutoryFiling(Base, TimestampMixin):
    """A statutory filing document tracked against a period."""

    __tablename__ = "statutory_filing"

    filing_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.payroll_period_id", ondelete="CASCADE"),
        nullable=False,
    )
    filing_type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    generated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    filed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("payroll_period_id", "filing_type", name="statutory_filing_period_type_unique"),
        CheckConstraint(
            "filing_type IN ('pf', 'esic', 'pt', 'tds', 'challan')",
            name="statutory_filing_type_check",
        ),
        CheckConstraint(
            "status IN ('draft', 'generated', 'filed')",
            name="statutory_filing_status_check",
        ),
    )
