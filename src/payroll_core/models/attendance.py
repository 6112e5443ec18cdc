"""Attendance facts and monthly overrides."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_core.models.base import Base, TimestampMixin


class AttendanceFact(Base, TimestampMixin):
    """Attendance outcome for one employee on one date."""

    __tablename__ = "attendance_fact"

    fact_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_absent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_half_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_weekend: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_holiday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="attendance_fact_employee_date_unique"),
    )


class AttendanceOverride(Base, TimestampMixin):
    """Manually entered present-day count for an employee-month."""

    __tablename__ = "attendance_override"

    override_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    present_days: Mapped[Decimal] = mapped_column(Numeric(5, 1), nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "month", "year", name="attendance_override_unique"),
        CheckConstraint("month BETWEEN 1 AND 12", name="attendance_override_month_check"),
        CheckConstraint("present_days >= 0", name="attendance_override_days_check"),
    )
