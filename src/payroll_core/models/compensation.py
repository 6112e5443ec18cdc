"""Effective-dated compensation records."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from payroll_core.models.base import Base, JSONType, TimestampMixin


class CompensationRecord(Base, TimestampMixin):
    """Compensation structure for one employee over an inclusive date interval.

    ``components`` holds ``{"component_code", "annual_amount"}`` objects with
    amounts serialized as strings so that no float ever touches money.
    """

    __tablename__ = "compensation_record"

    compensation_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    org_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    ctc_annual: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    pay_schedule: Mapped[str] = mapped_column(String, nullable=False, default="monthly")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    components: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False, default="manual")
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("ctc_annual > 0", name="compensation_ctc_positive"),
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="compensation_dates_check",
        ),
        CheckConstraint(
            "pay_schedule IN ('monthly', 'weekly', 'biweekly')",
            name="compensation_pay_schedule_check",
        ),
        CheckConstraint("source IN ('manual', 'ai_draft')", name="compensation_source_check"),
    )

    def is_active_on(self, as_of_date: date) -> bool:
        """Check if the record covers a date."""
        if self.effective_from > as_of_date:
            return False
        return self.effective_to is None or self.effective_to >= as_of_date

    def overlaps(self, start: date, end: date | None) -> bool:
        """Check interval intersection with [start, end], end None = open."""
        if end is not None and self.effective_from > end:
            return False
        return self.effective_to is None or self.effective_to >= start

    def component_amounts(self) -> list[tuple[str, Decimal]]:
        return [
            (line["component_code"], Decimal(str(line["annual_amount"])))
            for line in self.components
        ]
