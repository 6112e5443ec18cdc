"""Pay component catalog."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_core.models.base import Base, TimestampMixin


class PayComponent(Base, TimestampMixin):
    """One configurable line of an org's chart of pay components."""

    __tablename__ = "pay_component"

    component_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    org_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    calc_method: Mapped[str] = mapped_column(String, nullable=False, default="fixed_amount")
    calc_value: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    # Referenced component for percent_of_component.
    calc_base_code: Mapped[str | None] = mapped_column(String, nullable=True)
    taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    pf_wage_participates: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    esic_wage_participates: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    prorate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("org_id", "code", name="pay_component_org_code_unique"),
        CheckConstraint(
            "type IN ('earning', 'deduction', 'employer_cost')",
            name="pay_component_type_check",
        ),
        CheckConstraint(
            "calc_method IN ('fixed_amount', 'percent_of_component', 'percent_of_gross', 'formula')",
            name="pay_component_calc_method_check",
        ),
    )
