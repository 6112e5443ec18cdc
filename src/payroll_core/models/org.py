"""Employee population and per-org statutory profile."""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_core.models.base import Base, TimestampMixin


class Employee(Base, TimestampMixin):
    """An employee of an organization.

    Only the fields payroll orchestration needs; identity and HR profile data
    live elsewhere.
    """

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    org_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    work_state: Mapped[str | None] = mapped_column(String, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class OrgStatutoryProfile(Base, TimestampMixin):
    """Statutory registration of an organization, read by the rule evaluator."""

    __tablename__ = "org_statutory_profile"

    org_id: Mapped[UUID] = mapped_column(primary_key=True)
    state: Mapped[str | None] = mapped_column(String, nullable=True)
    pf_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    esic_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    pt_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
