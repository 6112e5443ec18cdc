"""ORM models."""

from payroll_core.models.attendance import AttendanceFact, AttendanceOverride
from payroll_core.models.audit import AuditEvent
from payroll_core.models.base import Base, TimestampMixin
from payroll_core.models.catalog import PayComponent
from payroll_core.models.compensation import CompensationRecord
from payroll_core.models.org import Employee, OrgStatutoryProfile
from payroll_core.models.payroll import PayrollPeriod, PayrollRun, StatutoryFiling

__all__ = [
    "AttendanceFact",
    "AttendanceOverride",
    "AuditEvent",
    "Base",
    "CompensationRecord",
    "Employee",
    "OrgStatutoryProfile",
    "PayComponent",
    "PayrollPeriod",
    "PayrollRun",
    "StatutoryFiling",
    "TimestampMixin",
]
