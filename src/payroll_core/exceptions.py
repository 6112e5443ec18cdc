"""Typed exceptions for payroll period and run orchestration.

Every exception carries a machine-readable ``code`` plus the structured
fields a caller needs to act on it, so batch reports and the HTTP layer never
have to parse messages.

    PayrollError
    +-- ValidationError
    +-- NoActiveCompensation
    +-- UnmappedComponent
    +-- OverlapWarning
    +-- RunLocked
    +-- RunNotFound
    +-- InvalidTransitionError
    |   +-- PeriodTransitionBlocked
    +-- PeriodNotFound
    +-- PeriodNotEditable
    +-- ComponentNotFound
    +-- EvaluatorError
    |   +-- EvaluatorTimeout
    +-- ConcurrentModification
    +-- FilingError
        +-- FilingNotFound
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID


class PayrollError(Exception):
    """Base class for all payroll core errors."""

    code: str = "PAYROLL_ERROR"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": self.message,
            "code": self.code,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, date, Decimal)):
        return str(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


class ValidationError(PayrollError):
    """Malformed input. Never persisted."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, **context: Any):
        self.field = field
        super().__init__(message, field=field, **context)


class NoActiveCompensation(PayrollError):
    """No compensation record covers the employee on the given date."""

    code = "NO_ACTIVE_COMPENSATION"

    def __init__(self, employee_id: UUID, as_of_date: date):
        self.employee_id = employee_id
        self.as_of_date = as_of_date
        super().__init__(
            f"No active compensation for employee {employee_id} on {as_of_date}",
            employee_id=employee_id,
            as_of_date=as_of_date,
        )


class UnmappedComponent(PayrollError):
    """One or more component codes did not resolve against the catalog."""

    code = "UNMAPPED_COMPONENT"

    def __init__(self, raw_codes: list[str]):
        self.raw_codes = raw_codes
        super().__init__(
            f"Unmapped component code(s): {', '.join(raw_codes)}",
            raw_codes=raw_codes,
        )


class OverlapWarning(PayrollError):
    """A compensation interval intersects an existing record for the employee."""

    code = "COMPENSATION_OVERLAP"

    def __init__(
        self,
        employee_id: UUID,
        conflicting_record_id: UUID,
        effective_from: date,
        effective_to: date | None,
    ):
        self.employee_id = employee_id
        self.conflicting_record_id = conflicting_record_id
        self.effective_from = effective_from
        self.effective_to = effective_to
        end = effective_to.isoformat() if effective_to else "open"
        super().__init__(
            f"Compensation for employee {employee_id} overlaps record "
            f"{conflicting_record_id} [{effective_from.isoformat()}, {end}]",
            employee_id=employee_id,
            conflicting_record_id=conflicting_record_id,
            effective_from=effective_from,
            effective_to=effective_to,
        )


class RunLocked(PayrollError):
    """Attempted to recompute a finalized run."""

    code = "RUN_LOCKED"

    def __init__(self, employee_id: UUID, payroll_period_id: UUID):
        self.employee_id = employee_id
        self.payroll_period_id = payroll_period_id
        super().__init__(
            f"Run for employee {employee_id} is finalized; unfinalize it before recalculating",
            employee_id=employee_id,
            payroll_period_id=payroll_period_id,
        )


class RunNotFound(PayrollError):
    """No run row exists for the employee in the period."""

    code = "RUN_NOT_FOUND"

    def __init__(self, employee_id: UUID, payroll_period_id: UUID):
        self.employee_id = employee_id
        self.payroll_period_id = payroll_period_id
        super().__init__(
            f"No calculated run for employee {employee_id} in period {payroll_period_id}",
            employee_id=employee_id,
            payroll_period_id=payroll_period_id,
        )


class InvalidTransitionError(PayrollError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None, **context: Any):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, from_status=from_status, to_status=to_status, **context)


class PeriodTransitionBlocked(InvalidTransitionError):
    """Post attempted while eligible employees still lack a finalized run."""

    code = "PERIOD_TRANSITION_BLOCKED"

    def __init__(self, from_status: str, to_status: str, blocking_employee_ids: list[UUID]):
        self.blocking_employee_ids = blocking_employee_ids
        ids = ", ".join(str(e) for e in blocking_employee_ids)
        super().__init__(
            from_status,
            to_status,
            f"{len(blocking_employee_ids)} employee(s) not finalized: {ids}",
            blocking_employee_ids=blocking_employee_ids,
        )


class PeriodNotFound(PayrollError):
    code = "PERIOD_NOT_FOUND"

    def __init__(self, payroll_period_id: UUID):
        self.payroll_period_id = payroll_period_id
        super().__init__(
            f"Payroll period {payroll_period_id} not found",
            payroll_period_id=payroll_period_id,
        )


class PeriodNotEditable(PayrollError):
    """Run mutation attempted on a period whose status forbids it."""

    code = "PERIOD_NOT_EDITABLE"

    def __init__(self, payroll_period_id: UUID, status: str, action: str):
        self.payroll_period_id = payroll_period_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} while period {payroll_period_id} is '{status}'",
            payroll_period_id=payroll_period_id,
            status=status,
            action=action,
        )


class ComponentNotFound(PayrollError):
    code = "COMPONENT_NOT_FOUND"

    def __init__(self, org_id: UUID, component_code: str):
        self.org_id = org_id
        self.component_code = component_code
        super().__init__(
            f"Pay component '{component_code}' not found",
            org_id=org_id,
            component_code=component_code,
        )


class EvaluatorError(PayrollError):
    """The statutory rule evaluator failed for one employee."""

    code = "EVALUATOR_ERROR"

    def __init__(self, employee_id: UUID, message: str):
        self.employee_id = employee_id
        super().__init__(message, employee_id=employee_id)


class EvaluatorTimeout(EvaluatorError):
    code = "EVALUATOR_TIMEOUT"

    def __init__(self, employee_id: UUID, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            employee_id,
            f"Statutory evaluator timed out after {timeout_seconds:g}s for employee {employee_id}",
        )


class ConcurrentModification(PayrollError):
    """Optimistic version check failed; someone else changed the row."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: UUID):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently; retry",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class FilingError(PayrollError):
    code = "FILING_ERROR"


class FilingNotFound(FilingError):
    code = "FILING_NOT_FOUND"

    def __init__(self, filing_id: UUID):
        self.filing_id = filing_id
        super().__init__(f"Filing {filing_id} not found", filing_id=filing_id)
