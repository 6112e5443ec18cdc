"""Period and run state machines with transition validation."""

from __future__ import annotations

from enum import Enum

from payroll_core.exceptions import InvalidTransitionError


class PeriodStatus(str, Enum):
    """Payroll period status values."""

    DRAFT = "draft"
    LOCKED = "locked"
    POSTED = "posted"
    CHALLAN_GENERATED = "challan_generated"


class RunStatus(str, Enum):
    """Payroll run status values.

    PENDING is never stored; it is the absence of a run row.
    """

    PENDING = "pending"
    PROCESSED = "processed"
    FINALIZED = "finalized"


class PeriodStateMachine:
    """State machine for payroll period status transitions.

    Allowed transitions:
    - draft → locked
    - locked → draft (reopen)
    - locked → posted
    - posted → challan_generated
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PeriodStatus.DRAFT: [PeriodStatus.LOCKED],
        PeriodStatus.LOCKED: [PeriodStatus.DRAFT, PeriodStatus.POSTED],
        PeriodStatus.POSTED: [PeriodStatus.CHALLAN_GENERATED],
        PeriodStatus.CHALLAN_GENERATED: [],  # Terminal state
    }

    # Statuses where runs may be calculated or unfinalized
    RUNS_MUTABLE = {
        PeriodStatus.DRAFT,
        PeriodStatus.LOCKED,
    }

    # Statuses where runs may be finalized
    FINALIZE_ALLOWED = {
        PeriodStatus.LOCKED,
    }

    # Statuses for which statutory filings may be generated
    FILING_ALLOWED = {
        PeriodStatus.LOCKED,
        PeriodStatus.POSTED,
        PeriodStatus.CHALLAN_GENERATED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_mutate_runs(cls, status: str) -> bool:
        """Check if runs may be (re)calculated or unfinalized."""
        return status in cls.RUNS_MUTABLE

    @classmethod
    def can_finalize_runs(cls, status: str) -> bool:
        return status in cls.FINALIZE_ALLOWED

    @classmethod
    def can_generate_filings(cls, status: str) -> bool:
        return status in cls.FILING_ALLOWED

    @classmethod
    def is_reopen(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a reopen (locked → draft)."""
        return from_status == PeriodStatus.LOCKED and to_status == PeriodStatus.DRAFT

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])


class RunStateMachine:
    """State machine for per-employee run status.

    pending --compute--> processed --finalize--> finalized --unfinalize--> processed

    Finalize needs a locked period; unfinalize needs a period not yet posted.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        RunStatus.PENDING: [RunStatus.PROCESSED],
        RunStatus.PROCESSED: [RunStatus.PROCESSED, RunStatus.FINALIZED],
        RunStatus.FINALIZED: [RunStatus.PROCESSED],
    }

    RECALCULATION_ALLOWED = {
        RunStatus.PENDING,
        RunStatus.PROCESSED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(
        cls,
        from_status: str,
        to_status: str,
        period_status: str,
    ) -> None:
        """Validate a run transition against both run and period status."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

        if to_status == RunStatus.FINALIZED and not PeriodStateMachine.can_finalize_runs(period_status):
            raise InvalidTransitionError(
                from_status, to_status, f"period must be locked (current: {period_status})"
            )
        if to_status == RunStatus.PROCESSED and not PeriodStateMachine.can_mutate_runs(period_status):
            raise InvalidTransitionError(
                from_status, to_status, f"period is '{period_status}'"
            )

    @classmethod
    def can_recalculate(cls, status: str) -> bool:
        return status in cls.RECALCULATION_ALLOWED
