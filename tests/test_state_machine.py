"""Tests for period and run state machines."""

import pytest

from payroll_core.exceptions import InvalidTransitionError
from payroll_core.services.state_machine import (
    PeriodStateMachine,
    PeriodStatus,
    RunStateMachine,
    RunStatus,
)


class TestPeriodStateMachine:
    """Test period transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # draft → locked
        assert PeriodStateMachine.can_transition("draft", "locked") is True

        # locked → draft (reopen)
        assert PeriodStateMachine.can_transition("locked", "draft") is True

        # locked → posted
        assert PeriodStateMachine.can_transition("locked", "posted") is True

        # posted → challan_generated
        assert PeriodStateMachine.can_transition("posted", "challan_generated") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't post a draft
        assert PeriodStateMachine.can_transition("draft", "posted") is False

        # Posted never goes back
        assert PeriodStateMachine.can_transition("posted", "locked") is False
        assert PeriodStateMachine.can_transition("posted", "draft") is False

        # Terminal
        assert PeriodStateMachine.can_transition("challan_generated", "posted") is False
        assert PeriodStateMachine.get_next_statuses("challan_generated") == []

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PeriodStateMachine.validate_transition("draft", "posted")

        assert exc_info.value.from_status == "draft"
        assert exc_info.value.to_status == "posted"
        assert exc_info.value.code == "INVALID_TRANSITION"

    def test_is_reopen(self):
        assert PeriodStateMachine.is_reopen("locked", "draft") is True
        assert PeriodStateMachine.is_reopen("draft", "locked") is False

    def test_run_mutation_statuses(self):
        assert PeriodStateMachine.can_mutate_runs(PeriodStatus.DRAFT) is True
        assert PeriodStateMachine.can_mutate_runs("locked") is True
        assert PeriodStateMachine.can_mutate_runs("posted") is False
        assert PeriodStateMachine.can_finalize_runs("locked") is True
        assert PeriodStateMachine.can_finalize_runs("draft") is False

    def test_filing_statuses(self):
        assert PeriodStateMachine.can_generate_filings("draft") is False
        assert PeriodStateMachine.can_generate_filings("locked") is True
        assert PeriodStateMachine.can_generate_filings("posted") is True
        assert PeriodStateMachine.can_generate_filings("challan_generated") is True


class TestRunStateMachine:
    """Test run transitions against the period status."""

    def test_finalize_requires_locked_period(self):
        RunStateMachine.validate_transition("processed", "finalized", "locked")

        with pytest.raises(InvalidTransitionError) as exc_info:
            RunStateMachine.validate_transition("processed", "finalized", "draft")
        assert "locked" in exc_info.value.reason

    def test_unfinalize_blocked_once_posted(self):
        RunStateMachine.validate_transition("finalized", "processed", "locked")
        RunStateMachine.validate_transition("finalized", "processed", "draft")

        with pytest.raises(InvalidTransitionError):
            RunStateMachine.validate_transition("finalized", "processed", "posted")

    def test_pending_cannot_finalize(self):
        with pytest.raises(InvalidTransitionError):
            RunStateMachine.validate_transition(RunStatus.PENDING, RunStatus.FINALIZED, "locked")

    def test_can_recalculate(self):
        assert RunStateMachine.can_recalculate("pending") is True
        assert RunStateMachine.can_recalculate("processed") is True
        assert RunStateMachine.can_recalculate("finalized") is False
