"""Payroll core services."""

from payroll_core.services.batch import BatchCancellation, BatchReport
from payroll_core.services.catalog_service import CatalogService, ComponentInput
from payroll_core.services.compensation_ledger import CompensationInput, CompensationLedger
from payroll_core.services.draft_intake import CompensationDraft, DraftIntake
from payroll_core.services.filing_service import FilingCoordinator, FilingGenerator
from payroll_core.services.period_service import PeriodLocks, PeriodOrchestrator
from payroll_core.services.run_engine import RunEngine
from payroll_core.services.state_machine import (
    PeriodStateMachine,
    PeriodStatus,
    RunStateMachine,
    RunStatus,
)

__all__ = [
    "BatchCancellation",
    "BatchReport",
    "CatalogService",
    "ComponentInput",
    "CompensationInput",
    "CompensationLedger",
    "CompensationDraft",
    "DraftIntake",
    "FilingCoordinator",
    "FilingGenerator",
    "PeriodLocks",
    "PeriodOrchestrator",
    "RunEngine",
    "PeriodStateMachine",
    "PeriodStatus",
    "RunStateMachine",
    "RunStatus",
]
