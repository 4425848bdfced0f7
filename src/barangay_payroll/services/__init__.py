"""Barangay payroll services."""

from barangay_payroll.services.archival_service import ArchivalService
from barangay_payroll.services.generation_service import GenerationResult, GenerationService
from barangay_payroll.services.outbox_service import OutboxService, OutboxWorker
from barangay_payroll.services.release_service import ReleaseResult, ReleaseService
from barangay_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollEntryStateMachine,
    PayrollEntryStatus,
)
from barangay_payroll.services.summary_service import PeriodSummary, SummaryService

__all__ = [
    "ArchivalService",
    "GenerationResult",
    "GenerationService",
    "InvalidTransitionError",
    "OutboxService",
    "OutboxWorker",
    "PayrollEntryStateMachine",
    "PayrollEntryStatus",
    "PeriodSummary",
    "ReleaseResult",
    "ReleaseService",
    "SummaryService",
]
