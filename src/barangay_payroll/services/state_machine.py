"""Payroll entry state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from barangay_payroll.models import PayrollEntry


class PayrollEntryStatus(str, Enum):
    """Payroll entry status values."""

    PENDING = "PENDING"
    RELEASED = "RELEASED"
    ARCHIVED = "ARCHIVED"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PayrollEntryStateMachine:
    """State machine for payroll entry status transitions.

    Allowed transitions:
    - PENDING → RELEASED (release)
    - RELEASED → ARCHIVED (sweep)

    PENDING entries are never transitioned backwards; regeneration deletes
    and recreates them instead.
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollEntryStatus.PENDING: [PayrollEntryStatus.RELEASED],
        PayrollEntryStatus.RELEASED: [PayrollEntryStatus.ARCHIVED],
        PayrollEntryStatus.ARCHIVED: [],  # Terminal state
    }

    # Statuses whose entries may be recomputed, replaced or edited
    RECALCULATION_ALLOWED = {PayrollEntryStatus.PENDING}

    # Statuses whose snapshot is authoritative
    SNAPSHOT_FROZEN = {PayrollEntryStatus.RELEASED, PayrollEntryStatus.ARCHIVED}

    # Statuses shown in "current" views
    CURRENT = {PayrollEntryStatus.PENDING, PayrollEntryStatus.RELEASED}

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
    def can_recalculate(cls, status: str) -> bool:
        """Check if an entry in this status may be recomputed or edited."""
        return status in cls.RECALCULATION_ALLOWED

    @classmethod
    def is_snapshot_frozen(cls, status: str) -> bool:
        """Check if the snapshot of an entry in this status is immutable."""
        return status in cls.SNAPSHOT_FROZEN

    @classmethod
    def is_current(cls, status: str) -> bool:
        """Check if entries in this status appear in current views."""
        return status in cls.CURRENT

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def transition(cls, entry: PayrollEntry, to_status: str) -> None:
        """Validate and apply a transition to an entry in memory."""
        cls.validate_transition(entry.status, to_status)
        entry.status = PayrollEntryStatus(to_status).value
