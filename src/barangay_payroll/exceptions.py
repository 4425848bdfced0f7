"""Exception hierarchy for payroll operations.

Every error carries a machine-readable ``code`` which the API returns next
to the human readable detail.
"""

from __future__ import annotations

from typing import Any


class PayrollError(Exception):
    """Base class for expected payroll failures."""

    code = "PAYROLL_ERROR"

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class AuthorizationError(PayrollError):
    """Caller lacks the administrative capability."""

    code = "UNAUTHORIZED"


class PreconditionError(PayrollError):
    """Operation cannot run against the current state."""

    code = "PRECONDITION_FAILED"


class PeriodError(PreconditionError):
    """Malformed or incomplete payroll period."""

    code = "INVALID_PERIOD"


class EntryNotFoundError(PayrollError):
    """Referenced payroll entry does not exist."""

    code = "NOT_FOUND"


class ConcurrentReleaseError(PayrollError):
    """Another release changed the period's entries first."""

    code = "CONCURRENT_RELEASE"


class SnapshotMismatchError(PayrollError):
    """Entry totals disagree with their breakdown snapshot."""

    code = "SNAPSHOT_MISMATCH"

    def __init__(self, message: str, errors: list[str]):
        self.errors = errors
        super().__init__(message, {"errors": errors})
