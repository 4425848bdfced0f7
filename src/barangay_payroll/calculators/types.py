"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class LineType(str, Enum):
    """Breakdown line kinds."""

    SUPPLEMENTAL = "SUPPLEMENTAL"
    DEDUCTION = "DEDUCTION"
    ATTENDANCE_DEDUCTION = "ATTENDANCE_DEDUCTION"
    LOAN_INSTALLMENT = "LOAN_INSTALLMENT"


@dataclass(frozen=True)
class PayrollPeriod:
    """Closed date interval a payroll is computed for."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(
                f"Period start {self.start.isoformat()} is after end {self.end.isoformat()}"
            )

    @property
    def key(self) -> str:
        """Grouping key ``YYYY-MM-DD_YYYY-MM-DD``."""
        return f"{self.start.isoformat()}_{self.end.isoformat()}"

    @property
    def calendar_days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def working_days(self) -> int:
        """Calendar days minus Saturdays and Sundays."""
        days = 0
        current = self.start
        while current <= self.end:
            if current.weekday() < 5:
                days += 1
            current += timedelta(days=1)
        return days

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end

    def label(self) -> str:
        """Human readable form used in notifications."""
        return f"{self.start.strftime('%b %d, %Y')} - {self.end.strftime('%b %d, %Y')}"


@dataclass
class SupplementalLine:
    """Supplemental pay record included in gross pay."""

    supplemental_pay_id: UUID | None
    label: str
    amount: Decimal

    def to_snapshot_dict(self) -> dict[str, Any]:
        return {
            "line_type": LineType.SUPPLEMENTAL.value,
            "supplemental_pay_id": (
                str(self.supplemental_pay_id) if self.supplemental_pay_id else None
            ),
            "label": self.label,
            "amount": str(self.amount),
        }


@dataclass
class DeductionLine:
    """A deduction counted against an employee for a period.

    ``deduction_id`` is None only for mandatory lines synthesized from the
    catalog in an unsaved preview.
    """

    deduction_type_id: UUID
    type_name: str
    amount: Decimal
    is_mandatory: bool
    deduction_id: UUID | None = None
    applied_at: datetime | None = None
    is_attendance: bool = False
    from_fallback: bool = False

    @property
    def is_synthesized(self) -> bool:
        return self.deduction_id is None

    def sort_key(self) -> tuple[Any, ...]:
        """Mandatory first, then type name, applied date and id."""
        applied = self.applied_at.isoformat() if self.applied_at else ""
        return (not self.is_mandatory, self.type_name, applied, str(self.deduction_id or ""))

    def to_snapshot_dict(self) -> dict[str, Any]:
        return {
            "line_type": (
                LineType.ATTENDANCE_DEDUCTION.value
                if self.is_attendance
                else LineType.DEDUCTION.value
            ),
            "deduction_id": str(self.deduction_id) if self.deduction_id else None,
            "deduction_type_id": str(self.deduction_type_id),
            "type_name": self.type_name,
            "amount": str(self.amount),
            "is_mandatory": self.is_mandatory,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
            "from_fallback": self.from_fallback,
        }


@dataclass
class LoanLine:
    """Per-period installment of one active loan."""

    loan_id: UUID
    loan_amount: Decimal
    monthly_payment_percent: Decimal
    installment: Decimal
    balance: Decimal
    purpose: str | None = None

    @property
    def balance_after(self) -> Decimal:
        """Balance once this installment is applied (never negative)."""
        return max(Decimal("0"), self.balance - self.installment)

    def to_snapshot_dict(self) -> dict[str, Any]:
        return {
            "line_type": LineType.LOAN_INSTALLMENT.value,
            "loan_id": str(self.loan_id),
            "purpose": self.purpose,
            "loan_amount": str(self.loan_amount),
            "monthly_payment_percent": str(self.monthly_payment_percent),
            "installment": str(self.installment),
            "balance": str(self.balance),
            "balance_after": str(self.balance_after),
        }


@dataclass(frozen=True)
class MissingMandatory:
    """A mandatory deduction type an employee has no live instance of."""

    personnel_id: UUID
    deduction_type_id: UUID
    type_name: str
    amount: Decimal


@dataclass
class EmployeePayroll:
    """Computed payroll of one employee for one period."""

    personnel_id: UUID
    personnel_name: str
    period: PayrollPeriod
    base_salary: Decimal
    position: str | None = None
    department: str | None = None
    supplemental_lines: list[SupplementalLine] = field(default_factory=list)
    deduction_lines: list[DeductionLine] = field(default_factory=list)
    attendance_lines: list[DeductionLine] = field(default_factory=list)
    loan_lines: list[LoanLine] = field(default_factory=list)
    include_attendance: bool = False

    @property
    def supplemental_total(self) -> Decimal:
        return sum((line.amount for line in self.supplemental_lines), Decimal("0"))

    @property
    def gross(self) -> Decimal:
        return self.base_salary + self.supplemental_total

    @property
    def deduction_total(self) -> Decimal:
        return sum((line.amount for line in self.deduction_lines), Decimal("0"))

    @property
    def attendance_total(self) -> Decimal:
        return sum((line.amount for line in self.attendance_lines), Decimal("0"))

    @property
    def applied_attendance_total(self) -> Decimal:
        return self.attendance_total if self.include_attendance else Decimal("0")

    @property
    def loan_total(self) -> Decimal:
        return sum((line.installment for line in self.loan_lines), Decimal("0"))

    @property
    def total_deductions(self) -> Decimal:
        return self.deduction_total + self.applied_attendance_total + self.loan_total

    @property
    def net_pay(self) -> Decimal:
        return self.gross - self.total_deductions
