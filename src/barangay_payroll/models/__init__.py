"""ORM models."""

from barangay_payroll.models.base import ArchivableMixin, Base, TimestampMixin
from barangay_payroll.models.deductions import CalculationMode, Deduction, DeductionType
from barangay_payroll.models.loans import Loan, LoanStatus
from barangay_payroll.models.notifications import (
    Notification,
    OutboxKind,
    OutboxStatus,
    PayrollOutboxItem,
)
from barangay_payroll.models.pay import SupplementalPay
from barangay_payroll.models.payroll import PayrollEntry
from barangay_payroll.models.personnel import Personnel, PersonnelRole, PersonnelType

__all__ = [
    "ArchivableMixin",
    "Base",
    "CalculationMode",
    "Deduction",
    "DeductionType",
    "Loan",
    "LoanStatus",
    "Notification",
    "OutboxKind",
    "OutboxStatus",
    "PayrollEntry",
    "PayrollOutboxItem",
    "Personnel",
    "PersonnelRole",
    "PersonnelType",
    "SupplementalPay",
    "TimestampMixin",
]
