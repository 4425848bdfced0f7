"""Payroll calculation modules."""

from barangay_payroll.calculators.engine import PayrollEngine, PeriodCalculationResult
from barangay_payroll.calculators.line_builder import LineItemBuilder
from barangay_payroll.calculators.period import resolve_period, semi_monthly_period
from barangay_payroll.calculators.types import (
    DeductionLine,
    EmployeePayroll,
    LineType,
    LoanLine,
    MissingMandatory,
    PayrollPeriod,
    SupplementalLine,
)

__all__ = [
    "DeductionLine",
    "EmployeePayroll",
    "LineItemBuilder",
    "LineType",
    "LoanLine",
    "MissingMandatory",
    "PayrollEngine",
    "PayrollPeriod",
    "PeriodCalculationResult",
    "SupplementalLine",
    "resolve_period",
    "semi_monthly_period",
]
