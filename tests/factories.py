"""Shared periods and timestamps for payroll tests."""

from datetime import date, datetime, timezone

from barangay_payroll.calculators.types import PayrollPeriod

JUNE_FIRST_HALF = PayrollPeriod(date(2025, 6, 1), date(2025, 6, 15))
JUNE_SECOND_HALF = PayrollPeriod(date(2025, 6, 16), date(2025, 6, 30))


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    """Aware UTC timestamp."""
    return datetime(year, month, day, hour, tzinfo=timezone.utc)
