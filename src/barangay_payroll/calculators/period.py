"""Payroll period resolution.

Periods are semi-monthly by default: the 1st through the 15th, and the 16th
through the last day of the month. "Today" and applied timestamps are read
in the configured payroll timezone so that a deduction recorded late in the
evening local time lands in the local calendar day.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from barangay_payroll.calculators.types import PayrollPeriod
from barangay_payroll.config import get_settings
from barangay_payroll.exceptions import PeriodError

FULL_PERIOD_FACTOR = Decimal("1")


def local_today(tz: ZoneInfo | None = None) -> date:
    """Current date in the payroll timezone."""
    return datetime.now(tz or get_settings().tz).date()


def to_local_date(value: datetime, tz: ZoneInfo | None = None) -> date:
    """Calendar date of a timestamp in the payroll timezone.

    Naive timestamps are treated as UTC, which is how they are stored.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz or get_settings().tz).date()


def semi_monthly_period(on: date) -> PayrollPeriod:
    """Semi-monthly window containing ``on``."""
    if on.day <= 15:
        return PayrollPeriod(on.replace(day=1), on.replace(day=15))
    last_day = calendar.monthrange(on.year, on.month)[1]
    return PayrollPeriod(on.replace(day=16), on.replace(day=last_day))


def resolve_period(
    start: date | None = None,
    end: date | None = None,
    *,
    today: date | None = None,
    tz: ZoneInfo | None = None,
) -> PayrollPeriod:
    """Resolve an explicit date range or the current semi-monthly window."""
    if start is None and end is None:
        return semi_monthly_period(today or local_today(tz))

    if start is None or end is None:
        raise PeriodError(
            "Both period start and period end are required when either is given",
            {"period_start": str(start), "period_end": str(end)},
        )

    try:
        return PayrollPeriod(start, end)
    except ValueError as e:
        raise PeriodError(str(e)) from e


def parse_period_key(key: str) -> PayrollPeriod:
    """Parse a ``YYYY-MM-DD_YYYY-MM-DD`` grouping key."""
    try:
        start_text, end_text = key.split("_", 1)
        return PayrollPeriod(date.fromisoformat(start_text), date.fromisoformat(end_text))
    except ValueError as e:
        raise PeriodError(f"Invalid period key '{key}'") from e


def period_factor(period: PayrollPeriod) -> Decimal:
    """Scaling applied to salary and loan amounts for a period.

    Always the full-period factor: amounts are paid in full regardless of
    the period's length. ``period.working_days`` is recorded in every
    snapshot so proportional scaling can be introduced here later.
    """
    return FULL_PERIOD_FACTOR
