"""Gross pay aggregation."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

from barangay_payroll.calculators.line_builder import LineItemBuilder
from barangay_payroll.calculators.types import PayrollPeriod, SupplementalLine

if TYPE_CHECKING:
    from barangay_payroll.models import Personnel, SupplementalPay


def base_salary_for(personnel: Personnel, period: PayrollPeriod, factor: Decimal) -> Decimal | None:
    """Base salary for the period, or None when no salary basis is assigned."""
    if personnel.personnel_type is None:
        return None
    return LineItemBuilder.round_to_cents(personnel.personnel_type.basic_salary * factor)


def build_supplemental_lines(records: Iterable[SupplementalPay]) -> list[SupplementalLine]:
    """Unarchived supplemental pay records as breakdown lines.

    Supplemental pay is not date-scoped: every live record counts.
    """
    lines = [
        SupplementalLine(
            supplemental_pay_id=record.supplemental_pay_id,
            label=record.label,
            amount=LineItemBuilder.round_to_cents(record.amount),
        )
        for record in records
        if not record.is_archived
    ]
    lines.sort(key=lambda line: (line.label, str(line.supplemental_pay_id)))
    return lines
