"""Deduction aggregation.

Resolution order for one employee and period:

1. every unarchived deduction of a mandatory type, whatever its applied date
2. every unarchived non-mandatory deduction applied inside the period
3. when step 2 finds nothing, the most recent unarchived deduction of each
   non-mandatory type (fallback for recurring deductions recorded earlier)
4. mandatory types with no live instance, resolved from the catalog

Attendance-category deductions never take part in steps 1-3; they are
returned as a separate list and only the release decides whether they
count. Everything here is a pure function of already-loaded rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable
from uuid import UUID
from zoneinfo import ZoneInfo

from barangay_payroll.calculators.line_builder import LineItemBuilder
from barangay_payroll.calculators.period import to_local_date
from barangay_payroll.calculators.types import DeductionLine, MissingMandatory, PayrollPeriod
from barangay_payroll.models.deductions import CalculationMode

if TYPE_CHECKING:
    from barangay_payroll.models import Deduction, DeductionType

ATTENDANCE_KEYWORDS = ("Late", "Absent", "Early", "Tardiness", "Attendance", "Partial")


def is_attendance_type(type_name: str) -> bool:
    """Attendance-category deduction types are identified by name."""
    return any(keyword in type_name for keyword in ATTENDANCE_KEYWORDS)


def resolve_type_amount(deduction_type: DeductionType, base_salary: Decimal) -> Decimal:
    """Default amount of a catalog type for a given base salary."""
    if deduction_type.calculation_mode == CalculationMode.PERCENTAGE.value:
        return LineItemBuilder.round_to_cents(base_salary * deduction_type.amount / Decimal("100"))
    return LineItemBuilder.round_to_cents(deduction_type.amount)


def reconcile_mandatory(
    catalog: Iterable[DeductionType],
    existing: Iterable[Deduction],
    personnel_id: UUID,
    base_salary: Decimal,
) -> list[MissingMandatory]:
    """Active mandatory types the employee has no unarchived instance of."""
    present = {d.deduction_type_id for d in existing if d.archived_at is None}
    missing = [
        MissingMandatory(
            personnel_id=personnel_id,
            deduction_type_id=dt.deduction_type_id,
            type_name=dt.name,
            amount=resolve_type_amount(dt, base_salary),
        )
        for dt in catalog
        if dt.is_mandatory
        and dt.is_active
        and not is_attendance_type(dt.name)
        and dt.deduction_type_id not in present
    ]
    missing.sort(key=lambda m: (m.type_name, str(m.deduction_type_id)))
    return missing


@dataclass
class DeductionResolution:
    """Deductions resolved for one employee and period."""

    lines: list[DeductionLine] = field(default_factory=list)
    attendance_lines: list[DeductionLine] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((line.amount for line in self.lines), Decimal("0"))

    @property
    def attendance_total(self) -> Decimal:
        return sum((line.amount for line in self.attendance_lines), Decimal("0"))

    @property
    def consumed_deduction_ids(self) -> list[UUID]:
        """In-period non-mandatory instances used up by a release of these lines.

        Fallback lines are recurring deductions and stay live for later periods.
        """
        return [
            line.deduction_id
            for line in self.lines
            if not line.is_mandatory
            and not line.from_fallback
            and line.deduction_id is not None
        ]


def _to_line(deduction: Deduction, *, attendance: bool = False, fallback: bool = False) -> DeductionLine:
    return DeductionLine(
        deduction_type_id=deduction.deduction_type_id,
        type_name=deduction.deduction_type.name,
        amount=LineItemBuilder.round_to_cents(deduction.amount),
        is_mandatory=deduction.deduction_type.is_mandatory,
        deduction_id=deduction.deduction_id,
        applied_at=deduction.applied_at,
        is_attendance=attendance,
        from_fallback=fallback,
    )


def _recency(deduction: Deduction) -> tuple[datetime, str]:
    applied = deduction.applied_at
    if applied.tzinfo is None:
        applied = applied.replace(tzinfo=timezone.utc)
    return applied, str(deduction.deduction_id)


def _latest_per_type(deductions: Iterable[Deduction]) -> list[Deduction]:
    latest: dict[UUID, Deduction] = {}
    for d in deductions:
        current = latest.get(d.deduction_type_id)
        if current is None or _recency(d) > _recency(current):
            latest[d.deduction_type_id] = d
    return list(latest.values())


def aggregate_deductions(
    deductions: Iterable[Deduction],
    period: PayrollPeriod,
    missing: Iterable[MissingMandatory] = (),
    tz: ZoneInfo | None = None,
) -> DeductionResolution:
    """Resolve the deduction lines of one employee for a period.

    ``missing`` carries mandatory types synthesized in memory for unsaved
    previews; generation persists them as deductions before calling this.
    """
    live = [d for d in deductions if d.archived_at is None]

    attendance = [d for d in live if is_attendance_type(d.deduction_type.name)]
    regular = [d for d in live if not is_attendance_type(d.deduction_type.name)]

    mandatory = [d for d in regular if d.deduction_type.is_mandatory]
    optional = [d for d in regular if not d.deduction_type.is_mandatory]
    in_period = [d for d in optional if period.contains(to_local_date(d.applied_at, tz))]

    lines = [_to_line(d) for d in mandatory]
    if in_period:
        lines.extend(_to_line(d) for d in in_period)
    else:
        lines.extend(_to_line(d, fallback=True) for d in _latest_per_type(optional))

    present = {line.deduction_type_id for line in lines}
    for m in missing:
        if m.deduction_type_id in present:
            continue
        lines.append(
            DeductionLine(
                deduction_type_id=m.deduction_type_id,
                type_name=m.type_name,
                amount=m.amount,
                is_mandatory=True,
            )
        )

    lines.sort(key=DeductionLine.sort_key)
    attendance_lines = sorted(
        (_to_line(d, attendance=True) for d in attendance), key=DeductionLine.sort_key
    )
    return DeductionResolution(lines=lines, attendance_lines=attendance_lines)
