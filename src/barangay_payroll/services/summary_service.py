"""Read-side projections and PENDING entry maintenance."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from barangay_payroll.calculators.engine import PayrollEngine
from barangay_payroll.calculators.line_builder import LineItemBuilder
from barangay_payroll.calculators.types import EmployeePayroll, PayrollPeriod
from barangay_payroll.config import Settings, get_settings
from barangay_payroll.exceptions import EntryNotFoundError, PreconditionError
from barangay_payroll.models import PayrollEntry
from barangay_payroll.services.state_machine import PayrollEntryStateMachine, PayrollEntryStatus

logger = logging.getLogger(__name__)


@dataclass
class SummaryRow:
    """One employee's line in a period summary."""

    personnel_id: UUID
    personnel_name: str
    status: str
    base_salary: Decimal
    supplemental_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    breakdown_snapshot: dict[str, Any]
    payroll_entry_id: UUID | None = None
    department: str | None = None
    released_at: datetime | None = None

    @property
    def gross(self) -> Decimal:
        return self.base_salary + self.supplemental_pay

    @classmethod
    def from_entry(cls, entry: PayrollEntry) -> SummaryRow:
        personnel = entry.breakdown_snapshot.get("personnel", {})
        return cls(
            personnel_id=entry.personnel_id,
            personnel_name=personnel.get("name", ""),
            department=personnel.get("department"),
            status=entry.status,
            base_salary=entry.base_salary,
            supplemental_pay=entry.supplemental_pay,
            total_deductions=entry.total_deductions,
            net_pay=entry.net_pay,
            breakdown_snapshot=entry.breakdown_snapshot,
            payroll_entry_id=entry.payroll_entry_id,
            released_at=entry.released_at,
        )

    @classmethod
    def from_preview(cls, payroll: EmployeePayroll, snapshot: dict[str, Any]) -> SummaryRow:
        return cls(
            personnel_id=payroll.personnel_id,
            personnel_name=payroll.personnel_name,
            department=payroll.department,
            status="PREVIEW",
            base_salary=payroll.base_salary,
            supplemental_pay=payroll.supplemental_total,
            total_deductions=payroll.total_deductions,
            net_pay=payroll.net_pay,
            breakdown_snapshot=snapshot,
        )


@dataclass
class PeriodSummary:
    """Entries of one period with their totals."""

    period: PayrollPeriod
    source: str  # "stored" or "preview"
    rows: list[SummaryRow] = field(default_factory=list)

    @property
    def is_frozen(self) -> bool:
        return self.source == "stored"

    @property
    def totals(self) -> dict[str, Any]:
        return {
            "employees": len(self.rows),
            "gross": sum((r.gross for r in self.rows), Decimal("0")),
            "deductions": sum((r.total_deductions for r in self.rows), Decimal("0")),
            "net": sum((r.net_pay for r in self.rows), Decimal("0")),
        }


class SummaryService:
    """Period summaries, release history and PENDING entry maintenance.

    Stored PENDING/RELEASED entries are returned verbatim. A period without
    them is computed as a live preview that writes nothing, not even the
    missing mandatory deductions, which are synthesized in memory.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()

    async def query_summary(
        self, period: PayrollPeriod, include_attendance: bool = False
    ) -> PeriodSummary:
        """Frozen stored entries for the period, else an unsaved preview."""
        stored = await self._load_entries(
            period, [PayrollEntryStatus.PENDING.value, PayrollEntryStatus.RELEASED.value]
        )
        if stored:
            return PeriodSummary(
                period=period,
                source="stored",
                rows=[SummaryRow.from_entry(e) for e in stored],
            )

        engine = PayrollEngine(self.session, self.settings)
        calculation = await engine.calculate_period(
            period, include_attendance=include_attendance, synthesize_missing=True
        )
        rows = [
            SummaryRow.from_preview(payroll, engine.build_snapshot(payroll, stage="preview"))
            for payroll in calculation.results
        ]
        return PeriodSummary(period=period, source="preview", rows=rows)

    async def release_history(self) -> list[PeriodSummary]:
        """RELEASED and ARCHIVED entries grouped by period, newest first."""
        result = await self.session.execute(
            select(PayrollEntry)
            .where(
                PayrollEntry.status.in_(
                    [PayrollEntryStatus.RELEASED.value, PayrollEntryStatus.ARCHIVED.value]
                )
            )
            .order_by(
                PayrollEntry.period_start.desc(),
                PayrollEntry.period_end.desc(),
                PayrollEntry.personnel_id,
            )
        )
        groups: OrderedDict[str, PeriodSummary] = OrderedDict()
        for entry in result.scalars().all():
            key = entry.period_key
            if key not in groups:
                groups[key] = PeriodSummary(
                    period=PayrollPeriod(entry.period_start, entry.period_end),
                    source="stored",
                )
            groups[key].rows.append(SummaryRow.from_entry(entry))
        return list(groups.values())

    async def clear_pending(self, period: PayrollPeriod | None = None) -> int:
        """Delete PENDING entries, for one period or all of them."""
        stmt = delete(PayrollEntry).where(
            PayrollEntry.status == PayrollEntryStatus.PENDING.value
        )
        if period is not None:
            stmt = stmt.where(
                PayrollEntry.period_start == period.start,
                PayrollEntry.period_end == period.end,
            )
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        count = result.rowcount or 0
        logger.info(
            "Cleared %d pending payroll entries%s",
            count,
            f" for {period.key}" if period else "",
        )
        return count

    async def edit_pending_entry(
        self,
        entry_id: UUID,
        *,
        base_salary: Decimal | None = None,
        supplemental_pay: Decimal | None = None,
    ) -> PayrollEntry:
        """Adjust the earnings of a PENDING entry, keeping totals consistent."""
        entry = await self.session.get(PayrollEntry, entry_id)
        if entry is None:
            raise EntryNotFoundError(f"Payroll entry {entry_id} not found")
        if not PayrollEntryStateMachine.can_recalculate(entry.status):
            raise PreconditionError(
                f"Only pending entries can be edited (current: {entry.status})",
                {"payroll_entry_id": str(entry_id)},
            )

        new_base = LineItemBuilder.round_to_cents(
            base_salary if base_salary is not None else entry.base_salary
        )
        snapshot = LineItemBuilder.with_adjusted_earnings(
            entry.breakdown_snapshot,
            new_base,
            supplemental_pay,
            entry.total_deductions,
        )
        new_supplemental = Decimal(snapshot["totals"]["supplemental_pay"])
        net_pay = new_base + new_supplemental - entry.total_deductions

        try:
            updated = await self.session.execute(
                update(PayrollEntry)
                .where(
                    PayrollEntry.payroll_entry_id == entry_id,
                    PayrollEntry.status == PayrollEntryStatus.PENDING.value,
                )
                .values(
                    base_salary=new_base,
                    supplemental_pay=new_supplemental,
                    net_pay=net_pay,
                    breakdown_snapshot=snapshot,
                )
            )
            if updated.rowcount == 0:
                raise PreconditionError(
                    "Payroll entry was released or replaced while editing",
                    {"payroll_entry_id": str(entry_id)},
                )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info("Adjusted pending payroll entry %s", entry_id)
        return entry

    async def verify_period(self, period: PayrollPeriod) -> list[str]:
        """Integrity errors of every stored entry in the period."""
        errors: list[str] = []
        entries = await self._load_entries(period, [s.value for s in PayrollEntryStatus])
        for entry in entries:
            _, entry_errors = LineItemBuilder.verify_entry_integrity(
                entry.base_salary,
                entry.supplemental_pay,
                entry.total_deductions,
                entry.net_pay,
                entry.breakdown_snapshot,
            )
            errors.extend(f"{entry.payroll_entry_id}: {e}" for e in entry_errors)
        return errors

    async def _load_entries(self, period: PayrollPeriod, statuses: list[str]) -> list[PayrollEntry]:
        result = await self.session.execute(
            select(PayrollEntry)
            .where(
                PayrollEntry.period_start == period.start,
                PayrollEntry.period_end == period.end,
                PayrollEntry.status.in_(statuses),
            )
            .order_by(PayrollEntry.personnel_id)
        )
        return list(result.scalars().all())
