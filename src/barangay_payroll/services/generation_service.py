"""Payroll generation: compute and persist PENDING entries for a period."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from barangay_payroll.calculators.deductions import reconcile_mandatory
from barangay_payroll.calculators.engine import PayrollEngine
from barangay_payroll.calculators.types import EmployeePayroll, MissingMandatory, PayrollPeriod
from barangay_payroll.config import Settings, get_settings
from barangay_payroll.exceptions import PreconditionError
from barangay_payroll.models import Deduction, DeductionType, OutboxKind, PayrollEntry
from barangay_payroll.services.archival_service import ArchivalService
from barangay_payroll.services.outbox_service import OutboxWorker
from barangay_payroll.services.state_machine import PayrollEntryStatus

logger = logging.getLogger(__name__)

AUTO_MANDATORY_NOTE = "Auto-applied mandatory deduction"


def materialize_missing_mandatory(
    session: AsyncSession,
    missing: Iterable[MissingMandatory],
    catalog: dict[UUID, DeductionType],
) -> list[Deduction]:
    """Add a Deduction row for every missing mandatory type.

    Ids, foreign keys and the type relationship are set up front so the new
    rows can be aggregated before they are flushed.
    """
    now = datetime.now(timezone.utc)
    created: list[Deduction] = []
    for m in missing:
        deduction = Deduction(
            deduction_id=uuid4(),
            personnel_id=m.personnel_id,
            deduction_type_id=m.deduction_type_id,
            amount=m.amount,
            applied_at=now,
            notes=AUTO_MANDATORY_NOTE,
        )
        deduction.deduction_type = catalog[m.deduction_type_id]
        session.add(deduction)
        created.append(deduction)
    return created


@dataclass
class GenerationResult:
    """Result of generating a period's PENDING entries."""

    period: PayrollPeriod
    created_count: int = 0
    replaced_count: int = 0
    archived_count: int = 0
    mandatory_created: int = 0
    entry_ids: list[UUID] = field(default_factory=list)
    total_gross: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    total_net: Decimal = Decimal("0")


class GenerationService:
    """Generates PENDING payroll entries for a period.

    Deduction archival left over from earlier releases is drained first;
    generation refuses to run while any of it is still outstanding.

    Then one batch transaction:
    1) refuse periods that were already released
    2) archive entries still RELEASED from earlier cycles
    3) persist mandatory deductions missing for each employee
    4) compute every eligible employee in memory
    5) delete the period's PENDING entries and insert the new batch
    6) commit

    Any failure rolls back the whole batch, so regeneration is idempotent
    by replacement and never leaves a partial period behind.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()
        self.engine = PayrollEngine(session, self.settings)

    async def generate(self, period: PayrollPeriod) -> GenerationResult:
        """Compute and persist PENDING entries for every eligible employee."""
        await self._settle_deduction_archival()
        try:
            result = await self._generate(period)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Generated %d payroll entries for %s (replaced %d, swept %d, %d mandatory deductions added)",
            result.created_count,
            period.key,
            result.replaced_count,
            result.archived_count,
            result.mandatory_created,
        )
        return result

    async def _generate(self, period: PayrollPeriod) -> GenerationResult:
        await self._ensure_not_released(period)

        result = GenerationResult(period=period)
        result.archived_count = await ArchivalService(self.session).sweep_released()

        personnel = await self.engine.load_eligible_personnel()
        if not personnel:
            raise PreconditionError("No active personnel found")

        catalog = await self.engine.load_deduction_catalog()
        catalog_by_id = {dt.deduction_type_id: dt for dt in catalog}

        payrolls: list[EmployeePayroll] = []
        for person in personnel:
            deductions = await self.engine.get_deductions(person.personnel_id)
            missing = reconcile_mandatory(
                catalog,
                deductions,
                person.personnel_id,
                person.personnel_type.basic_salary,
            )
            if missing:
                created = materialize_missing_mandatory(self.session, missing, catalog_by_id)
                deductions.extend(created)
                result.mandatory_created += len(created)

            payroll = await self.engine.calculate_employee(
                person, period, deductions=deductions
            )
            if payroll is not None:
                payrolls.append(payroll)

        result.replaced_count = await self._delete_pending(period)

        entries = [self._build_entry(payroll) for payroll in payrolls]
        self.session.add_all(entries)
        await self.session.flush()

        result.created_count = len(entries)
        result.entry_ids = [entry.payroll_entry_id for entry in entries]
        result.total_gross = sum((p.gross for p in payrolls), Decimal("0"))
        result.total_deductions = sum((p.total_deductions for p in payrolls), Decimal("0"))
        result.total_net = sum((p.net_pay for p in payrolls), Decimal("0"))
        return result

    async def _settle_deduction_archival(self) -> None:
        """Finish archiving deductions consumed by earlier releases."""
        worker = OutboxWorker(self.session, max_attempts=self.settings.outbox_max_attempts)
        await worker.drain(kind=OutboxKind.ARCHIVE_DEDUCTIONS)
        outstanding = await worker.outstanding_count(OutboxKind.ARCHIVE_DEDUCTIONS)
        if outstanding:
            raise PreconditionError(
                "Deductions consumed by an earlier release are not archived yet",
                {"outstanding_items": str(outstanding)},
            )

    async def _ensure_not_released(self, period: PayrollPeriod) -> None:
        released = await self.session.scalar(
            select(func.count())
            .select_from(PayrollEntry)
            .where(
                PayrollEntry.period_start == period.start,
                PayrollEntry.period_end == period.end,
                PayrollEntry.status.in_(
                    [PayrollEntryStatus.RELEASED.value, PayrollEntryStatus.ARCHIVED.value]
                ),
            )
        )
        if released:
            raise PreconditionError(
                f"Payroll for {period.label()} has already been released",
                {"period": period.key},
            )

    async def _delete_pending(self, period: PayrollPeriod) -> int:
        result = await self.session.execute(
            delete(PayrollEntry).where(
                PayrollEntry.period_start == period.start,
                PayrollEntry.period_end == period.end,
                PayrollEntry.status == PayrollEntryStatus.PENDING.value,
            )
        )
        return result.rowcount or 0

    def _build_entry(self, payroll: EmployeePayroll) -> PayrollEntry:
        return PayrollEntry(
            payroll_entry_id=uuid4(),
            personnel_id=payroll.personnel_id,
            period_start=payroll.period.start,
            period_end=payroll.period.end,
            base_salary=payroll.base_salary,
            supplemental_pay=payroll.supplemental_total,
            total_deductions=payroll.total_deductions,
            net_pay=payroll.net_pay,
            status=PayrollEntryStatus.PENDING.value,
            breakdown_snapshot=self.engine.build_snapshot(payroll, stage="generated"),
        )
