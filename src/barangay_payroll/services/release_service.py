"""Payroll release: PENDING → RELEASED with loan amortization."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from barangay_payroll.calculators.deductions import aggregate_deductions, reconcile_mandatory
from barangay_payroll.calculators.engine import PayrollEngine
from barangay_payroll.calculators.line_builder import LineItemBuilder
from barangay_payroll.calculators.loans import apply_installment, build_loan_lines
from barangay_payroll.calculators.period import period_factor
from barangay_payroll.calculators.types import EmployeePayroll, PayrollPeriod
from barangay_payroll.config import Settings, get_settings
from barangay_payroll.database import acquire_period_lock
from barangay_payroll.exceptions import (
    ConcurrentReleaseError,
    PreconditionError,
    SnapshotMismatchError,
)
from barangay_payroll.models import DeductionType, Loan, LoanStatus, PayrollEntry, Personnel
from barangay_payroll.services.archival_service import ArchivalService
from barangay_payroll.services.generation_service import materialize_missing_mandatory
from barangay_payroll.services.notifications import (
    ADMIN_PAYROLL_LINK,
    PAYSLIP_LINK,
    NotificationSink,
    admin_release_message,
    employee_release_message,
)
from barangay_payroll.services.outbox_service import DrainResult, OutboxService, OutboxWorker
from barangay_payroll.services.state_machine import PayrollEntryStateMachine, PayrollEntryStatus

logger = logging.getLogger(__name__)

NO_PENDING_MESSAGE = "No pending payroll entries found. Please generate payroll first."


@dataclass
class LoanUpdate:
    """Balance change applied to one loan by a release."""

    loan_id: UUID
    personnel_id: UUID
    previous_balance: Decimal
    installment: Decimal
    new_balance: Decimal
    completed: bool


@dataclass
class ReleaseResult:
    """Result of releasing a period."""

    period: PayrollPeriod
    released_count: int = 0
    archived_count: int = 0
    outbox_items: int = 0
    include_attendance_deductions: bool = False
    released_at: datetime | None = None
    loan_updates: list[LoanUpdate] = field(default_factory=list)
    total_net: Decimal = Decimal("0")
    outbox: DrainResult | None = None

    @property
    def loans_completed(self) -> int:
        return sum(1 for u in self.loan_updates if u.completed)


class ReleaseService:
    """Releases a period's PENDING entries.

    Inside one transaction, per entry:
    1) re-fetch current deductions, loans and mandatory catalog state
    2) recompute totals and overwrite the snapshot (attendance lines kept
       as their own list and applied only when requested)
    3) flip PENDING → RELEASED with a conditional update
    4) apply loan installments with a conditional update
    5) record deduction archival and notifications in the outbox

    RELEASED entries of earlier periods are archived before any entry is
    flipped. The outbox is drained after commit; its failures are logged
    and retried later, never raised.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        sink: NotificationSink | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.engine = PayrollEngine(session, self.settings)
        self.sink = sink

    async def find_pending_period(self) -> PayrollPeriod:
        """The single period that currently has PENDING entries."""
        result = await self.session.execute(
            select(PayrollEntry.period_start, PayrollEntry.period_end)
            .where(PayrollEntry.status == PayrollEntryStatus.PENDING.value)
            .distinct()
            .order_by(PayrollEntry.period_start, PayrollEntry.period_end)
        )
        periods = [PayrollPeriod(start, end) for start, end in result.all()]
        if not periods:
            raise PreconditionError(NO_PENDING_MESSAGE)
        if len(periods) > 1:
            raise PreconditionError(
                "Multiple periods have pending payroll entries; specify the period to release",
                {"periods": [p.key for p in periods]},
            )
        return periods[0]

    async def release(
        self,
        period: PayrollPeriod,
        *,
        include_attendance_deductions: bool = False,
        released_by_id: UUID | None = None,
        drain_outbox: bool = True,
    ) -> ReleaseResult:
        """Release every PENDING entry of the period."""
        try:
            result = await self._release(
                period,
                include_attendance_deductions=include_attendance_deductions,
                released_by_id=released_by_id,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Released %d payroll entries for %s (%d loans updated, %d completed, %d archived)",
            result.released_count,
            period.key,
            len(result.loan_updates),
            result.loans_completed,
            result.archived_count,
        )

        if drain_outbox:
            result.outbox = await self._drain_outbox(period)
        return result

    async def _release(
        self,
        period: PayrollPeriod,
        *,
        include_attendance_deductions: bool,
        released_by_id: UUID | None,
    ) -> ReleaseResult:
        if not await acquire_period_lock(self.session, period.key):
            raise ConcurrentReleaseError(
                f"Payroll for {period.label()} is being released by another request",
                {"period": period.key},
            )

        entries = await self._load_pending_entries(period)
        if not entries:
            raise PreconditionError(NO_PENDING_MESSAGE, {"period": period.key})

        result = ReleaseResult(
            period=period,
            include_attendance_deductions=include_attendance_deductions,
        )
        result.archived_count = await ArchivalService(self.session).sweep_released(
            before=period.start
        )

        personnel = await self.engine.load_personnel(e.personnel_id for e in entries)
        catalog = await self.engine.load_deduction_catalog()
        catalog_by_id = {dt.deduction_type_id: dt for dt in catalog}
        outbox = OutboxService(self.session)
        released_at = datetime.now(timezone.utc)
        result.released_at = released_at

        for entry in entries:
            self._verify_stored_entry(entry)
            person = personnel[entry.personnel_id]
            payroll, consumed_ids, attendance_ids = await self._recompute(
                entry, person, period, catalog, catalog_by_id, include_attendance_deductions
            )
            await self._flip_entry(entry, payroll, released_at, released_by_id)
            result.loan_updates.extend(await self._amortize_loans(payroll, released_at))

            outbox.record_deduction_archival(
                period, entry.personnel_id, consumed_ids, attendance_ids
            )
            title, message = employee_release_message(period)
            outbox.record_notification(
                period, entry.personnel_id, title, message, link=PAYSLIP_LINK
            )
            result.outbox_items += 2
            result.released_count += 1
            result.total_net += payroll.net_pay

        if released_by_id is not None:
            title, message = admin_release_message(period, result.released_count)
            outbox.record_notification(
                period, released_by_id, title, message, link=ADMIN_PAYROLL_LINK
            )
            result.outbox_items += 1

        await self.session.flush()
        return result

    @staticmethod
    def _verify_stored_entry(entry: PayrollEntry) -> None:
        """The PENDING entry must still agree with its own snapshot.

        Release carries the stored base salary and supplemental lines forward,
        so a row whose totals were changed outside the engine is refused.
        """
        valid, errors = LineItemBuilder.verify_entry_integrity(
            entry.base_salary,
            entry.supplemental_pay,
            entry.total_deductions,
            entry.net_pay,
            entry.breakdown_snapshot,
        )
        if not valid:
            raise SnapshotMismatchError(
                f"Pending entry {entry.payroll_entry_id} disagrees with its snapshot",
                errors,
            )

    async def _recompute(
        self,
        entry: PayrollEntry,
        person: Personnel,
        period: PayrollPeriod,
        catalog: list[DeductionType],
        catalog_by_id: dict[UUID, DeductionType],
        include_attendance: bool,
    ) -> tuple[EmployeePayroll, list[UUID], list[UUID]]:
        """Recompute an entry from live deductions and loans.

        Base salary and supplemental pay keep the values stored on the entry.
        """
        deductions = await self.engine.get_deductions(entry.personnel_id)
        missing = reconcile_mandatory(catalog, deductions, entry.personnel_id, entry.base_salary)
        if missing:
            deductions.extend(materialize_missing_mandatory(self.session, missing, catalog_by_id))

        resolution = aggregate_deductions(deductions, period, tz=self.settings.tz)
        loans = await self.engine.get_active_loans(entry.personnel_id)

        personnel_type = person.personnel_type
        payroll = EmployeePayroll(
            personnel_id=entry.personnel_id,
            personnel_name=person.name,
            period=period,
            base_salary=entry.base_salary,
            position=personnel_type.name if personnel_type else None,
            department=personnel_type.department if personnel_type else None,
            supplemental_lines=LineItemBuilder.supplemental_lines_from_snapshot(
                entry.breakdown_snapshot
            ),
            deduction_lines=resolution.lines,
            attendance_lines=resolution.attendance_lines,
            loan_lines=build_loan_lines(loans, period_factor(period)),
            include_attendance=include_attendance,
        )
        attendance_ids = [
            line.deduction_id
            for line in resolution.attendance_lines
            if line.deduction_id is not None
        ]
        return payroll, resolution.consumed_deduction_ids, attendance_ids

    async def _flip_entry(
        self,
        entry: PayrollEntry,
        payroll: EmployeePayroll,
        released_at: datetime,
        released_by_id: UUID | None,
    ) -> None:
        """PENDING → RELEASED, only if no one else flipped it first."""
        PayrollEntryStateMachine.validate_transition(entry.status, PayrollEntryStatus.RELEASED)
        snapshot = self.engine.build_snapshot(payroll, stage="released")
        updated = await self.session.execute(
            update(PayrollEntry)
            .where(
                PayrollEntry.payroll_entry_id == entry.payroll_entry_id,
                PayrollEntry.status == PayrollEntryStatus.PENDING.value,
            )
            .values(
                status=PayrollEntryStatus.RELEASED.value,
                released_at=released_at,
                released_by_id=released_by_id,
                supplemental_pay=payroll.supplemental_total,
                total_deductions=payroll.total_deductions,
                net_pay=payroll.net_pay,
                breakdown_snapshot=snapshot,
            )
        )
        if updated.rowcount == 0:
            raise ConcurrentReleaseError(
                "Payroll entry was released or replaced by another request",
                {"payroll_entry_id": str(entry.payroll_entry_id)},
            )

    async def _amortize_loans(
        self, payroll: EmployeePayroll, released_at: datetime
    ) -> list[LoanUpdate]:
        updates: list[LoanUpdate] = []
        for line in payroll.loan_lines:
            outcome = apply_installment(line.balance, line.installment)
            values: dict[str, object] = {
                "balance": outcome.new_balance,
                "status": outcome.new_status,
            }
            if outcome.completed:
                values["archived_at"] = released_at

            updated = await self.session.execute(
                update(Loan)
                .where(
                    Loan.loan_id == line.loan_id,
                    Loan.status == LoanStatus.ACTIVE.value,
                    Loan.balance == line.balance,
                )
                .values(**values)
            )
            if updated.rowcount == 0:
                raise ConcurrentReleaseError(
                    "Loan balance changed during release",
                    {"loan_id": str(line.loan_id)},
                )

            logger.debug(
                "Loan %s: %s -> %s%s",
                line.loan_id,
                outcome.previous_balance,
                outcome.new_balance,
                " (completed)" if outcome.completed else "",
            )
            updates.append(
                LoanUpdate(
                    loan_id=line.loan_id,
                    personnel_id=payroll.personnel_id,
                    previous_balance=outcome.previous_balance,
                    installment=outcome.installment,
                    new_balance=outcome.new_balance,
                    completed=outcome.completed,
                )
            )
        return updates

    async def _load_pending_entries(self, period: PayrollPeriod) -> list[PayrollEntry]:
        result = await self.session.execute(
            select(PayrollEntry)
            .where(
                PayrollEntry.period_start == period.start,
                PayrollEntry.period_end == period.end,
                PayrollEntry.status == PayrollEntryStatus.PENDING.value,
            )
            .order_by(PayrollEntry.personnel_id)
        )
        return list(result.scalars().all())

    async def _drain_outbox(self, period: PayrollPeriod) -> DrainResult | None:
        worker = OutboxWorker(
            self.session, sink=self.sink, max_attempts=self.settings.outbox_max_attempts
        )
        try:
            return await worker.drain(period_key=period.key)
        except Exception:
            logger.exception("Outbox drain after release of %s failed", period.key)
            await self.session.rollback()
            return None
