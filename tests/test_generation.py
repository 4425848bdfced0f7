"""Tests for payroll generation."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from barangay_payroll.exceptions import PreconditionError
from barangay_payroll.models import (
    Deduction,
    OutboxKind,
    OutboxStatus,
    PayrollEntry,
    PayrollOutboxItem,
)
from barangay_payroll.services.generation_service import AUTO_MANDATORY_NOTE, GenerationService
from barangay_payroll.services.outbox_service import OutboxService
from barangay_payroll.services.release_service import ReleaseService
from barangay_payroll.services.state_machine import PayrollEntryStatus

from tests.factories import JUNE_SECOND_HALF, utc


async def entries_for(session, period):
    result = await session.execute(
        select(PayrollEntry)
        .where(
            PayrollEntry.period_start == period.start,
            PayrollEntry.period_end == period.end,
        )
        .order_by(PayrollEntry.personnel_id)
    )
    return list(result.scalars().all())


class TestGeneration:
    """PENDING entry generation."""

    async def test_mandatory_deduction_net_pay(
        self, session, period, employee, gsis_type, add_deduction
    ):
        """Base 20,000 with one mandatory 500 deduction nets 19,500."""
        await add_deduction(employee, gsis_type, "500.00", applied_at=utc(2024, 1, 10))

        result = await GenerationService(session).generate(period)

        assert result.created_count == 1
        [entry] = await entries_for(session, period)
        assert entry.status == PayrollEntryStatus.PENDING.value
        assert entry.base_salary == Decimal("20000.00")
        assert entry.total_deductions == Decimal("500.00")
        assert entry.net_pay == Decimal("19500.00")

    async def test_missing_mandatory_is_persisted(self, session, period, employee, gsis_type):
        """A mandatory type without an instance is applied from the catalog."""
        result = await GenerationService(session).generate(period)

        assert result.mandatory_created == 1
        deductions = (
            await session.execute(
                select(Deduction).where(Deduction.personnel_id == employee.personnel_id)
            )
        ).scalars().all()
        assert len(deductions) == 1
        assert deductions[0].amount == Decimal("500.00")
        assert deductions[0].notes == AUTO_MANDATORY_NOTE

        [entry] = await entries_for(session, period)
        assert entry.net_pay == Decimal("19500.00")
        [line] = entry.breakdown_snapshot["deduction_lines"]
        assert line["deduction_id"] == str(deductions[0].deduction_id)

    async def test_regeneration_is_idempotent(
        self, session, period, employee, gsis_type, add_loan, add_supplemental_pay
    ):
        """Generating twice replaces entries instead of accumulating them."""
        await add_loan(employee, "10000.00", "10")
        await add_supplemental_pay(employee, "1500.00")
        service = GenerationService(session)

        first = await service.generate(period)
        second = await service.generate(period)

        assert first.created_count == second.created_count == 1
        assert second.replaced_count == 1
        assert second.mandatory_created == 0
        assert first.total_net == second.total_net == Decimal("20000.00")
        entries = await entries_for(session, period)
        assert len(entries) == 1
        assert entries[0].payroll_entry_id == second.entry_ids[0]

    async def test_one_entry_per_eligible_employee(
        self, session, period, add_personnel, secretary_type, admin, gsis_type
    ):
        """Admins, inactive people and people without a salary basis are excluded."""
        eligible = [
            await add_personnel("Ana Reyes", secretary_type),
            await add_personnel("Ben Cruz", secretary_type),
        ]
        await add_personnel("Carlos Inactive", secretary_type, is_active=False)
        await add_personnel("Dina No Basis", None)

        await GenerationService(session).generate(period)

        entries = await entries_for(session, period)
        assert {e.personnel_id for e in entries} == {p.personnel_id for p in eligible}

    async def test_mandatory_lines_present_every_period(
        self, session, period, employee, gsis_type, add_deduction
    ):
        """Mandatory deductions appear regardless of their applied date."""
        await add_deduction(employee, gsis_type, applied_at=utc(2023, 3, 1))
        service = GenerationService(session)

        await service.generate(period)
        await service.generate(JUNE_SECOND_HALF)

        for p in (period, JUNE_SECOND_HALF):
            [entry] = await entries_for(session, p)
            names = [line["type_name"] for line in entry.breakdown_snapshot["deduction_lines"]]
            assert names == ["GSIS Contribution"]

    async def test_attendance_excluded_from_generation(
        self, session, period, employee, late_type, add_deduction
    ):
        await add_deduction(employee, late_type, "300.00")

        await GenerationService(session).generate(period)

        [entry] = await entries_for(session, period)
        assert entry.total_deductions == Decimal("0.00")
        snapshot = entry.breakdown_snapshot
        assert snapshot["deduction_lines"] == []
        assert len(snapshot["attendance_deduction_lines"]) == 1
        assert snapshot["attendance_included"] is False

    async def test_totals_match_snapshot_lines(
        self, session, period, employee, gsis_type, coop_type, add_deduction, add_loan
    ):
        await add_deduction(employee, gsis_type)
        await add_deduction(employee, coop_type, "250.00")
        await add_loan(employee, "5000.00", "7.5")

        await GenerationService(session).generate(period)

        [entry] = await entries_for(session, period)
        snapshot = entry.breakdown_snapshot
        line_sum = sum(Decimal(line["amount"]) for line in snapshot["deduction_lines"])
        line_sum += sum(Decimal(line["installment"]) for line in snapshot["loan_lines"])
        assert entry.total_deductions == line_sum == Decimal("1125.00")
        assert entry.net_pay == entry.base_salary + entry.supplemental_pay - entry.total_deductions

    async def test_no_active_personnel(self, session, period, admin):
        """Generation without eligible personnel is a precondition error."""
        with pytest.raises(PreconditionError, match="No active personnel found"):
            await GenerationService(session).generate(period)

    async def test_released_period_cannot_be_regenerated(
        self, session, period, employee, gsis_type
    ):
        await GenerationService(session).generate(period)
        await ReleaseService(session).release(period)

        with pytest.raises(PreconditionError, match="already been released"):
            await GenerationService(session).generate(period)

    async def test_generation_sweeps_released_entries(
        self, session, period, employee, gsis_type
    ):
        await GenerationService(session).generate(period)
        await ReleaseService(session).release(period)

        result = await GenerationService(session).generate(JUNE_SECOND_HALF)

        assert result.archived_count == 1
        [old] = await entries_for(session, period)
        await session.refresh(old)
        assert old.status == PayrollEntryStatus.ARCHIVED.value
        assert old.archived_at is not None

    async def test_failure_leaves_no_partial_batch(
        self, session, period, employee, gsis_type, monkeypatch
    ):
        """An error while computing aborts the whole batch."""
        await session.commit()
        service = GenerationService(session)

        async def boom(*args, **kwargs):
            raise RuntimeError("malformed data")

        monkeypatch.setattr(service.engine, "calculate_employee", boom)

        with pytest.raises(RuntimeError):
            await service.generate(period)

        count = await session.scalar(select(func.count()).select_from(PayrollEntry))
        assert count == 0
        deductions = await session.scalar(select(func.count()).select_from(Deduction))
        assert deductions == 0


class TestDeferredDeductionArchival:
    """Deductions consumed by a release are never charged again."""

    async def test_undrained_archival_completed_before_generation(
        self, session, period, employee, coop_type, add_deduction
    ):
        consumed_id = (await add_deduction(employee, coop_type, "250.00")).deduction_id
        await GenerationService(session).generate(period)
        await ReleaseService(session).release(period, drain_outbox=False)

        result = await GenerationService(session).generate(JUNE_SECOND_HALF)

        assert result.total_deductions == Decimal("0")
        archived = await session.scalar(
            select(Deduction.archived_at).where(Deduction.deduction_id == consumed_id)
        )
        assert archived is not None
        status = await session.scalar(
            select(PayrollOutboxItem.status).where(
                PayrollOutboxItem.kind == OutboxKind.ARCHIVE_DEDUCTIONS.value
            )
        )
        assert status == OutboxStatus.DONE.value

    async def test_failed_archival_blocks_generation(
        self, session, period, employee, coop_type, add_deduction
    ):
        deduction_id = (await add_deduction(employee, coop_type, "250.00")).deduction_id
        OutboxService(session).record_deduction_archival(
            period, employee.personnel_id, [deduction_id], []
        )
        await session.commit()
        await session.execute(
            update(PayrollOutboxItem).values(status=OutboxStatus.FAILED.value)
        )
        await session.commit()

        with pytest.raises(PreconditionError, match="not archived yet"):
            await GenerationService(session).generate(JUNE_SECOND_HALF)

        count = await session.scalar(select(func.count()).select_from(PayrollEntry))
        assert count == 0
