"""Tests for payroll release."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from barangay_payroll.calculators.period import semi_monthly_period
from barangay_payroll.exceptions import (
    ConcurrentReleaseError,
    PreconditionError,
    SnapshotMismatchError,
)
from barangay_payroll.models import (
    Deduction,
    Loan,
    LoanStatus,
    Notification,
    OutboxStatus,
    PayrollEntry,
    PayrollOutboxItem,
)
from barangay_payroll.services.generation_service import GenerationService
from barangay_payroll.services.notifications import ADMIN_PAYROLL_LINK, PAYSLIP_LINK
from barangay_payroll.services.release_service import NO_PENDING_MESSAGE, ReleaseService
from barangay_payroll.services.state_machine import PayrollEntryStatus

from tests.factories import JUNE_SECOND_HALF, utc


class FailingSink:
    """Notification sink that is always down."""

    def __init__(self):
        self.calls = 0

    async def send(self, recipient_id, title, message, *, kind="info", link=None):
        self.calls += 1
        raise ConnectionError("notification service unavailable")


async def entry_rows(session, period):
    result = await session.execute(
        select(
            PayrollEntry.personnel_id,
            PayrollEntry.status,
            PayrollEntry.total_deductions,
            PayrollEntry.net_pay,
            PayrollEntry.breakdown_snapshot,
            PayrollEntry.released_at,
            PayrollEntry.released_by_id,
        ).where(
            PayrollEntry.period_start == period.start,
            PayrollEntry.period_end == period.end,
        )
    )
    return result.all()


async def archived_at(session, deduction_id):
    return await session.scalar(
        select(Deduction.archived_at).where(Deduction.deduction_id == deduction_id)
    )


async def generate_and_release(session, period, **kwargs):
    await GenerationService(session).generate(period)
    return await ReleaseService(session).release(period, **kwargs)


class TestRelease:
    """PENDING → RELEASED."""

    async def test_release_marks_entries_released(self, session, period, employee, admin):
        result = await generate_and_release(
            session, period, released_by_id=admin.personnel_id
        )

        assert result.released_count == 1
        [row] = await entry_rows(session, period)
        assert row.status == PayrollEntryStatus.RELEASED.value
        assert row.released_at is not None
        assert row.released_by_id == admin.personnel_id
        assert row.breakdown_snapshot["stage"] == "released"

    async def test_no_pending_entries(self, session, period, employee, add_loan):
        """Release without PENDING entries fails and changes nothing."""
        loan_id = (await add_loan(employee, "10000.00", "10")).loan_id
        await session.commit()

        with pytest.raises(PreconditionError) as exc_info:
            await ReleaseService(session).release(period)

        assert exc_info.value.message == NO_PENDING_MESSAGE
        balance = await session.scalar(select(Loan.balance).where(Loan.loan_id == loan_id))
        assert balance == Decimal("10000.00")
        outbox = await session.scalar(select(func.count()).select_from(PayrollOutboxItem))
        assert outbox == 0

    async def test_attendance_excluded_but_archived(
        self, session, period, employee, add_deduction_type, add_deduction, late_type
    ):
        """Attendance lines do not count unless requested, yet are archived."""
        gsis = await add_deduction_type("GSIS Contribution", "200.00", is_mandatory=True)
        mandatory = await add_deduction(employee, gsis)
        tardy = await add_deduction(employee, late_type, "300.00")

        result = await generate_and_release(
            session, period, include_attendance_deductions=False
        )

        [row] = await entry_rows(session, period)
        assert row.total_deductions == Decimal("200.00")
        assert row.net_pay == Decimal("19800.00")
        snapshot = row.breakdown_snapshot
        assert snapshot["attendance_included"] is False
        assert [line["amount"] for line in snapshot["attendance_deduction_lines"]] == ["300.00"]
        assert result.outbox is not None and result.outbox.failed == 0

        assert await archived_at(session, tardy.deduction_id) is not None
        assert await archived_at(session, mandatory.deduction_id) is None

    async def test_attendance_included_when_requested(
        self, session, period, employee, add_deduction_type, add_deduction, late_type
    ):
        gsis = await add_deduction_type("GSIS Contribution", "200.00", is_mandatory=True)
        await add_deduction(employee, gsis)
        await add_deduction(employee, late_type, "300.00")

        await generate_and_release(session, period, include_attendance_deductions=True)

        [row] = await entry_rows(session, period)
        assert row.total_deductions == Decimal("500.00")
        assert row.net_pay == Decimal("19500.00")
        assert row.breakdown_snapshot["attendance_included"] is True

    async def test_old_attendance_deductions_archived(
        self, session, period, employee, late_type, add_deduction
    ):
        """Attendance deductions outside the period do not carry over."""
        old = await add_deduction(employee, late_type, "150.00", applied_at=utc(2025, 3, 2))

        await generate_and_release(session, period)

        assert await archived_at(session, old.deduction_id) is not None

    async def test_release_uses_current_deductions(
        self, session, period, employee, gsis_type, coop_type, add_deduction
    ):
        """Deductions added after generation are picked up at release."""
        await GenerationService(session).generate(period)
        added = await add_deduction(employee, coop_type, "250.00", applied_at=utc(2025, 6, 10))

        await ReleaseService(session).release(period)

        [row] = await entry_rows(session, period)
        assert row.total_deductions == Decimal("750.00")
        assert row.net_pay == Decimal("19250.00")
        assert await archived_at(session, added.deduction_id) is not None

    async def test_consumed_optional_deductions_archived(
        self, session, period, employee, gsis_type, coop_type, add_deduction
    ):
        in_period = await add_deduction(employee, coop_type, "250.00")

        await generate_and_release(session, period)

        assert await archived_at(session, in_period.deduction_id) is not None
        mandatory_ids = (
            await session.execute(
                select(Deduction.deduction_id).where(
                    Deduction.deduction_type_id == gsis_type.deduction_type_id,
                    Deduction.archived_at.is_(None),
                )
            )
        ).scalars().all()
        assert len(mandatory_ids) == 1

    async def test_fallback_deductions_stay_live(
        self, session, period, employee, coop_type, add_deduction
    ):
        """A recurring deduction picked by fallback is charged again next period."""
        recurring = await add_deduction(employee, coop_type, "250.00", applied_at=utc(2025, 4, 1))
        recurring_id = recurring.deduction_id

        await generate_and_release(session, period)

        [row] = await entry_rows(session, period)
        assert row.total_deductions == Decimal("250.00")
        assert await archived_at(session, recurring_id) is None

        await GenerationService(session).generate(JUNE_SECOND_HALF)

        [next_row] = await entry_rows(session, JUNE_SECOND_HALF)
        assert next_row.total_deductions == Decimal("250.00")

    async def test_mandatory_reconciled_at_release(
        self, session, period, employee, add_deduction_type
    ):
        """A mandatory type added after generation is applied on release."""
        await GenerationService(session).generate(period)
        await add_deduction_type(
            "PhilHealth", "2.5", is_mandatory=True, calculation_mode="PERCENTAGE"
        )

        await ReleaseService(session).release(period)

        [row] = await entry_rows(session, period)
        assert row.total_deductions == Decimal("500.00")

    async def test_find_pending_period(self, session, period, employee):
        await GenerationService(session).generate(period)

        assert await ReleaseService(session).find_pending_period() == period

    async def test_find_pending_period_ambiguous(self, session, period, employee):
        await GenerationService(session).generate(period)
        await GenerationService(session).generate(JUNE_SECOND_HALF)

        with pytest.raises(PreconditionError, match="Multiple periods"):
            await ReleaseService(session).find_pending_period()

    async def test_release_archives_earlier_released_periods(self, session, period, employee):
        """Only one released period stays visible."""
        await GenerationService(session).generate(period)
        await GenerationService(session).generate(JUNE_SECOND_HALF)
        service = ReleaseService(session)

        await service.release(period)
        result = await service.release(JUNE_SECOND_HALF)

        assert result.archived_count == 1
        [first] = await entry_rows(session, period)
        [second] = await entry_rows(session, JUNE_SECOND_HALF)
        assert first.status == PayrollEntryStatus.ARCHIVED.value
        assert second.status == PayrollEntryStatus.RELEASED.value


class TestLoanAmortization:
    """Loan balances change only on release."""

    async def test_generation_does_not_touch_balance(self, session, period, employee, add_loan):
        loan = await add_loan(employee, "10000.00", "10")

        await GenerationService(session).generate(period)

        balance = await session.scalar(select(Loan.balance).where(Loan.loan_id == loan.loan_id))
        assert balance == Decimal("10000.00")

    async def test_release_reduces_balance(self, session, period, employee, add_loan):
        loan = await add_loan(employee, "10000.00", "10")

        result = await generate_and_release(session, period)

        [update_] = result.loan_updates
        assert update_.previous_balance == Decimal("10000.00")
        assert update_.installment == Decimal("1000.00")
        assert update_.new_balance == Decimal("9000.00")
        await session.refresh(loan)
        assert loan.balance == Decimal("9000.00")
        assert loan.status == LoanStatus.ACTIVE.value

    async def test_ten_releases_complete_loan(self, session, employee, add_loan):
        """A 10,000 loan at 10% is paid off after ten releases."""
        loan = await add_loan(employee, "10000.00", "10")

        for i in range(10):
            on = date(2025, 1 + i // 2, 1 if i % 2 == 0 else 16)
            result = await generate_and_release(session, semi_monthly_period(on))
            assert result.released_count == 1

        await session.refresh(loan)
        assert loan.balance == Decimal("0.00")
        assert loan.status == LoanStatus.COMPLETED.value
        assert loan.archived_at is not None
        assert result.loans_completed == 1

    async def test_balance_never_negative(self, session, period, employee, add_loan):
        loan = await add_loan(employee, "10000.00", "10", balance="400.00")

        result = await generate_and_release(session, period)

        [row] = await entry_rows(session, period)
        # Installment is charged in full even when it exceeds the balance
        assert row.total_deductions == Decimal("1000.00")
        assert result.loan_updates[0].new_balance == Decimal("0.00")
        await session.refresh(loan)
        assert loan.status == LoanStatus.COMPLETED.value

    async def test_pending_loans_ignored(self, session, period, employee, add_loan):
        loan = await add_loan(employee, "10000.00", "10", status=LoanStatus.PENDING.value)

        result = await generate_and_release(session, period)

        assert result.loan_updates == []
        await session.refresh(loan)
        assert loan.balance == Decimal("10000.00")


class TestConcurrentRelease:
    """Conditional updates gate double releases."""

    async def test_entry_flipped_by_another_release(
        self, session, period, employee, add_loan, monkeypatch
    ):
        loan_id = (await add_loan(employee, "10000.00", "10")).loan_id
        await GenerationService(session).generate(period)
        service = ReleaseService(session)
        stale = await service._load_pending_entries(period)

        # Another request releases first; this session still sees PENDING
        await session.execute(
            update(PayrollEntry)
            .values(status=PayrollEntryStatus.RELEASED.value)
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        async def load_stale(p):
            return stale

        monkeypatch.setattr(service, "_load_pending_entries", load_stale)

        with pytest.raises(ConcurrentReleaseError):
            await service.release(period)

        balance = await session.scalar(select(Loan.balance).where(Loan.loan_id == loan_id))
        assert balance == Decimal("10000.00")
        outbox = await session.scalar(select(func.count()).select_from(PayrollOutboxItem))
        assert outbox == 0

    async def test_loan_balance_changed_concurrently(
        self, session, period, employee, add_loan
    ):
        loan = await add_loan(employee, "10000.00", "10")
        await GenerationService(session).generate(period)

        # Another release already amortized the loan; this session holds the old balance
        await session.execute(
            update(Loan)
            .where(Loan.loan_id == loan.loan_id)
            .values(balance=Decimal("9000.00"))
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        with pytest.raises(ConcurrentReleaseError):
            await ReleaseService(session).release(period)

        statuses = (
            await session.execute(select(PayrollEntry.status))
        ).scalars().all()
        assert statuses == [PayrollEntryStatus.PENDING.value]


class TestReleaseIntegrity:
    """A pending entry must agree with its snapshot before it is released."""

    async def test_tampered_entry_refused(self, session, period, employee, gsis_type):
        await GenerationService(session).generate(period)
        await session.execute(update(PayrollEntry).values(net_pay=Decimal("25000.00")))
        await session.commit()

        with pytest.raises(SnapshotMismatchError) as exc_info:
            await ReleaseService(session).release(period)

        assert exc_info.value.code == "SNAPSHOT_MISMATCH"
        assert any("Net pay mismatch" in e for e in exc_info.value.errors)
        statuses = (
            await session.execute(select(PayrollEntry.status))
        ).scalars().all()
        assert statuses == [PayrollEntryStatus.PENDING.value]
        outbox = await session.scalar(select(func.count()).select_from(PayrollOutboxItem))
        assert outbox == 0


class TestReleaseNotifications:
    """Notifications go through the outbox."""

    async def test_employee_and_admin_notified(self, session, period, employee, admin):
        employee_id = employee.personnel_id
        admin_id = admin.personnel_id

        result = await generate_and_release(session, period, released_by_id=admin_id)

        assert result.outbox_items == 3
        assert result.outbox.processed == 3
        rows = (
            await session.execute(
                select(
                    Notification.personnel_id,
                    Notification.title,
                    Notification.message,
                    Notification.link,
                )
            )
        ).all()
        by_recipient = {row.personnel_id: row for row in rows}
        assert set(by_recipient) == {employee_id, admin_id}
        assert by_recipient[employee_id].title == "Payroll Released"
        assert "Jun 01, 2025 - Jun 15, 2025" in by_recipient[employee_id].message
        assert by_recipient[employee_id].link == PAYSLIP_LINK
        assert by_recipient[admin_id].link == ADMIN_PAYROLL_LINK
        assert "1 employees" in by_recipient[admin_id].message

    async def test_notification_failure_does_not_fail_release(
        self, session, period, employee, late_type, add_deduction
    ):
        tardy_id = (await add_deduction(employee, late_type, "300.00")).deduction_id
        await GenerationService(session).generate(period)
        sink = FailingSink()

        result = await ReleaseService(session, sink=sink).release(period)

        assert result.released_count == 1
        assert sink.calls == 1
        assert result.outbox.retried == 1
        assert result.outbox.processed == 1
        [row] = await entry_rows(session, period)
        assert row.status == PayrollEntryStatus.RELEASED.value
        assert await archived_at(session, tardy_id) is not None

        pending = (
            await session.execute(
                select(PayrollOutboxItem.attempts, PayrollOutboxItem.last_error).where(
                    PayrollOutboxItem.status == OutboxStatus.PENDING.value
                )
            )
        ).all()
        assert len(pending) == 1
        assert pending[0].attempts == 1
        assert "ConnectionError" in pending[0].last_error

    async def test_drain_can_be_deferred(self, session, period, employee):
        await GenerationService(session).generate(period)

        result = await ReleaseService(session).release(period, drain_outbox=False)

        assert result.outbox is None
        statuses = (await session.execute(select(PayrollOutboxItem.status))).scalars().all()
        assert sorted(statuses) == [OutboxStatus.PENDING.value] * 2
