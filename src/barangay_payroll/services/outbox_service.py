"""Release outbox: deferred deduction archival and notifications.

A release records its side effects as outbox items inside the release
transaction. The worker performs them afterwards, one item per commit:

    PENDING --(handler succeeds)--> DONE
    PENDING --(handler fails)--> PENDING, attempts + 1, last_error set
    PENDING --(attempts reach OUTBOX_MAX_ATTEMPTS)--> FAILED

Delivery is at-least-once. Deduction archival only touches rows whose
archived_at is still null, so repeating an item is harmless. Failures are
logged and recorded on the item; they never propagate to the release.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from barangay_payroll.calculators.types import PayrollPeriod
from barangay_payroll.config import get_settings
from barangay_payroll.models import Deduction, OutboxKind, OutboxStatus, PayrollOutboxItem
from barangay_payroll.services.notifications import NotificationSink, StoredNotificationSink

logger = logging.getLogger(__name__)


class OutboxService:
    """Records deferred release work in the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def record(
        self, kind: OutboxKind, period: PayrollPeriod, payload: dict[str, Any]
    ) -> PayrollOutboxItem:
        item = PayrollOutboxItem(
            kind=kind.value,
            period_key=period.key,
            payload=payload,
            status=OutboxStatus.PENDING.value,
            attempts=0,
        )
        self.session.add(item)
        return item

    def record_deduction_archival(
        self,
        period: PayrollPeriod,
        personnel_id: UUID,
        consumed_ids: list[UUID],
        attendance_ids: list[UUID],
    ) -> PayrollOutboxItem:
        """Archive consumed non-mandatory and all attendance deductions."""
        return self.record(
            OutboxKind.ARCHIVE_DEDUCTIONS,
            period,
            {
                "personnel_id": str(personnel_id),
                "deduction_ids": sorted(str(i) for i in consumed_ids),
                "attendance_deduction_ids": sorted(str(i) for i in attendance_ids),
            },
        )

    def record_notification(
        self,
        period: PayrollPeriod,
        recipient_id: UUID,
        title: str,
        message: str,
        *,
        kind: str = "success",
        link: str | None = None,
    ) -> PayrollOutboxItem:
        return self.record(
            OutboxKind.NOTIFY,
            period,
            {
                "recipient_id": str(recipient_id),
                "title": title,
                "message": message,
                "kind": kind,
                "link": link,
            },
        )


@dataclass
class DrainResult:
    """Outcome of one worker pass."""

    processed: int = 0
    retried: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class OutboxWorker:
    """Drains pending outbox items, committing after each one."""

    def __init__(
        self,
        session: AsyncSession,
        sink: NotificationSink | None = None,
        max_attempts: int | None = None,
    ):
        self.session = session
        self.sink = sink or StoredNotificationSink(session)
        self.max_attempts = max_attempts or get_settings().outbox_max_attempts
        self._handlers: dict[str, Callable[[PayrollOutboxItem], Awaitable[None]]] = {
            OutboxKind.ARCHIVE_DEDUCTIONS.value: self._archive_deductions,
            OutboxKind.NOTIFY.value: self._notify,
        }

    async def drain(
        self,
        period_key: str | None = None,
        limit: int | None = None,
        kind: OutboxKind | None = None,
    ) -> DrainResult:
        """Process pending items oldest first."""
        result = DrainResult()
        for item_id in await self._pending_ids(period_key, limit, kind):
            item = await self.session.get(PayrollOutboxItem, item_id)
            if item is None or item.status != OutboxStatus.PENDING.value:
                continue

            try:
                await self._handlers[item.kind](item)
                item.status = OutboxStatus.DONE.value
                item.attempts += 1
                item.processed_at = datetime.now(timezone.utc)
                await self.session.commit()
                result.processed += 1
            except Exception as e:
                logger.exception(
                    "Outbox item %s (%s) failed for period %s",
                    item_id,
                    item.kind,
                    item.period_key,
                )
                await self.session.rollback()
                failed_for_good = await self._record_failure(item_id, e)
                if failed_for_good:
                    result.failed += 1
                else:
                    result.retried += 1
                result.errors.append(f"{item_id}: {e}")

        if result.processed or result.retried or result.failed:
            logger.info(
                "Outbox drained: %d done, %d to retry, %d failed",
                result.processed,
                result.retried,
                result.failed,
            )
        return result

    async def pending_count(self) -> int:
        return len(await self._pending_ids(None, None))

    async def outstanding_count(self, kind: OutboxKind) -> int:
        """Items of a kind that are not DONE, including parked FAILED ones."""
        result = await self.session.scalar(
            select(func.count())
            .select_from(PayrollOutboxItem)
            .where(
                PayrollOutboxItem.kind == kind.value,
                PayrollOutboxItem.status != OutboxStatus.DONE.value,
            )
        )
        return result or 0

    async def _pending_ids(
        self,
        period_key: str | None,
        limit: int | None,
        kind: OutboxKind | None = None,
    ) -> list[UUID]:
        stmt = (
            select(PayrollOutboxItem.outbox_item_id)
            .where(PayrollOutboxItem.status == OutboxStatus.PENDING.value)
            .order_by(PayrollOutboxItem.created_at, PayrollOutboxItem.outbox_item_id)
        )
        if period_key is not None:
            stmt = stmt.where(PayrollOutboxItem.period_key == period_key)
        if kind is not None:
            stmt = stmt.where(PayrollOutboxItem.kind == kind.value)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _record_failure(self, item_id: UUID, error: Exception) -> bool:
        """Count a failed attempt. Returns True once the item is parked as FAILED."""
        item = await self.session.get(PayrollOutboxItem, item_id)
        if item is None:
            return False
        item.attempts += 1
        item.last_error = f"{type(error).__name__}: {error}"
        if item.attempts >= self.max_attempts:
            item.status = OutboxStatus.FAILED.value
            item.processed_at = datetime.now(timezone.utc)
        await self.session.commit()
        return item.status == OutboxStatus.FAILED.value

    # === Handlers ===

    async def _archive_deductions(self, item: PayrollOutboxItem) -> None:
        payload = item.payload
        ids = [
            UUID(value)
            for value in payload.get("deduction_ids", []) + payload.get("attendance_deduction_ids", [])
        ]
        if not ids:
            return

        result = await self.session.execute(
            update(Deduction)
            .where(
                Deduction.deduction_id.in_(ids),
                Deduction.archived_at.is_(None),
            )
            .values(archived_at=datetime.now(timezone.utc))
        )
        logger.debug(
            "Archived %d deductions for %s (%s)",
            result.rowcount or 0,
            payload.get("personnel_id"),
            item.period_key,
        )

    async def _notify(self, item: PayrollOutboxItem) -> None:
        payload = item.payload
        await self.sink.send(
            UUID(payload["recipient_id"]),
            payload["title"],
            payload["message"],
            kind=payload.get("kind", "info"),
            link=payload.get("link"),
        )
