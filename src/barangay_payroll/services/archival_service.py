"""Archival sweeper for released payroll entries."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from barangay_payroll.models import PayrollEntry
from barangay_payroll.services.state_machine import PayrollEntryStatus

logger = logging.getLogger(__name__)


class ArchivalService:
    """Moves RELEASED entries to ARCHIVED.

    Runs inside the caller's transaction; it never commits on its own.
    Generation sweeps every RELEASED entry at the start of a cycle, release
    sweeps only the periods ending before the one being released so a
    single released period stays visible.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def sweep_released(self, before: date | None = None) -> int:
        """Archive RELEASED entries, optionally only those ending before a date.

        Returns the number of entries archived.
        """
        stmt = update(PayrollEntry).where(
            PayrollEntry.status == PayrollEntryStatus.RELEASED.value
        )
        if before is not None:
            stmt = stmt.where(PayrollEntry.period_end < before)

        result = await self.session.execute(
            stmt.values(
                status=PayrollEntryStatus.ARCHIVED.value,
                archived_at=datetime.now(timezone.utc),
            )
        )
        count = result.rowcount or 0
        if count:
            logger.info(
                "Archived %d released payroll entries%s",
                count,
                f" ending before {before.isoformat()}" if before else "",
            )
        return count
