"""Notification sinks used by the release outbox."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from barangay_payroll.calculators.types import PayrollPeriod
from barangay_payroll.models import Notification

logger = logging.getLogger(__name__)

PAYSLIP_LINK = "/personnel/payroll"
ADMIN_PAYROLL_LINK = "/admin/payroll"


@runtime_checkable
class NotificationSink(Protocol):
    """Fire-and-forget delivery of a message to one recipient."""

    async def send(
        self,
        recipient_id: UUID,
        title: str,
        message: str,
        *,
        kind: str = "info",
        link: str | None = None,
    ) -> None: ...


class StoredNotificationSink:
    """Writes in-app notifications into the caller's session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def send(
        self,
        recipient_id: UUID,
        title: str,
        message: str,
        *,
        kind: str = "info",
        link: str | None = None,
    ) -> None:
        self.session.add(
            Notification(
                personnel_id=recipient_id,
                title=title,
                message=message,
                kind=kind,
                link=link,
            )
        )
        await self.session.flush()
        logger.debug("Stored notification '%s' for %s", title, recipient_id)


def employee_release_message(period: PayrollPeriod) -> tuple[str, str]:
    """Title and message sent to each released employee."""
    return (
        "Payroll Released",
        f"Your payroll for {period.label()} has been released. View your payslip now.",
    )


def admin_release_message(period: PayrollPeriod, released_count: int) -> tuple[str, str]:
    """Title and message summarizing a release for the administrator."""
    return (
        "Payroll Released",
        f"Payroll for {period.label()} was released to {released_count} employees.",
    )
