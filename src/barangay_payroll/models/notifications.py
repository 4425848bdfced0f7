"""Notification and outbox models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from barangay_payroll.models.base import Base, TimestampMixin


class Notification(Base, TimestampMixin):
    """In-app notification for one recipient."""

    __tablename__ = "notification"

    notification_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    personnel_id: Mapped[UUID] = mapped_column(
        ForeignKey("personnel.personnel_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False, default="payroll")
    link: Mapped[str | None] = mapped_column(String, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class OutboxKind(str, Enum):
    """Kinds of deferred release work."""

    ARCHIVE_DEDUCTIONS = "ARCHIVE_DEDUCTIONS"
    NOTIFY = "NOTIFY"


class OutboxStatus(str, Enum):
    """Outbox item processing status."""

    PENDING = "PENDING"
    DONE = "DONE"
    FAILED = "FAILED"


class PayrollOutboxItem(Base, TimestampMixin):
    """Work recorded inside a release transaction and performed afterwards.

    Items are drained by the outbox worker with at-least-once semantics;
    an item that keeps failing is parked as FAILED after the configured
    number of attempts.
    """

    __tablename__ = "payroll_outbox"

    outbox_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    period_key: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=OutboxStatus.PENDING.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "kind IN ('ARCHIVE_DEDUCTIONS', 'NOTIFY')",
            name="payroll_outbox_kind_check",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'DONE', 'FAILED')",
            name="payroll_outbox_status_check",
        ),
        Index("payroll_outbox_status_idx", "status"),
    )
