"""Payroll entry model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from barangay_payroll.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from barangay_payroll.models.personnel import Personnel


class PayrollEntry(Base, TimestampMixin):
    """One employee's payroll for one period.

    The breakdown snapshot is the self-describing record of every line that
    produced the totals. Once RELEASED the snapshot is authoritative and is
    never recomputed.
    """

    __tablename__ = "payroll_entry"

    payroll_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    personnel_id: Mapped[UUID] = mapped_column(
        ForeignKey("personnel.personnel_id", ondelete="CASCADE"),
        nullable=False,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    # Amounts
    base_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    supplemental_pay: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    breakdown_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    released_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("personnel.personnel_id", ondelete="SET NULL"),
        nullable=True,
    )
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'RELEASED', 'ARCHIVED')",
            name="payroll_entry_status_check",
        ),
        CheckConstraint("period_start <= period_end", name="payroll_entry_period_check"),
        # At most one live entry per person and period
        Index(
            "payroll_entry_live_period_unique",
            "personnel_id",
            "period_start",
            "period_end",
            unique=True,
            postgresql_where=text("status <> 'ARCHIVED'"),
            sqlite_where=text("status <> 'ARCHIVED'"),
        ),
        Index("payroll_entry_period_status_idx", "period_start", "period_end", "status"),
    )

    personnel: Mapped[Personnel] = relationship(foreign_keys=[personnel_id])

    @property
    def period_key(self) -> str:
        """Grouping key ``YYYY-MM-DD_YYYY-MM-DD``."""
        return f"{self.period_start.isoformat()}_{self.period_end.isoformat()}"
