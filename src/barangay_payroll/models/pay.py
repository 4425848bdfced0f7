"""Supplemental ("overload") pay model."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from barangay_payroll.models.base import ArchivableMixin, Base, TimestampMixin

if TYPE_CHECKING:
    from barangay_payroll.models.personnel import Personnel


class SupplementalPay(Base, TimestampMixin, ArchivableMixin):
    """Additive pay on top of the base salary."""

    __tablename__ = "supplemental_pay"

    supplemental_pay_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    personnel_id: Mapped[UUID] = mapped_column(
        ForeignKey("personnel.personnel_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    label: Mapped[str] = mapped_column(String, nullable=False, default="Overload Pay")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="supplemental_pay_amount_check"),
    )

    personnel: Mapped[Personnel] = relationship(back_populates="supplemental_pay")
