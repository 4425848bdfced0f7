"""Loan model."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from barangay_payroll.models.base import ArchivableMixin, Base, TimestampMixin

if TYPE_CHECKING:
    from barangay_payroll.models.personnel import Personnel


class LoanStatus(str, Enum):
    """Loan lifecycle: PENDING -> ACTIVE -> COMPLETED, or PENDING -> REJECTED."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class Loan(Base, TimestampMixin, ArchivableMixin):
    """Salary loan amortized through payroll releases."""

    __tablename__ = "loan"

    loan_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    personnel_id: Mapped[UUID] = mapped_column(
        ForeignKey("personnel.personnel_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    monthly_payment_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=LoanStatus.PENDING.value
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="loan_amount_check"),
        CheckConstraint("balance >= 0", name="loan_balance_non_negative"),
        CheckConstraint(
            "monthly_payment_percent > 0 AND monthly_payment_percent <= 100",
            name="loan_percent_check",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'ACTIVE', 'COMPLETED', 'REJECTED')",
            name="loan_status_check",
        ),
    )

    personnel: Mapped[Personnel] = relationship(back_populates="loans")
