"""Deduction catalog and applied deduction models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from barangay_payroll.models.base import ArchivableMixin, Base, TimestampMixin

if TYPE_CHECKING:
    from barangay_payroll.models.personnel import Personnel


class CalculationMode(str, Enum):
    """How a deduction type's default amount is interpreted."""

    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


class DeductionType(Base, TimestampMixin):
    """Catalog entry for a kind of deduction."""

    __tablename__ = "deduction_type"

    deduction_type_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_mandatory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    calculation_mode: Mapped[str] = mapped_column(
        String, nullable=False, default=CalculationMode.FIXED.value
    )
    # Peso amount for FIXED, percent of base salary for PERCENTAGE
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "calculation_mode IN ('FIXED', 'PERCENTAGE')",
            name="deduction_type_mode_check",
        ),
        CheckConstraint("amount >= 0", name="deduction_type_amount_check"),
    )

    deductions: Mapped[list[Deduction]] = relationship(back_populates="deduction_type")


class Deduction(Base, TimestampMixin, ArchivableMixin):
    """A deduction applied to one person."""

    __tablename__ = "deduction"

    deduction_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    personnel_id: Mapped[UUID] = mapped_column(
        ForeignKey("personnel.personnel_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    deduction_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("deduction_type.deduction_type_id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="deduction_amount_check"),
    )

    # Relationships
    personnel: Mapped[Personnel] = relationship(back_populates="deductions")
    deduction_type: Mapped[DeductionType] = relationship(back_populates="deductions")
