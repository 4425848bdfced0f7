"""Personnel directory models."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from barangay_payroll.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from barangay_payroll.models.deductions import Deduction
    from barangay_payroll.models.loans import Loan
    from barangay_payroll.models.pay import SupplementalPay


class PersonnelRole(str, Enum):
    """Roles in the personnel directory."""

    ADMIN = "ADMIN"
    PERSONNEL = "PERSONNEL"


class PersonnelType(Base, TimestampMixin):
    """Salary basis (position) assigned to personnel."""

    __tablename__ = "personnel_type"

    personnel_type_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    basic_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (
        CheckConstraint("basic_salary >= 0", name="personnel_type_salary_check"),
    )

    personnel: Mapped[list[Personnel]] = relationship(back_populates="personnel_type")


class Personnel(Base, TimestampMixin):
    """A person in the barangay directory (employee or administrator)."""

    __tablename__ = "personnel"

    personnel_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    role: Mapped[str] = mapped_column(
        String, nullable=False, default=PersonnelRole.PERSONNEL.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    personnel_type_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("personnel_type.personnel_type_id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("role IN ('ADMIN', 'PERSONNEL')", name="personnel_role_check"),
    )

    # Relationships
    personnel_type: Mapped[PersonnelType | None] = relationship(back_populates="personnel")
    deductions: Mapped[list[Deduction]] = relationship(back_populates="personnel")
    loans: Mapped[list[Loan]] = relationship(back_populates="personnel")
    supplemental_pay: Mapped[list[SupplementalPay]] = relationship(
        back_populates="personnel"
    )

    @property
    def is_admin(self) -> bool:
        """Check if this person may run payroll operations."""
        return self.is_active and self.role == PersonnelRole.ADMIN.value
