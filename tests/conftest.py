"""Pytest fixtures for barangay payroll tests."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from barangay_payroll.calculators.types import PayrollPeriod
from barangay_payroll.database import create_all, make_session_factory
from barangay_payroll.models import (
    CalculationMode,
    Deduction,
    DeductionType,
    Loan,
    LoanStatus,
    Personnel,
    PersonnelRole,
    PersonnelType,
    SupplementalPay,
)

from tests.factories import JUNE_FIRST_HALF, utc

# In-memory SQLite shared by every connection of one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_all(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = make_session_factory(engine)

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def period() -> PayrollPeriod:
    """The period most tests generate and release."""
    return JUNE_FIRST_HALF


@pytest.fixture
async def secretary_type(session: AsyncSession) -> PersonnelType:
    """Salary basis of 20,000 per period."""
    personnel_type = PersonnelType(
        personnel_type_id=uuid4(),
        name="Barangay Secretary",
        department="Administration",
        basic_salary=Decimal("20000.00"),
    )
    session.add(personnel_type)
    await session.flush()
    return personnel_type


@pytest.fixture
async def admin(session: AsyncSession) -> Personnel:
    """An active administrator."""
    person = Personnel(
        personnel_id=uuid4(),
        name="Punong Barangay",
        email="captain@barangay.test",
        role=PersonnelRole.ADMIN.value,
        is_active=True,
    )
    session.add(person)
    await session.flush()
    return person


@pytest.fixture
def add_personnel(session: AsyncSession):
    """Factory for personnel records."""
    counter = {"n": 0}

    async def _add(
        name: str,
        personnel_type: PersonnelType | None = None,
        *,
        is_active: bool = True,
        role: str = PersonnelRole.PERSONNEL.value,
    ) -> Personnel:
        counter["n"] += 1
        person = Personnel(
            personnel_id=uuid4(),
            name=name,
            email=f"person{counter['n']}@barangay.test",
            role=role,
            is_active=is_active,
            personnel_type_id=personnel_type.personnel_type_id if personnel_type else None,
        )
        session.add(person)
        await session.flush()
        return person

    return _add


@pytest.fixture
async def employee(add_personnel, secretary_type: PersonnelType) -> Personnel:
    """An active employee with a 20,000 salary basis."""
    return await add_personnel("Maria Santos", secretary_type)


@pytest.fixture
def add_deduction_type(session: AsyncSession):
    """Factory for deduction catalog entries."""

    async def _add(
        name: str,
        amount: str,
        *,
        is_mandatory: bool = False,
        calculation_mode: str = CalculationMode.FIXED.value,
        is_active: bool = True,
    ) -> DeductionType:
        deduction_type = DeductionType(
            deduction_type_id=uuid4(),
            name=name,
            amount=Decimal(amount),
            is_mandatory=is_mandatory,
            calculation_mode=calculation_mode,
            is_active=is_active,
        )
        session.add(deduction_type)
        await session.flush()
        return deduction_type

    return _add


@pytest.fixture
async def gsis_type(add_deduction_type) -> DeductionType:
    """Mandatory fixed contribution of 500."""
    return await add_deduction_type("GSIS Contribution", "500.00", is_mandatory=True)


@pytest.fixture
async def coop_type(add_deduction_type) -> DeductionType:
    """Optional cooperative share deduction."""
    return await add_deduction_type("Cooperative Share", "250.00")


@pytest.fixture
async def late_type(add_deduction_type) -> DeductionType:
    """Attendance-category deduction type."""
    return await add_deduction_type("Late Arrival", "300.00")


@pytest.fixture
def add_deduction(session: AsyncSession):
    """Factory for deductions applied to a person."""

    async def _add(
        personnel: Personnel,
        deduction_type: DeductionType,
        amount: str | None = None,
        *,
        applied_at: datetime | None = None,
        archived_at: datetime | None = None,
    ) -> Deduction:
        deduction = Deduction(
            deduction_id=uuid4(),
            personnel_id=personnel.personnel_id,
            deduction_type_id=deduction_type.deduction_type_id,
            amount=Decimal(amount) if amount is not None else deduction_type.amount,
            applied_at=applied_at or utc(2025, 6, 5, 2),
            archived_at=archived_at,
        )
        deduction.deduction_type = deduction_type
        session.add(deduction)
        await session.flush()
        return deduction

    return _add


@pytest.fixture
def add_loan(session: AsyncSession):
    """Factory for salary loans."""

    async def _add(
        personnel: Personnel,
        amount: str,
        percent: str,
        *,
        balance: str | None = None,
        status: str = LoanStatus.ACTIVE.value,
    ) -> Loan:
        loan = Loan(
            loan_id=uuid4(),
            personnel_id=personnel.personnel_id,
            amount=Decimal(amount),
            balance=Decimal(balance if balance is not None else amount),
            monthly_payment_percent=Decimal(percent),
            purpose="Emergency",
            status=status,
        )
        session.add(loan)
        await session.flush()
        return loan

    return _add


@pytest.fixture
def add_supplemental_pay(session: AsyncSession):
    """Factory for supplemental (overload) pay."""

    async def _add(
        personnel: Personnel,
        amount: str,
        label: str = "Overload Pay",
        *,
        archived_at: datetime | None = None,
    ) -> SupplementalPay:
        record = SupplementalPay(
            supplemental_pay_id=uuid4(),
            personnel_id=personnel.personnel_id,
            amount=Decimal(amount),
            label=label,
            archived_at=archived_at,
        )
        session.add(record)
        await session.flush()
        return record

    return _add
