"""Payroll calculation engine - per-period orchestrator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from barangay_payroll.calculators.deductions import aggregate_deductions, reconcile_mandatory
from barangay_payroll.calculators.earnings import base_salary_for, build_supplemental_lines
from barangay_payroll.calculators.line_builder import LineItemBuilder
from barangay_payroll.calculators.loans import build_loan_lines
from barangay_payroll.calculators.period import period_factor
from barangay_payroll.calculators.types import EmployeePayroll, MissingMandatory, PayrollPeriod
from barangay_payroll.config import Settings, get_settings
from barangay_payroll.models import (
    Deduction,
    DeductionType,
    Loan,
    LoanStatus,
    Personnel,
    PersonnelRole,
    SupplementalPay,
)

logger = logging.getLogger(__name__)


@dataclass
class PeriodCalculationResult:
    """Result of calculating every eligible employee for a period."""

    period: PayrollPeriod
    results: list[EmployeePayroll] = field(default_factory=list)
    skipped_personnel_ids: list[UUID] = field(default_factory=list)
    synthesized: list[MissingMandatory] = field(default_factory=list)

    @property
    def total_gross(self) -> Decimal:
        return sum((r.gross for r in self.results), Decimal("0"))

    @property
    def total_deductions(self) -> Decimal:
        return sum((r.total_deductions for r in self.results), Decimal("0"))

    @property
    def total_net(self) -> Decimal:
        return sum((r.net_pay for r in self.results), Decimal("0"))


class PayrollEngine:
    """Payroll calculation engine.

    Calculation pipeline (stable order per employee):
    1) Resolve base salary from the assigned personnel type
    2) Add unarchived supplemental pay
    3) Resolve deductions (mandatory, in-period, fallback, attendance split)
    4) Compute installments of active loans
    5) Totals: deductions + applied attendance + loans, net = gross - total

    The engine never writes. Persistence belongs to the generation and
    release services, which also decide whether missing mandatory types are
    persisted first or only synthesized in memory.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()

    async def calculate_period(
        self,
        period: PayrollPeriod,
        *,
        include_attendance: bool = False,
        synthesize_missing: bool = True,
    ) -> PeriodCalculationResult:
        """Compute payroll for all eligible personnel without persisting."""
        result = PeriodCalculationResult(period=period)
        catalog = await self.load_deduction_catalog()

        for personnel in await self.load_active_personnel():
            if personnel.personnel_type is None:
                logger.debug("Skipping %s: no salary basis assigned", personnel.personnel_id)
                result.skipped_personnel_ids.append(personnel.personnel_id)
                continue

            deductions = await self.get_deductions(personnel.personnel_id)
            missing: list[MissingMandatory] = []
            if synthesize_missing:
                missing = reconcile_mandatory(
                    catalog,
                    deductions,
                    personnel.personnel_id,
                    personnel.personnel_type.basic_salary,
                )
                result.synthesized.extend(missing)

            payroll = await self.calculate_employee(
                personnel,
                period,
                deductions=deductions,
                missing=missing,
                include_attendance=include_attendance,
            )
            if payroll is not None:
                result.results.append(payroll)

        return result

    async def calculate_employee(
        self,
        personnel: Personnel,
        period: PayrollPeriod,
        *,
        deductions: Sequence[Deduction] | None = None,
        missing: Iterable[MissingMandatory] = (),
        include_attendance: bool = False,
    ) -> EmployeePayroll | None:
        """Compute one employee's payroll, or None without a salary basis."""
        factor = period_factor(period)
        base_salary = base_salary_for(personnel, period, factor)
        if base_salary is None:
            return None

        if deductions is None:
            deductions = await self.get_deductions(personnel.personnel_id)
        resolution = aggregate_deductions(deductions, period, missing, tz=self.settings.tz)

        loans = await self.get_active_loans(personnel.personnel_id)
        supplemental = await self.get_supplemental_pay(personnel.personnel_id)

        personnel_type = personnel.personnel_type
        return EmployeePayroll(
            personnel_id=personnel.personnel_id,
            personnel_name=personnel.name,
            period=period,
            base_salary=base_salary,
            position=personnel_type.name if personnel_type else None,
            department=personnel_type.department if personnel_type else None,
            supplemental_lines=build_supplemental_lines(supplemental),
            deduction_lines=resolution.lines,
            attendance_lines=resolution.attendance_lines,
            loan_lines=build_loan_lines(loans, factor),
            include_attendance=include_attendance,
        )

    def build_snapshot(self, payroll: EmployeePayroll, stage: str) -> dict[str, Any]:
        """Breakdown snapshot stamped with this engine's version."""
        return LineItemBuilder.build_snapshot(
            payroll,
            stage=stage,
            factor=period_factor(payroll.period),
            engine_version=self.settings.engine_version,
        )

    # === Data Loading Methods ===

    async def load_active_personnel(self) -> list[Personnel]:
        """Active PERSONNEL-role people, with their salary basis loaded."""
        result = await self.session.execute(
            select(Personnel)
            .where(
                Personnel.is_active.is_(True),
                Personnel.role == PersonnelRole.PERSONNEL.value,
            )
            .options(selectinload(Personnel.personnel_type))
            .order_by(Personnel.name, Personnel.personnel_id)
        )
        return list(result.scalars().all())

    async def load_eligible_personnel(self) -> list[Personnel]:
        """Active personnel with an assigned salary basis."""
        return [p for p in await self.load_active_personnel() if p.personnel_type is not None]

    async def load_personnel(self, personnel_ids: Iterable[UUID]) -> dict[UUID, Personnel]:
        """Personnel by id, with their salary basis loaded."""
        ids = list(personnel_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(Personnel)
            .where(Personnel.personnel_id.in_(ids))
            .options(selectinload(Personnel.personnel_type))
        )
        return {p.personnel_id: p for p in result.scalars().all()}

    async def load_deduction_catalog(self) -> list[DeductionType]:
        """Every deduction type, ordered by name."""
        result = await self.session.execute(
            select(DeductionType).order_by(DeductionType.name)
        )
        return list(result.scalars().all())

    async def get_deductions(self, personnel_id: UUID) -> list[Deduction]:
        """Unarchived deductions for a person, with their types."""
        result = await self.session.execute(
            select(Deduction)
            .where(
                Deduction.personnel_id == personnel_id,
                Deduction.archived_at.is_(None),
            )
            .options(selectinload(Deduction.deduction_type))
            .order_by(Deduction.applied_at.desc())
        )
        return list(result.scalars().all())

    async def get_active_loans(self, personnel_id: UUID) -> list[Loan]:
        """ACTIVE, unarchived loans for a person."""
        result = await self.session.execute(
            select(Loan).where(
                Loan.personnel_id == personnel_id,
                Loan.status == LoanStatus.ACTIVE.value,
                Loan.archived_at.is_(None),
            )
        )
        return list(result.scalars().all())

    async def get_supplemental_pay(self, personnel_id: UUID) -> list[SupplementalPay]:
        """Unarchived supplemental pay for a person."""
        result = await self.session.execute(
            select(SupplementalPay).where(
                SupplementalPay.personnel_id == personnel_id,
                SupplementalPay.archived_at.is_(None),
            )
        )
        return list(result.scalars().all())
