"""Loan amortization."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

from barangay_payroll.calculators.line_builder import LineItemBuilder
from barangay_payroll.calculators.types import LoanLine
from barangay_payroll.models.loans import LoanStatus

if TYPE_CHECKING:
    from barangay_payroll.models import Loan


def compute_installment(
    amount: Decimal, monthly_payment_percent: Decimal, factor: Decimal = Decimal("1")
) -> Decimal:
    """installment = amount * percent / 100 * factor, rounded to cents."""
    return LineItemBuilder.round_to_cents(amount * monthly_payment_percent / Decimal("100") * factor)


def build_loan_lines(loans: Iterable[Loan], factor: Decimal = Decimal("1")) -> list[LoanLine]:
    """Installment lines for every ACTIVE, unarchived loan."""
    lines = [
        LoanLine(
            loan_id=loan.loan_id,
            loan_amount=loan.amount,
            monthly_payment_percent=loan.monthly_payment_percent,
            installment=compute_installment(loan.amount, loan.monthly_payment_percent, factor),
            balance=loan.balance,
            purpose=loan.purpose,
        )
        for loan in loans
        if loan.status == LoanStatus.ACTIVE.value and loan.archived_at is None
    ]
    lines.sort(key=lambda line: str(line.loan_id))
    return lines


@dataclass(frozen=True)
class AmortizationResult:
    """Outcome of applying one installment to a loan balance."""

    previous_balance: Decimal
    installment: Decimal
    new_balance: Decimal

    @property
    def completed(self) -> bool:
        return self.new_balance == Decimal("0")

    @property
    def new_status(self) -> str:
        return LoanStatus.COMPLETED.value if self.completed else LoanStatus.ACTIVE.value


def apply_installment(balance: Decimal, installment: Decimal) -> AmortizationResult:
    """new balance = max(0, balance - installment)."""
    new_balance = max(Decimal("0"), balance - installment)
    return AmortizationResult(
        previous_balance=balance,
        installment=installment,
        new_balance=LineItemBuilder.round_to_cents(new_balance),
    )
