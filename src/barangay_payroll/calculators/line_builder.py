"""Breakdown snapshot builder with deterministic hashing."""

from __future__ import annotations

import copy
import hashlib
import json
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from barangay_payroll.calculators.types import SupplementalLine

if TYPE_CHECKING:
    from barangay_payroll.calculators.types import EmployeePayroll


class LineItemBuilder:
    """Builds the frozen breakdown snapshot of a payroll entry.

    Conventions:
    - Amounts are stored as decimal strings, never floats
    - All line amounts are positive; deductions are subtracted by position
    - Pesos to 2 decimals (half-up) at every line
    - total_deductions = deduction lines + applied attendance lines + loan lines
    - net_pay = base_salary + supplemental_pay - total_deductions
    """

    PRECISION = Decimal("0.0001")  # internal
    OUTPUT_PRECISION = Decimal("0.01")  # persistence

    SNAPSHOT_VERSION = 1

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (centavos)."""
        return amount.quantize(LineItemBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def money(amount: Decimal) -> str:
        return str(LineItemBuilder.round_to_cents(amount))

    @staticmethod
    def compute_snapshot_hash(snapshot: dict[str, Any]) -> str:
        """Deterministic hash of the snapshot content (excluding the hash itself)."""
        content = {k: v for k, v in snapshot.items() if k != "content_hash"}
        json_str = json.dumps(content, sort_keys=True, default=str)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    @staticmethod
    def build_snapshot(
        payroll: EmployeePayroll,
        *,
        stage: str,
        factor: Decimal,
        engine_version: str,
    ) -> dict[str, Any]:
        """Serialize every line and total that produced an entry."""
        money = LineItemBuilder.money
        period = payroll.period
        snapshot: dict[str, Any] = {
            "version": LineItemBuilder.SNAPSHOT_VERSION,
            "stage": stage,
            "engine_version": engine_version,
            "period": {
                "start": period.start.isoformat(),
                "end": period.end.isoformat(),
                "key": period.key,
                "calendar_days": period.calendar_days,
                "working_days": period.working_days,
                "factor": str(factor),
            },
            "personnel": {
                "personnel_id": str(payroll.personnel_id),
                "name": payroll.personnel_name,
                "position": payroll.position,
                "department": payroll.department,
            },
            "base_salary": money(payroll.base_salary),
            "supplemental_lines": [line.to_snapshot_dict() for line in payroll.supplemental_lines],
            "deduction_lines": [line.to_snapshot_dict() for line in payroll.deduction_lines],
            "attendance_deduction_lines": [
                line.to_snapshot_dict() for line in payroll.attendance_lines
            ],
            "attendance_included": payroll.include_attendance,
            "loan_lines": [line.to_snapshot_dict() for line in payroll.loan_lines],
            "totals": {
                "supplemental_pay": money(payroll.supplemental_total),
                "gross": money(payroll.gross),
                "deductions": money(payroll.deduction_total),
                "attendance_deductions": money(payroll.applied_attendance_total),
                "loan_payments": money(payroll.loan_total),
                "total_deductions": money(payroll.total_deductions),
                "net_pay": money(payroll.net_pay),
            },
        }
        snapshot["content_hash"] = LineItemBuilder.compute_snapshot_hash(snapshot)
        return snapshot

    @staticmethod
    def supplemental_lines_from_snapshot(snapshot: dict[str, Any]) -> list[SupplementalLine]:
        """Rebuild supplemental lines frozen into an existing snapshot."""
        return [
            SupplementalLine(
                supplemental_pay_id=(
                    UUID(line["supplemental_pay_id"]) if line.get("supplemental_pay_id") else None
                ),
                label=line["label"],
                amount=Decimal(line["amount"]),
            )
            for line in snapshot.get("supplemental_lines", [])
        ]

    @staticmethod
    def with_adjusted_earnings(
        snapshot: dict[str, Any],
        base_salary: Decimal,
        supplemental_pay: Decimal | None,
        total_deductions: Decimal,
    ) -> dict[str, Any]:
        """Copy of a snapshot with a manually adjusted base or supplemental pay.

        A supplemental adjustment replaces the individual lines with a single
        adjusted line so the lines still sum to the stored amount.
        """
        money = LineItemBuilder.money
        adjusted = copy.deepcopy(snapshot)
        adjusted["base_salary"] = money(base_salary)
        if supplemental_pay is not None:
            adjusted["supplemental_lines"] = [
                SupplementalLine(
                    supplemental_pay_id=None,
                    label="Adjusted supplemental pay",
                    amount=LineItemBuilder.round_to_cents(supplemental_pay),
                ).to_snapshot_dict()
            ]
        supplemental_total = sum(
            (Decimal(line["amount"]) for line in adjusted["supplemental_lines"]), Decimal("0")
        )
        gross = base_salary + supplemental_total
        adjusted["totals"] = {
            **adjusted.get("totals", {}),
            "supplemental_pay": money(supplemental_total),
            "gross": money(gross),
            "total_deductions": money(total_deductions),
            "net_pay": money(gross - total_deductions),
        }
        adjusted["manually_adjusted"] = True
        adjusted["content_hash"] = LineItemBuilder.compute_snapshot_hash(adjusted)
        return adjusted

    @staticmethod
    def sum_snapshot_lines(snapshot: dict[str, Any]) -> Decimal:
        """Total deductions implied by the snapshot's individual lines."""
        total = sum(
            (Decimal(line["amount"]) for line in snapshot.get("deduction_lines", [])),
            Decimal("0"),
        )
        if snapshot.get("attendance_included"):
            total += sum(
                (Decimal(line["amount"]) for line in snapshot.get("attendance_deduction_lines", [])),
                Decimal("0"),
            )
        total += sum(
            (Decimal(line["installment"]) for line in snapshot.get("loan_lines", [])),
            Decimal("0"),
        )
        return total

    @staticmethod
    def verify_entry_integrity(
        base_salary: Decimal,
        supplemental_pay: Decimal,
        total_deductions: Decimal,
        net_pay: Decimal,
        snapshot: dict[str, Any],
    ) -> tuple[bool, list[str]]:
        """Check stored totals against each other and against the snapshot.

        Returns (is_valid, list_of_errors).
        """
        errors: list[str] = []

        expected_net = base_salary + supplemental_pay - total_deductions
        if expected_net != net_pay:
            errors.append(
                f"Net pay mismatch: stored={net_pay}, "
                f"base+supplemental-deductions={expected_net}"
            )

        line_total = LineItemBuilder.sum_snapshot_lines(snapshot)
        if line_total != total_deductions:
            errors.append(
                f"Deduction total mismatch: stored={total_deductions}, "
                f"sum of snapshot lines={line_total}"
            )

        supplemental_lines = sum(
            (Decimal(line["amount"]) for line in snapshot.get("supplemental_lines", [])),
            Decimal("0"),
        )
        if supplemental_lines != supplemental_pay:
            errors.append(
                f"Supplemental pay mismatch: stored={supplemental_pay}, "
                f"sum of snapshot lines={supplemental_lines}"
            )

        if Decimal(snapshot.get("base_salary", "0")) != base_salary:
            errors.append("Base salary differs from snapshot")

        return len(errors) == 0, errors
