"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Requests
# ============================================================================


class PeriodRequest(BaseModel):
    """Optional explicit period; both dates or neither."""

    period_start: date | None = None
    period_end: date | None = None

    @model_validator(mode="after")
    def _both_or_neither(self) -> "PeriodRequest":
        if (self.period_start is None) != (self.period_end is None):
            raise ValueError("period_start and period_end must be given together")
        if self.period_start and self.period_end and self.period_start > self.period_end:
            raise ValueError("period_start must not be after period_end")
        return self


class GenerateRequest(PeriodRequest):
    """Schema for generating a period's payroll."""


class ReleaseRequest(PeriodRequest):
    """Schema for releasing the pending period."""

    include_attendance_deductions: bool = False


class EntryUpdate(BaseModel):
    """Manual adjustment of a pending entry's earnings."""

    base_salary: Decimal | None = Field(default=None, ge=0)
    supplemental_pay: Decimal | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _something_to_change(self) -> "EntryUpdate":
        if self.base_salary is None and self.supplemental_pay is None:
            raise ValueError("Provide base_salary and/or supplemental_pay")
        return self


# ============================================================================
# Responses
# ============================================================================


class PeriodResponse(BaseModel):
    """A payroll period."""

    period_start: date
    period_end: date
    key: str
    working_days: int


class GenerateResponse(BaseModel):
    """Result of a generation."""

    period: PeriodResponse
    created_count: int
    replaced_count: int
    archived_count: int
    mandatory_created: int
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal


class LoanUpdateResponse(BaseModel):
    """Balance change applied to one loan."""

    model_config = ConfigDict(from_attributes=True)

    loan_id: UUID
    personnel_id: UUID
    previous_balance: Decimal
    installment: Decimal
    new_balance: Decimal
    completed: bool


class ReleaseResponse(BaseModel):
    """Result of a release."""

    period: PeriodResponse
    released_count: int
    archived_count: int
    include_attendance_deductions: bool
    released_at: datetime | None = None
    total_net: Decimal
    loan_updates: list[LoanUpdateResponse]
    outbox_pending: int = 0


class PayrollEntryResponse(BaseModel):
    """One employee's payroll in a summary."""

    model_config = ConfigDict(from_attributes=True)

    payroll_entry_id: UUID | None = None
    personnel_id: UUID
    personnel_name: str = ""
    department: str | None = None
    status: str
    base_salary: Decimal
    supplemental_pay: Decimal
    gross: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    released_at: datetime | None = None
    breakdown_snapshot: dict[str, Any]


class TotalsResponse(BaseModel):
    """Totals of a period."""

    employees: int
    gross: Decimal
    deductions: Decimal
    net: Decimal


class SummaryResponse(BaseModel):
    """Entries of a period, stored or previewed."""

    period: PeriodResponse
    source: str
    frozen: bool
    entries: list[PayrollEntryResponse]
    totals: TotalsResponse


class HistoryResponse(BaseModel):
    """Released and archived payroll grouped by period."""

    periods: list[SummaryResponse]


class ClearPendingResponse(BaseModel):
    """Result of clearing pending entries."""

    deleted_count: int


class EntryUpdateResponse(BaseModel):
    """Adjusted pending entry."""

    model_config = ConfigDict(from_attributes=True)

    payroll_entry_id: UUID
    status: str
    base_salary: Decimal
    supplemental_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal


class OutboxDrainResponse(BaseModel):
    """Result of an outbox worker pass."""

    processed: int
    retried: int
    failed: int
    errors: list[str] = Field(default_factory=list)


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
