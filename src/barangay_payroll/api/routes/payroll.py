"""Payroll API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from barangay_payroll.api.dependencies import CurrentAdmin, DbSession
from barangay_payroll.api.schemas import (
    ClearPendingResponse,
    EntryUpdate,
    EntryUpdateResponse,
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    HistoryResponse,
    LoanUpdateResponse,
    OutboxDrainResponse,
    PayrollEntryResponse,
    PeriodResponse,
    ReleaseRequest,
    ReleaseResponse,
    SummaryResponse,
    TotalsResponse,
)
from barangay_payroll.calculators.period import resolve_period
from barangay_payroll.calculators.types import PayrollPeriod
from barangay_payroll.services.generation_service import GenerationService
from barangay_payroll.services.outbox_service import OutboxWorker
from barangay_payroll.services.release_service import ReleaseService
from barangay_payroll.services.summary_service import PeriodSummary, SummaryService

router = APIRouter(prefix="/payroll", tags=["payroll"])


def _period_response(period: PayrollPeriod) -> PeriodResponse:
    return PeriodResponse(
        period_start=period.start,
        period_end=period.end,
        key=period.key,
        working_days=period.working_days,
    )


def _summary_response(summary: PeriodSummary) -> SummaryResponse:
    return SummaryResponse(
        period=_period_response(summary.period),
        source=summary.source,
        frozen=summary.is_frozen,
        entries=[
            PayrollEntryResponse(
                payroll_entry_id=row.payroll_entry_id,
                personnel_id=row.personnel_id,
                personnel_name=row.personnel_name,
                department=row.department,
                status=row.status,
                base_salary=row.base_salary,
                supplemental_pay=row.supplemental_pay,
                gross=row.gross,
                total_deductions=row.total_deductions,
                net_pay=row.net_pay,
                released_at=row.released_at,
                breakdown_snapshot=row.breakdown_snapshot,
            )
            for row in summary.rows
        ],
        totals=TotalsResponse(**summary.totals),
    )


# ============================================================================
# Generation and release
# ============================================================================


@router.post(
    "/generate",
    response_model=GenerateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def generate_payroll(
    db: DbSession,
    admin: CurrentAdmin,
    payload: GenerateRequest,
) -> GenerateResponse:
    """Compute and store PENDING entries, replacing the period's previous ones."""
    period = resolve_period(payload.period_start, payload.period_end)
    result = await GenerationService(db).generate(period)
    return GenerateResponse(
        period=_period_response(period),
        created_count=result.created_count,
        replaced_count=result.replaced_count,
        archived_count=result.archived_count,
        mandatory_created=result.mandatory_created,
        total_gross=result.total_gross,
        total_deductions=result.total_deductions,
        total_net=result.total_net,
    )


@router.post(
    "/release",
    response_model=ReleaseResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def release_payroll(
    db: DbSession,
    admin: CurrentAdmin,
    payload: ReleaseRequest,
) -> ReleaseResponse:
    """Release the pending period (or the given one)."""
    service = ReleaseService(db)
    if payload.period_start is None:
        period = await service.find_pending_period()
    else:
        period = resolve_period(payload.period_start, payload.period_end)

    result = await service.release(
        period,
        include_attendance_deductions=payload.include_attendance_deductions,
        released_by_id=admin.personnel_id,
    )
    outbox_pending = 0
    if result.outbox is not None:
        outbox_pending = result.outbox.retried
    return ReleaseResponse(
        period=_period_response(period),
        released_count=result.released_count,
        archived_count=result.archived_count,
        include_attendance_deductions=result.include_attendance_deductions,
        released_at=result.released_at,
        total_net=result.total_net,
        loan_updates=[LoanUpdateResponse.model_validate(u) for u in result.loan_updates],
        outbox_pending=outbox_pending,
    )


# ============================================================================
# Read side
# ============================================================================


@router.get(
    "/summary",
    response_model=SummaryResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def get_summary(
    db: DbSession,
    admin: CurrentAdmin,
    period_start: Annotated[date | None, Query()] = None,
    period_end: Annotated[date | None, Query()] = None,
    include_attendance: Annotated[bool, Query()] = False,
) -> SummaryResponse:
    """Stored entries of the period, or an unsaved preview when there are none."""
    period = resolve_period(period_start, period_end)
    summary = await SummaryService(db).query_summary(period, include_attendance)
    return _summary_response(summary)


@router.get(
    "/history",
    response_model=HistoryResponse,
    responses={403: {"model": ErrorResponse}},
)
async def get_history(db: DbSession, admin: CurrentAdmin) -> HistoryResponse:
    """Released and archived payroll grouped by period."""
    history = await SummaryService(db).release_history()
    return HistoryResponse(periods=[_summary_response(s) for s in history])


# ============================================================================
# Pending entry maintenance
# ============================================================================


@router.delete(
    "/pending",
    response_model=ClearPendingResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def clear_pending(
    db: DbSession,
    admin: CurrentAdmin,
    period_start: Annotated[date | None, Query()] = None,
    period_end: Annotated[date | None, Query()] = None,
) -> ClearPendingResponse:
    """Delete PENDING entries of one period, or of every period."""
    period = None
    if period_start is not None or period_end is not None:
        period = resolve_period(period_start, period_end)
    deleted = await SummaryService(db).clear_pending(period)
    return ClearPendingResponse(deleted_count=deleted)


@router.patch(
    "/entries/{entry_id}",
    response_model=EntryUpdateResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def update_entry(
    db: DbSession,
    admin: CurrentAdmin,
    entry_id: Annotated[UUID, Path()],
    payload: EntryUpdate,
) -> EntryUpdateResponse:
    """Adjust base salary or supplemental pay of a PENDING entry."""
    entry = await SummaryService(db).edit_pending_entry(
        entry_id,
        base_salary=payload.base_salary,
        supplemental_pay=payload.supplemental_pay,
    )
    return EntryUpdateResponse.model_validate(entry)


@router.post(
    "/outbox/drain",
    response_model=OutboxDrainResponse,
    responses={403: {"model": ErrorResponse}},
)
async def drain_outbox(db: DbSession, admin: CurrentAdmin) -> OutboxDrainResponse:
    """Retry deferred deduction archival and notifications."""
    result = await OutboxWorker(db).drain()
    return OutboxDrainResponse(
        processed=result.processed,
        retried=result.retried,
        failed=result.failed,
        errors=result.errors,
    )
