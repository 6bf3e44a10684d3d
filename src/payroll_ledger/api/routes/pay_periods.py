"""Pay period closure and history endpoints."""

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Query, status

from payroll_ledger.api.dependencies import ActingUserId, AppSettings, DbSession
from payroll_ledger.api.schemas import (
    ActivePeriodListResponse,
    ActivePeriodResponse,
    ClosureBatchListResponse,
    ClosureBatchResponse,
    ClosureRequest,
    ClosureResponse,
    ClosureSummaryResponse,
    ErrorResponse,
    HistoricalPayrollRecordResponse,
    HistoryListResponse,
)
from payroll_ledger.services.closure_service import PayPeriodClosureService
from payroll_ledger.services.history_service import HistoryService
from payroll_ledger.services.payroll_record_service import PayrollRecordService

router = APIRouter(prefix="/pay-periods", tags=["pay-periods"])


@router.post(
    "/close",
    response_model=ClosureResponse,
    status_code=status.HTTP_200_OK,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def close_pay_periods(
    db: DbSession,
    acting_user_id: ActingUserId,
    payload: ClosureRequest,
) -> ClosureResponse:
    """Move every active row of the selected periods into the payrun history."""
    service = PayPeriodClosureService.for_session(db)
    summary = await service.close_pay_periods(
        payload.period_end_dates,
        notes=payload.notes,
        acting_user_id=acting_user_id,
    )
    return ClosureResponse(
        success=True,
        summary=ClosureSummaryResponse(
            closure_batch_id=summary.closure_batch_id,
            period_end_dates=summary.period_end_dates,
            total_records_moved=summary.total_records_moved,
            records_by_period=summary.records_by_period,
            closed_at=summary.closed_at,
            notes=summary.notes,
            records_previously_archived=summary.records_previously_archived,
        ),
    )


@router.get("/active", response_model=ActivePeriodListResponse)
async def list_active_periods(
    db: DbSession,
    settings: AppSettings,
) -> ActivePeriodListResponse:
    """List pay periods that still have rows in the active ledger."""
    service = PayrollRecordService(db, default_currency=settings.default_currency)
    periods = await service.list_active_periods()
    return ActivePeriodListResponse(
        periods=[ActivePeriodResponse.model_validate(p) for p in periods]
    )


@router.get("/history", response_model=HistoryListResponse)
async def list_history(
    db: DbSession,
    limit: Annotated[int, Query(ge=1, le=1000)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    sort_by: Annotated[str, Query(alias="sortBy")] = "closed_at",
    sort_dir: Annotated[Literal["asc", "desc"], Query(alias="sortDir")] = "desc",
    batch_id: UUID | None = None,
) -> HistoryListResponse:
    """List archived payroll rows, optionally for one closure batch."""
    service = HistoryService(db)
    rows, total = await service.list_history(
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_dir=sort_dir,
        batch_id=batch_id,
    )
    return HistoryListResponse(
        items=[HistoricalPayrollRecordResponse.model_validate(r) for r in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/batches", response_model=ClosureBatchListResponse)
async def list_closure_batches(db: DbSession) -> ClosureBatchListResponse:
    """List closure batches with their periods and record counts."""
    batches = await HistoryService(db).list_batches()
    return ClosureBatchListResponse(
        items=[ClosureBatchResponse.model_validate(b) for b in batches]
    )
