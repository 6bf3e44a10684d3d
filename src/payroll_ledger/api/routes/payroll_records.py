"""Active payroll record endpoints."""

from datetime import date
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Path, Query

from payroll_ledger.api.dependencies import AppSettings, DbSession
from payroll_ledger.api.schemas import (
    ErrorResponse,
    PayrollRecordListResponse,
    PayrollRecordPatch,
    PayrollRecordResponse,
    PayrollRecordUpdateResponse,
    PurgeResponse,
    RecordIdsRequest,
    RecordIdsResponse,
)
from payroll_ledger.services.payroll_record_service import PayrollRecordService

router = APIRouter(prefix="/payroll-records", tags=["payroll-records"])


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


@router.get("", response_model=PayrollRecordListResponse)
async def list_payroll_records(
    db: DbSession,
    settings: AppSettings,
    limit: Annotated[int, Query(ge=1, le=1000)] = 200,
    offset: Annotated[int, Query(ge=0)] = 0,
    sort_by: Annotated[str, Query(alias="sortBy")] = "created_at",
    sort_dir: Annotated[Literal["asc", "desc"], Query(alias="sortDir")] = "desc",
    search: str | None = None,
    employers: Annotated[str | None, Query(description="Comma-separated employer names")] = None,
    currency: Annotated[str | None, Query(description="Comma-separated currency codes")] = None,
    period_from: Annotated[date | None, Query(alias="from")] = None,
    period_to: Annotated[date | None, Query(alias="to")] = None,
    include_deleted: Annotated[bool, Query(alias="includeDeleted")] = False,
) -> PayrollRecordListResponse:
    """List active payroll rows with search, filters and pagination."""
    service = PayrollRecordService(db, default_currency=settings.default_currency)
    rows, total = await service.list_records(
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_dir=sort_dir,
        search=search,
        employers=_split_csv(employers),
        currencies=_split_csv(currency),
        period_from=period_from,
        period_to=period_to,
        include_deleted=include_deleted,
    )
    return PayrollRecordListResponse(
        items=[PayrollRecordResponse.model_validate(r) for r in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.patch(
    "/{record_id}",
    response_model=PayrollRecordUpdateResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_payroll_record(
    db: DbSession,
    record_id: Annotated[UUID, Path()],
    payload: PayrollRecordPatch,
) -> PayrollRecordUpdateResponse:
    """Edit individual fields of an active payroll row."""
    service = PayrollRecordService(db)
    record = await service.update_record(record_id, payload)
    await db.commit()
    return PayrollRecordUpdateResponse(row=PayrollRecordResponse.model_validate(record))


@router.post(
    "/delete",
    response_model=RecordIdsResponse,
    responses={400: {"model": ErrorResponse}},
)
async def soft_delete_payroll_records(
    db: DbSession,
    payload: RecordIdsRequest,
) -> RecordIdsResponse:
    """Soft-delete payroll rows (recoverable with restore)."""
    ids = await PayrollRecordService(db).soft_delete(payload.ids)
    await db.commit()
    return RecordIdsResponse(count=len(ids), ids=ids)


@router.post(
    "/restore",
    response_model=RecordIdsResponse,
    responses={400: {"model": ErrorResponse}},
)
async def restore_payroll_records(
    db: DbSession,
    payload: RecordIdsRequest,
) -> RecordIdsResponse:
    """Undo a soft delete."""
    ids = await PayrollRecordService(db).restore(payload.ids)
    await db.commit()
    return RecordIdsResponse(count=len(ids), ids=ids)


@router.post(
    "/purge",
    response_model=PurgeResponse,
    responses={400: {"model": ErrorResponse}},
)
async def purge_payroll_records(
    db: DbSession,
    payload: RecordIdsRequest,
) -> PurgeResponse:
    """Permanently delete rows that were already soft-deleted."""
    deleted = await PayrollRecordService(db).purge(payload.ids)
    await db.commit()
    return PurgeResponse(deleted=deleted)
