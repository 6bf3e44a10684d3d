"""Read access to the historical payrun ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.models import HistoricalPayrollRecord


@dataclass
class ClosureBatchInfo:
    """One closure invocation, reconstructed from its archived rows."""

    closure_batch_id: UUID
    closed_at: datetime
    closed_by_user_id: str | None
    closure_notes: str | None
    record_count: int = 0
    period_end_dates: list[date] = field(default_factory=list)


class HistoryService:
    """Queries over closed payroll rows."""

    SORTABLE = frozenset({
        "closed_at",
        "pay_period_to",
        "employer_name",
        "employee_name",
        "currency",
        "net_salary",
        "total_to_transfer",
    })

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_history(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
        sort_by: str = "closed_at",
        sort_dir: str = "desc",
        batch_id: UUID | None = None,
    ) -> tuple[list[HistoricalPayrollRecord], int]:
        """List archived rows, optionally for a single closure batch."""
        query = select(HistoricalPayrollRecord)
        if batch_id:
            query = query.where(HistoricalPayrollRecord.closure_batch_id == batch_id)

        count_query = select(func.count()).select_from(query.subquery())
        total = await self.session.scalar(count_query) or 0

        if sort_by not in self.SORTABLE:
            sort_by, sort_dir = "closed_at", "desc"
        column = getattr(HistoricalPayrollRecord, sort_by)
        ordering = column.asc() if sort_dir == "asc" else column.desc()
        query = query.order_by(ordering, HistoricalPayrollRecord.id).offset(offset).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    async def list_batches(self) -> list[ClosureBatchInfo]:
        """Summarize closure batches, newest first."""
        result = await self.session.execute(
            select(
                HistoricalPayrollRecord.closure_batch_id,
                HistoricalPayrollRecord.closed_at,
                HistoricalPayrollRecord.closed_by_user_id,
                HistoricalPayrollRecord.closure_notes,
                HistoricalPayrollRecord.pay_period_to,
                func.count(),
            )
            .group_by(
                HistoricalPayrollRecord.closure_batch_id,
                HistoricalPayrollRecord.closed_at,
                HistoricalPayrollRecord.closed_by_user_id,
                HistoricalPayrollRecord.closure_notes,
                HistoricalPayrollRecord.pay_period_to,
            )
            .order_by(
                HistoricalPayrollRecord.closed_at.desc(),
                HistoricalPayrollRecord.pay_period_to,
            )
        )

        batches: dict[UUID, ClosureBatchInfo] = {}
        for batch_id, closed_at, closed_by, notes, period_to, count in result.all():
            batch = batches.get(batch_id)
            if batch is None:
                batch = batches[batch_id] = ClosureBatchInfo(
                    closure_batch_id=batch_id,
                    closed_at=closed_at,
                    closed_by_user_id=closed_by,
                    closure_notes=notes,
                )
            batch.record_count += count
            batch.period_end_dates.append(period_to)
        return list(batches.values())
