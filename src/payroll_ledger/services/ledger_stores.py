"""Active and historical ledger stores used by the closure service."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Protocol, Sequence
from uuid import UUID

from sqlalchemy import delete, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.errors import StoreFailure
from payroll_ledger.models import HistoricalPayrollRecord, PayrollRecord

logger = logging.getLogger(__name__)

# Rows per multi-VALUES insert; keeps bind parameter counts under SQLite limits.
INSERT_CHUNK_SIZE = 200
# Ids per DELETE ... IN (...); one transaction covers all chunks.
DELETE_CHUNK_SIZE = 1000


class ActiveLedger(Protocol):
    """Current payroll rows awaiting closure."""

    async def fetch_period(self, period_end: date) -> list[PayrollRecord]:
        """Return every active row whose ``pay_period_to`` equals ``period_end``."""
        ...

    async def remove_records(self, period_end: date, record_ids: Sequence[UUID]) -> int:
        """Delete the given rows of a period. Returns the number removed."""
        ...


class HistoricalLedger(Protocol):
    """Append-only archive of closed payroll rows."""

    async def append(
        self, period_end: date, records: Sequence[HistoricalPayrollRecord]
    ) -> int:
        """Bulk-insert archived rows. Returns the number of new rows written."""
        ...


class SqlActiveLedger:
    """Active ledger backed by the ``payroll_import`` table.

    Each write is committed on its own so the closure service controls the
    ordering between ledgers.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def fetch_period(self, period_end: date) -> list[PayrollRecord]:
        try:
            result = await self.session.execute(
                select(PayrollRecord)
                .where(PayrollRecord.pay_period_to == period_end)
                .order_by(PayrollRecord.created_at, PayrollRecord.id)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreFailure("fetch records", period_end, exc) from exc

    async def remove_records(self, period_end: date, record_ids: Sequence[UUID]) -> int:
        if not record_ids:
            return 0
        ids = list(record_ids)
        removed = 0
        try:
            for start in range(0, len(ids), DELETE_CHUNK_SIZE):
                result = await self.session.execute(
                    delete(PayrollRecord)
                    .where(
                        PayrollRecord.pay_period_to == period_end,
                        PayrollRecord.id.in_(ids[start : start + DELETE_CHUNK_SIZE]),
                    )
                    .execution_options(synchronize_session=False)
                )
                removed += result.rowcount or 0
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreFailure("delete active records", period_end, exc) from exc
        return removed


class SqlHistoricalLedger:
    """Historical ledger backed by the ``payroll_historical_payrun`` table.

    Inserts skip rows whose ``original_id`` is already archived, so replaying
    a period after a crash between archive and delete does not duplicate
    history. Any other insert error fails the whole batch.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self, period_end: date, records: Sequence[HistoricalPayrollRecord]
    ) -> int:
        if not records:
            return 0
        rows = [record.to_dict() for record in records]
        inserted = 0
        try:
            for start in range(0, len(rows), INSERT_CHUNK_SIZE):
                chunk = rows[start : start + INSERT_CHUNK_SIZE]
                result = await self.session.execute(self._insert_statement(chunk))
                # Drivers that cannot report a count return -1
                inserted += result.rowcount if result.rowcount >= 0 else len(chunk)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreFailure("insert historical records", period_end, exc) from exc

        if inserted < len(rows):
            logger.debug(
                "Period %s: %d of %d rows were already archived",
                period_end.isoformat(),
                len(rows) - inserted,
                len(rows),
            )
        return inserted

    def _insert_statement(self, rows: list[dict[str, Any]]):
        table = HistoricalPayrollRecord.__table__
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return (
                postgresql.insert(table)
                .values(rows)
                .on_conflict_do_nothing(index_elements=["original_id"])
            )
        if dialect == "sqlite":
            return (
                sqlite.insert(table)
                .values(rows)
                .on_conflict_do_nothing(index_elements=["original_id"])
            )
        return insert(table).values(rows)
