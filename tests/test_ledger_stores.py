"""SQL ledger store tests (SQLite).

Runs closures end to end against the ``payroll_import`` and
``payroll_historical_payrun`` tables.
"""

from __future__ import annotations

import sqlite3
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from payroll_ledger.models import HistoricalPayrollRecord, PayrollRecord
from payroll_ledger.services.closure_service import PayPeriodClosureService
from payroll_ledger.services.ledger_stores import SqlActiveLedger, SqlHistoricalLedger
from tests.conftest import CLOSED_AT, FEB_29, JAN_31, build_record

pytestmark = pytest.mark.asyncio


async def count(session, model, *criteria) -> int:
    return await session.scalar(select(func.count()).select_from(model).where(*criteria))


def archive_copies(records, batch_id):
    return [
        HistoricalPayrollRecord.from_active(
            record,
            historical_id=uuid4(),
            closed_at=CLOSED_AT,
            closed_by_user_id="user-1",
            closure_batch_id=batch_id,
            closure_notes=None,
        )
        for record in records
    ]


async def cap_bind_parameters(session, limit: int) -> None:
    """Lower SQLite's per-statement variable limit on the session's connection."""
    if not hasattr(sqlite3.Connection, "setlimit"):
        pytest.skip("sqlite3.Connection.setlimit requires Python 3.11")
    conn = await session.connection()
    raw = await conn.get_raw_connection()
    raw.driver_connection._conn.setlimit(sqlite3.SQLITE_LIMIT_VARIABLE_NUMBER, limit)


class TestSqlActiveLedger:
    """Active ledger reads and deletes."""

    async def test_fetch_period_matches_end_date_only(self, session, seed):
        jan = await seed(build_record(JAN_31), build_record(JAN_31))
        await seed(build_record(FEB_29))

        records = await SqlActiveLedger(session).fetch_period(JAN_31)

        assert [r.id for r in records] == [r.id for r in jan]

    async def test_fetch_period_without_rows(self, session):
        assert await SqlActiveLedger(session).fetch_period(date(2099, 12, 31)) == []

    async def test_remove_only_deletes_given_ids(self, session, seed):
        fetched = await seed(build_record(JAN_31), build_record(JAN_31))
        # Row imported after the fetch
        late = await seed(build_record(JAN_31))

        removed = await SqlActiveLedger(session).remove_records(
            JAN_31, [r.id for r in fetched]
        )

        assert removed == 2
        remaining = await session.scalars(select(PayrollRecord.id))
        assert list(remaining) == [late[0].id]

    async def test_remove_with_no_ids(self, session):
        assert await SqlActiveLedger(session).remove_records(JAN_31, []) == 0

    async def test_remove_more_ids_than_bind_parameter_limit(self, session, seed):
        records = await seed(*(build_record(JAN_31) for _ in range(1500)))
        await cap_bind_parameters(session, 999)

        removed = await SqlActiveLedger(session).remove_records(
            JAN_31, [r.id for r in records]
        )

        assert removed == 1500
        assert await count(session, PayrollRecord) == 0


class TestSqlHistoricalLedger:
    """Historical ledger inserts."""

    async def test_append_writes_all_rows(self, session, seed):
        records = await seed(*(build_record(JAN_31) for _ in range(3)))

        inserted = await SqlHistoricalLedger(session).append(
            JAN_31, archive_copies(records, uuid4())
        )

        assert inserted == 3
        assert await count(session, HistoricalPayrollRecord) == 3

    async def test_append_skips_already_archived_originals(self, session, seed):
        records = await seed(build_record(JAN_31), build_record(JAN_31))
        ledger = SqlHistoricalLedger(session)

        await ledger.append(JAN_31, archive_copies(records, uuid4()))
        replayed = await ledger.append(JAN_31, archive_copies(records, uuid4()))

        assert replayed == 0
        assert await count(session, HistoricalPayrollRecord) == 2

    async def test_append_chunks_large_batches(self, session, seed):
        records = await seed(*(build_record(JAN_31) for _ in range(450)))

        inserted = await SqlHistoricalLedger(session).append(
            JAN_31, archive_copies(records, uuid4())
        )

        assert inserted == 450
        assert await count(session, HistoricalPayrollRecord) == 450


class TestSqlClosure:
    """Closure service over the SQL ledgers."""

    async def test_close_moves_rows_between_tables(self, session, seed):
        jan = await seed(*(build_record(JAN_31) for _ in range(3)))
        await seed(build_record(FEB_29), build_record(FEB_29))

        service = PayPeriodClosureService.for_session(session)
        summary = await service.close_pay_periods(
            [JAN_31], notes="January payroll", acting_user_id="user-7"
        )

        assert summary.total_records_moved == 3
        assert await count(session, PayrollRecord, PayrollRecord.pay_period_to == JAN_31) == 0
        assert await count(session, PayrollRecord, PayrollRecord.pay_period_to == FEB_29) == 2

        rows = list(await session.scalars(select(HistoricalPayrollRecord)))
        assert {row.original_id for row in rows} == {r.id for r in jan}
        assert {row.closure_batch_id for row in rows} == {summary.closure_batch_id}
        assert len({row.closed_at for row in rows}) == 1
        assert all(row.closed_by_user_id == "user-7" for row in rows)
        assert all(row.closure_notes == "January payroll" for row in rows)

    async def test_archived_values_match_source(self, session, seed):
        [record] = await seed(
            build_record(
                JAN_31,
                employee_name="Fatima Al Mansouri",
                bank_name="Emirates NBD",
                net_salary=Decimal("12500.50"),
                net_payment=Decimal("12750.00"),
                wps_fees=Decimal("15.00"),
                payslip_token="tok-123",
            )
        )

        await PayPeriodClosureService.for_session(session).close_pay_periods([JAN_31])

        row = await session.scalar(select(HistoricalPayrollRecord))
        assert row.original_id == record.id
        assert row.employee_name == "Fatima Al Mansouri"
        assert row.bank_name == "Emirates NBD"
        assert row.net_salary == Decimal("12500.50")
        assert row.net_payment == Decimal("12750.00")
        assert row.wps_fees == Decimal("15.00")
        assert row.payslip_token == "tok-123"
        assert row.pay_period_from == record.pay_period_from
        assert row.pay_period_to == JAN_31

    async def test_soft_deleted_rows_are_archived_too(self, session, seed):
        await seed(build_record(JAN_31, deleted_at=CLOSED_AT), build_record(JAN_31))

        summary = await PayPeriodClosureService.for_session(session).close_pay_periods([JAN_31])

        assert summary.total_records_moved == 2
        assert await count(session, PayrollRecord) == 0

    async def test_two_periods_in_one_batch(self, session, seed):
        await seed(*(build_record(JAN_31) for _ in range(3)))
        await seed(*(build_record(FEB_29) for _ in range(2)))

        summary = await PayPeriodClosureService.for_session(session).close_pay_periods(
            [JAN_31, FEB_29]
        )

        assert summary.total_records_moved == 5
        assert summary.records_by_period == {JAN_31: 3, FEB_29: 2}
        assert await count(session, PayrollRecord) == 0
        assert await count(
            session,
            HistoricalPayrollRecord,
            HistoricalPayrollRecord.closure_batch_id == summary.closure_batch_id,
        ) == 5

    async def test_close_period_larger_than_bind_parameter_limit(self, session, seed):
        await seed(*(build_record(JAN_31) for _ in range(10_050)))
        # Above one insert chunk's parameters, below the period's row count
        await cap_bind_parameters(session, 10_000)

        summary = await PayPeriodClosureService.for_session(session).close_pay_periods([JAN_31])

        assert summary.records_by_period == {JAN_31: 10_050}
        assert await count(session, PayrollRecord) == 0
        assert await count(session, HistoricalPayrollRecord) == 10_050

    async def test_rows_archived_by_earlier_batch_keep_its_stamps(self, session, seed):
        records = await seed(build_record(JAN_31), build_record(JAN_31))
        earlier_batch = uuid4()
        await SqlHistoricalLedger(session).append(JAN_31, archive_copies(records, earlier_batch))

        summary = await PayPeriodClosureService.for_session(session).close_pay_periods([JAN_31])

        assert summary.records_by_period == {JAN_31: 2}
        assert summary.records_previously_archived == 2
        assert await count(session, PayrollRecord) == 0
        batch_ids = await session.scalars(select(HistoricalPayrollRecord.closure_batch_id))
        assert set(batch_ids) == {earlier_batch}
