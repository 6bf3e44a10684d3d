"""Property-based tests for closure invariants.

Random active ledgers and random period selections; whatever the mix,
rows are moved exactly once and the summary adds up.
"""

from __future__ import annotations

import asyncio
from datetime import date

from hypothesis import given, settings, strategies as st

from payroll_ledger.services.closure_service import PayPeriodClosureService
from payroll_ledger.services.locking_service import PeriodLockService
from tests.conftest import CLOSED_AT, InMemoryActiveLedger, InMemoryHistoricalLedger, build_record

PERIOD_ENDS = [
    date(2024, 1, 31),
    date(2024, 2, 29),
    date(2024, 3, 31),
    date(2024, 4, 30),
    date(2024, 5, 31),
]

ledger_contents = st.dictionaries(
    keys=st.sampled_from(PERIOD_ENDS),
    values=st.integers(min_value=0, max_value=6),
)
selections = st.lists(st.sampled_from(PERIOD_ENDS), min_size=1, max_size=6)


def build_service(counts: dict[date, int]):
    log: list[tuple[str, date]] = []
    active = InMemoryActiveLedger(log)
    historical = InMemoryHistoricalLedger(log)
    for period_end, n in counts.items():
        active.add(*(build_record(period_end) for _ in range(n)))
    service = PayPeriodClosureService(
        active=active,
        historical=historical,
        locks=PeriodLockService(),
        clock=lambda: CLOSED_AT,
    )
    return service, active, historical


@settings(max_examples=60, deadline=None)
@given(counts=ledger_contents, selected=selections)
def test_rows_move_exactly_once(counts, selected):
    service, active, historical = build_service(counts)
    before = list(active.records)

    summary = asyncio.run(service.close_pay_periods(selected))

    chosen = set(selected)
    expected = {d: counts.get(d, 0) for d in chosen}
    assert summary.records_by_period == expected
    assert summary.total_records_moved == sum(expected.values())
    assert summary.period_end_dates == selected

    # Selected periods are empty; the rest are untouched
    assert all(r.pay_period_to not in chosen for r in active.records)
    assert active.records == [r for r in before if r.pay_period_to not in chosen]

    # Every moved row appears once in history, in this batch
    moved_ids = {r.id for r in before if r.pay_period_to in chosen}
    archived_ids = [row.original_id for row in historical.rows]
    assert len(archived_ids) == len(set(archived_ids))
    assert set(archived_ids) == moved_ids
    assert {row.closure_batch_id for row in historical.rows} <= {summary.closure_batch_id}


@settings(max_examples=30, deadline=None)
@given(counts=ledger_contents, selected=selections)
def test_second_closure_is_a_no_op(counts, selected):
    service, _, historical = build_service(counts)

    asyncio.run(service.close_pay_periods(selected))
    archived = len(historical.rows)
    again = asyncio.run(service.close_pay_periods(selected))

    assert again.total_records_moved == 0
    assert len(historical.rows) == archived
