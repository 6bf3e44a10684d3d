"""Pay-period closure: move active payroll rows into the historical ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Sequence
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.errors import ClosureFailure, ValidationError
from payroll_ledger.models import HistoricalPayrollRecord, utc_now
from payroll_ledger.services.ledger_stores import (
    ActiveLedger,
    HistoricalLedger,
    SqlActiveLedger,
    SqlHistoricalLedger,
)
from payroll_ledger.services.locking_service import PeriodLockService
from payroll_ledger.services.state_machine import (
    ClosureRunState,
    ClosureRunStateMachine,
    PeriodClosureState,
    PeriodClosureStateMachine,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClosureSummary:
    """Result of a fully successful closure invocation."""

    closure_batch_id: UUID
    period_end_dates: list[date]
    total_records_moved: int
    records_by_period: dict[date, int]
    closed_at: datetime
    notes: str | None
    # Rows of the moved total whose history copy an earlier batch already wrote
    records_previously_archived: int = 0

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation (ISO dates, string ids)."""
        return {
            "closure_batch_id": str(self.closure_batch_id),
            "period_end_dates": [d.isoformat() for d in self.period_end_dates],
            "total_records_moved": self.total_records_moved,
            "records_by_period": {
                d.isoformat(): count for d, count in self.records_by_period.items()
            },
            "closed_at": self.closed_at.isoformat(),
            "notes": self.notes,
            "records_previously_archived": self.records_previously_archived,
        }


@dataclass
class PeriodProgress:
    """Tracks one period through the closure state machine."""

    period_end: date
    state: PeriodClosureState = PeriodClosureState.PENDING
    records_moved: int = 0
    previously_archived: int = 0

    def advance(self, to_state: PeriodClosureState) -> None:
        PeriodClosureStateMachine.validate_transition(self.state, to_state)
        self.state = to_state


@dataclass
class ClosureRun:
    """Invocation-wide closure identity and per-period progress."""

    closure_batch_id: UUID
    closed_at: datetime
    closed_by_user_id: str | None
    notes: str | None
    state: ClosureRunState = ClosureRunState.RUNNING
    periods: list[PeriodProgress] = field(default_factory=list)

    def finish(self, to_state: ClosureRunState) -> None:
        ClosureRunStateMachine.validate_transition(self.state, to_state)
        self.state = to_state

    @property
    def completed_periods(self) -> list[date]:
        return [p.period_end for p in self.periods if p.state == PeriodClosureState.DONE]


class PayPeriodClosureService:
    """Close pay periods by moving their active rows into the historical ledger.

    For each requested period end date, in order:
    1. Take the period lock
    2. Fetch active rows with that ``pay_period_to``
    3. Stamp copies with the invocation's batch id, timestamp, actor and notes
    4. Append the copies to the historical ledger
    5. Only then delete the fetched rows from the active ledger

    Archiving always precedes deletion, so a crash between the two leaves a
    row in both ledgers rather than in neither. The first failing period
    aborts the invocation with ClosureFailure; periods completed before it
    stay closed and no summary is returned.
    """

    def __init__(
        self,
        active: ActiveLedger,
        historical: HistoricalLedger,
        locks: PeriodLockService | None = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], UUID] = uuid4,
    ):
        self.active = active
        self.historical = historical
        self.locks = locks or PeriodLockService()
        self.clock = clock
        self.id_factory = id_factory

    @classmethod
    def for_session(cls, session: AsyncSession) -> PayPeriodClosureService:
        """Build a service over the SQL ledgers reachable from ``session``."""
        return cls(
            active=SqlActiveLedger(session),
            historical=SqlHistoricalLedger(session),
            locks=PeriodLockService(session.bind),
        )

    async def close_pay_periods(
        self,
        period_end_dates: Sequence[date],
        notes: str | None = None,
        acting_user_id: str | None = None,
    ) -> ClosureSummary:
        """Close every requested pay period under one closure batch.

        ``acting_user_id`` may be None for system-initiated closures.

        Raises:
            ValidationError: If no period end dates were given
            ClosureFailure: If any period could not be fully moved
        """
        if not period_end_dates:
            raise ValidationError("No pay periods selected for closure")

        run = ClosureRun(
            closure_batch_id=self.id_factory(),
            closed_at=self.clock(),
            closed_by_user_id=acting_user_id,
            notes=notes or None,
        )
        # A date listed twice is closed once; the second pass would report 0
        # and break the per-period totals.
        run.periods = [PeriodProgress(d) for d in dict.fromkeys(period_end_dates)]

        logger.info(
            "Closing %d pay period(s) in batch %s (actor=%s)",
            len(run.periods),
            run.closure_batch_id,
            acting_user_id or "system",
        )

        for progress in run.periods:
            locked = False
            try:
                async with self.locks.hold(progress.period_end):
                    locked = True
                    await self._close_period(run, progress)
            except Exception as exc:
                # Lock never taken: contention or an unreachable lock backend
                if not locked:
                    stage = "lock"
                else:
                    stage = PeriodClosureStateMachine.failure_stage(progress.state)
                if progress.state in PeriodClosureStateMachine.ARCHIVE_WRITTEN:
                    logger.error(
                        "Period %s archived but not removed from active ledger "
                        "(batch %s); rows now exist in both ledgers",
                        progress.period_end.isoformat(),
                        run.closure_batch_id,
                    )
                if not PeriodClosureStateMachine.is_terminal(progress.state):
                    progress.advance(PeriodClosureState.FAILED)
                run.finish(ClosureRunState.ABORTED)
                logger.error(
                    "Closure batch %s aborted at period %s during %s: %s",
                    run.closure_batch_id,
                    progress.period_end.isoformat(),
                    stage,
                    exc,
                )
                raise ClosureFailure(
                    period_end=progress.period_end,
                    stage=stage,
                    cause=exc,
                    closure_batch_id=run.closure_batch_id,
                    completed_periods=run.completed_periods,
                ) from exc

        run.finish(ClosureRunState.COMPLETED)
        summary = self._build_summary(run, list(period_end_dates))
        logger.info(
            "Closure batch %s moved %d record(s) across %d period(s)",
            summary.closure_batch_id,
            summary.total_records_moved,
            len(summary.records_by_period),
        )
        return summary

    async def _close_period(self, run: ClosureRun, progress: PeriodProgress) -> None:
        period_end = progress.period_end

        records = await self.active.fetch_period(period_end)
        progress.advance(PeriodClosureState.FETCHED)

        if not records:
            progress.advance(PeriodClosureState.EMPTY)
            progress.advance(PeriodClosureState.DONE)
            logger.info("Period %s has no active records", period_end.isoformat())
            return

        record_ids = [record.id for record in records]
        archived = [
            HistoricalPayrollRecord.from_active(
                record,
                historical_id=self.id_factory(),
                closed_at=run.closed_at,
                closed_by_user_id=run.closed_by_user_id,
                closure_batch_id=run.closure_batch_id,
                closure_notes=run.notes,
            )
            for record in records
        ]

        written = await self.historical.append(period_end, archived)
        progress.advance(PeriodClosureState.ARCHIVED)
        progress.previously_archived = len(archived) - written
        if progress.previously_archived:
            # Existing copies keep the stamps of the run that wrote them
            logger.warning(
                "Period %s: %d record(s) were already archived by an earlier batch "
                "and are not stamped with batch %s",
                period_end.isoformat(),
                progress.previously_archived,
                run.closure_batch_id,
            )

        removed = await self.active.remove_records(period_end, record_ids)
        progress.advance(PeriodClosureState.REMOVED)
        if removed != len(record_ids):
            logger.warning(
                "Period %s: archived %d record(s) but removed %d from active ledger",
                period_end.isoformat(),
                len(record_ids),
                removed,
            )

        progress.records_moved = len(records)
        progress.advance(PeriodClosureState.DONE)
        logger.info("Period %s closed: %d record(s) moved", period_end.isoformat(), len(records))

    def _build_summary(self, run: ClosureRun, requested: list[date]) -> ClosureSummary:
        records_by_period = {p.period_end: p.records_moved for p in run.periods}
        return ClosureSummary(
            closure_batch_id=run.closure_batch_id,
            period_end_dates=requested,
            total_records_moved=sum(records_by_period.values()),
            records_by_period=records_by_period,
            closed_at=run.closed_at,
            notes=run.notes,
            records_previously_archived=sum(p.previously_archived for p in run.periods),
        )
