"""Per-period locking for pay-period closure.

Two closures that fetch the same ``pay_period_to`` before either deletes
would archive the same rows twice. Holding a lock keyed by the period end
date from before the fetch until after the delete serializes them.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import TYPE_CHECKING, AsyncIterator

from sqlalchemy.exc import SQLAlchemyError

from payroll_ledger.database import acquire_advisory_lock, release_advisory_lock
from payroll_ledger.errors import PeriodLockedError, StoreFailure

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

# Period keys held by closures running in this process (non-PostgreSQL backends).
_LOCAL_HELD: set[str] = set()


def period_lock_key(period_end: date) -> str:
    """Lock key for a pay period."""
    return f"pay_period_close:{period_end.isoformat()}"


class PeriodLockService:
    """Acquire and release the closure lock for one pay period.

    On PostgreSQL the lock is a session-level advisory lock taken on a
    dedicated connection, so it is visible to every application instance and
    survives the commits the ledger stores make while it is held. Other
    backends fall back to an in-process registry, which only serializes
    closures running in the same process.

    Acquisition never waits: a held lock raises PeriodLockedError. A lock
    that cannot be taken because the database is unreachable raises
    StoreFailure.
    """

    def __init__(self, engine: AsyncEngine | None = None):
        self.engine = engine

    @property
    def uses_advisory_locks(self) -> bool:
        return self.engine is not None and self.engine.dialect.name == "postgresql"

    @asynccontextmanager
    async def hold(self, period_end: date) -> AsyncIterator[None]:
        """Hold the lock for ``period_end`` for the duration of the block."""
        key = period_lock_key(period_end)
        if self.uses_advisory_locks:
            async with self._hold_advisory(key, period_end):
                yield
        else:
            async with self._hold_local(key, period_end):
                yield

    @asynccontextmanager
    async def _hold_advisory(self, key: str, period_end: date) -> AsyncIterator[None]:
        assert self.engine is not None
        acquired = False
        try:
            async with self.engine.connect() as conn:
                if not await acquire_advisory_lock(conn, key):
                    raise PeriodLockedError(period_end)
                acquired = True
                logger.debug("Acquired advisory lock %s", key)
                try:
                    yield
                finally:
                    await release_advisory_lock(conn, key)
                    logger.debug("Released advisory lock %s", key)
        except (SQLAlchemyError, OSError) as exc:
            if acquired:
                raise
            raise StoreFailure("acquire period lock", period_end, exc) from exc

    @asynccontextmanager
    async def _hold_local(self, key: str, period_end: date) -> AsyncIterator[None]:
        if key in _LOCAL_HELD:
            raise PeriodLockedError(period_end)
        _LOCAL_HELD.add(key)
        try:
            yield
        finally:
            _LOCAL_HELD.discard(key)

    @staticmethod
    def is_held_locally(period_end: date) -> bool:
        """Check whether this process currently holds the lock for a period."""
        return period_lock_key(period_end) in _LOCAL_HELD
