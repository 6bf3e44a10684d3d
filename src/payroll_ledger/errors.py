"""Domain errors raised by the ledger services.

The API layer maps these onto HTTP responses (see ``payroll_ledger.api.app``);
the CLI prints them and exits non-zero.
"""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID


class LedgerError(Exception):
    """Base class for payroll ledger errors."""

    code = "LEDGER_ERROR"

    def context(self) -> dict[str, Any] | None:
        """Structured details safe to return to the caller."""
        return None


class ValidationError(LedgerError):
    """Malformed or empty request. Not retryable without fixing the input."""

    code = "VALIDATION_ERROR"


class AuthenticationError(LedgerError):
    """No acting principal was supplied."""

    code = "AUTHENTICATION_REQUIRED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class RecordNotFoundError(LedgerError):
    """Raised when a payroll record does not exist."""

    code = "NOT_FOUND"

    def __init__(self, record_id: UUID):
        self.record_id = record_id
        super().__init__(f"Payroll record {record_id} not found")


class StoreFailure(LedgerError):
    """A read, insert or delete against one of the ledgers failed."""

    code = "STORE_FAILURE"

    def __init__(self, operation: str, period_end: date | None, cause: BaseException):
        self.operation = operation
        self.period_end = period_end
        self.cause = cause
        where = f" for period {period_end.isoformat()}" if period_end else ""
        super().__init__(f"Failed to {operation}{where}: {cause}")


class PeriodLockedError(LedgerError):
    """Another closure currently holds the lock for this pay period."""

    code = "PERIOD_LOCKED"

    def __init__(self, period_end: date):
        self.period_end = period_end
        super().__init__(
            f"Pay period {period_end.isoformat()} is being closed by another request"
        )


class ClosureFailure(LedgerError):
    """A pay-period closure invocation aborted.

    Periods listed in ``completed_periods`` were fully moved before the
    failure and stay closed; ``period_end`` and everything after it were not.
    """

    code = "CLOSURE_FAILED"

    def __init__(
        self,
        period_end: date,
        stage: str,
        cause: BaseException,
        closure_batch_id: UUID,
        completed_periods: list[date] | None = None,
    ):
        self.period_end = period_end
        self.stage = stage
        self.cause = cause
        self.closure_batch_id = closure_batch_id
        self.completed_periods = list(completed_periods or [])
        super().__init__(
            f"Closing pay period {period_end.isoformat()} failed during {stage}: {cause}"
        )

    @property
    def is_lock_conflict(self) -> bool:
        return isinstance(self.cause, PeriodLockedError)

    def context(self) -> dict[str, Any]:
        return {
            "period_end_date": self.period_end.isoformat(),
            "stage": self.stage,
            "closure_batch_id": str(self.closure_batch_id),
        }
