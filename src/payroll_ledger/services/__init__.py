"""Payroll ledger services."""

from payroll_ledger.services.closure_service import ClosureSummary, PayPeriodClosureService
from payroll_ledger.services.history_service import HistoryService
from payroll_ledger.services.ledger_stores import SqlActiveLedger, SqlHistoricalLedger
from payroll_ledger.services.locking_service import PeriodLockService
from payroll_ledger.services.payroll_record_service import (
    PayrollRecordPatch,
    PayrollRecordService,
)
from payroll_ledger.services.state_machine import (
    InvalidTransitionError,
    PeriodClosureState,
    PeriodClosureStateMachine,
)

__all__ = [
    "ClosureSummary",
    "PayPeriodClosureService",
    "HistoryService",
    "SqlActiveLedger",
    "SqlHistoricalLedger",
    "PeriodLockService",
    "PayrollRecordPatch",
    "PayrollRecordService",
    "InvalidTransitionError",
    "PeriodClosureState",
    "PeriodClosureStateMachine",
]
