"""ORM models for the active and historical payroll ledgers."""

from payroll_ledger.models.base import Base, TimestampMixin, utc_now
from payroll_ledger.models.payroll import (
    DATE_FIELDS,
    EDITABLE_TEXT_FIELDS,
    NUMERIC_FIELDS,
    PAYROLL_FIELDS,
    HistoricalPayrollRecord,
    PayrollFieldsMixin,
    PayrollRecord,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "utc_now",
    "PayrollFieldsMixin",
    "PayrollRecord",
    "HistoricalPayrollRecord",
    "PAYROLL_FIELDS",
    "NUMERIC_FIELDS",
    "DATE_FIELDS",
    "EDITABLE_TEXT_FIELDS",
]
