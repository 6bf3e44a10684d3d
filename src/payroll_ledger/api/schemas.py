"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from payroll_ledger.services.payroll_record_service import PayrollRecordPatch

__all__ = [
    "PayrollRecordPatch",
    "PayrollRecordResponse",
    "PayrollRecordListResponse",
    "PayrollRecordUpdateResponse",
    "RecordIdsRequest",
    "RecordIdsResponse",
    "PurgeResponse",
    "ClosureRequest",
    "ClosureSummaryResponse",
    "ClosureResponse",
    "ActivePeriodResponse",
    "ActivePeriodListResponse",
    "HistoricalPayrollRecordResponse",
    "HistoryListResponse",
    "ClosureBatchResponse",
    "ClosureBatchListResponse",
    "ErrorResponse",
]


# ============================================================================
# Payroll record schemas
# ============================================================================


class PayrollFieldsResponse(BaseModel):
    """Fields shared by active and archived payroll rows."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: str
    employer_id: str
    employer_name: str
    reviewer_email: str
    employee_name: str
    email_id: str | None = None
    employee_mol: str | None = None
    bank_name: str | None = None
    iban: str | None = None
    pay_period_from: date
    pay_period_to: date
    leave_without_pay_days: Decimal | None = None
    currency: str | None = None
    basic_salary: Decimal | None = None
    housing_allowance: Decimal | None = None
    education_allowance: Decimal | None = None
    flight_allowance: Decimal | None = None
    general_allowance: Decimal | None = None
    gratuity_eosb: Decimal | None = None
    other_allowance: Decimal | None = None
    transport_allowance: Decimal | None = None
    total_gross_salary: Decimal | None = None
    bonus: Decimal | None = None
    overtime: Decimal | None = None
    salary_in_arrears: Decimal | None = None
    expenses_deductions: Decimal | None = None
    other_reimbursements: Decimal | None = None
    expense_reimbursements: Decimal | None = None
    total_adjustments: Decimal | None = None
    net_salary: Decimal | None = None
    esop_deductions: Decimal | None = None
    total_payment_adjustments: Decimal | None = None
    net_payment: Decimal | None = None
    wps_fees: Decimal | None = None
    total_to_transfer: Decimal | None = None
    payslip_url: str | None = None
    payslip_token: str | None = None
    created_at: datetime


class PayrollRecordResponse(PayrollFieldsResponse):
    """Schema for an active payroll row."""

    deleted_at: datetime | None = None


class PayrollRecordListResponse(BaseModel):
    """Schema for listing payroll rows."""

    items: list[PayrollRecordResponse]
    total: int
    limit: int
    offset: int


class PayrollRecordUpdateResponse(BaseModel):
    """Schema for a patched payroll row."""

    row: PayrollRecordResponse


class RecordIdsRequest(BaseModel):
    """Schema for bulk soft-delete/restore/purge requests."""

    ids: list[UUID]


class RecordIdsResponse(BaseModel):
    """Schema for bulk soft-delete/restore responses."""

    ok: bool = True
    count: int
    ids: list[UUID]


class PurgeResponse(BaseModel):
    """Schema for permanent delete response."""

    ok: bool = True
    deleted: int


# ============================================================================
# Pay period closure schemas
# ============================================================================


class ClosureRequest(BaseModel):
    """Schema for closing one or more pay periods."""

    period_end_dates: list[date]
    notes: str | None = None


class ClosureSummaryResponse(BaseModel):
    """Schema for a closure summary."""

    closure_batch_id: UUID
    period_end_dates: list[date]
    total_records_moved: int
    records_by_period: dict[date, int]
    closed_at: datetime
    notes: str | None = None
    records_previously_archived: int = 0


class ClosureResponse(BaseModel):
    """Schema for a successful closure."""

    success: bool = True
    summary: ClosureSummaryResponse


class ActivePeriodResponse(BaseModel):
    """Schema for an open pay period."""

    model_config = ConfigDict(from_attributes=True)

    pay_period_to: date
    record_count: int
    employers: list[str]
    total_amount: Decimal
    currency_breakdown: dict[str, Decimal]


class ActivePeriodListResponse(BaseModel):
    """Schema for listing open pay periods."""

    periods: list[ActivePeriodResponse]


# ============================================================================
# History schemas
# ============================================================================


class HistoricalPayrollRecordResponse(PayrollFieldsResponse):
    """Schema for an archived payroll row."""

    original_id: UUID
    closed_at: datetime
    closed_by_user_id: str | None = None
    closure_batch_id: UUID
    closure_notes: str | None = None


class HistoryListResponse(BaseModel):
    """Schema for listing archived rows."""

    items: list[HistoricalPayrollRecordResponse]
    total: int
    limit: int
    offset: int


class ClosureBatchResponse(BaseModel):
    """Schema for a closure batch summary."""

    model_config = ConfigDict(from_attributes=True)

    closure_batch_id: UUID
    closed_at: datetime
    closed_by_user_id: str | None = None
    closure_notes: str | None = None
    record_count: int
    period_end_dates: list[date]


class ClosureBatchListResponse(BaseModel):
    """Schema for listing closure batches."""

    items: list[ClosureBatchResponse]


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
