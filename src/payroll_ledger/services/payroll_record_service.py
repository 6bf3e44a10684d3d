"""Active ledger queries and edits: listing, field patches, soft delete."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.errors import RecordNotFoundError, ValidationError
from payroll_ledger.models import (
    DATE_FIELDS,
    EDITABLE_TEXT_FIELDS,
    NUMERIC_FIELDS,
    PayrollRecord,
    utc_now,
)

logger = logging.getLogger(__name__)


def like_pattern(term: str) -> str:
    """Substring LIKE pattern with wildcards in ``term`` escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class PayrollRecordPatch(BaseModel):
    """Partial update of an active payroll row.

    Only the fields below are editable; ids, employee/employer references,
    payslip tokens and timestamps are not. Unknown keys are rejected.
    """

    model_config = ConfigDict(extra="forbid")

    employer_name: str | None = None
    reviewer_email: str | None = None
    employee_name: str | None = None
    email_id: str | None = None
    employee_mol: str | None = None
    bank_name: str | None = None
    iban: str | None = None
    currency: str | None = None
    payslip_url: str | None = None

    pay_period_from: date | None = None
    pay_period_to: date | None = None

    leave_without_pay_days: Decimal | None = None
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

    @field_validator(*EDITABLE_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator(*NUMERIC_FIELDS, mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> Any:
        # Spreadsheet-style input: "12,500.00" or "12 500"
        if isinstance(value, str):
            cleaned = value.replace(",", "").replace(" ", "")
            return cleaned or None
        return value

    @field_validator(*DATE_FIELDS, mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        return value

    @field_validator(*DATE_FIELDS)
    @classmethod
    def _require_date(cls, value: date | None) -> date:
        if value is None:
            raise ValueError("pay period dates cannot be cleared")
        return value

    def changes(self) -> dict[str, Any]:
        """Fields the caller actually supplied, with coerced values."""
        return self.model_dump(exclude_unset=True)


@dataclass
class ActivePeriod:
    """Aggregate view of one open pay period in the active ledger."""

    pay_period_to: date
    record_count: int = 0
    employers: list[str] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    currency_breakdown: dict[str, Decimal] = field(default_factory=dict)


class PayrollRecordService:
    """Queries and edits against the active payroll ledger.

    Methods flush but do not commit; callers own the transaction.
    """

    SORTABLE = frozenset({
        "created_at",
        "pay_period_to",
        "employer_name",
        "employee_name",
        "reviewer_email",
        "email_id",
        "currency",
        "net_salary",
        "esop_deductions",
        "total_payment_adjustments",
        "net_payment",
        "total_to_transfer",
    })

    SEARCHABLE = ("employee_name", "employer_name", "reviewer_email", "email_id", "iban")

    def __init__(self, session: AsyncSession, default_currency: str = "AED"):
        self.session = session
        self.default_currency = default_currency

    async def list_records(
        self,
        *,
        limit: int = 200,
        offset: int = 0,
        sort_by: str = "created_at",
        sort_dir: str = "desc",
        search: str | None = None,
        employers: Sequence[str] | None = None,
        currencies: Sequence[str] | None = None,
        period_from: date | None = None,
        period_to: date | None = None,
        include_deleted: bool = False,
    ) -> tuple[list[PayrollRecord], int]:
        """List active rows with filters, sorting and pagination.

        ``include_deleted`` switches the view to soft-deleted rows only.
        Returns (rows, total matching count).
        """
        query = select(PayrollRecord)

        if include_deleted:
            query = query.where(PayrollRecord.deleted_at.is_not(None))
        else:
            query = query.where(PayrollRecord.deleted_at.is_(None))

        search = (search or "").strip()
        if search:
            pattern = like_pattern(search)
            query = query.where(
                or_(
                    *(
                        getattr(PayrollRecord, column).ilike(pattern, escape="\\")
                        for column in self.SEARCHABLE
                    )
                )
            )
        if employers:
            query = query.where(PayrollRecord.employer_name.in_(list(employers)))
        if currencies:
            query = query.where(PayrollRecord.currency.in_(list(currencies)))
        if period_from:
            query = query.where(PayrollRecord.pay_period_from >= period_from)
        if period_to:
            query = query.where(PayrollRecord.pay_period_to <= period_to)

        count_query = select(func.count()).select_from(query.subquery())
        total = await self.session.scalar(count_query) or 0

        if sort_by not in self.SORTABLE:
            sort_by, sort_dir = "created_at", "desc"
        column = getattr(PayrollRecord, sort_by)
        ordering = column.asc() if sort_dir == "asc" else column.desc()
        query = query.order_by(ordering, PayrollRecord.id).offset(offset).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    async def get_record(self, record_id: UUID) -> PayrollRecord:
        record = await self.session.get(PayrollRecord, record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    async def update_record(self, record_id: UUID, patch: PayrollRecordPatch) -> PayrollRecord:
        """Apply a typed field patch to one active row."""
        changes = patch.changes()
        if not changes:
            raise ValidationError("No valid fields to update")

        record = await self.get_record(record_id)
        for name, value in changes.items():
            setattr(record, name, value)
        await self.session.flush()

        logger.info("Updated payroll record %s fields=%s", record_id, sorted(changes))
        return record

    async def soft_delete(self, record_ids: Sequence[UUID]) -> list[UUID]:
        """Mark live rows as deleted. Returns the ids that were marked."""
        self._require_ids(record_ids)
        matched = await self._matching_ids(record_ids, deleted=False)
        if matched:
            await self.session.execute(
                update(PayrollRecord)
                .where(PayrollRecord.id.in_(matched))
                .values(deleted_at=utc_now())
            )
            await self.session.flush()
        return matched

    async def restore(self, record_ids: Sequence[UUID]) -> list[UUID]:
        """Clear the soft-delete marker. Returns the ids that were restored."""
        self._require_ids(record_ids)
        matched = await self._matching_ids(record_ids, deleted=True)
        if matched:
            await self.session.execute(
                update(PayrollRecord)
                .where(PayrollRecord.id.in_(matched))
                .values(deleted_at=None)
            )
            await self.session.flush()
        return matched

    async def purge(self, record_ids: Sequence[UUID]) -> int:
        """Permanently delete rows, but only those already soft-deleted."""
        self._require_ids(record_ids)
        matched = await self._matching_ids(record_ids, deleted=True)
        if not matched:
            return 0
        await self.session.execute(
            delete(PayrollRecord).where(PayrollRecord.id.in_(matched))
        )
        await self.session.flush()
        logger.info("Purged %d soft-deleted payroll record(s)", len(matched))
        return len(matched)

    async def list_active_periods(self) -> list[ActivePeriod]:
        """Summarize every pay period still present in the active ledger.

        Each row contributes ``net_payment``, falling back to ``net_salary``,
        then zero. Rows without a currency count towards the default currency.
        """
        result = await self.session.execute(
            select(
                PayrollRecord.pay_period_to,
                PayrollRecord.employer_name,
                PayrollRecord.currency,
                PayrollRecord.net_salary,
                PayrollRecord.net_payment,
            ).order_by(PayrollRecord.pay_period_to.desc(), PayrollRecord.created_at)
        )

        periods: dict[date, ActivePeriod] = {}
        for period_to, employer_name, currency, net_salary, net_payment in result.all():
            period = periods.get(period_to)
            if period is None:
                period = periods[period_to] = ActivePeriod(pay_period_to=period_to)

            amount = self._row_amount(net_payment, net_salary)
            period.record_count += 1
            if employer_name not in period.employers:
                period.employers.append(employer_name)
            period.total_amount += amount
            key = currency or self.default_currency
            period.currency_breakdown[key] = period.currency_breakdown.get(key, Decimal("0")) + amount

        return list(periods.values())

    @staticmethod
    def _row_amount(net_payment: Decimal | None, net_salary: Decimal | None) -> Decimal:
        if net_payment is not None:
            return Decimal(net_payment)
        if net_salary is not None:
            return Decimal(net_salary)
        return Decimal("0")

    @staticmethod
    def _require_ids(record_ids: Sequence[UUID]) -> None:
        if not record_ids:
            raise ValidationError("ids array required")

    async def _matching_ids(self, record_ids: Sequence[UUID], deleted: bool) -> list[UUID]:
        marker = (
            PayrollRecord.deleted_at.is_not(None)
            if deleted
            else PayrollRecord.deleted_at.is_(None)
        )
        result = await self.session.execute(
            select(PayrollRecord.id).where(PayrollRecord.id.in_(list(record_ids)), marker)
        )
        return list(result.scalars().all())
