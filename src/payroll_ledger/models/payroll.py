"""Active and historical payroll ledger models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Date, DateTime, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_ledger.models.base import Base, TimestampMixin

MONEY = Numeric(14, 2)


# ===== Field groups =====

NUMERIC_FIELDS: tuple[str, ...] = (
    "leave_without_pay_days",
    "basic_salary",
    "housing_allowance",
    "education_allowance",
    "flight_allowance",
    "general_allowance",
    "gratuity_eosb",
    "other_allowance",
    "transport_allowance",
    "total_gross_salary",
    "bonus",
    "overtime",
    "salary_in_arrears",
    "expenses_deductions",
    "other_reimbursements",
    "expense_reimbursements",
    "total_adjustments",
    "net_salary",
    "esop_deductions",
    "total_payment_adjustments",
    "net_payment",
    "wps_fees",
    "total_to_transfer",
)

DATE_FIELDS: tuple[str, ...] = ("pay_period_from", "pay_period_to")

EDITABLE_TEXT_FIELDS: tuple[str, ...] = (
    "employer_name",
    "reviewer_email",
    "employee_name",
    "email_id",
    "employee_mol",
    "bank_name",
    "iban",
    "currency",
    "payslip_url",
)

# Everything carried from an active row into its historical copy, except the id.
PAYROLL_FIELDS: tuple[str, ...] = (
    ("employee_id", "employer_id")
    + EDITABLE_TEXT_FIELDS
    + DATE_FIELDS
    + NUMERIC_FIELDS
    + ("payslip_token", "created_at")
)


class PayrollFieldsMixin(TimestampMixin):
    """Columns shared by the active and historical payroll ledgers."""

    # Foreign references (owned by the employee/employer directory)
    employee_id: Mapped[str] = mapped_column(String, nullable=False)
    employer_id: Mapped[str] = mapped_column(String, nullable=False)

    # Employer / reviewer
    employer_name: Mapped[str] = mapped_column(String, nullable=False)
    reviewer_email: Mapped[str] = mapped_column(String, nullable=False, default="")

    # Employee
    employee_name: Mapped[str] = mapped_column(String, nullable=False)
    email_id: Mapped[str | None] = mapped_column(String, nullable=True)
    employee_mol: Mapped[str | None] = mapped_column(String, nullable=True)

    # Bank
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    iban: Mapped[str | None] = mapped_column(String, nullable=True)

    # Period
    pay_period_from: Mapped[date] = mapped_column(Date, nullable=False)
    pay_period_to: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    leave_without_pay_days: Mapped[Decimal | None] = mapped_column(
        Numeric(6, 2), nullable=True
    )

    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    # Salary components
    basic_salary: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    housing_allowance: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    education_allowance: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    flight_allowance: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    general_allowance: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    gratuity_eosb: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    other_allowance: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    transport_allowance: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    total_gross_salary: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)

    # Adjustments
    bonus: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    overtime: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    salary_in_arrears: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    expenses_deductions: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    other_reimbursements: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    expense_reimbursements: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    total_adjustments: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)

    # Totals
    net_salary: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    esop_deductions: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    total_payment_adjustments: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    net_payment: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    wps_fees: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    total_to_transfer: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)

    # Payslip
    payslip_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    payslip_token: Mapped[str | None] = mapped_column(String, nullable=True)


class PayrollRecord(Base, PayrollFieldsMixin):
    """One employee's payroll line for one pay period, awaiting closure."""

    __tablename__ = "payroll_import"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"PayrollRecord(id={self.id}, employee_id={self.employee_id!r}, "
            f"pay_period_to={self.pay_period_to})"
        )


class HistoricalPayrollRecord(Base, PayrollFieldsMixin):
    """Archived payroll line produced by a pay-period closure.

    Rows are append-only. ``original_id`` points back at the active row the
    copy was taken from and is unique, so re-archiving the same row is a no-op.
    """

    __tablename__ = "payroll_historical_payrun"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    original_id: Mapped[UUID] = mapped_column(nullable=False)
    closed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    closure_batch_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    closure_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("original_id", name="payroll_historical_payrun_original_id_unique"),
    )

    @classmethod
    def from_active(
        cls,
        record: PayrollRecord,
        *,
        historical_id: UUID,
        closed_at: datetime,
        closed_by_user_id: str | None,
        closure_batch_id: UUID,
        closure_notes: str | None,
    ) -> HistoricalPayrollRecord:
        """Stamp a copy of an active row with closure metadata."""
        values = {name: getattr(record, name) for name in PAYROLL_FIELDS}
        if values["created_at"] is None:
            values["created_at"] = closed_at
        return cls(
            id=historical_id,
            original_id=record.id,
            closed_at=closed_at,
            closed_by_user_id=closed_by_user_id,
            closure_batch_id=closure_batch_id,
            closure_notes=closure_notes,
            **values,
        )

    def __repr__(self) -> str:
        return (
            f"HistoricalPayrollRecord(id={self.id}, original_id={self.original_id}, "
            f"closure_batch_id={self.closure_batch_id})"
        )
