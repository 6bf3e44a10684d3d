"""Pytest fixtures for payroll ledger tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Sequence
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_ledger.api.app import create_app
from payroll_ledger.api.dependencies import get_db_session
from payroll_ledger.errors import StoreFailure
from payroll_ledger.models import Base, HistoricalPayrollRecord, PayrollRecord
from payroll_ledger.services.closure_service import PayPeriodClosureService
from payroll_ledger.services.locking_service import PeriodLockService

# In-memory SQLite shared by every session of a test (StaticPool keeps one connection)
TEST_DATABASE_URL = "sqlite+aiosqlite://"

JAN_31 = date(2024, 1, 31)
FEB_29 = date(2024, 2, 29)
CLOSED_AT = datetime(2024, 3, 5, 9, 30, tzinfo=timezone.utc)

_BASE_CREATED_AT = datetime(2024, 2, 1, 8, 0, tzinfo=timezone.utc)
_sequence = 0


def build_record(pay_period_to: date, **overrides: Any) -> PayrollRecord:
    """Build an unsaved active payroll row for ``pay_period_to``."""
    global _sequence
    _sequence += 1
    values: dict[str, Any] = {
        "id": uuid4(),
        "employee_id": f"EMP-{_sequence:04d}",
        "employer_id": "ER-001",
        "employer_name": "Acme Trading LLC",
        "reviewer_email": "reviewer@acme.example",
        "employee_name": f"Employee {_sequence}",
        "email_id": f"employee{_sequence}@acme.example",
        "iban": "AE070331234567890123456",
        "pay_period_from": pay_period_to.replace(day=1),
        "pay_period_to": pay_period_to,
        "currency": "AED",
        "basic_salary": Decimal("8000.00"),
        "housing_allowance": Decimal("2000.00"),
        "net_salary": Decimal("10000.00"),
        "net_payment": Decimal("10000.00"),
        "created_at": _BASE_CREATED_AT + timedelta(seconds=_sequence),
    }
    values.update(overrides)
    return PayrollRecord(**values)


# =============================================================================
# In-memory ledgers
# =============================================================================


class UnreachableEngine:
    """PostgreSQL engine stand-in whose connections always fail."""

    dialect = SimpleNamespace(name="postgresql")

    def __init__(self, error: BaseException):
        self.error = error

    def connect(self):
        raise self.error


class InMemoryActiveLedger:
    """Active ledger over a list, with failure injection per operation/period."""

    def __init__(self, operation_log: list[tuple[str, date]]):
        self.records: list[PayrollRecord] = []
        self.operation_log = operation_log
        self.fail_on: set[tuple[str, date]] = set()

    def add(self, *records: PayrollRecord) -> None:
        self.records.extend(records)

    def period(self, period_end: date) -> list[PayrollRecord]:
        return [r for r in self.records if r.pay_period_to == period_end]

    async def fetch_period(self, period_end: date) -> list[PayrollRecord]:
        self.operation_log.append(("fetch", period_end))
        if ("fetch", period_end) in self.fail_on:
            raise StoreFailure("fetch records", period_end, RuntimeError("connection reset"))
        return self.period(period_end)

    async def remove_records(self, period_end: date, record_ids: Sequence[UUID]) -> int:
        self.operation_log.append(("remove", period_end))
        if ("remove", period_end) in self.fail_on:
            raise StoreFailure("delete active records", period_end, RuntimeError("connection reset"))
        ids = set(record_ids)
        before = len(self.records)
        self.records = [
            r for r in self.records if not (r.pay_period_to == period_end and r.id in ids)
        ]
        return before - len(self.records)


class InMemoryHistoricalLedger:
    """Historical ledger over a list; skips rows whose original_id is present."""

    def __init__(self, operation_log: list[tuple[str, date]]):
        self.rows: list[HistoricalPayrollRecord] = []
        self.operation_log = operation_log
        self.fail_on: set[date] = set()

    async def append(
        self, period_end: date, records: Sequence[HistoricalPayrollRecord]
    ) -> int:
        self.operation_log.append(("archive", period_end))
        if period_end in self.fail_on:
            raise StoreFailure("insert historical records", period_end, RuntimeError("disk full"))
        archived = {row.original_id for row in self.rows}
        new_rows = [r for r in records if r.original_id not in archived]
        self.rows.extend(new_rows)
        return len(new_rows)


@pytest.fixture
def operation_log() -> list[tuple[str, date]]:
    return []


@pytest.fixture
def active_ledger(operation_log) -> InMemoryActiveLedger:
    return InMemoryActiveLedger(operation_log)


@pytest.fixture
def historical_ledger(operation_log) -> InMemoryHistoricalLedger:
    return InMemoryHistoricalLedger(operation_log)


@pytest.fixture
def lock_service() -> PeriodLockService:
    return PeriodLockService()


@pytest.fixture
def closure_service(active_ledger, historical_ledger, lock_service) -> PayPeriodClosureService:
    """Closure service over in-memory ledgers with a fixed clock."""
    return PayPeriodClosureService(
        active=active_ledger,
        historical=historical_ledger,
        locks=lock_service,
        clock=lambda: CLOSED_AT,
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest_asyncio.fixture
async def engine():
    """Create test database engine with the ledger schema."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def seed(session_factory):
    """Persist active rows and return them."""

    async def _seed(*records: PayrollRecord) -> list[PayrollRecord]:
        async with session_factory() as s:
            s.add_all(records)
            await s.commit()
        return list(records)

    return _seed


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client bound to the test database."""
    app = create_app()

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_db_session] = override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
