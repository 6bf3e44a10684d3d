"""API routes."""

from payroll_ledger.api.routes.health import router as health_router
from payroll_ledger.api.routes.pay_periods import router as pay_periods_router
from payroll_ledger.api.routes.payroll_records import router as payroll_records_router

__all__ = ["health_router", "pay_periods_router", "payroll_records_router"]
