"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError

from payroll_ledger import __version__
from payroll_ledger.api.dependencies import DbSession
from payroll_ledger.models import HistoricalPayrollRecord, PayrollRecord

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: datetime
    database: str


class ReadinessResponse(BaseModel):
    """Readiness check response: both ledgers must be queryable."""

    status: str
    ledgers: dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Report API version and database connectivity."""
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        database=db_status,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(db: DbSession, response: Response) -> ReadinessResponse:
    """Ready once the active and historical ledger tables can be read."""
    ledgers: dict[str, str] = {}
    for model in (PayrollRecord, HistoricalPayrollRecord):
        try:
            await db.execute(select(model.id).limit(1))
            ledgers[model.__tablename__] = "ok"
        except SQLAlchemyError:
            logger.warning("Ledger table %s not readable", model.__tablename__, exc_info=True)
            await db.rollback()
            ledgers[model.__tablename__] = "unavailable"

    ready = all(state == "ok" for state in ledgers.values())
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(status="ready" if ready else "not_ready", ledgers=ledgers)


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Process is up; no dependencies checked."""
    return {"status": "alive"}
