"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payroll_ledger import __version__
from payroll_ledger.api.routes import health_router, pay_periods_router, payroll_records_router
from payroll_ledger.database import dispose_db, init_db
from payroll_ledger.errors import (
    AuthenticationError,
    ClosureFailure,
    LedgerError,
    RecordNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    init_db()
    yield
    await dispose_db()


def _error(status_code: int, detail: str, code: str, context: dict[str, Any] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "code": code, "context": context},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Payroll Ledger API",
        description="Active payroll imports, pay-period closure and payrun history",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed bodies and query parameters are client errors (400)."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
        return _error(
            status.HTTP_400_BAD_REQUEST,
            detail,
            ValidationError.code,
            {"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc), exc.code)

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        return _error(status.HTTP_401_UNAUTHORIZED, str(exc), exc.code)

    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: RecordNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, str(exc), exc.code)

    @app.exception_handler(ClosureFailure)
    async def closure_failure_handler(request: Request, exc: ClosureFailure) -> JSONResponse:
        """Lock contention is a conflict; any store failure is a server error."""
        if exc.is_lock_conflict:
            return _error(status.HTTP_409_CONFLICT, str(exc), exc.cause.code, exc.context())
        logger.error("Pay period closure failed: %s", exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), exc.code, exc.context())

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        logger.error("Unhandled ledger error: %s", exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), exc.code)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unexpected error handling %s %s", request.method, request.url.path)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
            "INTERNAL_ERROR",
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(pay_periods_router, prefix="/api/v1")
    app.include_router(payroll_records_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
