"""Payroll ledger command line interface.

Provides operational tools for:
- Closing pay periods (system-initiated or on behalf of a user)
- Listing open pay periods
- Browsing payrun history and closure batches
- Creating the schema on a development database
- Serving the HTTP API

Usage:
    payroll-ledger close-periods --period 2024-01-31 --period 2024-02-29 --notes "month-end close"
    payroll-ledger active-periods
    payroll-ledger history --batch-id <uuid>
    payroll-ledger batches
    payroll-ledger init-db
    payroll-ledger serve --port 8000
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from contextlib import AbstractAsyncContextManager
from dataclasses import asdict
from datetime import date
from typing import Any, Callable
from uuid import UUID

import uvicorn
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.config import get_settings
from payroll_ledger.database import create_schema, dispose_db, get_session, init_db
from payroll_ledger.errors import LedgerError
from payroll_ledger.services.closure_service import PayPeriodClosureService
from payroll_ledger.services.history_service import HistoryService
from payroll_ledger.services.payroll_record_service import PayrollRecordService

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    try:
        return date.fromisoformat(s)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date: {s!r} (expected YYYY-MM-DD)") from exc


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    try:
        return UUID(s)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid UUID: {s!r}") from exc


class LedgerCli:
    """Payroll ledger command line interface."""

    def __init__(self, session_scope: SessionScope = get_session) -> None:
        self.session_scope = session_scope
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="payroll-ledger",
            description="Payroll ledger operational tools",
        )
        parser.add_argument(
            "--log-level",
            type=str.upper,
            choices=LOG_LEVELS,
            default=None,
            help="Logging level (default: $LOG_LEVEL or INFO)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # close-periods command
        close = subparsers.add_parser(
            "close-periods",
            help="Move active payroll rows of pay periods into the payrun history",
        )
        close.add_argument(
            "--period",
            dest="periods",
            type=parse_date,
            action="append",
            required=True,
            help="Pay period end date (YYYY-MM-DD); repeat for several periods",
        )
        close.add_argument(
            "--notes",
            type=str,
            help="Free-text closure notes stored on every archived row",
        )
        close.add_argument(
            "--actor",
            type=str,
            help="User id to record as closer (default: none, system closure)",
        )

        # active-periods command
        subparsers.add_parser(
            "active-periods",
            help="List pay periods that still have active rows",
        )

        # history command
        history = subparsers.add_parser(
            "history",
            help="List archived payroll rows",
        )
        history.add_argument(
            "--batch-id",
            type=parse_uuid,
            help="Only rows from this closure batch",
        )
        history.add_argument(
            "--limit",
            type=int,
            default=50,
            help="Maximum rows to return (default: 50)",
        )
        history.add_argument(
            "--offset",
            type=int,
            default=0,
            help="Rows to skip (default: 0)",
        )

        # batches command
        subparsers.add_parser(
            "batches",
            help="List closure batches",
        )

        # serve command
        serve = subparsers.add_parser(
            "serve",
            help="Run the HTTP API with uvicorn",
        )
        serve.add_argument("--host", type=str, help="Bind address (default: $HOST)")
        serve.add_argument("--port", type=int, help="Bind port (default: $PORT)")

        # init-db command
        subparsers.add_parser(
            "init-db",
            help="Create ledger tables on the configured database (development only)",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        log_level = parsed.log_level or get_settings().log_level
        if log_level not in LOG_LEVELS:
            self.parser.error(
                f"invalid LOG_LEVEL {log_level!r} (choose from {', '.join(LOG_LEVELS)})"
            )
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )

        if not parsed.command:
            self.parser.print_help()
            return 1

        if parsed.command == "serve":
            return self._cmd_serve(parsed)

        # Dispatch to command handler
        handlers: dict[str, Callable[[argparse.Namespace], Any]] = {
            "close-periods": self._cmd_close_periods,
            "active-periods": self._cmd_active_periods,
            "history": self._cmd_history,
            "batches": self._cmd_batches,
            "init-db": self._cmd_init_db,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            result = asyncio.run(self._run_handler(handler, parsed))
        except LedgerError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

        if result is not None:
            print(json.dumps(result, indent=2, default=str))
        return 0

    async def _run_handler(
        self, handler: Callable[[argparse.Namespace], Any], parsed: argparse.Namespace
    ) -> Any:
        """Run a command, then release the pooled connections it opened."""
        try:
            return await handler(parsed)
        finally:
            await dispose_db()

    async def _cmd_close_periods(self, args: argparse.Namespace) -> dict[str, Any]:
        """Close pay periods."""
        async with self.session_scope() as session:
            service = PayPeriodClosureService.for_session(session)
            summary = await service.close_pay_periods(
                args.periods,
                notes=args.notes,
                acting_user_id=args.actor,
            )
        return {"success": True, "summary": summary.to_dict()}

    async def _cmd_active_periods(self, args: argparse.Namespace) -> dict[str, Any]:
        """List open pay periods."""
        async with self.session_scope() as session:
            service = PayrollRecordService(
                session, default_currency=get_settings().default_currency
            )
            periods = await service.list_active_periods()
        return {"periods": [asdict(p) for p in periods]}

    async def _cmd_history(self, args: argparse.Namespace) -> dict[str, Any]:
        """List archived rows."""
        async with self.session_scope() as session:
            rows, total = await HistoryService(session).list_history(
                limit=args.limit,
                offset=args.offset,
                batch_id=args.batch_id,
            )
        return {"rows": [row.to_dict() for row in rows], "total": total}

    async def _cmd_batches(self, args: argparse.Namespace) -> dict[str, Any]:
        """List closure batches."""
        async with self.session_scope() as session:
            batches = await HistoryService(session).list_batches()
        return {"batches": [asdict(b) for b in batches]}

    async def _cmd_init_db(self, args: argparse.Namespace) -> None:
        """Create tables."""
        engine, _ = init_db()
        await create_schema(engine)
        print("Schema created.", file=sys.stderr)

    def _cmd_serve(self, args: argparse.Namespace) -> int:
        """Run the API server (blocks until interrupted)."""
        settings = get_settings()
        uvicorn.run(
            "payroll_ledger.api.app:app",
            host=args.host or settings.host,
            port=args.port or settings.port,
            reload=settings.debug,
        )
        return 0


def main() -> int:
    """CLI entry point."""
    cli = LedgerCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
