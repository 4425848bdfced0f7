"""Payroll command line interface.

Provides operational tools for:
- Payroll generation for a period
- Releasing the pending period
- Period summaries
- Draining the release outbox
- Creating the schema

Usage:
    python -m barangay_payroll.cli generate --start 2025-06-01 --end 2025-06-15
    python -m barangay_payroll.cli release --admin-id X [--include-attendance]
    python -m barangay_payroll.cli summary
    python -m barangay_payroll.cli drain-outbox
    python -m barangay_payroll.cli init-db
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from typing import Any, Callable, Coroutine
from uuid import UUID

from barangay_payroll.calculators.period import resolve_period
from barangay_payroll.database import create_all, dispose_db, get_session
from barangay_payroll.exceptions import PayrollError
from barangay_payroll.logging_config import configure_logging
from barangay_payroll.services.generation_service import GenerationService
from barangay_payroll.services.outbox_service import OutboxWorker
from barangay_payroll.services.release_service import ReleaseService
from barangay_payroll.services.summary_service import SummaryService

logger = logging.getLogger(__name__)


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def _add_period_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--start", type=parse_date, help="Period start (YYYY-MM-DD)")
    parser.add_argument("--end", type=parse_date, help="Period end (YYYY-MM-DD)")


class PayrollCli:
    """Payroll Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m barangay_payroll.cli",
            description="Barangay payroll operations",
        )
        parser.add_argument("--log-level", help="Override LOG_LEVEL")
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        generate = subparsers.add_parser(
            "generate",
            help="Generate PENDING entries (current semi-monthly period by default)",
        )
        _add_period_arguments(generate)

        release = subparsers.add_parser(
            "release",
            help="Release the pending period",
        )
        _add_period_arguments(release)
        release.add_argument(
            "--admin-id",
            type=parse_uuid,
            help="Administrator recorded as releaser and notified",
        )
        release.add_argument(
            "--include-attendance",
            action="store_true",
            help="Count attendance deductions in the released totals",
        )

        summary = subparsers.add_parser(
            "summary",
            help="Show stored entries or a live preview for a period",
        )
        _add_period_arguments(summary)
        summary.add_argument("--json", action="store_true", help="Output JSON")

        drain = subparsers.add_parser(
            "drain-outbox",
            help="Retry deferred deduction archival and notifications",
        )
        drain.add_argument("--limit", type=int, help="Maximum items to process")

        subparsers.add_parser("init-db", help="Create all tables")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(parsed.log_level)

        # Dispatch to command handler
        handlers: dict[str, Callable[[argparse.Namespace], Coroutine[Any, Any, int]]] = {
            "generate": self._cmd_generate,
            "release": self._cmd_release,
            "summary": self._cmd_summary,
            "drain-outbox": self._cmd_drain_outbox,
            "init-db": self._cmd_init_db,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return asyncio.run(self._run_and_dispose(handler, parsed))
        except PayrollError as e:
            print(f"ERROR [{e.code}]: {e.message}", file=sys.stderr)
            return 1

    async def _run_and_dispose(
        self,
        handler: Callable[[argparse.Namespace], Coroutine[Any, Any, int]],
        args: argparse.Namespace,
    ) -> int:
        try:
            return await handler(args)
        finally:
            await dispose_db()

    async def _cmd_generate(self, args: argparse.Namespace) -> int:
        """Generate PENDING entries."""
        period = resolve_period(args.start, args.end)
        async with get_session() as session:
            result = await GenerationService(session).generate(period)
        print(f"Generated {result.created_count} entries for {period.label()}")
        print(f"  Replaced pending: {result.replaced_count}")
        print(f"  Archived released: {result.archived_count}")
        print(f"  Mandatory deductions added: {result.mandatory_created}")
        print(f"  Total net: {result.total_net}")
        return 0

    async def _cmd_release(self, args: argparse.Namespace) -> int:
        """Release the pending period."""
        async with get_session() as session:
            service = ReleaseService(session)
            if args.start is None and args.end is None:
                period = await service.find_pending_period()
            else:
                period = resolve_period(args.start, args.end)
            result = await service.release(
                period,
                include_attendance_deductions=args.include_attendance,
                released_by_id=args.admin_id,
            )
        print(f"Released {result.released_count} entries for {period.label()}")
        print(f"  Loans updated: {len(result.loan_updates)} ({result.loans_completed} completed)")
        print(f"  Archived previous: {result.archived_count}")
        if result.outbox is not None and (result.outbox.retried or result.outbox.failed):
            print(
                f"  Outbox: {result.outbox.retried} to retry, {result.outbox.failed} failed",
                file=sys.stderr,
            )
        return 0

    async def _cmd_summary(self, args: argparse.Namespace) -> int:
        """Show a period summary."""
        period = resolve_period(args.start, args.end)
        async with get_session() as session:
            summary = await SummaryService(session).query_summary(period)

        if args.json:
            payload = {
                "period": period.key,
                "source": summary.source,
                "entries": [
                    {
                        "personnel_id": str(row.personnel_id),
                        "name": row.personnel_name,
                        "status": row.status,
                        "gross": str(row.gross),
                        "total_deductions": str(row.total_deductions),
                        "net_pay": str(row.net_pay),
                    }
                    for row in summary.rows
                ],
                "totals": {k: str(v) for k, v in summary.totals.items()},
            }
            print(json.dumps(payload, indent=2))
            return 0

        print(f"Payroll {period.label()} ({summary.source})")
        print("-" * 60)
        for row in summary.rows:
            print(
                f"{row.personnel_name:<30} {row.status:<9} "
                f"{row.gross:>12} {row.total_deductions:>12} {row.net_pay:>12}"
            )
        totals = summary.totals
        print("-" * 60)
        print(
            f"{totals['employees']} employees  gross {totals['gross']}  "
            f"deductions {totals['deductions']}  net {totals['net']}"
        )
        return 0

    async def _cmd_drain_outbox(self, args: argparse.Namespace) -> int:
        """Drain the release outbox."""
        async with get_session() as session:
            result = await OutboxWorker(session).drain(limit=args.limit)
        print(f"Processed {result.processed}, retry {result.retried}, failed {result.failed}")
        for error in result.errors:
            print(f"  {error}", file=sys.stderr)
        return 0 if result.failed == 0 else 1

    async def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create the schema."""
        await create_all()
        print("Schema created")
        return 0


def main() -> int:
    """CLI entry point."""
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
