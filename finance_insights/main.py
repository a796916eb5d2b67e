"""
Command Line Entry Point

Builds a financial report, insight list, narrative analysis or record audit
from exported files or the configured database and prints it as JSON.

Usage:
    finance-insights report --sales sales.csv --expenses expenses.csv --products products.csv
    finance-insights insights --range quarter --database sqlite+aiosqlite:///./finance.db
    finance-insights analysis --start 2024-01-01 --end 2024-03-31 --sales sales.parquet
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

import structlog

from finance_insights.config import get_settings
from finance_insights.config.logging import configure_logging
from finance_insights.database import Database, SqlRecordRepository
from finance_insights.ingestion import FileRecordRepository
from finance_insights.reporting import (
    DateRangePreset,
    InvalidWindow,
    ReportingService,
    UpstreamFetchFailed,
)

logger = structlog.get_logger(__name__)

COMMANDS = ("report", "insights", "analysis", "audit")

EXIT_OK = 0
EXIT_FETCH_FAILED = 1
EXIT_INVALID_WINDOW = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="finance-insights",
        description="Financial reporting and insight engine",
    )
    parser.add_argument("command", choices=COMMANDS, help="What to build")

    source = parser.add_argument_group("record source")
    source.add_argument("--sales", help="Sales export (csv, json, jsonl, parquet)")
    source.add_argument("--expenses", help="Expenses export")
    source.add_argument("--products", help="Product catalog export")
    source.add_argument(
        "--database",
        help="Read from this database URL instead of files (default: DATABASE_URL)",
    )

    window = parser.add_argument_group("reporting window")
    window.add_argument(
        "--range",
        dest="date_range",
        choices=[p.value for p in DateRangePreset],
        help="Preset range ending now",
    )
    window.add_argument("--start", dest="start_date", help="First day, YYYY-MM-DD")
    window.add_argument("--end", dest="end_date", help="Last day, YYYY-MM-DD")

    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument("--log-format", choices=["json", "text"], help="Override LOG_FORMAT")
    return parser


def _uses_files(args: argparse.Namespace) -> bool:
    return any((args.sales, args.expenses, args.products))


async def run(args: argparse.Namespace) -> Dict[str, Any]:
    """Execute one command and return its JSON-ready payload"""
    settings = get_settings()
    database: Optional[Database] = None

    if _uses_files(args) and not args.database:
        repository = FileRecordRepository.from_files(args.sales, args.expenses, args.products)
    else:
        database = Database(url=args.database or settings.database.url, echo=settings.database.echo)
        repository = SqlRecordRepository(database, tz=settings.reporting.tzinfo)

    service = ReportingService(repository, settings=settings)
    window_args = (args.date_range, args.start_date, args.end_date)

    try:
        if args.command == "report":
            result = await service.build_report(*window_args)
            return result.model_dump(mode="json", by_alias=True)
        if args.command == "insights":
            result = await service.build_insights(*window_args)
            return result.model_dump(mode="json", by_alias=True)
        if args.command == "analysis":
            result = await service.build_analysis(*window_args)
            return result.model_dump(mode="json", by_alias=True)

        audits = await service.audit(*window_args)
        return {name: audit.to_dict() for name, audit in audits.items()}
    finally:
        if database is not None:
            await database.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    try:
        payload = asyncio.run(run(args))
    except InvalidWindow as e:
        logger.error("Invalid reporting window", error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INVALID_WINDOW
    except UpstreamFetchFailed as e:
        logger.error("Record fetch failed", source=e.source, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FETCH_FAILED

    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
