"""Command line entry points for scheduler triggers and local setup.

    python -m ledger.cli process-recurring [--today YYYY-MM-DD]
    python -m ledger.cli init-db
    python -m ledger.cli seed
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from typing import Optional, Sequence

from .core.config import settings
from .core.database import Base, engine, session_scope
from .core.logging import configure_logging
from .errors import FetchError, log_error
from . import models
from .services.recurring_processor import RecurringProcessor
from .services.recurring_store import SqlRecurringStore


log = logging.getLogger("ledger.cli")


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYY-MM-DD") from None


def cmd_process_recurring(args: argparse.Namespace) -> int:
    today = args.today or models.today_local()
    try:
        with session_scope() as db:
            summary = RecurringProcessor(SqlRecurringStore(db)).run(today)
    except FetchError as exc:
        log_error(exc, "process-recurring", logger=log)
        print(json.dumps(exc.to_payload()), file=sys.stderr)
        return 1
    print(summary.model_dump_json(indent=2))
    return 0


def cmd_init_db(args: argparse.Namespace) -> int:
    Base.metadata.create_all(engine)
    log.info("Created tables on %s", settings.DATABASE_URL)
    return 0


def cmd_seed(args: argparse.Namespace) -> int:
    from .seed import seed

    seed()
    log.info("Seeded demo data")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ledger")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("process-recurring", help="Post all due recurring transactions")
    p.add_argument("--today", type=_parse_date, default=None, help="Run date (defaults to the configured clock)")
    p.set_defaults(func=cmd_process_recurring)

    p = sub.add_parser("init-db", help="Create database tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("seed", help="Insert demo user, account and categories")
    p.set_defaults(func=cmd_seed)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
