"""
Reflecta CLI - map journal entries onto goals.

Usage:
    reflecta migrate [--delay S] [--limit N] [--dry-run] [--yes] [--json]
    reflecta status [--user USER_ID] [--json]
    reflecta import FILE [--dry-run]

Global options:
    --db PATH          Database file (default: $REFLECTA_DB_PATH or ~/.reflecta/reflecta.db)
    --log-level LEVEL  DEBUG, INFO, WARNING or ERROR (default: $REFLECTA_LOG_LEVEL)
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from reflecta.cli.commands import cmd_import, cmd_migrate, cmd_status
from reflecta.config import get_settings
from reflecta.logging_config import setup_reflecta_logging
from reflecta.protocols import StorageError
from reflecta.storage.sqlite import SQLiteStorage

logger = logging.getLogger(__name__)


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError("must be a non-negative integer")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reflecta",
        description="Map journal entries onto goals and record goal progress",
    )
    parser.add_argument("--db", help="Path to the SQLite database file", default=None)
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    p_migrate = subparsers.add_parser("migrate", help="Map unmigrated journals to goals")
    p_migrate.add_argument(
        "--delay", type=float, default=None, help="Seconds to wait after each entry"
    )
    p_migrate.add_argument(
        "--limit", "-l", type=_non_negative_int, default=None, help="Process at most N entries"
    )
    p_migrate.add_argument(
        "--dry-run", dest="dry_run", action="store_true", help="Classify but write nothing"
    )
    p_migrate.add_argument("--yes", "-y", action="store_true", help="Skip the start countdown")
    p_migrate.add_argument("--json", "-j", action="store_true", help="Print statistics as JSON")

    # status
    p_status = subparsers.add_parser("status", help="Show journal-to-goal link status")
    p_status.add_argument("--user", "-u", help="Only this user's journals", default=None)
    p_status.add_argument("--json", "-j", action="store_true")

    # import
    p_import = subparsers.add_parser("import", help="Import exported goals and journals")
    p_import.add_argument("file", help="JSON export file")
    p_import.add_argument("--dry-run", dest="dry_run", action="store_true")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_reflecta_logging(args.log_level or settings.log_level, data_dir=settings.data_dir)

    db_path = Path(args.db).expanduser() if args.db else settings.resolved_db_path

    try:
        storage = SQLiteStorage(db_path)
        storage.check_connection()
    except StorageError as e:
        logger.error(f"Failed to open database {db_path}: {e}")
        print(f"Error: cannot open database {db_path}: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.command == "migrate":
            code = cmd_migrate(args, storage, settings)
        elif args.command == "status":
            code = cmd_status(args, storage)
        elif args.command == "import":
            code = cmd_import(args, storage)
        else:
            parser.error(f"unknown command {args.command}")
    except StorageError as e:
        logger.error(f"Storage failure: {e}")
        print(f"Error: storage failure: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
