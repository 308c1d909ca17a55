"""Migrate command: map unmigrated journal entries onto goals."""

import json
import logging
import time
from typing import TYPE_CHECKING

from reflecta.classification import GoalClassifier
from reflecta.migration import FixedDelayPacer, JournalMigrator
from reflecta.models.auto import configure_model
from reflecta.protocols import describe_model
from reflecta.report import format_banner, format_progress_line, format_run_report

if TYPE_CHECKING:
    import argparse

    from reflecta.config import Settings
    from reflecta.storage.sqlite import SQLiteStorage

logger = logging.getLogger(__name__)

COUNTDOWN_SECONDS = 5
EXIT_INTERRUPTED = 130


def cmd_migrate(
    args: "argparse.Namespace", storage: "SQLiteStorage", settings: "Settings"
) -> int:
    """Run the journal migration. Returns the process exit code."""
    delay = args.delay if args.delay is not None else settings.migration_delay_seconds
    if delay < 0:
        print("Error: --delay must be non-negative")
        return 2
    as_json = getattr(args, "json", False)
    countdown = 0 if (args.yes or as_json) else COUNTDOWN_SECONDS

    model = configure_model(settings)
    if model is None and not as_json:
        print("No classification API key configured; every entry will stay unmapped.")

    def _on_progress(stats):
        if not as_json:
            print(format_progress_line(stats))

    migrator = JournalMigrator(
        storage,
        GoalClassifier(model),
        pacer=FixedDelayPacer(delay),
        dry_run=args.dry_run,
        on_progress=_on_progress,
    )

    try:
        if not as_json:
            print(format_banner(delay, countdown))
            print(f"Model: {describe_model(model)}")
            if args.dry_run:
                print("Dry run: nothing will be written.")
            print()
        if countdown:
            time.sleep(countdown)

        stats = migrator.run(limit=args.limit)
    except KeyboardInterrupt:
        logger.warning("Migration interrupted after %d entries", migrator.stats.processed)
        if as_json:
            print(json.dumps({**migrator.stats.to_dict(), "interrupted": True}, indent=2))
        else:
            print()
            print(format_run_report(migrator.stats, interrupted=True))
        return EXIT_INTERRUPTED

    if as_json:
        print(json.dumps(stats.to_dict(), indent=2))
    elif stats.total == 0:
        print("No entries to migrate!")
    else:
        print()
        print(format_run_report(stats))
    return 0
