"""Logging setup for reflecta.

Two destinations, both under ``<data_dir>/logs``:

- ``migrate-YYYY-MM-DD.log``: the regular ``reflecta`` logger output.
- ``migration-events-YYYY-MM-DD.log``: an append-only audit trail of
  goal mappings and run summaries, one line per event.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

from reflecta.config import get_reflecta_home

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


# Set by setup_reflecta_logging when the configured data directory is known
_log_dir: Optional[Path] = None


def get_log_dir() -> Path:
    if _log_dir is not None:
        return _log_dir
    return get_reflecta_home() / "logs"


def _today() -> str:
    return datetime.now().strftime("%Y-%m-%d")


def setup_reflecta_logging(
    level: str = "INFO", data_dir: Optional[Union[str, Path]] = None
) -> logging.Logger:
    """Configure the ``reflecta`` logger once and return it.

    ``data_dir`` (normally ``Settings.data_dir``) places both the log file
    and the event log under ``<data_dir>/logs``. Invalid level names fall
    back to INFO. DEBUG also logs to the console. Repeated calls adjust
    the level but never add duplicate handlers.
    """
    global _log_dir
    if data_dir is not None:
        _log_dir = Path(data_dir).expanduser() / "logs"

    app_logger = logging.getLogger("reflecta")
    resolved = _LEVELS.get((level or "").upper(), logging.INFO)
    app_logger.setLevel(resolved)

    has_file = any(isinstance(h, logging.FileHandler) for h in app_logger.handlers)
    if not has_file:
        log_dir = get_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / f"migrate-{_today()}.log", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        app_logger.addHandler(file_handler)

    if resolved == logging.DEBUG:
        has_console = any(
            isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
            for h in app_logger.handlers
        )
        if not has_console:
            console = logging.StreamHandler()
            console.setFormatter(logging.Formatter(LOG_FORMAT))
            app_logger.addHandler(console)

    return app_logger


def log_migration_event(event_type: str, details: str, *, log_dir: Optional[Path] = None) -> None:
    """Append one ``time | event | details`` line to the event log."""
    target_dir = log_dir or get_log_dir()
    timestamp = datetime.now().isoformat(timespec="seconds")
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / f"migration-events-{_today()}.log"
        with open(path, "a", encoding="utf-8") as fh:
            fh.write(f"{timestamp} | {event_type} | {details}\n")
    except OSError as e:
        logger.warning("Could not write migration event log: %s", e)


def log_mapping(
    journal_id: str,
    goal_id: str,
    goal_type: Optional[str],
    confidence: float,
    *,
    dry_run: bool = False,
) -> None:
    """Record an accepted journal -> goal mapping."""
    log_migration_event(
        "map",
        f"journal={journal_id} goal={goal_id} type={goal_type} "
        f"confidence={confidence:.2f} dry_run={dry_run}",
    )


def log_run(stats: Any) -> None:
    """Record the final counters of a migration run."""
    log_migration_event(
        "run",
        f"total={stats.total} mapped={stats.mapped} unmapped={stats.unmapped} "
        f"progress_created={stats.progress_created} errors={stats.errors} "
        f"dry_run={stats.dry_run}",
    )
