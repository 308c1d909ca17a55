"""Database schema for reflecta SQLite storage.

Contains:
- Schema DDL (SCHEMA)
- Schema version tracking (SCHEMA_VERSION)
- Database initialization (init_db)

Goal trees and journal entries are stored as JSON documents in a ``doc``
column, in the same camelCase shape the journaling app writes them.
Progress records are owned by this package and use typed columns.
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2  # v2: goal_progress.source_journal_id

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Goal trees, one row per stored goal document
CREATE TABLE IF NOT EXISTS goals (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    doc TEXT NOT NULL,        -- JSON goal tree {"id", "text", "description", "subGoals"}
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_goals_user ON goals(user_id, created_at);

-- Journal entries
CREATE TABLE IF NOT EXISTS journal_entries (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    date TEXT,                -- ISO timestamp, UTC
    doc TEXT NOT NULL         -- JSON journal document; relatedGoalId may be null or absent
);
CREATE INDEX IF NOT EXISTS idx_journal_user ON journal_entries(user_id);
CREATE INDEX IF NOT EXISTS idx_journal_date ON journal_entries(date);

-- Goal progress records derived from classified journals
CREATE TABLE IF NOT EXISTS goal_progress (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    goal_id TEXT NOT NULL,
    sub_goal_id TEXT,
    progress_type TEXT NOT NULL DEFAULT 'reflection',
    title TEXT,
    description TEXT,
    date TEXT,
    mood TEXT,
    tags TEXT,                -- JSON array
    is_ai_generated INTEGER DEFAULT 0,
    notes TEXT,
    time_spent INTEGER DEFAULT 0,  -- minutes
    is_milestone INTEGER DEFAULT 0,
    source_journal_id TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_progress_user ON goal_progress(user_id);
CREATE INDEX IF NOT EXISTS idx_progress_goal ON goal_progress(goal_id);
CREATE INDEX IF NOT EXISTS idx_progress_journal ON goal_progress(source_journal_id);
"""


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Bring an existing database up to SCHEMA_VERSION before the DDL runs."""
    table = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='goal_progress'"
    ).fetchone()
    if table is None:
        return

    cols = {row[1] for row in conn.execute("PRAGMA table_info(goal_progress)").fetchall()}
    if "source_journal_id" not in cols:
        logger.info("Adding goal_progress.source_journal_id column")
        conn.execute("ALTER TABLE goal_progress ADD COLUMN source_journal_id TEXT")


def init_db(conn: sqlite3.Connection) -> None:
    """Initialize the database schema.

    Args:
        conn: Database connection.
    """
    # First, run migrations if needed (before executing full schema)
    migrate_schema(conn)

    # CREATE TABLE IF NOT EXISTS is safe to re-run
    conn.executescript(SCHEMA)

    row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
    if row is None:
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    else:
        conn.execute("UPDATE schema_version SET version = ?", (SCHEMA_VERSION,))
