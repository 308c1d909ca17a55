"""SQLite document store for reflecta.

Implements GoalTreeSource, JournalStore and ProgressStore on a single
database file. Connections are opened per operation through ``_connect``.
"""

import contextlib
import json
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from reflecta.goals import validate_goal_tree
from reflecta.protocols import StorageError
from reflecta.storage.schema import init_db
from reflecta.types import (
    GoalNode,
    GoalProgress,
    JournalEntry,
    format_datetime,
    parse_datetime,
    utc_now,
)

logger = logging.getLogger(__name__)


def _to_json(data: Any) -> Optional[str]:
    if data is None:
        return None
    return json.dumps(data)


def _from_json(s: Optional[str]) -> Any:
    if not s:
        return None
    try:
        return json.loads(s)
    except json.JSONDecodeError:
        return None


def _parse_dt(s: Optional[str]):
    """Parse a stored timestamp; unparseable values read back as None."""
    parsed = parse_datetime(s)
    if isinstance(parsed, ValueError):
        logger.warning("Ignoring unparseable stored timestamp %r", s)
        return None
    return parsed


# === Document <-> dataclass conversion ===


def journal_to_doc(entry: JournalEntry) -> Dict[str, Any]:
    """Document shape of a journal entry. Unset link fields are left out."""
    doc: Dict[str, Any] = {
        "_id": entry.id,
        "userId": entry.user_id,
        "title": entry.title,
        "content": entry.content,
        "mood": entry.mood,
        "tags": list(entry.tags or []),
        "date": format_datetime(entry.date),
        "isAIGenerated": entry.is_ai_generated,
    }
    if entry.related_goal_id is not None:
        doc["relatedGoalId"] = entry.related_goal_id
        doc["relatedGoalType"] = entry.related_goal_type
    return doc


def _row_to_journal(row: sqlite3.Row) -> JournalEntry:
    doc = _from_json(row["doc"]) or {}
    return JournalEntry(
        id=row["id"],
        user_id=row["user_id"],
        content=doc.get("content") or "",
        title=doc.get("title") or "",
        mood=doc.get("mood"),
        tags=list(doc.get("tags") or []),
        date=_parse_dt(row["date"]),
        is_ai_generated=bool(doc.get("isAIGenerated", False)),
        related_goal_id=doc.get("relatedGoalId"),
        related_goal_type=doc.get("relatedGoalType"),
    )


def _row_to_progress(row: sqlite3.Row) -> GoalProgress:
    return GoalProgress(
        id=row["id"],
        user_id=row["user_id"],
        goal_id=row["goal_id"],
        sub_goal_id=row["sub_goal_id"],
        progress_type=row["progress_type"],
        title=row["title"] or "",
        description=row["description"] or "",
        date=_parse_dt(row["date"]),
        mood=row["mood"],
        tags=_from_json(row["tags"]) or [],
        is_ai_generated=bool(row["is_ai_generated"]),
        notes=row["notes"] or "",
        time_spent=row["time_spent"] or 0,
        is_milestone=bool(row["is_milestone"]),
        source_journal_id=row["source_journal_id"],
        created_at=_parse_dt(row["created_at"]),
    )


class SQLiteStorage:
    """SQLite-backed goal, journal and progress storage."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path).expanduser()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create database directory: {exc}") from exc
        self._init_db()

    def _init_db(self) -> None:
        with self._connect() as conn:
            init_db(conn)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager that handles transactions AND closes connection.

        - Transaction commit on success
        - Transaction rollback on exception
        - Connection close in all cases

        SQLite failures surface as StorageError.
        """
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise StorageError(str(e)) from e
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    def close(self) -> None:
        """No persistent connections are held; kept for API symmetry."""
        pass

    def check_connection(self) -> None:
        """Raise StorageError if the database cannot be queried."""
        with self._connect() as conn:
            conn.execute("SELECT 1").fetchone()

    # === Goals ===

    def save_goal_tree(
        self, user_id: str, tree: GoalNode, tree_id: Optional[str] = None
    ) -> str:
        """Validate and store one goal tree for ``user_id``. Returns the row id."""
        validate_goal_tree(tree)
        tree_id = tree_id or str(uuid.uuid4())
        with self._connect() as conn:
            existing = conn.execute(
                "SELECT created_at FROM goals WHERE id = ?", (tree_id,)
            ).fetchone()
            created_at = existing["created_at"] if existing else format_datetime(utc_now())
            conn.execute(
                """
                INSERT OR REPLACE INTO goals (id, user_id, doc, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (tree_id, user_id, _to_json(tree.to_dict()), created_at),
            )
        return tree_id

    def get_goal_trees(self, user_id: str) -> List[GoalNode]:
        """All goal trees owned by ``user_id``, in insertion order."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT doc FROM goals WHERE user_id = ? ORDER BY created_at, rowid",
                (user_id,),
            ).fetchall()
        return [GoalNode.from_dict(json.loads(row["doc"])) for row in rows]

    # === Journals ===

    def save_journal(self, entry: JournalEntry) -> str:
        """Insert or replace a journal entry."""
        if not entry.id:
            entry.id = str(uuid.uuid4())
        return self.save_journal_document(
            entry.id, entry.user_id, journal_to_doc(entry), date=entry.date
        )

    def save_journal_document(
        self,
        journal_id: str,
        user_id: str,
        doc: Dict[str, Any],
        *,
        date=None,
    ) -> str:
        """Store a raw journal document as-is (keys the app wrote are kept)."""
        if date is None and doc.get("date"):
            date = _parse_dt(doc["date"]) if isinstance(doc["date"], str) else None
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO journal_entries (id, user_id, date, doc)
                VALUES (?, ?, ?, ?)
                """,
                (journal_id, user_id, format_datetime(date), _to_json(doc)),
            )
        return journal_id

    def get_journal(self, journal_id: str) -> Optional[JournalEntry]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM journal_entries WHERE id = ?", (journal_id,)
            ).fetchone()
        return _row_to_journal(row) if row else None

    def get_journal_document(self, journal_id: str) -> Optional[Dict[str, Any]]:
        """The stored document itself, for callers that need the raw keys."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT doc FROM journal_entries WHERE id = ?", (journal_id,)
            ).fetchone()
        return _from_json(row["doc"]) if row else None

    def list_journals(self, user_id: Optional[str] = None) -> List[JournalEntry]:
        """Journal entries, newest first, optionally for one user."""
        query = "SELECT * FROM journal_entries"
        params: List[Any] = []
        if user_id is not None:
            query += " WHERE user_id = ?"
            params.append(user_id)
        query += " ORDER BY date DESC, rowid DESC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_journal(row) for row in rows]

    def list_unmapped_journals(self, limit: Optional[int] = None) -> List[JournalEntry]:
        """Entries whose goal link is null or absent, newest first."""
        # json_extract yields NULL both for a JSON null and a missing key
        query = (
            "SELECT * FROM journal_entries "
            "WHERE json_extract(doc, '$.relatedGoalId') IS NULL "
            "ORDER BY date DESC, rowid DESC"
        )
        params: List[Any] = []
        if limit is not None:
            if limit < 0:
                raise ValueError("limit must be non-negative")
            query += " LIMIT ?"
            params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_journal(row) for row in rows]

    def _link_journal(
        self,
        conn: sqlite3.Connection,
        journal_id: str,
        goal_id: str,
        goal_type: Optional[str],
    ) -> bool:
        cur = conn.execute(
            """
            UPDATE journal_entries
            SET doc = json_set(doc, '$.relatedGoalId', ?, '$.relatedGoalType', ?)
            WHERE id = ?
            """,
            (goal_id, goal_type, journal_id),
        )
        return cur.rowcount > 0

    def set_journal_goal_link(
        self, journal_id: str, goal_id: str, goal_type: Optional[str]
    ) -> bool:
        """Point update of relatedGoalId/relatedGoalType. False if not found."""
        with self._connect() as conn:
            return self._link_journal(conn, journal_id, goal_id, goal_type)

    def count_journals(self, *, unmapped_only: bool = False) -> int:
        query = "SELECT COUNT(*) FROM journal_entries"
        if unmapped_only:
            query += " WHERE json_extract(doc, '$.relatedGoalId') IS NULL"
        with self._connect() as conn:
            return conn.execute(query).fetchone()[0]

    # === Progress ===

    def _insert_progress(self, conn: sqlite3.Connection, progress: GoalProgress) -> str:
        if not progress.id:
            progress.id = str(uuid.uuid4())
        if progress.created_at is None:
            progress.created_at = utc_now()

        conn.execute(
            """
            INSERT INTO goal_progress
            (id, user_id, goal_id, sub_goal_id, progress_type, title, description,
             date, mood, tags, is_ai_generated, notes, time_spent, is_milestone,
             source_journal_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                progress.id,
                progress.user_id,
                progress.goal_id,
                progress.sub_goal_id,
                progress.progress_type,
                progress.title,
                progress.description,
                format_datetime(progress.date),
                progress.mood,
                _to_json(list(progress.tags or [])),
                1 if progress.is_ai_generated else 0,
                progress.notes,
                progress.time_spent,
                1 if progress.is_milestone else 0,
                progress.source_journal_id,
                format_datetime(progress.created_at),
            ),
        )
        return progress.id

    def save_progress(self, progress: GoalProgress) -> str:
        """Insert one goal-progress record. Returns its id."""
        with self._connect() as conn:
            return self._insert_progress(conn, progress)

    def record_goal_mapping(
        self, journal_id: str, goal_type: Optional[str], progress: GoalProgress
    ) -> bool:
        """Link a journal to ``progress.goal_id`` and insert ``progress``, atomically.

        Both writes share one transaction: if the insert fails the link is
        rolled back too, so the journal stays in the unmigrated set.

        Returns:
            False (and writes nothing) if the journal does not exist.
        """
        with self._connect() as conn:
            if not self._link_journal(conn, journal_id, progress.goal_id, goal_type):
                return False
            self._insert_progress(conn, progress)
            return True

    def list_progress(
        self, user_id: Optional[str] = None, goal_id: Optional[str] = None
    ) -> List[GoalProgress]:
        """Progress records, newest first, filtered by owner and/or goal."""
        clauses = []
        params: List[Any] = []
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if goal_id is not None:
            clauses.append("goal_id = ?")
            params.append(goal_id)
        query = "SELECT * FROM goal_progress"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC, rowid DESC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_progress(row) for row in rows]
