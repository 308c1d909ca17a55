"""Journal → goal-progress migration.

Walks every journal entry that has no goal link yet, classifies it
against its owner's goal trees and, for confident matches, writes the
link back onto the journal and inserts one goal-progress record, both in
one storage transaction.

The run is resumable: "unmigrated" is read from the stored journal
documents, so an interrupted run simply picks up the remaining entries
next time. Records are processed strictly one at a time with a fixed
pause after each, to stay inside provider rate limits.
"""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional

from reflecta.classification import GoalClassifier
from reflecta.goals import flatten_goal_trees
from reflecta.logging_config import log_mapping, log_run
from reflecta.progress import accept, build_progress_record
from reflecta.protocols import MigrationStorage, StorageError
from reflecta.types import ClassificationResult, FlatGoalCandidate, JournalEntry

logger = logging.getLogger(__name__)

# Emit a progress line after this many records
PROGRESS_EVERY = 10


@dataclass
class RunStatistics:
    """Counters for one migration run."""

    total: int = 0  # Unmigrated entries selected at start
    processed: int = 0  # Entries visited so far
    mapped: int = 0
    unmapped: int = 0
    progress_created: int = 0
    errors: int = 0
    dry_run: bool = False

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class FixedDelayPacer:
    """Blocks for a fixed delay between records."""

    def __init__(self, delay_seconds: float, sleep_fn: Callable[[float], None] = time.sleep):
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be non-negative")
        self.delay_seconds = delay_seconds
        self._sleep = sleep_fn

    def wait(self) -> None:
        if self.delay_seconds > 0:
            self._sleep(self.delay_seconds)


class JournalMigrator:
    """Sequential, resumable journal migration.

    Args:
        storage: Goal source, journal store and progress store.
        classifier: Goal classifier; with no model bound every entry
            comes back unmapped.
        pacer: Pause applied after every record. Defaults to a
            FixedDelayPacer of ``delay_seconds``.
        dry_run: Classify but persist nothing.
        on_progress: Called with the running statistics every
            ``progress_every`` records.
    """

    def __init__(
        self,
        storage: MigrationStorage,
        classifier: GoalClassifier,
        *,
        pacer: Optional[FixedDelayPacer] = None,
        delay_seconds: float = 0.0,
        dry_run: bool = False,
        progress_every: int = PROGRESS_EVERY,
        on_progress: Optional[Callable[[RunStatistics], None]] = None,
    ):
        if progress_every < 1:
            raise ValueError("progress_every must be at least 1")
        self._storage = storage
        self._classifier = classifier
        self._pacer = pacer or FixedDelayPacer(delay_seconds)
        self._dry_run = dry_run
        self._progress_every = progress_every
        self._on_progress = on_progress
        self._candidates_by_user: Dict[str, List[FlatGoalCandidate]] = {}
        # Statistics of the current (or last) run; readable after an interrupt
        self.stats = RunStatistics(dry_run=dry_run)

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def find_candidates(self, limit: Optional[int] = None) -> List[JournalEntry]:
        """Entries with no goal link, newest first."""
        return self._storage.list_unmapped_journals(limit=limit)

    def _goal_candidates(self, user_id: str) -> List[FlatGoalCandidate]:
        cached = self._candidates_by_user.get(user_id)
        if cached is None:
            cached = flatten_goal_trees(self._storage.get_goal_trees(user_id))
            self._candidates_by_user[user_id] = cached
        return cached

    def classify_entry(self, entry: JournalEntry) -> ClassificationResult:
        """Classify one entry against its owner's goals (no persistence)."""
        candidates = self._goal_candidates(entry.user_id)
        if not candidates:
            logger.debug("No goals for user %s; journal %s left unmapped", entry.user_id, entry.id)
            return ClassificationResult.no_match("no goal candidates")
        return self._classifier.classify(candidates, entry.content or "")

    def migrate_entry(self, entry: JournalEntry, stats: RunStatistics) -> ClassificationResult:
        """Classify one entry and persist the outcome, updating ``stats``.

        Exceptions propagate; ``run`` accounts them per record.
        """
        result = self.classify_entry(entry)

        if not accept(result):
            stats.unmapped += 1
            logger.info("Journal %s: no confident goal match (%s)", entry.id, result.reason)
            return result

        if not self._dry_run:
            progress = build_progress_record(entry, result)
            found = self._storage.record_goal_mapping(entry.id, result.related_goal_type, progress)
            if not found:
                raise StorageError(f"journal {entry.id} disappeared before it could be linked")
            stats.progress_created += 1

        stats.mapped += 1
        logger.info(
            "Journal %s mapped to %s goal %s (confidence %.2f)",
            entry.id,
            result.related_goal_type,
            result.related_goal_id,
            result.confidence,
        )
        log_mapping(
            entry.id,
            result.related_goal_id,
            result.related_goal_type,
            result.confidence,
            dry_run=self._dry_run,
        )
        return result

    def run(self, limit: Optional[int] = None) -> RunStatistics:
        """Process every unmigrated entry once.

        Raises:
            StorageError: if the unmigrated set cannot be read at start.
        """
        stats = RunStatistics(dry_run=self._dry_run)
        self.stats = stats
        self._candidates_by_user = {}

        entries = self.find_candidates(limit)
        stats.total = len(entries)
        if not entries:
            logger.info("No unmigrated journal entries found")
            return stats

        logger.info("Migrating %d journal entries (dry_run=%s)", stats.total, self._dry_run)

        for entry in entries:
            try:
                self.migrate_entry(entry, stats)
            except Exception as e:
                stats.errors += 1
                logger.error(
                    "Failed to migrate journal %s: %s",
                    entry.id,
                    e,
                    extra={"journal_id": entry.id, "error_type": type(e).__name__},
                )

            stats.processed += 1
            if stats.processed % self._progress_every == 0:
                logger.info(
                    "Progress: %d/%d (mapped=%d unmapped=%d errors=%d)",
                    stats.processed,
                    stats.total,
                    stats.mapped,
                    stats.unmapped,
                    stats.errors,
                )
                if self._on_progress is not None:
                    self._on_progress(stats)

            self._pacer.wait()

        log_run(stats)
        logger.info(
            "Migration finished: %d mapped, %d unmapped, %d errors",
            stats.mapped,
            stats.unmapped,
            stats.errors,
        )
        return stats
