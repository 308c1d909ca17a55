"""Acceptance gate and derived progress fields for classified journals."""

import math
import uuid
from typing import Optional

from reflecta.types import (
    PROGRESS_TYPE_REFLECTION,
    SUB_GOAL_LEVELS,
    ClassificationResult,
    GoalProgress,
    JournalEntry,
    utc_now,
)

# Characters of reflective writing assumed per minute
CHARS_PER_MINUTE = 200
# Floor for the time-spent estimate, in minutes
MIN_TIME_SPENT = 5
# Progress descriptions carry at most this many characters of the body
DESCRIPTION_LIMIT = 200


def accept(result: ClassificationResult) -> bool:
    """Whether a classification should be persisted.

    The confidence threshold is enforced by the classifier; a result that
    still carries a non-blank goal id here is accepted.
    """
    goal_id = result.related_goal_id
    return bool(goal_id and goal_id.strip())


def derive_sub_goal_id(result: ClassificationResult) -> Optional[str]:
    """The goal id for sub and sub-sub links; None for the main goal."""
    if result.related_goal_type in SUB_GOAL_LEVELS:
        return result.related_goal_id
    return None


def estimate_time_spent(content: Optional[str]) -> int:
    """Rough minutes spent writing ``content``, never below MIN_TIME_SPENT."""
    length = len(content or "")
    return max(MIN_TIME_SPENT, math.ceil(length / CHARS_PER_MINUTE))


def build_progress_record(entry: JournalEntry, result: ClassificationResult) -> GoalProgress:
    """Derive the goal-progress record for an accepted classification.

    Raises:
        ValueError: if ``result`` was not accepted.
    """
    if not accept(result):
        raise ValueError(f"journal {entry.id} has no accepted goal mapping")

    content = entry.content or ""
    return GoalProgress(
        id=str(uuid.uuid4()),
        user_id=entry.user_id,
        goal_id=result.related_goal_id,
        sub_goal_id=derive_sub_goal_id(result),
        progress_type=PROGRESS_TYPE_REFLECTION,
        title=entry.title,
        description=content[:DESCRIPTION_LIMIT],
        date=entry.date,
        mood=entry.mood,
        tags=list(entry.tags or []),
        is_ai_generated=entry.is_ai_generated,
        notes=content,
        time_spent=estimate_time_spent(content),
        is_milestone=False,
        source_journal_id=entry.id,
        created_at=utc_now(),
    )
