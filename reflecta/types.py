"""
Shared record types for reflecta.

All dataclasses that cross module boundaries live here: goal trees, the
flattened candidates built from them, journal entries, classification
results and the goal-progress records derived from them. Storage, the
classifier and the migrator all speak in these types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# === Shared Utility Functions ===


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class ParseDatetimeError(ValueError):
    """Structured parse failure for ISO datetime strings."""

    def __init__(self, value: str, cause: Exception):
        super().__init__(f"Invalid ISO datetime string: {value!r}")
        self.value = value
        self.cause = cause


def parse_datetime(
    s: Optional[str], *, strict: bool = False
) -> Optional[datetime] | ParseDatetimeError:
    """Parse ISO datetime string. Naive values are taken as UTC."""
    if not s:
        return None
    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (TypeError, ValueError) as exc:
        result = ParseDatetimeError(s, exc)
        if strict:
            raise result from exc
        return result
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Render a datetime as a UTC ISO string (sortable as text)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


# === Enums ===


class GoalLevel(str, Enum):
    """Depth of a node in a goal tree, as named on the wire."""

    MAIN = "main"  # Root of the tree
    SUB = "sub"  # Direct child of the root
    SUB_SUB = "sub-sub"  # Grandchild of the root (a task)


VALID_GOAL_LEVEL_VALUES = frozenset(level.value for level in GoalLevel)

# Levels whose progress records carry a sub-goal id
SUB_GOAL_LEVELS = frozenset({GoalLevel.SUB.value, GoalLevel.SUB_SUB.value})

MAX_GOAL_DEPTH = 3

PROGRESS_TYPE_REFLECTION = "reflection"


# === Goal Trees ===


@dataclass
class GoalNode:
    """One node of a user's goal tree.

    ``sub_goals`` keeps ``None`` entries in place: they mark intentionally
    empty positions of the goal grid and must survive a round trip.
    """

    id: Optional[str]
    text: str = ""
    description: Optional[str] = None
    sub_goals: List[Optional["GoalNode"]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GoalNode":
        """Build a node (and its children) from its stored document shape."""
        if not isinstance(data, dict):
            raise TypeError(f"goal node must be an object, got {type(data).__name__}")
        children = data.get("subGoals") or []
        if not isinstance(children, list):
            raise TypeError("subGoals must be a list")
        return cls(
            id=data.get("id"),
            text=data.get("text") or "",
            description=data.get("description") or None,
            sub_goals=[cls.from_dict(child) if child is not None else None for child in children],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "description": self.description,
            "subGoals": [
                child.to_dict() if child is not None else None for child in self.sub_goals
            ],
        }

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())


@dataclass(frozen=True)
class FlatGoalCandidate:
    """A goal-tree node projected for matching. Never persisted."""

    id: str
    text: str
    level: str  # GoalLevel value
    description: str = ""


# === Journals ===


@dataclass
class JournalEntry:
    """A free-text journal record written by the journaling flow."""

    id: str
    user_id: str
    content: str
    title: str = ""
    mood: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    date: Optional[datetime] = None
    is_ai_generated: bool = False
    # Goal link, unset until a migration run (or the writer) attaches one
    related_goal_id: Optional[str] = None
    related_goal_type: Optional[str] = None

    @property
    def is_mapped(self) -> bool:
        return self.related_goal_id is not None


# === Classification ===


@dataclass
class ClassificationResult:
    """Judgment about which goal (if any) a journal entry relates to."""

    related_goal_id: Optional[str] = None
    related_goal_type: Optional[str] = None
    confidence: float = 0.0
    reason: str = ""

    @classmethod
    def no_match(cls, reason: str = "") -> "ClassificationResult":
        return cls(related_goal_id=None, related_goal_type=None, confidence=0.0, reason=reason)

    @property
    def matched(self) -> bool:
        return self.related_goal_id is not None


# === Progress ===


@dataclass
class GoalProgress:
    """A progress record derived from one classified journal entry."""

    id: str
    user_id: str
    goal_id: str
    sub_goal_id: Optional[str] = None
    progress_type: str = PROGRESS_TYPE_REFLECTION
    title: str = ""
    description: str = ""
    date: Optional[datetime] = None
    mood: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_ai_generated: bool = False
    notes: str = ""
    time_spent: int = 0  # minutes
    is_milestone: bool = False
    source_journal_id: Optional[str] = None
    created_at: Optional[datetime] = None
