"""
reflecta Protocol Definitions
=============================

Interface contracts between the migration pipeline and its collaborators.

Collaborators and their roles:
- Model:          The classification engine. Prompt in, text out. Interchangeable.
- GoalTreeSource: Read-only lookup of a user's goal trees.
- JournalStore:   Selects unmigrated journal entries; attaches goal links.
- ProgressStore:  Inserts derived goal-progress records.

SQLiteStorage implements the three store protocols; OpenAIModel and
AnthropicModel implement ModelProtocol.

Error handling philosophy:
- A missing or placeholder credential is not an error: no model is bound
  and every classification comes back as no-match
- A malformed model response is not an error either (see classification)
- Provider transport failures raise a provider ModelError subclass
- Storage failures raise StorageError
- Invalid arguments raise ValueError
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from reflecta.types import GoalNode, GoalProgress, JournalEntry

# =============================================================================
# ERRORS
# =============================================================================


class ReflectaError(Exception):
    """Base for all reflecta errors."""

    pass


class StorageError(ReflectaError):
    """Raised when the document store cannot be opened, queried or written."""

    pass


class InvalidGoalTreeError(ReflectaError, ValueError):
    """Raised when a goal tree breaks the depth or id-uniqueness rules."""

    pass


class ModelError(ReflectaError):
    """Base for provider failures. ``error_class`` is a coarse category.

    Categories: rate_limit, auth, timeout, server, unknown.
    """

    def __init__(self, error_class: str, message: str) -> None:
        super().__init__(message)
        self.error_class = error_class


# =============================================================================
# MODEL TYPES
# =============================================================================


@dataclass
class ModelCapabilities:
    """What a model implementation can do."""

    model_id: str
    provider: str  # "openai", "anthropic"
    context_window: int
    max_output_tokens: int = 4096
    supports_json_mode: bool = False


@dataclass
class ModelMessage:
    """A message in a conversation."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class ModelResponse:
    """Complete response from a model.

    ``content`` is empty when the provider returned no text payload.
    """

    content: str
    usage: dict[str, int] = field(default_factory=dict)
    stop_reason: Optional[str] = None
    model_id: Optional[str] = None


# =============================================================================
# PROTOCOLS
# =============================================================================


@runtime_checkable
class ModelProtocol(Protocol):
    """Interface for the classification engine."""

    @property
    def model_id(self) -> str:
        """Identifier (e.g., 'gpt-3.5-turbo', 'claude-haiku-4-5-20251001')."""
        ...

    @property
    def capabilities(self) -> ModelCapabilities:
        """What this model can do."""
        ...

    def generate(
        self,
        messages: list[ModelMessage],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system: Optional[str] = None,
    ) -> ModelResponse:
        """Generate a complete response."""
        ...


@runtime_checkable
class GoalTreeSource(Protocol):
    """Read-only access to users' goal trees."""

    def get_goal_trees(self, user_id: str) -> list[GoalNode]:
        """All goal trees owned by ``user_id``, in storage order. Empty if none."""
        ...


@runtime_checkable
class JournalStore(Protocol):
    """Journal selection and goal-link updates."""

    def list_unmapped_journals(self, limit: Optional[int] = None) -> list[JournalEntry]:
        """Entries whose goal link is null or absent, newest first."""
        ...

    def set_journal_goal_link(
        self, journal_id: str, goal_id: str, goal_type: Optional[str]
    ) -> bool:
        """Set only the two link fields on one entry. Returns False if not found."""
        ...


@runtime_checkable
class ProgressStore(Protocol):
    """Insert-only access to goal-progress records."""

    def save_progress(self, progress: GoalProgress) -> str:
        """Insert one record; returns its id."""
        ...


class MigrationStorage(GoalTreeSource, JournalStore, ProgressStore, Protocol):
    """Everything the journal migrator needs from storage."""

    def record_goal_mapping(
        self, journal_id: str, goal_type: Optional[str], progress: GoalProgress
    ) -> bool:
        """Set the journal's goal link and insert ``progress`` in one transaction.

        Returns False, writing nothing, if the journal is not found.
        """
        ...


def describe_model(model: Optional[Any]) -> str:
    """Short human label for a bound model (or its absence)."""
    if model is None:
        return "none (classification disabled)"
    caps = getattr(model, "capabilities", None)
    provider = getattr(caps, "provider", "unknown")
    return f"{provider}:{getattr(model, 'model_id', '?')}"
