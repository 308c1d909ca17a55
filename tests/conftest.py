"""
Pytest fixtures and test configuration for reflecta tests.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

import pytest

from reflecta.config import get_settings
from reflecta.protocols import ModelCapabilities, ModelMessage, ModelResponse
from reflecta.storage.sqlite import SQLiteStorage
from reflecta.types import GoalNode, JournalEntry

MODEL_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_API_URL",
    "ANTHROPIC_API_KEY",
    "CLAUDE_API_KEY",
    "REFLECTA_MODEL_PROVIDER",
    "REFLECTA_MODEL",
    "REFLECTA_DB_PATH",
    "REFLECTA_MIGRATION_DELAY",
    "REFLECTA_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def reflecta_env(tmp_path, monkeypatch):
    """Isolate every test: temp data dir, no provider keys, fresh settings."""
    for var in MODEL_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    data_dir = tmp_path / "reflecta-home"
    monkeypatch.setenv("REFLECTA_DATA_DIR", str(data_dir))
    monkeypatch.setattr("reflecta.logging_config._log_dir", None)
    # Keep a developer's .env out of the settings under test
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield data_dir
    get_settings.cache_clear()
    app_logger = logging.getLogger("reflecta")
    for handler in list(app_logger.handlers):
        handler.close()
        app_logger.removeHandler(handler)
    app_logger.setLevel(logging.NOTSET)


@pytest.fixture
def storage(tmp_path):
    """SQLiteStorage on a temporary database file."""
    return SQLiteStorage(tmp_path / "reflecta-test.db")


class FakeModel:
    """ModelProtocol stand-in that replays canned responses.

    Each item in ``responses`` is returned as the response text in order
    (the last one repeats); an exception instance is raised instead.
    """

    def __init__(self, responses: Optional[List[Any]] = None, model_id: str = "fake-model"):
        self.responses = list(responses or [])
        self._model_id = model_id
        self.calls: List[dict] = []

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(model_id=self._model_id, provider="fake", context_window=4096)

    def generate(
        self,
        messages: List[ModelMessage],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system: Optional[str] = None,
    ) -> ModelResponse:
        self.calls.append(
            {
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "system": system,
            }
        )
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        item = self.responses[index] if self.responses else ""
        if isinstance(item, BaseException):
            raise item
        return ModelResponse(content=item, model_id=self._model_id)


def _judgment(goal_id=None, goal_type=None, confidence=0.0, reason="test") -> str:
    """JSON text shaped like a model's classification answer."""
    return json.dumps(
        {
            "relatedGoalId": goal_id,
            "relatedGoalType": goal_type,
            "confidence": confidence,
            "reason": reason,
        }
    )


@pytest.fixture
def fake_model_factory():
    return FakeModel


@pytest.fixture
def sample_tree() -> GoalNode:
    """Main goal with two usable sub-goals, placeholders and a textless slot."""
    return GoalNode(
        id="g1",
        text="Live a healthier life",
        sub_goals=[
            GoalNode(
                id="g2",
                text="Physical Health",
                description="Move every day",
                sub_goals=[
                    GoalNode(id="t1", text="Run three times a week"),
                    None,
                    GoalNode(id="t2", text="   "),
                ],
            ),
            None,
            GoalNode(
                id="g3",
                text="",
                sub_goals=[GoalNode(id="t3", text="Hidden behind an empty slot")],
            ),
            GoalNode(id="g4", text="Mental Health"),
        ],
    )


_BASE_DATE = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def _make_journal(
    journal_id: str,
    content: str = "Went for a 5k run and felt great",
    *,
    user_id: str = "user-1",
    days_ago: int = 0,
    **kwargs,
) -> JournalEntry:
    return JournalEntry(
        id=journal_id,
        user_id=user_id,
        content=content,
        title=kwargs.pop("title", f"Entry {journal_id}"),
        date=_BASE_DATE - timedelta(days=days_ago),
        **kwargs,
    )


@pytest.fixture
def judgment():
    """Build model answer text: judgment("g2", "sub", 0.8)."""
    return _judgment


@pytest.fixture
def make_journal():
    """Build a JournalEntry for user-1 dated relative to 2024-05-01."""
    return _make_journal
