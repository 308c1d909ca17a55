"""Tests for reflecta.migration.JournalMigrator."""

import logging
import sqlite3
from unittest.mock import MagicMock

import pytest

from reflecta.classification import GoalClassifier
from reflecta.migration import FixedDelayPacer, JournalMigrator, RunStatistics
from reflecta.protocols import ModelError, StorageError
from reflecta.types import GoalNode


@pytest.fixture
def health_tree():
    return GoalNode(
        id="g1",
        text="Live a healthier life",
        sub_goals=[GoalNode(id="g2", text="Physical Health")],
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def build_migrator(storage, sleeps):
    def _build(model, **kwargs):
        kwargs.setdefault("pacer", FixedDelayPacer(20, sleep_fn=sleeps.append))
        return JournalMigrator(storage, GoalClassifier(model), **kwargs)

    return _build


class TestFixedDelayPacer:
    def test_sleeps_for_the_delay(self):
        calls = []
        FixedDelayPacer(2.5, sleep_fn=calls.append).wait()
        assert calls == [2.5]

    def test_zero_delay_never_sleeps(self):
        sleep = MagicMock()
        FixedDelayPacer(0, sleep_fn=sleep).wait()
        sleep.assert_not_called()

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError):
            FixedDelayPacer(-1)


class TestScenarios:
    def test_confident_match_links_journal_and_creates_progress(
        self, storage, build_migrator, fake_model_factory, judgment, make_journal, health_tree
    ):
        storage.save_goal_tree("user-1", health_tree)
        storage.save_journal(make_journal("j1", "Went for a 5k run and felt great"))
        model = fake_model_factory([judgment("g2", "sub", 0.8)])

        stats = build_migrator(model).run()

        assert stats.total == 1
        assert stats.mapped == 1
        assert stats.progress_created == 1
        assert stats.unmapped == 0
        entry = storage.get_journal("j1")
        assert entry.related_goal_id == "g2"
        assert entry.related_goal_type == "sub"
        [progress] = storage.list_progress()
        assert progress.sub_goal_id == "g2"
        assert progress.goal_id == "g2"
        assert progress.progress_type == "reflection"
        assert progress.source_journal_id == "j1"

    def test_low_confidence_leaves_journal_unlinked(
        self, storage, build_migrator, fake_model_factory, judgment, make_journal, health_tree
    ):
        storage.save_goal_tree("user-1", health_tree)
        storage.save_journal(make_journal("j1", "Went for a 5k run and felt great"))
        model = fake_model_factory([judgment("g2", "sub", 0.2)])

        stats = build_migrator(model).run()

        assert stats.unmapped == 1
        assert stats.mapped == 0
        assert storage.get_journal("j1").related_goal_id is None
        assert storage.list_progress() == []

    def test_user_without_goals_never_calls_model(
        self, storage, build_migrator, fake_model_factory, make_journal
    ):
        storage.save_journal(make_journal("j1"))
        model = fake_model_factory()

        stats = build_migrator(model).run()

        assert stats.unmapped == 1
        assert model.calls == []

    def test_no_model_configured_counts_unmapped(
        self, storage, build_migrator, make_journal, health_tree
    ):
        storage.save_goal_tree("user-1", health_tree)
        storage.save_journal(make_journal("j1"))
        stats = build_migrator(None).run()
        assert stats.unmapped == 1
        assert stats.errors == 0


class TestRun:
    def test_empty_set_returns_immediately(self, build_migrator, fake_model_factory, sleeps):
        stats = build_migrator(fake_model_factory()).run()
        assert stats == RunStatistics()
        assert sleeps == []

    def test_second_run_finds_nothing_new(
        self, storage, build_migrator, fake_model_factory, judgment, make_journal, health_tree
    ):
        storage.save_goal_tree("user-1", health_tree)
        storage.save_journal(make_journal("j1"))
        storage.save_journal(make_journal("j2", days_ago=1))
        model = fake_model_factory([judgment("g2", "sub", 0.9)])

        first = build_migrator(model).run()
        second = build_migrator(model).run()

        assert first.mapped == 2
        assert second.total == 0
        assert second.mapped == 0
        assert len(storage.list_progress()) == 2

    def test_rejected_entries_are_retried_next_run(
        self, storage, build_migrator, fake_model_factory, judgment, make_journal, health_tree
    ):
        storage.save_goal_tree("user-1", health_tree)
        storage.save_journal(make_journal("j1"))
        build_migrator(fake_model_factory([judgment(None, None, 0.0)])).run()

        stats = build_migrator(fake_model_factory([judgment("g1", "main", 0.7)])).run()

        assert stats.total == 1
        assert stats.mapped == 1
        assert storage.list_progress()[0].sub_goal_id is None

    def test_failing_record_is_isolated(
        self,
        storage,
        build_migrator,
        fake_model_factory,
        judgment,
        make_journal,
        health_tree,
        caplog,
    ):
        storage.save_goal_tree("user-1", health_tree)
        for i in range(3):
            storage.save_journal(make_journal(f"j{i}", days_ago=i))
        model = fake_model_factory(
            [
                judgment("g2", "sub", 0.8),
                ModelError("rate_limit", "slow down"),
                judgment("g1", "main", 0.6),
            ]
        )

        with caplog.at_level(logging.ERROR, logger="reflecta.migration"):
            stats = build_migrator(model).run()

        assert stats.errors == 1
        assert stats.mapped == 2
        assert stats.processed == 3
        assert storage.get_journal("j1").related_goal_id is None
        assert {p.source_journal_id for p in storage.list_progress()} == {"j0", "j2"}
        [record] = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert record.journal_id == "j1"
        assert record.error_type == "ModelError"

    def test_malformed_stored_goal_tree_is_a_record_error(self, make_journal):
        storage = MagicMock()
        storage.list_unmapped_journals.return_value = [make_journal("j1")]
        storage.get_goal_trees.side_effect = StorageError("corrupt goal document")
        migrator = JournalMigrator(storage, GoalClassifier(None), pacer=FixedDelayPacer(0))

        stats = migrator.run()

        assert stats.errors == 1
        storage.record_goal_mapping.assert_not_called()

    def test_vanished_journal_counts_as_error(
        self, fake_model_factory, judgment, make_journal, health_tree
    ):
        storage = MagicMock()
        storage.list_unmapped_journals.return_value = [make_journal("j1")]
        storage.get_goal_trees.return_value = [health_tree]
        storage.record_goal_mapping.return_value = False
        migrator = JournalMigrator(
            storage,
            GoalClassifier(fake_model_factory([judgment("g2", "sub", 0.8)])),
            pacer=FixedDelayPacer(0),
        )

        stats = migrator.run()

        assert stats.errors == 1
        assert stats.mapped == 0
        assert stats.progress_created == 0

    @pytest.mark.parametrize("goal_id", ["", "   "])
    def test_blank_goal_id_leaves_journal_unmigrated(
        self,
        storage,
        build_migrator,
        fake_model_factory,
        judgment,
        make_journal,
        health_tree,
        goal_id,
    ):
        storage.save_goal_tree("user-1", health_tree)
        storage.save_journal(make_journal("j1"))

        stats = build_migrator(fake_model_factory([judgment(goal_id, "sub", 0.8)])).run()

        assert stats.unmapped == 1
        assert stats.mapped == 0
        assert stats.progress_created == 0
        assert storage.list_progress() == []
        assert [e.id for e in storage.list_unmapped_journals()] == ["j1"]

    def test_failed_progress_insert_keeps_journal_unmigrated(
        self,
        storage,
        build_migrator,
        fake_model_factory,
        judgment,
        make_journal,
        health_tree,
        monkeypatch,
    ):
        storage.save_goal_tree("user-1", health_tree)
        storage.save_journal(make_journal("j1"))
        original_insert = storage._insert_progress
        failures = [sqlite3.OperationalError("database or disk is full")]

        def flaky_insert(conn, progress):
            if failures:
                raise failures.pop()
            return original_insert(conn, progress)

        monkeypatch.setattr(storage, "_insert_progress", flaky_insert)
        model = fake_model_factory([judgment("g2", "sub", 0.8)])

        first = build_migrator(model).run()

        assert first.errors == 1
        assert first.progress_created == 0
        assert storage.get_journal("j1").related_goal_id is None
        assert storage.list_progress() == []

        second = build_migrator(model).run()

        assert second.total == 1
        assert second.progress_created == 1
        assert storage.get_journal("j1").related_goal_id == "g2"
        assert [p.source_journal_id for p in storage.list_progress()] == ["j1"]

    def test_pauses_after_every_record(
        self,
        storage,
        build_migrator,
        fake_model_factory,
        judgment,
        make_journal,
        health_tree,
        sleeps,
    ):
        storage.save_goal_tree("user-1", health_tree)
        for i in range(3):
            storage.save_journal(make_journal(f"j{i}", days_ago=i))
        model = fake_model_factory(
            [judgment("g2", "sub", 0.8), ModelError("server", "500"), judgment(None, None, 0)]
        )

        build_migrator(model).run()

        assert sleeps == [20, 20, 20]

    def test_progress_callback_every_ten_records(
        self, storage, build_migrator, fake_model_factory, judgment, make_journal, health_tree
    ):
        storage.save_goal_tree("user-1", health_tree)
        for i in range(25):
            storage.save_journal(make_journal(f"j{i:02d}", days_ago=i))
        seen = []
        model = fake_model_factory([judgment(None, None, 0.0)])

        build_migrator(model, on_progress=lambda s: seen.append(s.processed)).run()

        assert seen == [10, 20]

    def test_limit_caps_selection(
        self, storage, build_migrator, fake_model_factory, judgment, make_journal, health_tree
    ):
        storage.save_goal_tree("user-1", health_tree)
        for i in range(5):
            storage.save_journal(make_journal(f"j{i}", days_ago=i))
        stats = build_migrator(fake_model_factory([judgment("g2", "sub", 0.9)])).run(limit=2)
        assert stats.total == 2
        assert {p.source_journal_id for p in storage.list_progress()} == {"j0", "j1"}

    def test_goal_trees_loaded_once_per_user(
        self, fake_model_factory, judgment, make_journal, health_tree
    ):
        storage = MagicMock()
        storage.list_unmapped_journals.return_value = [
            make_journal("a"),
            make_journal("b"),
            make_journal("c", user_id="user-2"),
        ]
        storage.get_goal_trees.return_value = [health_tree]
        storage.record_goal_mapping.return_value = True
        migrator = JournalMigrator(
            storage,
            GoalClassifier(fake_model_factory([judgment("g2", "sub", 0.9)])),
            pacer=FixedDelayPacer(0),
        )

        migrator.run()

        assert storage.get_goal_trees.call_count == 2


class TestDryRun:
    def test_classifies_but_writes_nothing(
        self, storage, build_migrator, fake_model_factory, judgment, make_journal, health_tree
    ):
        storage.save_goal_tree("user-1", health_tree)
        storage.save_journal(make_journal("j1"))
        model = fake_model_factory([judgment("g2", "sub", 0.8)])

        stats = build_migrator(model, dry_run=True).run()

        assert stats.dry_run is True
        assert stats.mapped == 1
        assert stats.progress_created == 0
        assert len(model.calls) == 1
        assert storage.get_journal("j1").related_goal_id is None
        assert storage.list_progress() == []


class TestEventLog:
    def test_mappings_and_run_summary_written(
        self,
        storage,
        build_migrator,
        fake_model_factory,
        judgment,
        make_journal,
        health_tree,
        reflecta_env,
    ):
        storage.save_goal_tree("user-1", health_tree)
        storage.save_journal(make_journal("j1"))

        build_migrator(fake_model_factory([judgment("g2", "sub", 0.8)])).run()

        [log_file] = list((reflecta_env / "logs").glob("migration-events-*.log"))
        lines = log_file.read_text().splitlines()
        assert "| map | journal=j1 goal=g2 type=sub confidence=0.80" in lines[0]
        assert "| run | total=1 mapped=1" in lines[1]
