"""Tests for reflecta.logging_config module."""

import logging
from types import SimpleNamespace

import pytest

from reflecta.logging_config import (
    log_mapping,
    log_migration_event,
    log_run,
    setup_reflecta_logging,
)


@pytest.fixture
def log_dir(reflecta_env):
    return reflecta_env / "logs"


class TestSetupReflectaLogging:
    def test_returns_app_logger(self, log_dir):
        logger = setup_reflecta_logging()
        assert isinstance(logger, logging.Logger)
        assert logger.name == "reflecta"

    def test_creates_dated_log_file(self, log_dir):
        assert not log_dir.exists()
        setup_reflecta_logging()
        [log_file] = list(log_dir.glob("migrate-*.log"))
        assert log_file.name.endswith(".log")

    def test_default_level_info(self, log_dir):
        assert setup_reflecta_logging().level == logging.INFO

    def test_level_case_insensitive(self, log_dir):
        assert setup_reflecta_logging("warning").level == logging.WARNING

    def test_invalid_level_falls_back_to_info(self, log_dir):
        assert setup_reflecta_logging("LOUD").level == logging.INFO

    def test_debug_adds_console_handler(self, log_dir):
        logger = setup_reflecta_logging("DEBUG")
        console = [
            h
            for h in logger.handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        ]
        assert len(console) == 1

    def test_info_has_no_console_handler(self, log_dir):
        logger = setup_reflecta_logging("INFO")
        assert all(isinstance(h, logging.FileHandler) for h in logger.handlers)

    def test_no_duplicate_handlers(self, log_dir):
        setup_reflecta_logging("DEBUG")
        logger = setup_reflecta_logging("DEBUG")
        assert len(logger.handlers) == 2

    def test_messages_use_pipe_format(self, log_dir):
        logger = setup_reflecta_logging()
        logging.getLogger("reflecta.migration").info("hello from the migrator")
        for handler in logger.handlers:
            handler.flush()
        [log_file] = list(log_dir.glob("migrate-*.log"))
        line = log_file.read_text().strip().splitlines()[-1]
        assert line.endswith("| INFO | reflecta.migration | hello from the migrator")


class TestEventLog:
    def _lines(self, log_dir):
        [log_file] = list(log_dir.glob("migration-events-*.log"))
        return log_file.read_text().splitlines()

    def test_event_line_format(self, log_dir):
        log_migration_event("custom", "something happened")
        [line] = self._lines(log_dir)
        assert line.endswith(" | custom | something happened")

    def test_mapping_line(self, log_dir):
        log_mapping("j1", "g2", "sub", 0.8)
        [line] = self._lines(log_dir)
        assert "| map | journal=j1 goal=g2 type=sub confidence=0.80 dry_run=False" in line

    def test_run_line(self, log_dir):
        stats = SimpleNamespace(
            total=3, mapped=1, unmapped=1, progress_created=1, errors=1, dry_run=False
        )
        log_run(stats)
        [line] = self._lines(log_dir)
        assert "| run | total=3 mapped=1 unmapped=1 progress_created=1 errors=1" in line

    def test_appends(self, log_dir):
        log_migration_event("a", "1")
        log_migration_event("b", "2")
        assert len(self._lines(log_dir)) == 2

    def test_unwritable_log_dir_only_warns(self, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with caplog.at_level(logging.WARNING, logger="reflecta.logging_config"):
            log_migration_event("a", "1", log_dir=blocker / "logs")
        assert any("Could not write migration event log" in m for m in caplog.messages)


class TestConfiguredDataDir:
    def test_both_logs_follow_data_dir(self, tmp_path, log_dir):
        elsewhere = tmp_path / "elsewhere"
        setup_reflecta_logging(data_dir=elsewhere)
        log_migration_event("a", "1")

        assert len(list((elsewhere / "logs").glob("migrate-*.log"))) == 1
        assert len(list((elsewhere / "logs").glob("migration-events-*.log"))) == 1
        assert not log_dir.exists()
