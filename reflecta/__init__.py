"""
Reflecta - journal-to-goal-progress migration.

Maps free-text journal entries onto a user's goal trees and records
each confident match as goal progress.
"""

from .migration import JournalMigrator, RunStatistics

try:
    from importlib.metadata import version

    __version__ = version("reflecta-migrate")
except Exception:
    __version__ = "0.0.0"

__all__ = ["JournalMigrator", "RunStatistics"]
