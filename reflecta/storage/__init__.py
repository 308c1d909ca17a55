"""Storage backends for reflecta."""

from reflecta.storage.sqlite import SQLiteStorage

__all__ = ["SQLiteStorage"]
