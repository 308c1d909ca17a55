"""JSON importer for reflecta.

Loads goal and journal documents exported from the journaling app's
database. Both plain JSON and MongoDB extended JSON (``{"$oid": ...}``,
``{"$date": ...}``) are accepted.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from reflecta.types import GoalNode, format_datetime

if TYPE_CHECKING:
    from reflecta.storage.sqlite import SQLiteStorage

logger = logging.getLogger(__name__)


@dataclass
class JsonImportItem:
    """A parsed JSON document ready for import."""

    type: str  # goal, journal
    data: Dict[str, Any] = field(default_factory=dict)


def unwrap_extended(value: Any) -> Any:
    """Collapse MongoDB extended-JSON wrappers into plain strings."""
    if not isinstance(value, dict) or len(value) != 1:
        return value
    if "$oid" in value:
        return str(value["$oid"])
    if "$date" in value:
        inner = value["$date"]
        if isinstance(inner, dict) and "$numberLong" in inner:
            inner = int(inner["$numberLong"])
        if isinstance(inner, (int, float)):
            return format_datetime(datetime.fromtimestamp(inner / 1000, tz=timezone.utc))
        return str(inner)
    return value


def _plain(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {key: unwrap_extended(value) for key, value in doc.items()}


def parse_export_json(content: str) -> List[JsonImportItem]:
    """Parse an export file.

    Expected format:
    {
        "goals": [{"_id": ..., "userId": ..., "mandalartData": {...}}, ...],
        "journals": [{"_id": ..., "userId": ..., "content": ..., "date": ...}, ...]
    }

    Raises:
        json.JSONDecodeError: If content is not valid JSON
        ValueError: If the format doesn't match expected structure
    """
    data = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError("JSON must be an object at the root level")

    items: List[JsonImportItem] = []
    for goal_data in data.get("goals", []):
        items.append(JsonImportItem(type="goal", data=_plain(goal_data)))
    for journal_data in data.get("journals", []):
        items.append(JsonImportItem(type="journal", data=_plain(journal_data)))
    return items


def _import_goal(data: Dict[str, Any], storage: "SQLiteStorage") -> Tuple[bool, str]:
    user_id = data.get("userId")
    tree_data = data.get("mandalartData")
    if not user_id or not isinstance(tree_data, dict):
        raise ValueError("goal document needs userId and mandalartData")
    tree = GoalNode.from_dict(tree_data)
    # Upsert: goal trees are reference data and may be re-exported after edits
    tree_id = storage.save_goal_tree(str(user_id), tree, tree_id=data.get("_id"))
    return True, tree_id


def _import_journal(
    data: Dict[str, Any], storage: "SQLiteStorage", skip_duplicates: bool
) -> Tuple[bool, Optional[str]]:
    journal_id = data.get("_id")
    user_id = data.get("userId")
    if not journal_id or not user_id:
        raise ValueError("journal document needs _id and userId")
    # Never overwrite an existing entry: it may already carry a goal link
    if skip_duplicates and storage.get_journal(str(journal_id)) is not None:
        return False, str(journal_id)
    storage.save_journal_document(str(journal_id), str(user_id), data)
    return True, str(journal_id)


class JsonImporter:
    """Import goal trees and journal entries from an export file."""

    def __init__(self, file_path: str):
        self.file_path = Path(file_path).expanduser()
        self.items: List[JsonImportItem] = []

    def parse(self) -> List[JsonImportItem]:
        """Parse the JSON file and return importable items.

        Raises:
            FileNotFoundError: If the file doesn't exist
            json.JSONDecodeError: If the file is not valid JSON
        """
        if not self.file_path.exists():
            raise FileNotFoundError(f"File not found: {self.file_path}")

        content = self.file_path.read_text(encoding="utf-8")
        self.items = parse_export_json(content)
        return self.items

    def import_to(
        self, storage: "SQLiteStorage", dry_run: bool = False, skip_duplicates: bool = True
    ) -> Dict[str, Any]:
        """Import parsed items into ``storage``.

        Returns:
            Dict with counts of items imported and skipped by type, and errors
        """
        if not self.items:
            self.parse()

        counts: Dict[str, int] = {}
        skipped: Dict[str, int] = {}
        errors: List[str] = []

        for item in self.items:
            try:
                if dry_run:
                    counts[item.type] = counts.get(item.type, 0) + 1
                    continue
                if item.type == "goal":
                    imported, _ = _import_goal(item.data, storage)
                else:
                    imported, _ = _import_journal(item.data, storage, skip_duplicates)
                if imported:
                    counts[item.type] = counts.get(item.type, 0) + 1
                else:
                    skipped[item.type] = skipped.get(item.type, 0) + 1
            except Exception as e:
                logger.warning("Skipping %s document: %s", item.type, e)
                errors.append(f"{item.type}: {str(e)[:80]}")

        return {"imported": counts, "skipped": skipped, "errors": errors}
