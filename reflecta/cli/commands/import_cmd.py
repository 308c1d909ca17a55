"""Import command: load exported goal and journal documents."""

import json
from pathlib import Path
from typing import TYPE_CHECKING

from reflecta.importers.json_importer import JsonImporter

if TYPE_CHECKING:
    import argparse

    from reflecta.storage.sqlite import SQLiteStorage


def cmd_import(args: "argparse.Namespace", storage: "SQLiteStorage") -> int:
    """Import goal trees and journals from a JSON export file."""
    file_path = Path(args.file).expanduser()
    if not file_path.exists():
        print(f"Error: File not found: {file_path}")
        return 1

    importer = JsonImporter(str(file_path))
    try:
        items = importer.parse()
    except (json.JSONDecodeError, ValueError) as e:
        print(f"Error: Could not parse {file_path.name}: {e}")
        return 1

    if not items:
        print("No goal or journal documents found.")
        return 0

    dry_run = getattr(args, "dry_run", False)
    result = importer.import_to(storage, dry_run=dry_run)

    verb = "Would import" if dry_run else "Imported"
    imported = result["imported"]
    print(f"{verb}: {imported.get('goal', 0)} goal trees, {imported.get('journal', 0)} journals")
    skipped = result["skipped"]
    if skipped:
        print(f"Skipped (already present): {skipped.get('journal', 0)} journals")
    if result["errors"]:
        print(f"Errors ({len(result['errors'])}):")
        for err in result["errors"][:10]:
            print(f"  - {err}")
        return 1
    return 0
