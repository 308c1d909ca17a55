"""Status command: show how journal entries are linked to goals."""

import json
from typing import TYPE_CHECKING

from reflecta.report import build_mapping_status, format_mapping_status

if TYPE_CHECKING:
    import argparse

    from reflecta.storage.sqlite import SQLiteStorage


def cmd_status(args: "argparse.Namespace", storage: "SQLiteStorage") -> int:
    """Group journal entries by linked goal id and resolve each link."""
    journals = storage.list_journals(user_id=args.user)
    user_ids = sorted({entry.user_id for entry in journals})
    trees_by_user = {user_id: storage.get_goal_trees(user_id) for user_id in user_ids}

    status = build_mapping_status(journals, trees_by_user)

    if args.json:
        print(json.dumps(status.to_dict(), indent=2))
    else:
        if args.user:
            print(f"User: {args.user}")
        print(format_mapping_status(status))
    return 0
