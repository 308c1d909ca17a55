"""Console text for migration runs and mapping-status reports."""

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from reflecta.goals import GoalIndex
from reflecta.migration import RunStatistics
from reflecta.types import GoalLevel, GoalNode, JournalEntry

RULE = "=" * 60
PREVIEW_CHARS = 60


# =============================================================================
# Migration run
# =============================================================================


def format_banner(delay_seconds: float, countdown_seconds: int = 5) -> str:
    """Text shown before a run starts."""
    per_minute = 60 / delay_seconds if delay_seconds > 0 else None
    lines = [
        RULE,
        "Journal to GoalProgress Migration",
        RULE,
        "",
        "This run will:",
        "1. Analyze all journal entries without goal mappings",
        "2. Use the classification model to map them to your goals",
        "3. Create GoalProgress records for dashboard visualizations",
        "",
        "WARNING: This calls a paid model API and may incur costs!",
    ]
    if per_minute is not None:
        lines.append(f"Rate limit: ~{per_minute:g} requests per minute")
        lines.append(f"Estimated time: ~{delay_seconds:g} seconds per entry")
    else:
        lines.append("Rate limit: none (no delay between entries)")
    lines.append("")
    if countdown_seconds > 0:
        lines.append(f"Press Ctrl+C to cancel, or wait {countdown_seconds} seconds to continue...")
    else:
        lines.append("Press Ctrl+C to cancel.")
    return "\n".join(lines)


def format_progress_line(stats: RunStatistics) -> str:
    return (
        f"Progress: {stats.processed}/{stats.total} entries processed\n"
        f"  Mapped: {stats.mapped}, Unmapped: {stats.unmapped}, Errors: {stats.errors}"
    )


def format_run_report(stats: RunStatistics, *, interrupted: bool = False) -> str:
    """Final summary of a run."""
    if interrupted:
        heading = "Migration Interrupted"
    elif stats.dry_run:
        heading = "Migration Complete (dry run, nothing written)"
    else:
        heading = "Migration Complete!"
    lines = [
        RULE,
        heading,
        RULE,
        f"Total entries processed: {stats.processed if interrupted else stats.total}",
        f"Successfully mapped to goals: {stats.mapped}",
        f"Not mapped (no suitable goal): {stats.unmapped}",
        f"GoalProgress records created: {stats.progress_created}",
        f"Errors: {stats.errors}",
        RULE,
    ]
    if interrupted:
        lines.insert(4, f"Entries selected: {stats.total}")
    return "\n".join(lines)


# =============================================================================
# Mapping status
# =============================================================================

LINK_MAIN = "main"
LINK_SUB = "sub"
LINK_TASK = "task"
LINK_ORPHANED = "orphaned"
LINK_UNMAPPED = "unmapped"


@dataclass
class GoalLinkGroup:
    """Journals sharing one goal link, resolved against the owner's goals."""

    goal_id: Optional[str]
    kind: str  # one of the LINK_* values
    count: int = 0
    goal_text: str = ""
    parent_text: str = ""
    latest: Optional[JournalEntry] = None


@dataclass
class MappingStatus:
    total: int = 0
    groups: List[GoalLinkGroup] = field(default_factory=list)

    def _count(self, kind: str) -> int:
        return sum(g.count for g in self.groups if g.kind == kind)

    @property
    def main_count(self) -> int:
        return self._count(LINK_MAIN)

    @property
    def sub_count(self) -> int:
        return self._count(LINK_SUB)

    @property
    def unmapped_count(self) -> int:
        return self._count(LINK_UNMAPPED)

    @property
    def other_count(self) -> int:
        return self.total - self.main_count - self.sub_count - self.unmapped_count

    def to_dict(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "main": self.main_count,
            "sub": self.sub_count,
            "other": self.other_count,
            "unmapped": self.unmapped_count,
            "groups": [
                {
                    "goal_id": g.goal_id,
                    "kind": g.kind,
                    "count": g.count,
                    "goal_text": g.goal_text,
                    "parent_text": g.parent_text,
                    "latest_journal_id": g.latest.id if g.latest else None,
                }
                for g in self.groups
            ],
        }


def _resolve_group(group: GoalLinkGroup, index: GoalIndex) -> None:
    location = index.locate(group.goal_id)
    if location is None:
        group.kind = LINK_ORPHANED
        return
    group.goal_text = location.node.text
    if location.level == GoalLevel.MAIN.value:
        group.kind = LINK_MAIN
    elif location.level == GoalLevel.SUB.value:
        group.kind = LINK_SUB
    else:
        group.kind = LINK_TASK
        group.parent_text = location.parent.text if location.parent else ""


def build_mapping_status(
    journals: Iterable[JournalEntry], trees_by_user: Dict[str, List[GoalNode]]
) -> MappingStatus:
    """Group journals by linked goal id and resolve each id to its level.

    ``journals`` should be newest first so that each group's ``latest``
    is the most recent entry. Ids that do not resolve in the owner's
    goal trees are reported as orphaned.
    """
    indexes = {user_id: GoalIndex(trees) for user_id, trees in trees_by_user.items()}
    groups: "OrderedDict[Optional[str], GoalLinkGroup]" = OrderedDict()
    status = MappingStatus()

    for entry in journals:
        status.total += 1
        group = groups.get(entry.related_goal_id)
        if group is None:
            group = GoalLinkGroup(goal_id=entry.related_goal_id, kind=LINK_UNMAPPED, latest=entry)
            if entry.is_mapped:
                _resolve_group(group, indexes.get(entry.user_id) or GoalIndex([]))
            groups[entry.related_goal_id] = group
        group.count += 1

    # Largest groups first; ties keep first-seen order
    status.groups = sorted(groups.values(), key=lambda g: -g.count)
    return status


def _describe_group(group: GoalLinkGroup) -> str:
    if group.kind == LINK_MAIN:
        return f'  -> MAIN GOAL: "{group.goal_text}"'
    if group.kind == LINK_SUB:
        return f'  -> SUB-GOAL: "{group.goal_text}"'
    if group.kind == LINK_TASK:
        return f'  -> TASK under "{group.parent_text}": "{group.goal_text}"'
    if group.kind == LINK_UNMAPPED:
        return "  -> NOT YET MAPPED"
    return "  -> UNKNOWN/ORPHANED"


def format_mapping_status(status: MappingStatus) -> str:
    lines = [
        f"Total journal entries: {status.total}",
        "",
        RULE,
        "JOURNAL ENTRIES BY RELATED GOAL ID",
        RULE,
    ]
    for group in status.groups:
        label = group.goal_id if group.goal_id is not None else "(none)"
        lines.append("")
        lines.append(f"{label}: {group.count} entries")
        lines.append(_describe_group(group))
        if group.latest is not None:
            day = group.latest.date.date().isoformat() if group.latest.date else "undated"
            preview = (group.latest.content or "")[:PREVIEW_CHARS]
            lines.append(f'  Latest: {day} - "{preview}..."')

    lines.extend(
        [
            "",
            RULE,
            "SUMMARY",
            RULE,
            f"Main goal entries: {status.main_count}",
            f"Sub-goal entries (direct): {status.sub_count}",
            f"Other/Task entries: {status.other_count}",
            f"Not yet mapped: {status.unmapped_count}",
        ]
    )
    return "\n".join(lines)
