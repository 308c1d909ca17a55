"""Goal-tree flattening, validation and lookup.

A goal tree is at most three levels deep: the main goal, its sub-goals and
their tasks (sub-sub goals). Children lists may hold ``None`` placeholders
for empty grid positions.

Flattening is deterministic: the candidate list is embedded verbatim into
the classification prompt, so the same tree must always produce the same
ordered list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from reflecta.protocols import InvalidGoalTreeError
from reflecta.types import MAX_GOAL_DEPTH, FlatGoalCandidate, GoalLevel, GoalNode


# Level tag for each depth (1-based)
_LEVEL_BY_DEPTH = {
    1: GoalLevel.MAIN.value,
    2: GoalLevel.SUB.value,
    3: GoalLevel.SUB_SUB.value,
}


# =============================================================================
# Flattening
# =============================================================================


def _candidate(node: GoalNode, level: str) -> FlatGoalCandidate:
    return FlatGoalCandidate(
        id=str(node.id),
        text=node.text.strip(),
        level=level,
        description=(node.description or "").strip(),
    )


def flatten_goal_tree(tree: Optional[GoalNode]) -> List[FlatGoalCandidate]:
    """Project one goal tree into an ordered list of match candidates.

    Order: the main goal, then each sub-goal immediately followed by its
    own tasks. Placeholders and nodes without display text are skipped; a
    skipped sub-goal hides its tasks too.
    """
    if tree is None:
        return []

    candidates: List[FlatGoalCandidate] = []
    if tree.has_text and tree.id:
        candidates.append(_candidate(tree, GoalLevel.MAIN.value))

    for sub in tree.sub_goals:
        if sub is None or not sub.has_text or not sub.id:
            continue
        candidates.append(_candidate(sub, GoalLevel.SUB.value))

        for task in sub.sub_goals:
            if task is None or not task.has_text or not task.id:
                continue
            candidates.append(_candidate(task, GoalLevel.SUB_SUB.value))

    return candidates


def flatten_goal_trees(trees: Optional[Iterable[Optional[GoalNode]]]) -> List[FlatGoalCandidate]:
    """Flatten several trees (one user's goal documents) in source order."""
    if not trees:
        return []
    candidates: List[FlatGoalCandidate] = []
    for tree in trees:
        candidates.extend(flatten_goal_tree(tree))
    return candidates


def format_goal_candidates(candidates: Iterable[FlatGoalCandidate]) -> str:
    """Render candidates one per line for the classification prompt."""
    lines = []
    for c in candidates:
        line = f'- {c.level.upper()}: "{c.text}" (ID: {c.id})'
        if c.description:
            line += f" - {c.description}"
        lines.append(line)
    return "\n".join(lines)


# =============================================================================
# Validation
# =============================================================================


def validate_goal_tree(tree: GoalNode) -> GoalNode:
    """Check depth and id uniqueness. Returns the tree unchanged.

    Raises:
        InvalidGoalTreeError: if the tree is deeper than three levels, a
            present node has no id, or an id appears twice.
    """
    seen: Dict[str, int] = {}

    def _walk(node: GoalNode, depth: int) -> None:
        if depth > MAX_GOAL_DEPTH:
            raise InvalidGoalTreeError(
                f"goal tree deeper than {MAX_GOAL_DEPTH} levels (node {node.id!r})"
            )
        if not node.id:
            raise InvalidGoalTreeError(f"goal node at depth {depth} has no id")
        if node.id in seen:
            raise InvalidGoalTreeError(f"duplicate goal id {node.id!r}")
        seen[node.id] = depth
        for child in node.sub_goals:
            if child is not None:
                _walk(child, depth + 1)

    _walk(tree, 1)
    return tree


# =============================================================================
# Lookup
# =============================================================================


@dataclass
class GoalLocation:
    """Where a goal id sits inside a user's trees."""

    node: GoalNode
    level: str  # GoalLevel value
    parent: Optional[GoalNode] = None
    root: Optional[GoalNode] = None


class GoalIndex:
    """Id -> location lookup across one user's goal trees.

    Children keep no reference to their parent, so the index records the
    parent and root of each node while walking. When an id repeats across
    trees, the first occurrence wins.
    """

    def __init__(self, trees: Iterable[Optional[GoalNode]]) -> None:
        self._locations: Dict[str, GoalLocation] = {}
        for tree in trees:
            if tree is not None:
                self._index(tree, depth=1, parent=None, root=tree)

    def _index(
        self,
        node: GoalNode,
        *,
        depth: int,
        parent: Optional[GoalNode],
        root: GoalNode,
    ) -> None:
        if depth > MAX_GOAL_DEPTH:
            return
        if node.id and node.id not in self._locations:
            self._locations[node.id] = GoalLocation(
                node=node,
                level=_LEVEL_BY_DEPTH[depth],
                parent=parent,
                root=root,
            )
        for child in node.sub_goals:
            if child is not None:
                self._index(child, depth=depth + 1, parent=node, root=root)

    def locate(self, goal_id: Optional[str]) -> Optional[GoalLocation]:
        if goal_id is None:
            return None
        return self._locations.get(goal_id)

    def label(self, goal_id: str, default: str = "Unnamed Goal") -> str:
        location = self.locate(goal_id)
        if location is None:
            return default
        return location.node.text or default

    def __contains__(self, goal_id: object) -> bool:
        return goal_id in self._locations

    def __len__(self) -> int:
        return len(self._locations)
