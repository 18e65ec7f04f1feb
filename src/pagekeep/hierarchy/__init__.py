"""Page hierarchy: tree building and cycle-safe move planning.

Exports
-------
build_hierarchy
    Convert a flat page list into a forest of PageNode.
MovePlanner
    Decide the new parent for a drag-and-drop move.
plan_move
    Shortcut for ``MovePlanner().plan(...)``.
ancestor_chain
    Root-first path to a page, for breadcrumbs.
move_targets
    Flattened legal move targets for a page.
"""

from .builder import (
    ancestor_chain,
    build_hierarchy,
    descendant_ids,
    find_node,
    find_parent_id,
    index_forest,
    iter_nodes,
    move_targets,
)
from .planner import MovePlanner, is_descendant, plan_move

__all__ = [
    "MovePlanner",
    "ancestor_chain",
    "build_hierarchy",
    "descendant_ids",
    "find_node",
    "find_parent_id",
    "index_forest",
    "is_descendant",
    "iter_nodes",
    "move_targets",
    "plan_move",
]
