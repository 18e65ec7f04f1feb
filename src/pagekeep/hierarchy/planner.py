"""Move planner: decide where a dragged page lands, rejecting cycles.

The planner is a pure function over an in-memory forest as produced by
:func:`~pagekeep.hierarchy.builder.build_hierarchy`.  It performs no I/O;
the caller applies an accepted decision through the store
(:meth:`PageEngine.apply_move`).

"before" and "after" drops resolve only to a parent assignment.  Sibling
order inside a parent is not persisted, so both relations produce the same
decision apart from the recorded ``relation``.
"""

from __future__ import annotations

from collections.abc import Sequence

from pagekeep.config import PagekeepConfig
from pagekeep.models import MoveDecision, MoveRejectReason, MoveRelation, PageNode
from pagekeep.observability import get_logger, resolve_metrics

from .builder import find_node, find_parent_id

log = get_logger("pagekeep.hierarchy")


def is_descendant(forest: Sequence[PageNode], ancestor_id: str, page_id: str) -> bool:
    """Return ``True`` if *page_id* lies anywhere below *ancestor_id*.

    Walks the subtree of *ancestor_id* depth-first, so the cost is
    proportional to that subtree's size.  An unknown *ancestor_id* has no
    descendants.
    """
    root = find_node(forest, ancestor_id)
    if root is None:
        return False
    stack = list(root.children)
    while stack:
        node = stack.pop()
        if node.id == page_id:
            return True
        stack.extend(node.children)
    return False


class MovePlanner:
    """Plans drag-and-drop moves within one notebook's page tree.

    Parameters
    ----------
    config:
        Engine configuration (used for the metrics hook).
    """

    def __init__(self, config: PagekeepConfig | None = None) -> None:
        self._config = config or PagekeepConfig()
        self._metrics = resolve_metrics(self._config.metrics)

    def plan(
        self,
        forest: Sequence[PageNode],
        dragged_id: str,
        target_id: str,
        relation: MoveRelation | str,
    ) -> MoveDecision:
        """Compute the new parent for *dragged_id* dropped on *target_id*.

        Rules, applied in order:

        1. Dropping a page on itself is rejected (``self_drop``).
        2. A dragged or target page missing from *forest* is rejected.
        3. A target inside the dragged page's subtree is rejected
           (``cycle``).
        4. ``child`` makes the target the new parent.
        5. ``before`` / ``after`` make the target's current parent the new
           parent, so the dragged page becomes the target's sibling.  For
           a root target the new parent is ``None``.

        Parameters
        ----------
        forest:
            Current tree snapshot.
        dragged_id:
            The page being moved.
        target_id:
            The page it was dropped on.
        relation:
            ``"before"``, ``"after"`` or ``"child"``.

        Returns
        -------
        MoveDecision
            Accepted with ``new_parent_id``, or rejected with ``reason``.

        Raises
        ------
        ValueError
            If *relation* is not a valid :class:`MoveRelation`.
        """
        relation = MoveRelation(relation)

        if dragged_id == target_id:
            return self._reject(dragged_id, target_id, relation, MoveRejectReason.SELF_DROP)

        dragged = find_node(forest, dragged_id)
        if dragged is None:
            return self._reject(
                dragged_id, target_id, relation, MoveRejectReason.DRAGGED_NOT_FOUND,
            )

        target_found, target_parent_id = find_parent_id(forest, target_id)
        if not target_found:
            return self._reject(
                dragged_id, target_id, relation, MoveRejectReason.TARGET_NOT_FOUND,
            )

        if is_descendant(forest, dragged_id, target_id):
            return self._reject(dragged_id, target_id, relation, MoveRejectReason.CYCLE)

        if relation == MoveRelation.CHILD:
            new_parent_id: str | None = target_id
        else:
            new_parent_id = target_parent_id

        self._metrics.increment("pagekeep.moves_total", tags={"outcome": "accepted"})
        return MoveDecision.accept(dragged_id, target_id, relation, new_parent_id)

    def _reject(
        self,
        dragged_id: str,
        target_id: str,
        relation: MoveRelation,
        reason: MoveRejectReason,
    ) -> MoveDecision:
        log.debug(
            "Move rejected",
            extra={
                "extra_fields": {
                    "op": "plan_move",
                    "page_id": dragged_id,
                    "target_id": target_id,
                    "relation": relation.value,
                    "reason": reason.value,
                }
            },
        )
        self._metrics.increment("pagekeep.moves_total", tags={"outcome": reason.value})
        return MoveDecision.reject(dragged_id, target_id, relation, reason)


def plan_move(
    forest: Sequence[PageNode],
    dragged_id: str,
    target_id: str,
    relation: MoveRelation | str,
) -> MoveDecision:
    """Module-level shortcut for :meth:`MovePlanner.plan` with default config."""
    return MovePlanner().plan(forest, dragged_id, target_id, relation)
