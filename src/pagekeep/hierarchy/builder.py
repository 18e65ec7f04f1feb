"""Tree builder: convert a flat page collection into a nested forest.

The forest is rebuilt from scratch on every read.  Nothing here holds on to
nodes between calls, so a mutation in the store can never leave a stale or
cyclic runtime structure behind.

Alongside :func:`build_hierarchy` this module provides the read-only tree
queries the move planner and the engine need: depth-first iteration, id
lookup, parent lookup, subtree membership, ancestor chains for breadcrumbs,
and the flattened list of legal move targets.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from pagekeep.models import Page, PageNode


def build_hierarchy(pages: Iterable[Page]) -> list[PageNode]:
    """Build a forest of :class:`PageNode` from a flat page collection.

    Pages whose ``parent_page_id`` is unset, or points at a page that is
    not part of *pages*, become roots.  Callers may pass a partial subset
    of a notebook and still get every page back exactly once.

    Root order and the order of each node's children follow input order.
    Runs in O(n) and never raises.  Stored data that violates the acyclic
    invariant is still rendered: the first page of each parent cycle is
    promoted to a root so that no page disappears.

    Parameters
    ----------
    pages:
        Pages to arrange, typically one notebook's worth.

    Returns
    -------
    list[PageNode]
        The root nodes.
    """
    page_list = list(pages)
    nodes: dict[str, PageNode] = {}
    for page in page_list:
        nodes[page.id] = PageNode(page=page)

    breakers = _cycle_entry_points(page_list, nodes)

    roots: list[PageNode] = []
    for page in page_list:
        node = nodes[page.id]
        parent = nodes.get(page.parent_page_id) if page.parent_page_id else None
        if parent is not None and page.id not in breakers:
            parent.children.append(node)
        else:
            roots.append(node)
    return roots


def _cycle_entry_points(page_list: list[Page], nodes: dict[str, PageNode]) -> set[str]:
    """Return one page id per parent cycle among the loaded pages."""
    # 0 = unvisited, 1 = on the current walk, 2 = done
    state: dict[str, int] = dict.fromkeys(nodes, 0)
    entry_points: set[str] = set()
    for page in page_list:
        path: list[str] = []
        current: str | None = page.id
        while current in nodes and state[current] == 0:
            state[current] = 1
            path.append(current)
            current = nodes[current].page.parent_page_id
        if current in nodes and state[current] == 1:
            entry_points.add(current)
        for page_id in path:
            state[page_id] = 2
    return entry_points


def iter_nodes(forest: Iterable[PageNode]) -> Iterator[PageNode]:
    """Yield every node of *forest* depth-first, parents before children."""
    stack = list(reversed(list(forest)))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def index_forest(forest: Iterable[PageNode]) -> dict[str, PageNode]:
    """Map page id to node for every node in *forest*."""
    return {node.id: node for node in iter_nodes(forest)}


def find_node(forest: Iterable[PageNode], page_id: str) -> PageNode | None:
    """Return the node for *page_id*, or ``None`` if it is not in the tree."""
    for node in iter_nodes(forest):
        if node.id == page_id:
            return node
    return None


def find_parent_id(
    forest: Iterable[PageNode], page_id: str
) -> tuple[bool, str | None]:
    """Locate *page_id* and report its parent within the tree.

    Returns
    -------
    tuple[bool, str | None]
        ``(found, parent_id)``.  ``parent_id`` is ``None`` for roots.  An
        orphan whose stored parent was not loaded is a root here.
    """
    stack: list[tuple[PageNode, str | None]] = [(root, None) for root in forest]
    while stack:
        node, parent_id = stack.pop()
        if node.id == page_id:
            return True, parent_id
        stack.extend((child, node.id) for child in node.children)
    return False, None


def descendant_ids(node: PageNode) -> set[str]:
    """Return the ids of every page below *node* (excluding *node* itself)."""
    found: set[str] = set()
    stack = list(node.children)
    while stack:
        current = stack.pop()
        found.add(current.id)
        stack.extend(current.children)
    return found


def ancestor_chain(pages: Iterable[Page], page_id: str) -> list[Page]:
    """Return the path from the root down to *page_id*, inclusive.

    Used for breadcrumb navigation.  The walk stops at a parent that is
    not in *pages*, and also stops if a cycle is detected in stored data,
    so the result is always finite.  An unknown *page_id* yields ``[]``.
    """
    by_id = {page.id: page for page in pages}
    chain: list[Page] = []
    seen: set[str] = set()
    current = by_id.get(page_id)
    while current is not None and current.id not in seen:
        chain.append(current)
        seen.add(current.id)
        current = by_id.get(current.parent_page_id) if current.parent_page_id else None
    chain.reverse()
    return chain


def move_targets(
    forest: Iterable[PageNode], exclude_id: str | None = None
) -> list[tuple[Page, int]]:
    """Flatten *forest* into ``(page, depth)`` pairs for a move picker.

    The page *exclude_id* and its whole subtree are left out, since none of
    them is a legal new parent for it.  Depth starts at 0 for roots.
    """
    result: list[tuple[Page, int]] = []
    stack: list[tuple[PageNode, int]] = [(root, 0) for root in reversed(list(forest))]
    while stack:
        node, depth = stack.pop()
        if node.id == exclude_id:
            continue
        result.append((node.page, depth))
        stack.extend((child, depth + 1) for child in reversed(node.children))
    return result
