"""Public data models for pagekeep.

This module contains every record type, result type, enum, and supporting
dataclass referenced by the public API surface.  Stored records
(:class:`Page`, :class:`PageVersion`) are frozen so a value handed out by a
store can never be mutated behind its back; updates go through
:func:`dataclasses.replace` and the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class MoveRelation(str, Enum):
    """Where a dragged page was dropped relative to the target page."""

    BEFORE = "before"
    """Dropped above the target; becomes a sibling of the target."""

    AFTER = "after"
    """Dropped below the target; becomes a sibling of the target."""

    CHILD = "child"
    """Dropped onto the target; becomes a child of the target."""


class MoveRejectReason(str, Enum):
    """Why the move planner refused a move."""

    SELF_DROP = "self_drop"
    """The page was dropped onto itself."""

    CYCLE = "cycle"
    """The target lies inside the dragged page's subtree."""

    DRAGGED_NOT_FOUND = "dragged_not_found"
    """The dragged page is not part of the loaded tree."""

    TARGET_NOT_FOUND = "target_not_found"
    """The target page is not part of the loaded tree."""


class DiffLineType(str, Enum):
    """Tag carried by every line of a :class:`DiffResult`."""

    ADDED = "added"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Page:
    """A titled content unit belonging to a notebook.

    Attributes
    ----------
    id:
        Unique page id.
    title:
        Non-empty page title.
    content:
        Page body.  Opaque to the engine apart from line splitting in
        the diff engine.
    version:
        Current version number, starting at 1 and incremented by exactly
        one on every content-affecting update or restore.
    notebook_id:
        The notebook the page belongs to.
    owner:
        Identity that owns the page.  Every engine operation is scoped
        to a single owner.
    parent_page_id:
        Parent page in the same notebook, or ``None`` for a root page.
    created_at, updated_at:
        Timestamps maintained by the engine.
    """

    id: str
    title: str
    content: str
    version: int
    notebook_id: str
    owner: str
    parent_page_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class PageVersion:
    """An immutable snapshot of a page's title and content at one version.

    Created once by the snapshot manager and never mutated.  Only the
    retention pruner (or an explicit delete) removes it.
    """

    id: str
    page_id: str
    title: str
    content: str
    version: int
    owner: str
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Hierarchy types
# ---------------------------------------------------------------------------

@dataclass
class PageNode:
    """Runtime tree view: a page plus its ordered children.

    Built fresh from a flat page list on every read by
    :func:`~pagekeep.hierarchy.build_hierarchy`; never patched in place
    across mutations.
    """

    page: Page
    children: list[PageNode] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.page.id


@dataclass(frozen=True)
class MoveDecision:
    """Outcome of :meth:`MovePlanner.plan`.

    Attributes
    ----------
    accepted:
        ``True`` when the move is legal.
    page_id:
        The dragged page.
    target_id:
        The page it was dropped on.
    relation:
        The drop relation that was requested.
    new_parent_id:
        Parent to assign on acceptance.  ``None`` means the page becomes
        a root.  Always ``None`` on rejection.
    reason:
        Why the move was refused, or ``None`` when accepted.
    """

    accepted: bool
    page_id: str
    target_id: str
    relation: MoveRelation
    new_parent_id: str | None = None
    reason: MoveRejectReason | None = None

    @classmethod
    def accept(
        cls,
        page_id: str,
        target_id: str,
        relation: MoveRelation,
        new_parent_id: str | None,
    ) -> MoveDecision:
        return cls(True, page_id, target_id, relation, new_parent_id, None)

    @classmethod
    def reject(
        cls,
        page_id: str,
        target_id: str,
        relation: MoveRelation,
        reason: MoveRejectReason,
    ) -> MoveDecision:
        return cls(False, page_id, target_id, relation, None, reason)


# ---------------------------------------------------------------------------
# Diff types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DiffLine:
    """One line of a version comparison.

    Attributes
    ----------
    line_type:
        ``added``, ``removed`` or ``unchanged``.
    content:
        The text of the line (without the trailing newline).
    line_number_a:
        1-based position in the first version, ``None`` for added lines.
    line_number_b:
        1-based position in the second version, ``None`` for removed lines.
    """

    line_type: DiffLineType
    content: str
    line_number_a: int | None = None
    line_number_b: int | None = None


@dataclass(frozen=True)
class DiffStats:
    """Line counts of a :class:`DiffResult`."""

    added: int
    removed: int
    unchanged: int

    @property
    def total(self) -> int:
        return self.added + self.removed + self.unchanged


@dataclass
class DiffResult:
    """Ordered line-by-line comparison of two page versions."""

    version_a: int
    version_b: int
    lines: list[DiffLine] = field(default_factory=list)
    title_changed: bool = False

    @property
    def stats(self) -> DiffStats:
        counts = {t: 0 for t in DiffLineType}
        for line in self.lines:
            counts[line.line_type] += 1
        return DiffStats(
            added=counts[DiffLineType.ADDED],
            removed=counts[DiffLineType.REMOVED],
            unchanged=counts[DiffLineType.UNCHANGED],
        )

    @property
    def has_changes(self) -> bool:
        return self.title_changed or any(
            line.line_type != DiffLineType.UNCHANGED for line in self.lines
        )


# ---------------------------------------------------------------------------
# Query and summary types
# ---------------------------------------------------------------------------

@dataclass
class PageFilters:
    """Filters for listing the pages of a notebook.

    Attributes
    ----------
    parent_page_id:
        Only children of this page.
    roots_only:
        Only pages without a parent.  Ignored when *parent_page_id* is set.
    search:
        Case-insensitive substring match on the title.
    sort_by:
        Field to order by.
    sort_order:
        ``"asc"`` or ``"desc"``.
    """

    parent_page_id: str | None = None
    roots_only: bool = False
    search: str | None = None
    sort_by: Literal["title", "created_at", "updated_at"] = "updated_at"
    sort_order: Literal["asc", "desc"] = "desc"


@dataclass
class VersionStats:
    """Summary of a page's snapshot history."""

    total_versions: int
    oldest: PageVersion | None = None
    newest: PageVersion | None = None
