"""pagekeep: page hierarchy and version control for notebook apps.

Public re-exports
-----------------

* **Engine:** :class:`PageEngine`
* **Stores:** :class:`PageStore`, :class:`InMemoryPageStore`, :class:`RestPageStore`
* **Configuration:** :class:`PagekeepConfig`
* **Errors:** Every :class:`PagekeepError` subclass and :class:`ErrorCode`
* **Models:** Records, tree nodes, move decisions and diff results
* **Pure helpers:** :func:`build_hierarchy`, :func:`plan_move`, :func:`diff_versions`

Usage::

    from pagekeep import InMemoryPageStore, PageEngine

    engine = PageEngine(InMemoryPageStore(), owner="user-1")
    page = engine.create_page("nb-1", "Reading list", content="a")
    engine.update_page(page.id, content="b")
    first = engine.list_versions(page.id)[-1]
    engine.restore_version(page.id, first.id)
"""

from __future__ import annotations

# ── Configuration ───────────────────────────────────────────────────────
from pagekeep.config import DEFAULT_KEEP_LATEST, DEFAULT_MAX_VERSIONS, PagekeepConfig

# ── Engine ──────────────────────────────────────────────────────────────
from pagekeep.engine import PageEngine

# ── Errors ──────────────────────────────────────────────────────────────
from pagekeep.errors import (
    ErrorCode,
    PagekeepAuthError,
    PagekeepConcurrencyError,
    PagekeepCycleError,
    PagekeepError,
    PagekeepNotFoundError,
    PagekeepPermissionError,
    PagekeepRetryExhaustedError,
    PagekeepStoreUnavailableError,
    PagekeepValidationError,
)

# ── Pure helpers ────────────────────────────────────────────────────────
from pagekeep.hierarchy import MovePlanner, ancestor_chain, build_hierarchy, plan_move

# ── Models ──────────────────────────────────────────────────────────────
from pagekeep.models import (
    DiffLine,
    DiffLineType,
    DiffResult,
    DiffStats,
    MoveDecision,
    MoveRejectReason,
    MoveRelation,
    Page,
    PageFilters,
    PageNode,
    PageVersion,
    VersionStats,
)

# ── Stores ──────────────────────────────────────────────────────────────
from pagekeep.store import InMemoryPageStore, PageStore, RestPageStore
from pagekeep.versioning import diff_versions

# ── Public surface ──────────────────────────────────────────────────────

__all__ = [
    # Engine
    "PageEngine",
    # Stores
    "PageStore",
    "InMemoryPageStore",
    "RestPageStore",
    # Configuration
    "PagekeepConfig",
    "DEFAULT_MAX_VERSIONS",
    "DEFAULT_KEEP_LATEST",
    # Error base + code enum
    "PagekeepError",
    "ErrorCode",
    # Domain errors
    "PagekeepNotFoundError",
    "PagekeepCycleError",
    "PagekeepValidationError",
    "PagekeepConcurrencyError",
    # Store errors
    "PagekeepStoreUnavailableError",
    "PagekeepRetryExhaustedError",
    "PagekeepAuthError",
    "PagekeepPermissionError",
    # Models: records
    "Page",
    "PageVersion",
    "PageNode",
    "PageFilters",
    "VersionStats",
    # Models: moves
    "MoveRelation",
    "MoveRejectReason",
    "MoveDecision",
    # Models: diffs
    "DiffLineType",
    "DiffLine",
    "DiffStats",
    "DiffResult",
    # Pure helpers
    "MovePlanner",
    "build_hierarchy",
    "ancestor_chain",
    "plan_move",
    "diff_versions",
]

__version__ = "0.1.0"
