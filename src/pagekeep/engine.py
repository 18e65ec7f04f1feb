"""Owner-scoped page engine.

:class:`PageEngine` is the entry point that wires the hierarchy and
versioning components to a row store.  Every call is scoped to the owner
the engine was created for; pages belonging to anybody else are
indistinguishable from missing pages.

Usage::

    from pagekeep import InMemoryPageStore, PageEngine

    engine = PageEngine(InMemoryPageStore(), owner="user-1")
    root = engine.create_page("nb-1", "Projects")
    child = engine.create_page("nb-1", "Garden", parent_page_id=root.id)
    engine.update_page(child.id, content="tomatoes\\nbasil")
    engine.move_page(child.id, root.id, "after")

The engine is synchronous and holds no state besides its collaborators,
so one instance may be shared between threads as long as the store is
thread-safe.
"""

from __future__ import annotations

import uuid

from pagekeep.config import DEFAULT_KEEP_LATEST, PagekeepConfig
from pagekeep.errors import (
    PagekeepCycleError,
    PagekeepNotFoundError,
    PagekeepStoreUnavailableError,
    PagekeepValidationError,
)
from pagekeep.hierarchy import (
    MovePlanner,
    ancestor_chain,
    build_hierarchy,
    descendant_ids,
    find_node,
    move_targets,
)
from pagekeep.models import (
    DiffResult,
    MoveDecision,
    MoveRelation,
    Page,
    PageFilters,
    PageNode,
    PageVersion,
    VersionStats,
)
from pagekeep.observability import get_logger, resolve_metrics
from pagekeep.store.base import PageStore
from pagekeep.versioning import (
    RestoreCoordinator,
    RetentionPruner,
    VersionSnapshotManager,
    diff_versions,
    validate_title,
)
from pagekeep.versioning.snapshot import utcnow

log = get_logger("pagekeep.engine")

# Tree reads load a notebook oldest-first so siblings keep creation order.
_TREE_ORDER = PageFilters(sort_by="created_at", sort_order="asc")


class PageEngine:
    """Page hierarchy and version control for one owner.

    Parameters
    ----------
    store:
        Any :class:`~pagekeep.store.base.PageStore`.
    owner:
        Identity all operations are scoped to.
    config:
        Engine configuration.  Defaults to :class:`PagekeepConfig()`.
    """

    def __init__(
        self,
        store: PageStore,
        owner: str,
        config: PagekeepConfig | None = None,
    ) -> None:
        if not owner:
            raise PagekeepValidationError(
                message="owner must be a non-empty string",
                context={"field": "owner", "value": owner, "constraint": "non_empty"},
            )
        self._store = store
        self._owner = owner
        self._config = config or PagekeepConfig()
        self._metrics = resolve_metrics(self._config.metrics)
        self._planner = MovePlanner(self._config)
        self._snapshots = VersionSnapshotManager(store, owner, self._config)
        self._restorer = RestoreCoordinator(store, owner, self._config)
        self._pruner = RetentionPruner(store, owner, self._config)

    @property
    def owner(self) -> str:
        return self._owner

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def create_page(
        self,
        notebook_id: str,
        title: str,
        content: str = "",
        parent_page_id: str | None = None,
    ) -> Page:
        """Create a page at version 1.  No snapshot is written.

        Raises
        ------
        PagekeepValidationError
            Blank title, or a parent in a different notebook.
        PagekeepNotFoundError
            If *parent_page_id* does not exist.
        """
        title = validate_title(title)
        if parent_page_id is not None:
            self._require_parent(notebook_id, parent_page_id)

        now = utcnow()
        page = Page(
            id=str(uuid.uuid4()),
            title=title,
            content=content,
            version=1,
            notebook_id=notebook_id,
            owner=self._owner,
            parent_page_id=parent_page_id,
            created_at=now,
            updated_at=now,
        )
        stored = self._store.insert_page(page)
        log.info(
            "Page created",
            extra={
                "extra_fields": {
                    "op": "create_page",
                    "page_id": stored.id,
                    "notebook_id": notebook_id,
                    "parent_page_id": parent_page_id,
                }
            },
        )
        return stored

    def get_page(self, page_id: str) -> Page:
        """Return a page or raise :class:`PagekeepNotFoundError`."""
        page = self._store.get_page(self._owner, page_id)
        if page is None:
            raise PagekeepNotFoundError(
                message=f"Page {page_id} not found",
                context={"resource_type": "page", "resource_id": page_id},
            )
        return page

    def list_pages(
        self, notebook_id: str, filters: PageFilters | None = None,
    ) -> list[Page]:
        return self._store.list_pages(self._owner, notebook_id, filters)

    def get_hierarchy(self, notebook_id: str) -> list[PageNode]:
        """Build the page forest of a notebook from its current rows."""
        return build_hierarchy(self._store.list_pages(self._owner, notebook_id, _TREE_ORDER))

    def breadcrumbs(self, page_id: str) -> list[Page]:
        """Root-first path of pages ending at *page_id*."""
        page = self.get_page(page_id)
        pages = self._store.list_pages(self._owner, page.notebook_id, _TREE_ORDER)
        return ancestor_chain(pages, page_id)

    def move_targets(self, page_id: str) -> list[tuple[Page, int]]:
        """Pages *page_id* may be moved under, with their tree depth."""
        page = self.get_page(page_id)
        return move_targets(self.get_hierarchy(page.notebook_id), exclude_id=page_id)

    def delete_page(self, page_id: str) -> int:
        """Delete a page, its whole subtree and all their snapshots.

        Returns
        -------
        int
            Number of pages deleted.
        """
        page = self.get_page(page_id)
        node = find_node(self.get_hierarchy(page.notebook_id), page_id)
        doomed = [page_id]
        if node is not None:
            doomed.extend(sorted(descendant_ids(node)))

        versions_deleted = self._store.delete_versions_for_pages(self._owner, doomed)
        pages_deleted = self._store.delete_pages(self._owner, doomed)
        self._metrics.increment("pagekeep.pages_deleted_total", value=pages_deleted)
        log.info(
            "Page deleted",
            extra={
                "extra_fields": {
                    "op": "delete_page",
                    "page_id": page_id,
                    "pages_deleted": pages_deleted,
                    "versions_deleted": versions_deleted,
                }
            },
        )
        return pages_deleted

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    def plan_move(
        self,
        dragged_id: str,
        target_id: str,
        relation: MoveRelation | str,
    ) -> MoveDecision:
        """Plan a move against the dragged page's notebook as stored now."""
        dragged = self._store.get_page(self._owner, dragged_id)
        forest = self.get_hierarchy(dragged.notebook_id) if dragged is not None else []
        return self._planner.plan(forest, dragged_id, target_id, relation)

    def move_page(
        self,
        dragged_id: str,
        target_id: str,
        relation: MoveRelation | str,
    ) -> Page:
        """Plan and apply a move in one call.

        Raises
        ------
        PagekeepCycleError
            If the planner rejects the move.  ``context["reason"]`` holds
            the :class:`MoveRejectReason` value.
        """
        decision = self.plan_move(dragged_id, target_id, relation)
        if not decision.accepted:
            raise PagekeepCycleError(
                message=(
                    f"Cannot move page {dragged_id} {decision.relation.value} "
                    f"{target_id}: {decision.reason.value}"
                ),
                context={
                    "page_id": dragged_id,
                    "target_id": target_id,
                    "reason": decision.reason.value,
                },
            )
        return self.apply_move(dragged_id, decision.new_parent_id)

    def apply_move(self, page_id: str, new_parent_id: str | None) -> Page:
        """Set a page's parent after re-checking the tree as stored now.

        The parent must exist, live in the same notebook, and must not be
        the page itself or one of its descendants.  The version number is
        not touched.

        The check and the write are not atomic.  Two concurrent moves that
        each reparent a different page (A under B, B under A) both pass and
        store a cycle; no per-row condition can catch that because each
        write touches a different row.  :func:`build_hierarchy` and
        :func:`ancestor_chain` tolerate such data: every page in the cycle
        is still listed and one of them is shown as a root.
        """
        page = self.get_page(page_id)
        if new_parent_id is not None:
            parent = self._require_parent(page.notebook_id, new_parent_id)
            pages = self._store.list_pages(self._owner, page.notebook_id, _TREE_ORDER)
            if any(p.id == page_id for p in ancestor_chain(pages, parent.id)):
                raise PagekeepCycleError(
                    message=f"Page {new_parent_id} is inside the subtree of {page_id}",
                    context={
                        "page_id": page_id,
                        "target_id": new_parent_id,
                        "reason": "cycle",
                    },
                )

        moved = self._store.update_page(
            self._owner,
            page_id,
            {"parent_page_id": new_parent_id, "updated_at": utcnow()},
        )
        if moved is None:
            raise PagekeepNotFoundError(
                message=f"Page {page_id} not found",
                context={"resource_type": "page", "resource_id": page_id},
            )
        log.info(
            "Page moved",
            extra={
                "extra_fields": {
                    "op": "apply_move",
                    "page_id": page_id,
                    "old_parent_id": page.parent_page_id,
                    "new_parent_id": new_parent_id,
                }
            },
        )
        return moved

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def update_page(
        self,
        page_id: str,
        title: str | None = None,
        content: str | None = None,
    ) -> Page:
        """Snapshot the page, then commit the new title and/or content.

        Fields left as ``None`` keep their current value.  When
        ``auto_prune`` is on, history is trimmed to ``max_versions``
        afterwards; a failed prune is logged and does not undo the update.
        """
        current = self.get_page(page_id)
        updated = self._snapshots.apply_update(
            page_id,
            current.title if title is None else title,
            current.content if content is None else content,
        )
        if self._config.auto_prune and updated.version != current.version:
            try:
                self._pruner.prune_versions(page_id, self._config.max_versions)
            except PagekeepStoreUnavailableError as exc:
                log.warning(
                    "Automatic prune failed",
                    extra={
                        "extra_fields": {
                            "op": "update_page",
                            "page_id": page_id,
                            "error": str(exc),
                            "deleted": exc.context.get("deleted", 0),
                        }
                    },
                )
        return updated

    def before_update(self, page: Page) -> PageVersion:
        return self._snapshots.before_update(page)

    def commit_update(
        self,
        page_id: str,
        title: str,
        content: str,
        expected_version: int,
    ) -> Page:
        return self._snapshots.commit_update(page_id, title, content, expected_version)

    def restore_version(self, page_id: str, version_id: str) -> Page:
        return self._restorer.restore_version(page_id, version_id)

    def prune_versions(self, page_id: str, keep_latest: int = DEFAULT_KEEP_LATEST) -> int:
        return self._pruner.prune_versions(page_id, keep_latest)

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def list_versions(self, page_id: str) -> list[PageVersion]:
        """Snapshots of a page, newest first."""
        return self._store.list_versions(self._owner, page_id)

    def get_version(self, version_id: str) -> PageVersion:
        version = self._store.get_version(self._owner, version_id)
        if version is None:
            raise PagekeepNotFoundError(
                message=f"Version {version_id} not found",
                context={"resource_type": "page_version", "resource_id": version_id},
            )
        return version

    def delete_version(self, version_id: str) -> None:
        if self._store.delete_versions(self._owner, [version_id]) == 0:
            raise PagekeepNotFoundError(
                message=f"Version {version_id} not found",
                context={"resource_type": "page_version", "resource_id": version_id},
            )

    def version_count(self, page_id: str) -> int:
        return len(self.list_versions(page_id))

    def latest_version_number(self, page_id: str) -> int:
        """Highest snapshot number of a page, ``0`` without history."""
        versions = self.list_versions(page_id)
        return versions[0].version if versions else 0

    def version_stats(self, page_id: str) -> VersionStats:
        versions = self.list_versions(page_id)
        return VersionStats(
            total_versions=len(versions),
            oldest=versions[-1] if versions else None,
            newest=versions[0] if versions else None,
        )

    def diff_versions(self, version_id_a: str, version_id_b: str) -> DiffResult:
        """Compare two snapshots of the same page."""
        a = self.get_version(version_id_a)
        b = self.get_version(version_id_b)
        if a.page_id != b.page_id:
            raise PagekeepValidationError(
                message="Cannot compare versions of different pages",
                context={
                    "field": "version_id_b",
                    "value": version_id_b,
                    "constraint": "same_page",
                },
            )
        return diff_versions(a, b)

    def diff_with_current(self, version_id: str) -> DiffResult:
        """Compare a snapshot with the live page it belongs to."""
        snapshot = self.get_version(version_id)
        return diff_versions(snapshot, self.get_page(snapshot.page_id))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_parent(self, notebook_id: str, parent_page_id: str) -> Page:
        parent = self._store.get_page(self._owner, parent_page_id)
        if parent is None:
            raise PagekeepNotFoundError(
                message=f"Parent page {parent_page_id} not found",
                context={"resource_type": "page", "resource_id": parent_page_id},
            )
        if parent.notebook_id != notebook_id:
            raise PagekeepValidationError(
                message=(
                    f"Parent page {parent_page_id} belongs to notebook "
                    f"{parent.notebook_id}, not {notebook_id}"
                ),
                context={
                    "field": "parent_page_id",
                    "value": parent_page_id,
                    "constraint": "same_notebook",
                },
            )
        return parent
