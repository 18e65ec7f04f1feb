"""Row-store protocol consumed by the engine.

The engine never talks to a database directly.  Anything satisfying
:class:`PageStore` can back it: the bundled
:class:`~pagekeep.store.memory.InMemoryPageStore`, the HTTP
:class:`~pagekeep.store.rest.RestPageStore`, or a caller's own adapter.

Every method takes the owner explicitly; a row belonging to another owner
is treated exactly like a missing row.  Transport or infrastructure
failures must surface as
:class:`~pagekeep.errors.PagekeepStoreUnavailableError`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from pagekeep.models import Page, PageFilters, PageVersion

# Columns the engine may pass to :meth:`PageStore.update_page`.
UPDATABLE_PAGE_FIELDS: frozenset[str] = frozenset({
    "title",
    "content",
    "version",
    "parent_page_id",
    "updated_at",
})


@runtime_checkable
class PageStore(Protocol):
    """Durable storage for pages and page versions."""

    def get_page(self, owner: str, page_id: str) -> Page | None:
        """Return the page, or ``None`` if absent."""
        ...

    def list_pages(
        self,
        owner: str,
        notebook_id: str,
        filters: PageFilters | None = None,
    ) -> list[Page]:
        """Return the pages of a notebook, filtered and ordered."""
        ...

    def insert_page(self, page: Page) -> Page:
        """Persist a new page and return it as stored."""
        ...

    def update_page(
        self,
        owner: str,
        page_id: str,
        changes: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> Page | None:
        """Apply *changes* to a page.

        When *expected_version* is given the write is conditional: it only
        happens if the stored ``version`` still equals it.  Returns the
        updated page, or ``None`` if no row matched (missing page or
        version mismatch; the caller tells them apart by re-reading).
        """
        ...

    def delete_pages(self, owner: str, page_ids: Sequence[str]) -> int:
        """Delete pages by id and return how many rows were removed."""
        ...

    def get_version(self, owner: str, version_id: str) -> PageVersion | None:
        """Return the snapshot, or ``None`` if absent."""
        ...

    def list_versions(self, owner: str, page_id: str) -> list[PageVersion]:
        """Return a page's snapshots ordered by ``version`` descending."""
        ...

    def insert_version(self, version: PageVersion) -> PageVersion:
        """Persist a snapshot.

        Raises :class:`~pagekeep.errors.PagekeepConcurrencyError` if a
        snapshot with the same ``(page_id, version)`` already exists.
        """
        ...

    def delete_versions(self, owner: str, version_ids: Sequence[str]) -> int:
        """Delete snapshots by id and return how many rows were removed."""
        ...

    def delete_versions_for_pages(self, owner: str, page_ids: Sequence[str]) -> int:
        """Delete every snapshot of the given pages; return the row count."""
        ...
