"""Thread-safe in-memory implementation of :class:`PageStore`.

Used by tests and by embedders that keep their notebooks in process.  All
reads and writes are serialised by one :class:`threading.Lock`, so the
conditional update in :meth:`InMemoryPageStore.update_page` is a real
compare-and-set.  Records are frozen dataclasses and are handed out as-is.
"""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from pagekeep.errors import PagekeepConcurrencyError, PagekeepValidationError
from pagekeep.models import Page, PageFilters, PageVersion

from .base import UPDATABLE_PAGE_FIELDS

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class InMemoryPageStore:
    """Dictionary-backed page and snapshot tables."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pages: dict[str, Page] = {}
        self._versions: dict[str, PageVersion] = {}

    # -- pages -------------------------------------------------------------

    def get_page(self, owner: str, page_id: str) -> Page | None:
        with self._lock:
            page = self._pages.get(page_id)
        if page is None or page.owner != owner:
            return None
        return page

    def list_pages(
        self,
        owner: str,
        notebook_id: str,
        filters: PageFilters | None = None,
    ) -> list[Page]:
        filters = filters or PageFilters()
        with self._lock:
            pages = [
                p for p in self._pages.values()
                if p.owner == owner and p.notebook_id == notebook_id
            ]

        if filters.parent_page_id is not None:
            pages = [p for p in pages if p.parent_page_id == filters.parent_page_id]
        elif filters.roots_only:
            pages = [p for p in pages if p.parent_page_id is None]

        if filters.search:
            needle = filters.search.lower()
            pages = [p for p in pages if needle in p.title.lower()]

        reverse = filters.sort_order == "desc"
        if filters.sort_by == "title":
            pages.sort(key=lambda p: p.title.lower(), reverse=reverse)
        else:
            pages.sort(
                key=lambda p: getattr(p, filters.sort_by) or _EPOCH,
                reverse=reverse,
            )
        return pages

    def insert_page(self, page: Page) -> Page:
        with self._lock:
            if page.id in self._pages:
                raise PagekeepValidationError(
                    message=f"Page {page.id} already exists",
                    context={"field": "id", "value": page.id, "constraint": "unique"},
                )
            self._pages[page.id] = page
        return page

    def update_page(
        self,
        owner: str,
        page_id: str,
        changes: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> Page | None:
        unknown = set(changes) - UPDATABLE_PAGE_FIELDS
        if unknown:
            raise PagekeepValidationError(
                message=f"Cannot update page fields: {sorted(unknown)}",
                context={"field": sorted(unknown), "constraint": "updatable"},
            )
        with self._lock:
            current = self._pages.get(page_id)
            if current is None or current.owner != owner:
                return None
            if expected_version is not None and current.version != expected_version:
                return None
            updated = dataclasses.replace(current, **changes)
            self._pages[page_id] = updated
        return updated

    def delete_pages(self, owner: str, page_ids: Sequence[str]) -> int:
        deleted = 0
        with self._lock:
            for page_id in page_ids:
                page = self._pages.get(page_id)
                if page is not None and page.owner == owner:
                    del self._pages[page_id]
                    deleted += 1
        return deleted

    # -- versions ----------------------------------------------------------

    def get_version(self, owner: str, version_id: str) -> PageVersion | None:
        with self._lock:
            version = self._versions.get(version_id)
        if version is None or version.owner != owner:
            return None
        return version

    def list_versions(self, owner: str, page_id: str) -> list[PageVersion]:
        with self._lock:
            versions = [
                v for v in self._versions.values()
                if v.owner == owner and v.page_id == page_id
            ]
        versions.sort(key=lambda v: v.version, reverse=True)
        return versions

    def insert_version(self, version: PageVersion) -> PageVersion:
        with self._lock:
            for existing in self._versions.values():
                if existing.page_id == version.page_id and existing.version == version.version:
                    raise PagekeepConcurrencyError(
                        message=(
                            f"Snapshot {version.version} of page {version.page_id} "
                            "already exists"
                        ),
                        context={
                            "page_id": version.page_id,
                            "expected_version": version.version,
                        },
                    )
            self._versions[version.id] = version
        return version

    def delete_versions(self, owner: str, version_ids: Sequence[str]) -> int:
        deleted = 0
        with self._lock:
            for version_id in version_ids:
                version = self._versions.get(version_id)
                if version is not None and version.owner == owner:
                    del self._versions[version_id]
                    deleted += 1
        return deleted

    def delete_versions_for_pages(self, owner: str, page_ids: Sequence[str]) -> int:
        targets = set(page_ids)
        with self._lock:
            doomed = [
                v.id for v in self._versions.values()
                if v.owner == owner and v.page_id in targets
            ]
            for version_id in doomed:
                del self._versions[version_id]
        return len(doomed)
