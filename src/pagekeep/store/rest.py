"""PostgREST-backed implementation of :class:`PageStore`.

Pages and snapshots live in two tables (``pages`` and ``page_versions`` by
default) keyed by ``id``.  The owner is stored in the ``user_id`` column and
every query filters on it, so rows belonging to somebody else are
invisible.  ``page_versions`` is expected to carry a unique constraint on
``(page_id, version)``; a violation comes back as ``409`` and surfaces as
:class:`~pagekeep.errors.PagekeepConcurrencyError`.

All HTTP concerns (auth headers, retries, pacing, error mapping) are handled
by :class:`~pagekeep.store.transport.RestTransport`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from pagekeep.config import PagekeepConfig
from pagekeep.errors import PagekeepConcurrencyError, PagekeepValidationError
from pagekeep.models import Page, PageFilters, PageVersion
from pagekeep.utils.chunk import chunk_ids

from .base import UPDATABLE_PAGE_FIELDS
from .transport import RestTransport

_RETURN_REPRESENTATION = {"Prefer": "return=representation"}


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _format_ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def page_from_row(row: Mapping[str, Any]) -> Page:
    """Build a :class:`Page` from a ``pages`` row."""
    return Page(
        id=row["id"],
        title=row["title"],
        content=row.get("content") or "",
        version=int(row["version"]),
        notebook_id=row["notebook_id"],
        owner=row["user_id"],
        parent_page_id=row.get("parent_page_id"),
        created_at=_parse_ts(row.get("created_at")),
        updated_at=_parse_ts(row.get("updated_at")),
    )


def page_to_row(page: Page) -> dict[str, Any]:
    """Serialise a :class:`Page` into a ``pages`` row."""
    return {
        "id": page.id,
        "title": page.title,
        "content": page.content,
        "version": page.version,
        "notebook_id": page.notebook_id,
        "user_id": page.owner,
        "parent_page_id": page.parent_page_id,
        "created_at": _format_ts(page.created_at),
        "updated_at": _format_ts(page.updated_at),
    }


def version_from_row(row: Mapping[str, Any]) -> PageVersion:
    """Build a :class:`PageVersion` from a ``page_versions`` row."""
    return PageVersion(
        id=row["id"],
        page_id=row["page_id"],
        title=row["title"],
        content=row.get("content") or "",
        version=int(row["version"]),
        owner=row["user_id"],
        created_at=_parse_ts(row.get("created_at")),
    )


def version_to_row(version: PageVersion) -> dict[str, Any]:
    """Serialise a :class:`PageVersion` into a ``page_versions`` row."""
    return {
        "id": version.id,
        "page_id": version.page_id,
        "title": version.title,
        "content": version.content,
        "version": version.version,
        "user_id": version.owner,
        "created_at": _format_ts(version.created_at),
    }


def _in_list(ids: Sequence[str]) -> str:
    return "in.(" + ",".join(f'"{i}"' for i in ids) + ")"


def _ilike_contains(search: str) -> str:
    """Build a case-insensitive substring filter matching *search* literally.

    ``%``, ``_`` and ``\\`` are backslash-escaped.  PostgREST turns every
    ``*`` into ``%`` with no escape, so a literal ``*`` becomes ``_`` and
    the caller narrows the rows afterwards.
    """
    escaped = (
        search.replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
        .replace("*", "_")
    )
    return f"ilike.*{escaped}*"


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class RestPageStore:
    """Page store speaking PostgREST query syntax over HTTP.

    Parameters
    ----------
    config:
        Connection settings, table names and transport tuning.
    transport:
        Optional pre-built transport; one is created from *config* when
        omitted.
    """

    def __init__(
        self,
        config: PagekeepConfig,
        transport: RestTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport or RestTransport(config)
        self._pages_path = f"/{config.pages_table}"
        self._versions_path = f"/{config.versions_table}"

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> RestPageStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # -- pages -------------------------------------------------------------

    def get_page(self, owner: str, page_id: str) -> Page | None:
        rows = self._transport.request(
            "GET",
            self._pages_path,
            params={"id": f"eq.{page_id}", "user_id": f"eq.{owner}", "limit": "1"},
        )
        return page_from_row(rows[0]) if rows else None

    def list_pages(
        self,
        owner: str,
        notebook_id: str,
        filters: PageFilters | None = None,
    ) -> list[Page]:
        filters = filters or PageFilters()
        params: dict[str, str] = {
            "user_id": f"eq.{owner}",
            "notebook_id": f"eq.{notebook_id}",
            "order": f"{filters.sort_by}.{filters.sort_order}",
        }
        if filters.parent_page_id is not None:
            params["parent_page_id"] = f"eq.{filters.parent_page_id}"
        elif filters.roots_only:
            params["parent_page_id"] = "is.null"
        if filters.search:
            params["title"] = _ilike_contains(filters.search)
        pages = [page_from_row(row) for row in self._transport.paginate(self._pages_path, params)]
        if filters.search and "*" in filters.search:
            needle = filters.search.lower()
            pages = [p for p in pages if needle in p.title.lower()]
        return pages

    def insert_page(self, page: Page) -> Page:
        try:
            rows = self._transport.request(
                "POST",
                self._pages_path,
                json=page_to_row(page),
                headers=_RETURN_REPRESENTATION,
            )
        except PagekeepConcurrencyError as exc:
            raise PagekeepValidationError(
                message=f"Page {page.id} already exists",
                context={"field": "id", "value": page.id, "constraint": "unique"},
                cause=exc,
            ) from exc
        return page_from_row(rows[0]) if rows else page

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
        body = {
            key: _format_ts(value) if isinstance(value, datetime) else value
            for key, value in changes.items()
        }
        params = {"id": f"eq.{page_id}", "user_id": f"eq.{owner}"}
        if expected_version is not None:
            params["version"] = f"eq.{expected_version}"
        rows = self._transport.request(
            "PATCH",
            self._pages_path,
            params=params,
            json=body,
            headers=_RETURN_REPRESENTATION,
        )
        return page_from_row(rows[0]) if rows else None

    def delete_pages(self, owner: str, page_ids: Sequence[str]) -> int:
        return self._delete_in(self._pages_path, owner, "id", page_ids)

    # -- versions ----------------------------------------------------------

    def get_version(self, owner: str, version_id: str) -> PageVersion | None:
        rows = self._transport.request(
            "GET",
            self._versions_path,
            params={"id": f"eq.{version_id}", "user_id": f"eq.{owner}", "limit": "1"},
        )
        return version_from_row(rows[0]) if rows else None

    def list_versions(self, owner: str, page_id: str) -> list[PageVersion]:
        params = {
            "page_id": f"eq.{page_id}",
            "user_id": f"eq.{owner}",
            "order": "version.desc",
        }
        return [
            version_from_row(row)
            for row in self._transport.paginate(self._versions_path, params)
        ]

    def insert_version(self, version: PageVersion) -> PageVersion:
        rows = self._transport.request(
            "POST",
            self._versions_path,
            json=version_to_row(version),
            headers=_RETURN_REPRESENTATION,
        )
        return version_from_row(rows[0]) if rows else version

    def delete_versions(self, owner: str, version_ids: Sequence[str]) -> int:
        return self._delete_in(self._versions_path, owner, "id", version_ids)

    def delete_versions_for_pages(self, owner: str, page_ids: Sequence[str]) -> int:
        return self._delete_in(self._versions_path, owner, "page_id", page_ids)

    # -- internals ---------------------------------------------------------

    def _delete_in(
        self, path: str, owner: str, column: str, ids: Sequence[str],
    ) -> int:
        deleted = 0
        for batch in chunk_ids(list(ids), self._config.delete_batch_size):
            rows = self._transport.request(
                "DELETE",
                path,
                params={column: _in_list(batch), "user_id": f"eq.{owner}"},
                headers=_RETURN_REPRESENTATION,
            )
            deleted += len(rows or [])
        return deleted
