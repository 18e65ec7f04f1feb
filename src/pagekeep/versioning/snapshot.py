"""Pre-mutation snapshots and compare-and-set version increments.

Every content-affecting update goes through two steps:

1. :meth:`VersionSnapshotManager.before_update` records the page's current
   title, content and version as an immutable
   :class:`~pagekeep.models.PageVersion`.
2. :meth:`VersionSnapshotManager.commit_update` writes the new state with
   ``version = expected_version + 1``, conditional on the stored version
   still being ``expected_version``.

:meth:`VersionSnapshotManager.apply_update` runs both as one unit and
deletes the snapshot again if the commit fails.  A snapshot at the page's
current version can only come from an update that never committed (a
caller that stopped after step 1, or a rollback that failed), so step 1
reuses it rather than failing on the duplicate.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, NoReturn

from pagekeep.config import PagekeepConfig
from pagekeep.errors import (
    PagekeepConcurrencyError,
    PagekeepError,
    PagekeepNotFoundError,
    PagekeepValidationError,
)
from pagekeep.models import Page, PageVersion
from pagekeep.observability import get_logger, resolve_metrics
from pagekeep.store.base import PageStore

log = get_logger("pagekeep.versioning")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_title(title: str) -> str:
    """Return *title* stripped of surrounding whitespace.

    Raises
    ------
    PagekeepValidationError
        If the title is not a string or is blank.
    """
    if not isinstance(title, str) or not title.strip():
        raise PagekeepValidationError(
            message="Page title must be a non-empty string",
            context={"field": "title", "value": title, "constraint": "non_empty"},
        )
    return title.strip()


def raise_for_missed_write(
    store: PageStore,
    owner: str,
    page_id: str,
    expected_version: int,
    metrics: Any | None = None,
) -> NoReturn:
    """Explain why a conditional page write matched no row.

    Re-reads the page: a missing page is :class:`PagekeepNotFoundError`,
    a page at another version is :class:`PagekeepConcurrencyError`.
    """
    current = store.get_page(owner, page_id)
    if current is None:
        raise PagekeepNotFoundError(
            message=f"Page {page_id} not found",
            context={"resource_type": "page", "resource_id": page_id},
        )
    resolve_metrics(metrics).increment("pagekeep.conflicts_total")
    log.warning(
        "Version conflict",
        extra={
            "extra_fields": {
                "op": "commit_update",
                "page_id": page_id,
                "expected_version": expected_version,
                "actual_version": current.version,
            }
        },
    )
    raise PagekeepConcurrencyError(
        message=(
            f"Page {page_id} is at version {current.version}, "
            f"expected {expected_version}"
        ),
        context={
            "page_id": page_id,
            "expected_version": expected_version,
            "actual_version": current.version,
        },
    )


class VersionSnapshotManager:
    """Creates snapshots and commits version increments for one owner.

    Parameters
    ----------
    store:
        The row store.
    owner:
        Identity every read and write is scoped to.
    config:
        Engine configuration (used for the metrics hook).
    """

    def __init__(
        self,
        store: PageStore,
        owner: str,
        config: PagekeepConfig | None = None,
    ) -> None:
        self._store = store
        self._owner = owner
        self._config = config or PagekeepConfig()
        self._metrics = resolve_metrics(self._config.metrics)

    def before_update(self, page: Page) -> PageVersion:
        """Snapshot *page* as it is now.

        The snapshot carries the page's current version number.  If a
        snapshot for ``(page_id, version)`` already exists while the stored
        page is still at that version, no commit ever followed it and it is
        returned as is.  A duplicate for a version the page has moved past
        raises :class:`PagekeepConcurrencyError`.
        """
        snapshot, _ = self._take_snapshot(page)
        return snapshot

    def _take_snapshot(self, page: Page) -> tuple[PageVersion, bool]:
        """Insert a snapshot of *page*; return it and whether it is new."""
        snapshot = PageVersion(
            id=str(uuid.uuid4()),
            page_id=page.id,
            title=page.title,
            content=page.content,
            version=page.version,
            owner=self._owner,
            created_at=utcnow(),
        )
        try:
            stored = self._store.insert_version(snapshot)
        except PagekeepConcurrencyError:
            pending = self._uncommitted_snapshot(page)
            if pending is None:
                raise
            log.debug(
                "Reusing uncommitted snapshot",
                extra={
                    "extra_fields": {
                        "op": "before_update",
                        "page_id": page.id,
                        "version": page.version,
                        "version_id": pending.id,
                    }
                },
            )
            return pending, False
        self._metrics.increment("pagekeep.versions_created_total")
        log.debug(
            "Snapshot created",
            extra={
                "extra_fields": {
                    "op": "before_update",
                    "page_id": page.id,
                    "version": page.version,
                    "version_id": stored.id,
                }
            },
        )
        return stored, True

    def _uncommitted_snapshot(self, page: Page) -> PageVersion | None:
        current = self._store.get_page(self._owner, page.id)
        if current is None or current.version != page.version:
            return None
        for version in self._store.list_versions(self._owner, page.id):
            if version.version == page.version:
                return version
        return None

    def commit_update(
        self,
        page_id: str,
        title: str,
        content: str,
        expected_version: int,
    ) -> Page:
        """Write *title* and *content* as ``expected_version + 1``.

        Raises
        ------
        PagekeepNotFoundError
            If the page does not exist.
        PagekeepConcurrencyError
            If the stored version is no longer *expected_version*.
        """
        changes = {
            "title": validate_title(title),
            "content": content,
            "version": expected_version + 1,
            "updated_at": utcnow(),
        }
        updated = self._store.update_page(
            self._owner, page_id, changes, expected_version=expected_version,
        )
        if updated is None:
            raise_for_missed_write(
                self._store, self._owner, page_id, expected_version, self._config.metrics,
            )
        self._metrics.increment("pagekeep.updates_total")
        log.info(
            "Page updated",
            extra={
                "extra_fields": {
                    "op": "commit_update",
                    "page_id": page_id,
                    "version": updated.version,
                }
            },
        )
        return updated

    def apply_update(self, page_id: str, title: str, content: str) -> Page:
        """Snapshot the current page and commit the new state.

        An update that changes neither title nor content returns the page
        untouched: no snapshot is written and the version stays.  If the
        commit fails, a snapshot inserted by this call is deleted and the
        commit's error is re-raised.
        """
        title = validate_title(title)
        page = self._store.get_page(self._owner, page_id)
        if page is None:
            raise PagekeepNotFoundError(
                message=f"Page {page_id} not found",
                context={"resource_type": "page", "resource_id": page_id},
            )
        if page.title == title and page.content == content:
            return page

        snapshot, created = self._take_snapshot(page)
        try:
            return self.commit_update(page_id, title, content, page.version)
        except PagekeepError:
            if created:
                self._rollback(snapshot)
            raise

    def _rollback(self, snapshot: PageVersion) -> None:
        """Delete *snapshot* unless another writer committed over its version.

        Once the page has moved past ``snapshot.version`` the snapshot is
        the history of that version and stays.
        """
        fields = {
            "op": "rollback_snapshot",
            "page_id": snapshot.page_id,
            "version": snapshot.version,
            "version_id": snapshot.id,
        }
        try:
            current = self._store.get_page(self._owner, snapshot.page_id)
            if current is not None and current.version != snapshot.version:
                log.info(
                    "Snapshot kept",
                    extra={"extra_fields": {**fields, "page_version": current.version}},
                )
                return
            self._store.delete_versions(self._owner, [snapshot.id])
        except PagekeepError as exc:
            # The commit error is the one the caller sees.  A snapshot left
            # behind here is picked up again by the next update.
            log.error(
                "Snapshot rollback failed",
                extra={"extra_fields": {**fields, "error": str(exc)}},
            )
            return
        log.info("Snapshot rolled back", extra={"extra_fields": fields})
