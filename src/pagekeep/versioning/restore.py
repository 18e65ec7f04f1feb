"""Reinstate a past snapshot as the page's next version."""

from __future__ import annotations

from pagekeep.config import PagekeepConfig
from pagekeep.errors import PagekeepNotFoundError
from pagekeep.models import Page
from pagekeep.observability import get_logger, resolve_metrics
from pagekeep.store.base import PageStore

from .snapshot import raise_for_missed_write, utcnow

log = get_logger("pagekeep.versioning")


class RestoreCoordinator:
    """Copies a snapshot's title and content back onto its page.

    A restore is a forward move: the page gets ``version = current + 1``
    and the snapshot it came from is left as it is.  No snapshot of the
    pre-restore state is taken, and restoring the same snapshot twice
    produces two new versions.
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

    def restore_version(self, page_id: str, version_id: str) -> Page:
        """Restore snapshot *version_id* onto page *page_id*.

        Raises
        ------
        PagekeepNotFoundError
            If the page or the snapshot is missing, or the snapshot belongs
            to a different page.
        PagekeepConcurrencyError
            If the page changed between the read and the write.
        """
        snapshot = self._store.get_version(self._owner, version_id)
        if snapshot is None or snapshot.page_id != page_id:
            raise PagekeepNotFoundError(
                message=f"Version {version_id} of page {page_id} not found",
                context={"resource_type": "page_version", "resource_id": version_id},
            )
        page = self._store.get_page(self._owner, page_id)
        if page is None:
            raise PagekeepNotFoundError(
                message=f"Page {page_id} not found",
                context={"resource_type": "page", "resource_id": page_id},
            )

        changes = {
            "title": snapshot.title,
            "content": snapshot.content,
            "version": page.version + 1,
            "updated_at": utcnow(),
        }
        restored = self._store.update_page(
            self._owner, page_id, changes, expected_version=page.version,
        )
        if restored is None:
            raise_for_missed_write(
                self._store, self._owner, page_id, page.version, self._config.metrics,
            )

        self._metrics.increment("pagekeep.restores_total")
        log.info(
            "Version restored",
            extra={
                "extra_fields": {
                    "op": "restore_version",
                    "page_id": page_id,
                    "from_version": snapshot.version,
                    "version": restored.version,
                }
            },
        )
        return restored
