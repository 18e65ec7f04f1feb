"""Trim a page's snapshot history down to its newest entries."""

from __future__ import annotations

from pagekeep.config import DEFAULT_KEEP_LATEST, PagekeepConfig
from pagekeep.errors import PagekeepStoreUnavailableError, PagekeepValidationError
from pagekeep.observability import get_logger, resolve_metrics
from pagekeep.store.base import PageStore
from pagekeep.utils.chunk import chunk_ids

log = get_logger("pagekeep.versioning")


class RetentionPruner:
    """Deletes all but the newest snapshots of a page.

    Parameters
    ----------
    store:
        The row store.
    owner:
        Identity every read and delete is scoped to.
    config:
        Engine configuration.  ``delete_batch_size`` bounds each delete
        call.
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

    def prune_versions(self, page_id: str, keep_latest: int = DEFAULT_KEEP_LATEST) -> int:
        """Keep the *keep_latest* highest-numbered snapshots, delete the rest.

        Parameters
        ----------
        page_id:
            The page whose history is trimmed.
        keep_latest:
            How many snapshots survive.  ``0`` deletes the whole history.

        Returns
        -------
        int
            Number of snapshots deleted.

        Raises
        ------
        PagekeepValidationError
            If *keep_latest* is negative.
        PagekeepStoreUnavailableError
            If a delete batch fails.  ``context["deleted"]`` holds how many
            snapshots were removed before the failure.
        """
        if keep_latest < 0:
            raise PagekeepValidationError(
                message=f"keep_latest must be >= 0, got {keep_latest}",
                context={"field": "keep_latest", "value": keep_latest, "constraint": ">= 0"},
            )

        versions = self._store.list_versions(self._owner, page_id)
        doomed = [v.id for v in versions[keep_latest:]]
        if not doomed:
            return 0

        deleted = 0
        for batch in chunk_ids(doomed, self._config.delete_batch_size):
            try:
                deleted += self._store.delete_versions(self._owner, batch)
            except PagekeepStoreUnavailableError as exc:
                exc.context["deleted"] = deleted
                log.error(
                    "Prune interrupted",
                    extra={
                        "extra_fields": {
                            "op": "prune_versions",
                            "page_id": page_id,
                            "deleted": deleted,
                            "pending": len(doomed) - deleted,
                        }
                    },
                )
                raise

        self._metrics.increment("pagekeep.versions_pruned_total", value=deleted)
        log.info(
            "Versions pruned",
            extra={
                "extra_fields": {
                    "op": "prune_versions",
                    "page_id": page_id,
                    "kept": keep_latest,
                    "deleted": deleted,
                }
            },
        )
        return deleted
