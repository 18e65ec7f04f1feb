"""Metrics hook protocol and no-op default implementation.

pagekeep emits counters and timings at key points (snapshots, restores,
prunes, moves, store requests).  By default a :class:`NoopMetricsHook` is
used.  Callers can supply any object satisfying :class:`MetricsHook` via
``PagekeepConfig(metrics=...)``.

Emitted metric names:

* ``pagekeep.versions_created_total``  -- counter
* ``pagekeep.updates_total``           -- counter
* ``pagekeep.conflicts_total``         -- counter
* ``pagekeep.restores_total``          -- counter
* ``pagekeep.versions_pruned_total``   -- counter
* ``pagekeep.moves_total``             -- counter (tag ``outcome``)
* ``pagekeep.pages_deleted_total``     -- counter
* ``pagekeep.requests_total``          -- counter
* ``pagekeep.retries_total``           -- counter
* ``pagekeep.request_duration_ms``     -- timing
* ``pagekeep.rate_limit_wait_ms``      -- timing
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy."""

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...


class NoopMetricsHook:
    """Default metrics implementation that silently discards all data points."""

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass


def resolve_metrics(metrics: Any | None) -> Any:
    """Return *metrics*, or a :class:`NoopMetricsHook` when it is ``None``."""
    return metrics if metrics is not None else NoopMetricsHook()
