"""When and how long to retry a row-store request.

PostgREST sits behind a gateway that answers ``429`` when a project is
throttled, and ``502``/``503``/``504`` while the database or its connection
pool is unreachable.  Those, plus connection and read failures, are the
only retryable outcomes.  A ``500`` is an error raised by a statement and
would fail again, and a ``409`` is a version race the engine reports to its
caller rather than replaying.

A retried ``POST`` whose first attempt did land comes back as ``409`` on the
unique ``(page_id, version)`` key, which the snapshot manager already treats
as "snapshot exists".
"""

from __future__ import annotations

import random
from dataclasses import dataclass

import httpx

from pagekeep.config import PagekeepConfig

RATE_LIMITED = "rate_limited"
GATEWAY = "gateway"
NETWORK = "network"

_GATEWAY_STATUSES: frozenset[int] = frozenset({502, 503, 504})

_NETWORK_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
)


def retry_reason(status_code: int | None, exception: Exception | None = None) -> str | None:
    """Classify a failed attempt, or return ``None`` if it is final.

    Returns one of :data:`RATE_LIMITED`, :data:`GATEWAY` or :data:`NETWORK`.
    """
    if exception is not None:
        return NETWORK if isinstance(exception, _NETWORK_EXCEPTIONS) else None
    if status_code == 429:
        return RATE_LIMITED
    if status_code in _GATEWAY_STATUSES:
        return GATEWAY
    return None


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff for one transport.

    Attributes
    ----------
    max_attempts:
        Total attempts per request, the first one included.
    base_delay:
        Delay before the first retry, doubled on every further retry.
    max_delay:
        Upper bound for any single wait, ``Retry-After`` included.
    jitter:
        Scale computed delays to a random 50-100 % of their value.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: bool = True

    @classmethod
    def from_config(cls, config: PagekeepConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            jitter=config.retry_jitter,
        )

    def has_attempts_left(self, attempt: int) -> bool:
        """Whether another try may follow the 0-indexed *attempt*."""
        return attempt + 1 < self.max_attempts

    def delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Seconds to wait after the 0-indexed *attempt* failed.

        A ``Retry-After`` from the gateway is used as is (no jitter, since
        waking early would only be throttled again) but never beyond
        :attr:`max_delay`.
        """
        if retry_after is not None:
            return min(max(retry_after, 0.0), self.max_delay)
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay
