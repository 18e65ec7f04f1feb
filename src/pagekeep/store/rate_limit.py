"""Client-side pacing of row-store requests.

A page edit costs a handful of requests (read, snapshot insert,
conditional patch, maybe a prune), and every engine sharing one transport
draws from the same :class:`TokenBucket`.  Tokens refill at
``rate_limit_rps`` up to a one-second burst.

A caller that finds the bucket empty takes its token on credit: the
balance goes negative and the caller sleeps until its own token would have
refilled.  Concurrent callers therefore queue one after another instead of
all waking at the same instant.
"""

from __future__ import annotations

import math
import threading
import time

from pagekeep.config import PagekeepConfig


class TokenBucket:
    """Thread-safe token bucket that lets callers borrow against refill.

    Parameters
    ----------
    rate_rps:
        Sustained refill rate in tokens per second.
    burst:
        Maximum number of tokens the bucket can hold.
    """

    __slots__ = ("_lock", "burst", "last_refill", "rate", "tokens")

    def __init__(self, rate_rps: float, burst: int = 10) -> None:
        if rate_rps <= 0:
            raise ValueError(f"rate_rps must be > 0, got {rate_rps}")
        if burst < 1:
            raise ValueError(f"burst must be >= 1, got {burst}")

        self.rate: float = rate_rps
        self.burst: int = burst
        self.tokens: float = float(burst)
        self.last_refill: float = time.monotonic()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: PagekeepConfig) -> TokenBucket:
        """Bucket for *config*: one second of requests may go out at once."""
        return cls(
            rate_rps=config.rate_limit_rps,
            burst=max(1, math.ceil(config.rate_limit_rps)),
        )

    def reserve(self, tokens: int = 1) -> float:
        """Take *tokens* now and return how long the caller must wait."""
        with self._lock:
            now = time.monotonic()
            self.tokens = min(self.burst, self.tokens + (now - self.last_refill) * self.rate)
            self.last_refill = now
            self.tokens -= tokens
            if self.tokens >= 0:
                return 0.0
            return -self.tokens / self.rate

    def acquire(self, tokens: int = 1) -> float:
        """Take *tokens*, sleeping off any debt; return the seconds slept."""
        wait = self.reserve(tokens)
        if wait > 0:
            time.sleep(wait)
        return wait
