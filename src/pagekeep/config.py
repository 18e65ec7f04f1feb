"""Engine configuration for pagekeep.

:class:`PagekeepConfig` is a dataclass that captures every tuneable knob
exposed by the engine and its store adapters.  Instances are passed to
:class:`~pagekeep.engine.PageEngine` and to
:class:`~pagekeep.store.rest.RestPageStore`.

Two module-level constants hold the retention defaults:

* :data:`DEFAULT_MAX_VERSIONS`: snapshots kept per page by automatic pruning.
* :data:`DEFAULT_KEEP_LATEST`: snapshots kept by an explicit prune call
  that does not say how many to keep.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any

# ---------------------------------------------------------------------------
# Retention constants
# ---------------------------------------------------------------------------

DEFAULT_MAX_VERSIONS: int = 50
"""Snapshots retained per page after each update when ``auto_prune`` is on."""

DEFAULT_KEEP_LATEST: int = 10
"""Snapshots retained by :meth:`PageEngine.prune_versions` by default."""


# ---------------------------------------------------------------------------
# Configuration dataclass
# ---------------------------------------------------------------------------

@dataclass
class PagekeepConfig:
    """Complete configuration for a pagekeep engine.

    Every parameter has a sensible default.  The store-related fields are
    only read by the REST store; the in-memory store ignores them.

    Parameters
    ----------
    base_url:
        Root URL of the PostgREST-compatible row store.
    api_key:
        Key sent as ``apikey`` and ``Authorization: Bearer`` headers.
        Never logged.
    pages_table:
        Table holding :class:`~pagekeep.models.Page` rows.
    versions_table:
        Table holding :class:`~pagekeep.models.PageVersion` rows.
    max_versions:
        Upper bound on snapshots kept per page by automatic pruning.
    auto_prune:
        Prune history down to ``max_versions`` after every update.
    delete_batch_size:
        Maximum number of ids sent in one bulk delete request.
    retry_max_attempts:
        Maximum number of attempts per request for retryable HTTP errors.
    retry_base_delay:
        Base delay (seconds) for exponential backoff.
    retry_max_delay:
        Upper cap (seconds) on computed backoff delay.
    retry_jitter:
        Add random jitter (50-100 %) to backoff intervals.
    rate_limit_rps:
        Target requests per second for client-side pacing (token bucket).
    timeout_seconds:
        HTTP request timeout in seconds.
    http_proxy:
        Optional HTTP/HTTPS proxy URL.
    debug_dump_payload:
        Write the (redacted) store request/response to *stderr*.
    """

    # ── Store ───────────────────────────────────────────────────────────
    base_url: str = "http://localhost:54321/rest/v1"

    api_key: str = ""

    pages_table: str = "pages"

    versions_table: str = "page_versions"

    # ── Retention ───────────────────────────────────────────────────────
    max_versions: int = DEFAULT_MAX_VERSIONS

    auto_prune: bool = True

    delete_batch_size: int = 100

    # ── Retry & rate ────────────────────────────────────────────────────
    retry_max_attempts: int = 3

    retry_base_delay: float = 1.0

    retry_max_delay: float = 30.0

    retry_jitter: bool = True

    rate_limit_rps: float = 10.0

    # ── HTTP ────────────────────────────────────────────────────────────
    timeout_seconds: float = 30.0

    http_proxy: str | None = None

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    # ── Debug ───────────────────────────────────────────────────────────
    debug_dump_payload: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        from urllib.parse import urlparse

        parsed = urlparse(self.base_url)
        if parsed.scheme == "http" and parsed.hostname not in (
            "localhost",
            "127.0.0.1",
            "::1",
        ):
            raise ValueError(
                f"base_url uses insecure HTTP for non-local host '{parsed.hostname}'. "
                "Use HTTPS to protect your API key, or target localhost for testing."
            )

        if not self.pages_table or not self.versions_table:
            raise ValueError("pages_table and versions_table must be non-empty")
        if self.max_versions < 1:
            raise ValueError(f"max_versions must be >= 1, got {self.max_versions}")
        if self.delete_batch_size < 1:
            raise ValueError(f"delete_batch_size must be >= 1, got {self.delete_batch_size}")
        if self.retry_max_attempts < 1:
            raise ValueError(f"retry_max_attempts must be >= 1, got {self.retry_max_attempts}")
        if self.retry_base_delay < 0:
            raise ValueError(f"retry_base_delay must be >= 0, got {self.retry_base_delay}")
        if self.retry_max_delay < 0:
            raise ValueError(f"retry_max_delay must be >= 0, got {self.retry_max_delay}")
        if self.rate_limit_rps <= 0:
            raise ValueError(f"rate_limit_rps must be > 0, got {self.rate_limit_rps}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")

    def __repr__(self) -> str:
        """Mask the API key to prevent accidental credential leakage."""
        parts: list[str] = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if f.name == "api_key":
                masked = f"...{val[-4:]}" if len(val) >= 4 else "****"
                parts.append(f"api_key='{masked}'")
            else:
                parts.append(f"{f.name}={val!r}")
        return f"PagekeepConfig({', '.join(parts)})"
