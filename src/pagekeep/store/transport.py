"""HTTP transport for a PostgREST-compatible row store.

The transport handles the full request lifecycle:

1. Acquire a token-bucket slot (wait if needed).
2. Send the request with ``apikey`` and bearer headers.
3. On ``2xx`` -- return the parsed JSON body (``None`` for empty bodies).
4. On ``429``/``502``/``503``/``504`` or a network error -- wait (the
   gateway's ``Retry-After`` if sent, else exponential backoff) and retry.
5. On any other ``4xx``/``5xx`` -- raise the matching typed error.
6. On max attempts exceeded -- raise :class:`PagekeepRetryExhaustedError`.
"""

from __future__ import annotations

import json as _json
import sys
import time
from collections.abc import Iterator
from typing import Any

import httpx

from pagekeep.config import PagekeepConfig
from pagekeep.errors import (
    PagekeepAuthError,
    PagekeepConcurrencyError,
    PagekeepNotFoundError,
    PagekeepPermissionError,
    PagekeepRetryExhaustedError,
    PagekeepStoreUnavailableError,
    PagekeepValidationError,
)
from pagekeep.observability import get_logger, resolve_metrics

from .rate_limit import TokenBucket
from .retries import RetryPolicy, retry_reason

log = get_logger("pagekeep.transport")

# PostgreSQL error codes surfaced by PostgREST in the ``code`` field.
_PG_UNIQUE_VIOLATION = "23505"
_PG_INSUFFICIENT_PRIVILEGE = "42501"

_PAGE_SIZE = 1000


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_retry_after(response: httpx.Response) -> float | None:
    """Extract the ``Retry-After`` header value as a float, or ``None``."""
    raw = response.headers.get("retry-after")
    if raw is None:
        return None
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
    """Raise the :class:`PagekeepError` subclass matching a failed response."""
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    store_message = body.get("message") or response.text[:500]
    store_code = str(body.get("code", ""))
    ctx: dict[str, Any] = {"status_code": status, "store_code": store_code}

    if status == 409 or store_code == _PG_UNIQUE_VIOLATION:
        raise PagekeepConcurrencyError(
            message=f"Conflict on {method} {path}: {store_message}",
            context=ctx,
        )
    if status == 401:
        raise PagekeepAuthError(
            message=f"Authentication failed on {method} {path}: {store_message}",
            context=ctx,
        )
    if status == 403 or store_code == _PG_INSUFFICIENT_PRIVILEGE:
        raise PagekeepPermissionError(
            message=f"Permission denied on {method} {path}: {store_message}",
            context={**ctx, "operation": f"{method} {path}"},
        )
    if status == 404:
        raise PagekeepNotFoundError(
            message=f"Resource not found on {method} {path}: {store_message}",
            context={**ctx, "resource_type": "table", "resource_id": path},
        )
    if status >= 500:
        raise PagekeepStoreUnavailableError(
            message=f"Store error {status} on {method} {path}: {store_message}",
            context={**ctx, "url": path},
        )
    raise PagekeepValidationError(
        message=f"Client error {status} on {method} {path}: {store_message}",
        context={**ctx, "body": body},
    )


def _dump_payload(
    method: str,
    url: str,
    payload: Any | None,
    response_status: int | None,
    response_body: Any | None,
    api_key: str | None = None,
) -> None:
    """Write a redacted debug dump of the request/response to stderr."""
    from pagekeep.utils.redact import redact

    dump: dict[str, Any] = {
        "method": method,
        "url": url,
    }
    if payload is not None:
        dump["request_body"] = payload
    if response_status is not None:
        dump["response_status"] = response_status
    if response_body is not None:
        dump["response_body"] = response_body
    print(
        _json.dumps(redact(dump, api_key), indent=2, default=str),
        file=sys.stderr,
    )


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class RestTransport:
    """Synchronous HTTP transport with auth, retry, and rate limiting.

    Parameters
    ----------
    config:
        A :class:`PagekeepConfig` controlling all transport behaviour.
    """

    def __init__(self, config: PagekeepConfig) -> None:
        self._config = config
        self._bucket = TokenBucket.from_config(config)
        self._retry = RetryPolicy.from_config(config)
        self._metrics = resolve_metrics(config.metrics)

        self._client = httpx.Client(
            base_url=config.base_url,
            headers={
                "apikey": config.api_key,
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(config.timeout_seconds),
            proxy=config.http_proxy,
        )

    # -- public API --------------------------------------------------------

    def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Execute an HTTP request against the store.

        Parameters
        ----------
        method:
            HTTP method (``GET``, ``POST``, ``PATCH``, ``DELETE``).
        path:
            Path relative to ``base_url`` (e.g. ``/pages``).
        **kwargs:
            Forwarded to :meth:`httpx.Client.request` (``params=``,
            ``json=``, ``headers=``).

        Returns
        -------
        Any
            Parsed JSON body, or ``None`` for an empty response.

        Raises
        ------
        PagekeepConcurrencyError
            On 409 / unique violations.
        PagekeepAuthError
            On 401 responses.
        PagekeepPermissionError
            On 403 responses.
        PagekeepNotFoundError
            On 404 responses.
        PagekeepValidationError
            On other non-retryable 4xx responses.
        PagekeepStoreUnavailableError
            On non-retryable 5xx responses or exhausted network retries.
        PagekeepRetryExhaustedError
            When every attempt received a retryable status.
        """
        max_attempts = self._retry.max_attempts
        last_status: int | None = None
        json_payload = kwargs.get("json")

        for attempt in range(max_attempts):
            wait = self._bucket.acquire()
            if wait > 0:
                self._metrics.timing(
                    "pagekeep.rate_limit_wait_ms",
                    wait * 1000,
                    tags={"method": method, "path": path},
                )

            t0 = time.monotonic()
            try:
                response = self._client.request(method, path, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                last_status = None
                time.sleep(self._handle_network_exception(method, path, exc, attempt))
                continue
            elapsed_ms = (time.monotonic() - t0) * 1000

            last_status = response.status_code
            tags = {"method": method, "path": path, "status": str(response.status_code)}
            self._metrics.increment("pagekeep.requests_total", tags=tags)
            self._metrics.timing("pagekeep.request_duration_ms", elapsed_ms, tags=tags)

            if self._config.debug_dump_payload:
                self._emit_debug_dump(method, response, json_payload)

            if 200 <= response.status_code < 300:
                if response.status_code == 204 or not response.content:
                    return None
                return response.json()

            reason = retry_reason(response.status_code)
            if reason is None:
                _raise_for_status(response, method, path)

            if not self._retry.has_attempts_left(attempt):
                break

            retry_after = _parse_retry_after(response)

            log.warning(
                "Retrying store request",
                extra={
                    "extra_fields": {
                        "op": "request",
                        "method": method,
                        "path": path,
                        "status_code": response.status_code,
                        "retry_after": retry_after,
                        "attempt": attempt + 1,
                    }
                },
            )
            self._metrics.increment(
                "pagekeep.retries_total",
                tags={"method": method, "path": path, "reason": reason},
            )
            time.sleep(self._retry.delay(attempt, retry_after))

        raise PagekeepRetryExhaustedError(
            message=(
                f"All {max_attempts} attempts exhausted for {method} {path} "
                f"(last status: {last_status})"
            ),
            context={"attempts": max_attempts, "last_status_code": last_status},
        )

    def paginate(self, path: str, params: dict[str, str] | None = None) -> Iterator[dict]:
        """Yield every row of a ``GET`` listing, fetching it in pages.

        Uses PostgREST ``limit`` / ``offset`` parameters and stops at the
        first short page.
        """
        offset = 0
        while True:
            page_params = dict(params or {})
            page_params["limit"] = str(_PAGE_SIZE)
            page_params["offset"] = str(offset)
            rows = self.request("GET", path, params=page_params) or []
            yield from rows
            if len(rows) < _PAGE_SIZE:
                break
            offset += _PAGE_SIZE

    def close(self) -> None:
        """Close the underlying HTTP client and release resources."""
        self._client.close()

    def __enter__(self) -> RestTransport:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # -- internals ---------------------------------------------------------

    def _handle_network_exception(
        self, method: str, path: str, exc: Exception, attempt: int,
    ) -> float:
        """Return the backoff delay, or raise once retries are exhausted."""
        self._metrics.increment(
            "pagekeep.requests_total",
            tags={"method": method, "path": path, "status": "error"},
        )
        log.warning(
            "Store network error",
            extra={
                "extra_fields": {
                    "op": "request",
                    "method": method,
                    "path": path,
                    "attempt": attempt + 1,
                    "error": str(exc),
                }
            },
        )
        reason = retry_reason(None, exc)
        if reason is not None and self._retry.has_attempts_left(attempt):
            self._metrics.increment(
                "pagekeep.retries_total",
                tags={"method": method, "path": path, "reason": reason},
            )
            return self._retry.delay(attempt)
        raise PagekeepStoreUnavailableError(
            message=f"Network error on {method} {path}: {exc}",
            context={"url": path, "attempt": attempt + 1},
            cause=exc,
        ) from exc

    def _emit_debug_dump(
        self, method: str, response: httpx.Response, json_payload: Any,
    ) -> None:
        try:
            resp_body = response.json()
        except ValueError:
            resp_body = response.text[:1000]
        _dump_payload(
            method, str(response.url), json_payload,
            response.status_code, resp_body,
            api_key=self._config.api_key,
        )
