"""Unit tests for store/transport.py.

Covers:
- _parse_retry_after
- _raise_for_status (status and PostgreSQL code mapping)
- _dump_payload
- RestTransport.request (success, error mapping, retry logic, debug dump)
- RestTransport.paginate
- RestTransport.close / context manager
"""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from pagekeep.config import PagekeepConfig
from pagekeep.errors import (
    ErrorCode,
    PagekeepAuthError,
    PagekeepConcurrencyError,
    PagekeepNotFoundError,
    PagekeepPermissionError,
    PagekeepRetryExhaustedError,
    PagekeepStoreUnavailableError,
    PagekeepValidationError,
)
from pagekeep.store.transport import (
    RestTransport,
    _dump_payload,
    _parse_retry_after,
    _raise_for_status,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_response(
    status_code: int = 200,
    body=None,
    headers: dict | None = None,
) -> httpx.Response:
    """Build a minimal httpx.Response with a request attached."""
    content = json.dumps(body).encode() if body is not None else b""
    resp = httpx.Response(status_code, content=content, headers=headers or {})
    resp.request = httpx.Request("GET", "http://localhost:54321/rest/v1/pages")
    return resp


def make_config(**overrides) -> PagekeepConfig:
    """Return a PagekeepConfig tuned for fast, deterministic tests."""
    defaults = dict(
        api_key="service-key-5678",
        retry_max_attempts=3,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        retry_jitter=False,
        rate_limit_rps=10_000.0,
    )
    defaults.update(overrides)
    return PagekeepConfig(**defaults)


class _MockBucket:
    """Token bucket stand-in that never blocks."""

    def __init__(self, wait: float = 0.0):
        self._wait = wait

    def acquire(self, tokens: int = 1) -> float:
        return self._wait


# ---------------------------------------------------------------------------
# _parse_retry_after
# ---------------------------------------------------------------------------

class TestParseRetryAfter:
    def test_numeric(self):
        assert _parse_retry_after(make_response(headers={"retry-after": "5"})) == 5.0

    def test_fractional(self):
        assert _parse_retry_after(make_response(headers={"retry-after": "0.5"})) == 0.5

    def test_invalid(self):
        assert _parse_retry_after(make_response(headers={"retry-after": "soon"})) is None

    def test_missing(self):
        assert _parse_retry_after(make_response()) is None


# ---------------------------------------------------------------------------
# _raise_for_status
# ---------------------------------------------------------------------------

class TestRaiseForStatus:
    def _raise(self, status, body=None):
        _raise_for_status(make_response(status, body or {"message": "err"}), "PATCH", "/pages")

    def test_409_is_concurrency_conflict(self):
        with pytest.raises(PagekeepConcurrencyError) as exc_info:
            self._raise(409)
        assert exc_info.value.code == ErrorCode.CONCURRENCY_CONFLICT

    def test_unique_violation_code_is_concurrency_conflict(self):
        with pytest.raises(PagekeepConcurrencyError) as exc_info:
            self._raise(400, {"code": "23505", "message": "duplicate key value"})
        assert exc_info.value.context["store_code"] == "23505"

    def test_401_is_auth_error(self):
        with pytest.raises(PagekeepAuthError):
            self._raise(401)

    def test_403_is_permission_error(self):
        with pytest.raises(PagekeepPermissionError) as exc_info:
            self._raise(403)
        assert exc_info.value.context["operation"] == "PATCH /pages"

    def test_rls_code_is_permission_error(self):
        with pytest.raises(PagekeepPermissionError):
            self._raise(400, {"code": "42501", "message": "row-level security"})

    def test_404_is_not_found(self):
        with pytest.raises(PagekeepNotFoundError):
            self._raise(404)

    @pytest.mark.parametrize("code", ["23503", "23514", "23502", "22P02"])
    def test_constraint_violations_are_validation_errors(self, code):
        with pytest.raises(PagekeepValidationError) as exc_info:
            self._raise(400, {"code": code, "message": "violates constraint"})
        assert "violates constraint" in exc_info.value.message

    def test_500_is_store_unavailable(self):
        with pytest.raises(PagekeepStoreUnavailableError):
            self._raise(500)

    def test_non_json_body(self):
        resp = httpx.Response(400, content=b"plain text error")
        with pytest.raises(PagekeepValidationError) as exc_info:
            _raise_for_status(resp, "GET", "/pages")
        assert "plain text error" in exc_info.value.message


# ---------------------------------------------------------------------------
# _dump_payload
# ---------------------------------------------------------------------------

class TestDumpPayload:
    def test_dump_structure(self, capsys):
        _dump_payload("POST", "http://localhost/pages", {"title": "T"}, 201, [{"id": "p1"}])
        data = json.loads(capsys.readouterr().err)
        assert data["method"] == "POST"
        assert data["request_body"] == {"title": "T"}
        assert data["response_status"] == 201

    def test_omits_missing_parts(self, capsys):
        _dump_payload("GET", "http://localhost/pages", None, None, None)
        data = json.loads(capsys.readouterr().err)
        assert "request_body" not in data
        assert "response_status" not in data

    def test_api_key_never_dumped(self, capsys):
        secret = "service-key-5678"
        _dump_payload(
            "GET",
            f"http://localhost/pages?apikey={secret}",
            {"apikey": secret},
            200,
            None,
            api_key=secret,
        )
        assert secret not in capsys.readouterr().err

    def test_long_content_truncated(self, capsys):
        _dump_payload("PATCH", "http://localhost/pages", {"content": "x" * 5000}, 200, None)
        data = json.loads(capsys.readouterr().err)
        assert data["request_body"]["content"].endswith("<5000_chars>")


# ---------------------------------------------------------------------------
# RestTransport.request
# ---------------------------------------------------------------------------

class TestRestTransportRequest:
    def _transport(self, metrics=None, **cfg) -> RestTransport:
        t = RestTransport(make_config(metrics=metrics, **cfg))
        t._bucket = _MockBucket()
        return t

    def test_200_returns_json(self):
        transport = self._transport()
        with patch.object(transport._client, "request", return_value=make_response(200, [{"id": "p1"}])):
            assert transport.request("GET", "/pages") == [{"id": "p1"}]

    def test_204_returns_none(self):
        transport = self._transport()
        with patch.object(transport._client, "request", return_value=make_response(204)):
            assert transport.request("DELETE", "/pages") is None

    def test_client_error_not_retried(self):
        transport = self._transport()
        with (
            patch.object(
                transport._client, "request",
                return_value=make_response(400, {"code": "23503", "message": "fk"}),
            ) as mock_request,
            pytest.raises(PagekeepValidationError),
        ):
            transport.request("POST", "/pages")
        assert mock_request.call_count == 1

    def test_409_not_retried(self):
        transport = self._transport()
        with (
            patch.object(transport._client, "request", return_value=make_response(409, {})) as mock_request,
            pytest.raises(PagekeepConcurrencyError),
        ):
            transport.request("POST", "/page_versions")
        assert mock_request.call_count == 1

    def test_500_not_retried(self):
        transport = self._transport()
        with (
            patch.object(transport._client, "request", return_value=make_response(500, {})) as mock_request,
            pytest.raises(PagekeepStoreUnavailableError),
        ):
            transport.request("GET", "/pages")
        assert mock_request.call_count == 1

    def test_503_retried_then_success(self):
        transport = self._transport()
        responses = iter([make_response(503, {}), make_response(200, [])])
        with patch.object(transport._client, "request", side_effect=lambda *a, **k: next(responses)):
            assert transport.request("GET", "/pages") == []

    def test_429_exhausts_retries(self):
        transport = self._transport(retry_max_attempts=3)
        with (
            patch.object(
                transport._client, "request",
                return_value=make_response(429, {}, headers={"retry-after": "0"}),
            ) as mock_request,
            pytest.raises(PagekeepRetryExhaustedError) as exc_info,
        ):
            transport.request("GET", "/pages")
        assert mock_request.call_count == 3
        assert exc_info.value.context == {"attempts": 3, "last_status_code": 429}
        assert exc_info.value.code == ErrorCode.RETRY_EXHAUSTED

    def test_retry_exhausted_is_store_unavailable(self):
        transport = self._transport(retry_max_attempts=1)
        with (
            patch.object(transport._client, "request", return_value=make_response(502, {})),
            pytest.raises(PagekeepStoreUnavailableError),
        ):
            transport.request("GET", "/pages")

    def test_timeout_retried_then_success(self):
        transport = self._transport()
        calls = {"n": 0}

        def side_effect(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise httpx.ReadTimeout("slow")
            return make_response(200, [])

        with patch.object(transport._client, "request", side_effect=side_effect):
            assert transport.request("GET", "/pages") == []
        assert calls["n"] == 2

    def test_network_error_exhausted_is_store_unavailable(self):
        transport = self._transport(retry_max_attempts=2)
        with (
            patch.object(transport._client, "request", side_effect=httpx.ConnectError("refused")),
            pytest.raises(PagekeepStoreUnavailableError) as exc_info,
        ):
            transport.request("GET", "/pages")
        assert isinstance(exc_info.value.cause, httpx.ConnectError)
        assert exc_info.value.context["attempt"] == 2

    def test_metrics_emitted(self, metrics):
        transport = self._transport(metrics=metrics)
        responses = iter([make_response(503, {}), make_response(200, [])])
        with patch.object(transport._client, "request", side_effect=lambda *a, **k: next(responses)):
            transport.request("GET", "/pages")
        assert metrics.count("pagekeep.requests_total") == 2
        assert metrics.count("pagekeep.retries_total") == 1
        assert [name for name, _, _ in metrics.timings] == ["pagekeep.request_duration_ms"] * 2

    def test_retry_reasons_tagged(self, metrics):
        transport = self._transport(metrics=metrics, retry_max_attempts=4)
        outcomes = iter([
            make_response(429, {}),
            httpx.ConnectError("refused"),
            make_response(504, {}),
            make_response(200, []),
        ])

        def side_effect(*args, **kwargs):
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        with patch.object(transport._client, "request", side_effect=side_effect):
            transport.request("GET", "/pages")
        reasons = [tags["reason"] for name, _, tags in metrics.increments if name == "pagekeep.retries_total"]
        assert reasons == ["rate_limited", "network", "gateway"]

    def test_gateway_retry_after_honoured(self):
        transport = self._transport(retry_max_delay=10.0)
        responses = iter([make_response(503, {}, headers={"retry-after": "3"}), make_response(200, [])])
        with (
            patch.object(transport._client, "request", side_effect=lambda *a, **k: next(responses)),
            patch("pagekeep.store.transport.time.sleep") as sleep,
        ):
            transport.request("GET", "/pages")
        sleep.assert_called_once_with(3.0)

    def test_rate_limit_wait_recorded(self, metrics):
        transport = self._transport(metrics=metrics)
        transport._bucket = _MockBucket(wait=0.25)
        with patch.object(transport._client, "request", return_value=make_response(200, [])):
            transport.request("GET", "/pages")
        waits = [ms for name, ms, _ in metrics.timings if name == "pagekeep.rate_limit_wait_ms"]
        assert waits == [250.0]

    def test_debug_dump_written(self, capsys):
        transport = self._transport(debug_dump_payload=True)
        with patch.object(transport._client, "request", return_value=make_response(201, [{"id": "p1"}])):
            transport.request("POST", "/pages", json={"title": "T"})
        data = json.loads(capsys.readouterr().err)
        assert data["request_body"] == {"title": "T"}
        assert data["response_status"] == 201


# ---------------------------------------------------------------------------
# paginate / lifecycle
# ---------------------------------------------------------------------------

class TestPaginate:
    def test_single_short_page(self):
        transport = RestTransport(make_config())
        with patch.object(transport, "request", return_value=[{"id": "a"}]) as mock_request:
            assert list(transport.paginate("/pages", {"order": "title.asc"})) == [{"id": "a"}]
        params = mock_request.call_args.kwargs["params"]
        assert params == {"order": "title.asc", "limit": "1000", "offset": "0"}

    def test_multiple_pages(self):
        transport = RestTransport(make_config())
        pages = iter([[{"id": str(i)} for i in range(1000)], [{"id": "tail"}]])
        with patch.object(transport, "request", side_effect=lambda *a, **k: next(pages)):
            rows = list(transport.paginate("/pages"))
        assert len(rows) == 1001
        assert rows[-1] == {"id": "tail"}

    def test_empty_result(self):
        transport = RestTransport(make_config())
        with patch.object(transport, "request", return_value=None):
            assert list(transport.paginate("/pages")) == []


class TestLifecycle:
    def test_context_manager_closes(self):
        with RestTransport(make_config()) as transport:
            pass
        assert transport._client.is_closed

    def test_auth_headers(self):
        transport = RestTransport(make_config())
        assert transport._client.headers["apikey"] == "service-key-5678"
        assert transport._client.headers["authorization"] == "Bearer service-key-5678"
        transport.close()
