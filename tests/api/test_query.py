"""Tests for QueryExecutor retry and response classification.

Each test drives the full authenticate -> send -> classify loop through an
EnvironmentManagerApi wired to the in-memory control plane, so token
acquisition and API requests are both counted on the recorded traffic.
"""

import json
from unittest.mock import call

import httpx
import pytest

from environment_manager.api.errors import (
    AuthenticationError,
    DecodeError,
    InvalidRequestError,
    NotFoundError,
    RetriesExhaustedError,
    TransportError,
)

# ---------------------------------------------------------------------------
# Validation before I/O
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("path", ["", "   "])
def test_empty_path_fails_without_network(api, fake, path):
    """A blank path is rejected before any token or API request."""
    with pytest.raises(InvalidRequestError):
        api.query(path)
    assert fake.requests == []


@pytest.mark.parametrize(
    "path",
    [
        "https://attacker.example/api/v1/services",
        "http://em.example.com/api/v1/services",
        "//attacker.example/api/v1/services",
        "api/v1/services",
    ],
)
def test_path_off_configured_server_fails_without_network(api, fake, path):
    """Only server-relative paths are sent, so the token never leaves the server."""
    with pytest.raises(InvalidRequestError, match="configured server"):
        api.query(path)
    assert fake.requests == []


@pytest.mark.parametrize("method", ["POST", "put", "Patch"])
def test_body_required_for_write_methods(api, fake, method):
    with pytest.raises(InvalidRequestError, match="needs a body"):
        api.query("/api/v1/services", method=method)
    assert fake.requests == []


def test_unknown_method_fails_without_network(api, fake):
    with pytest.raises(InvalidRequestError, match="TRACE"):
        api.query("/api/v1/services", method="TRACE")
    assert fake.requests == []


# ---------------------------------------------------------------------------
# Success
# ---------------------------------------------------------------------------


def test_success_returns_decoded_json(api, fake):
    expected = [{"Name": "blue"}, {"Name": "green"}]
    fake.api_responses.append(httpx.Response(200, json=expected))

    assert api.query("/api/v1/environments") == expected


def test_any_2xx_is_success(api, fake):
    fake.api_responses.append(httpx.Response(201, json={"id": "abc"}))

    result = api.query("/api/v1/deployments", body={"environment": "c01"}, method="POST")

    assert result == {"id": "abc"}


def test_no_content_returns_none(api, fake):
    fake.api_responses.append(httpx.Response(204))

    assert api.query("/api/v1/config/services/a/b", method="DELETE") is None


def test_request_carries_default_headers_and_token(api, fake):
    api.query("/api/v1/status")

    (request,) = fake.api_requests
    assert request.url == "https://em.example.com/api/v1/status"
    assert request.headers["Accept"] == "application/json"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["Authorization"] == "Bearer token-1"


def test_extra_headers_win_over_defaults(api, fake):
    """Caller headers replace defaults case-insensitively and add new ones."""
    api.query(
        "/api/v1/status",
        headers={"accept": "text/plain", "X-Correlation-Id": "42"},
    )

    (request,) = fake.api_requests
    assert request.headers.get_list("Accept") == ["text/plain"]
    assert request.headers["X-Correlation-Id"] == "42"
    assert request.headers["Authorization"] == "Bearer token-1"


def test_json_body_is_encoded(api, fake):
    api.query("/api/v1/deployments", body={"Mode": "overwrite"}, method="post")

    (request,) = fake.api_requests
    assert request.method == "POST"
    assert json.loads(request.content) == {"Mode": "overwrite"}


def test_preencoded_body_sent_verbatim(api, fake):
    api.query("/api/v1/config/permissions/ops", body='{"a": 1}', method="PUT")

    (request,) = fake.api_requests
    assert request.content == b'{"a": 1}'


# ---------------------------------------------------------------------------
# 401 handling
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("unauthorized_count", [1, 3])
def test_reauthenticates_once_per_401(api, fake, sleep, unauthorized_count):
    """Each 401 triggers exactly one new login and no sleep."""
    fake.api_responses.extend([httpx.Response(401)] * unauthorized_count)
    fake.api_responses.append(httpx.Response(200, json={"ok": True}))

    assert api.query("/api/v1/services") == {"ok": True}

    assert len(fake.token_requests) == unauthorized_count + 1
    assert len(fake.api_requests) == unauthorized_count + 1
    sleep.assert_not_called()


def test_each_attempt_uses_its_own_token(api, fake):
    fake.api_responses.extend([httpx.Response(401), httpx.Response(200, json={})])

    api.query("/api/v1/services")

    tokens = [r.headers["Authorization"] for r in fake.api_requests]
    assert tokens == ["Bearer token-1", "Bearer token-2"]


def test_persistent_401_exhausts_retries(api, fake, sleep):
    fake.api_responses.extend([httpx.Response(401)] * 2)

    with pytest.raises(RetriesExhaustedError) as exc_info:
        api.query("/api/v1/services", retries=2)

    assert exc_info.value.status == 401
    sleep.assert_not_called()


# ---------------------------------------------------------------------------
# Terminal failures
# ---------------------------------------------------------------------------


def test_404_is_terminal(api, fake, sleep):
    """A 404 stops immediately regardless of the remaining budget."""
    fake.api_responses.append(httpx.Response(404))

    with pytest.raises(NotFoundError) as exc_info:
        api.query("/api/v1/services/ghost", retries=5)

    assert len(fake.api_requests) == 1
    assert exc_info.value.status == 404
    assert exc_info.value.endpoint == "/api/v1/services/ghost"
    assert exc_info.value.attempts == 1
    sleep.assert_not_called()


def test_404_after_retryable_failure_reports_attempt(api, fake, sleep):
    fake.api_responses.extend([httpx.Response(502), httpx.Response(404)])

    with pytest.raises(NotFoundError) as exc_info:
        api.query("/api/v1/services/ghost")

    assert exc_info.value.attempts == 2


def test_non_json_success_is_decode_error(api, fake, sleep):
    """A 200 with a non-JSON body fails once and is not retried."""
    fake.api_responses.append(httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(DecodeError) as exc_info:
        api.query("/api/v1/services")

    assert len(fake.api_requests) == 1
    assert exc_info.value.status == 200
    sleep.assert_not_called()


def test_undecodable_success_body_is_decode_error(api, fake, sleep):
    """A 200 whose Content-Encoding cannot be decoded fails once and is not retried."""
    fake.api_responses.append(
        httpx.Response(
            200,
            headers={"Content-Encoding": "gzip"},
            stream=httpx.ByteStream(b"not-gzip"),
        ),
    )

    with pytest.raises(DecodeError) as exc_info:
        api.query("/api/v1/services")

    assert len(fake.api_requests) == 1
    assert exc_info.value.status == 200
    assert isinstance(exc_info.value.__cause__, httpx.DecodingError)
    sleep.assert_not_called()


def test_undecodable_error_body_keeps_status_retryable(api, fake, sleep):
    fake.api_responses.extend(
        [
            httpx.Response(
                503,
                headers={"Content-Encoding": "gzip"},
                stream=httpx.ByteStream(b"not-gzip"),
            ),
            httpx.Response(200, json={"ok": True}),
        ],
    )

    assert api.query("/api/v1/services") == {"ok": True}
    sleep.assert_called_once_with(2.0)


def test_authentication_failure_is_terminal(api, fake, sleep):
    """If login exhausts its own retries, no API request is made."""
    fake.token_responses.extend([httpx.Response(500)] * 5)

    with pytest.raises(AuthenticationError):
        api.query("/api/v1/services")

    assert len(fake.token_requests) == 5
    assert fake.api_requests == []


# ---------------------------------------------------------------------------
# Retryable failures and exhaustion
# ---------------------------------------------------------------------------


def test_persistent_503_exhausts_after_exact_attempts(api, fake, sleep):
    """retries=3 with every answer 503 makes 3 authenticated attempts."""
    fake.api_responses.extend([httpx.Response(503)] * 3)

    with pytest.raises(RetriesExhaustedError) as exc_info:
        api.query("/api/v1/services", retries=3, backoff=1.5)

    assert len(fake.api_requests) == 3
    assert len(fake.token_requests) == 3
    assert exc_info.value.status == 503
    assert exc_info.value.attempts == 3
    assert "503" in str(exc_info.value)
    assert sleep.call_args_list == [call(1.5), call(1.5)]


def test_transient_server_error_then_success(api, fake, sleep):
    fake.api_responses.extend(
        [httpx.Response(500), httpx.Response(429), httpx.Response(200, json=[1])],
    )

    assert api.query("/api/v1/instances") == [1]
    assert sleep.call_count == 2


def test_transport_error_is_retried(api, fake, sleep):
    fake.api_responses.extend(
        [httpx.ConnectError("connection refused"), httpx.Response(200, json={"up": 1})],
    )

    assert api.query("/api/v1/diagnostics/healthcheck") == {"up": 1}
    sleep.assert_called_once_with(2.0)


def test_exhausted_transport_errors_chain_last_cause(api, fake, sleep):
    fake.api_responses.extend([httpx.ReadTimeout("read timed out")] * 2)

    with pytest.raises(RetriesExhaustedError) as exc_info:
        api.query("/api/v1/instances", retries=2)

    assert exc_info.value.status is None
    assert isinstance(exc_info.value.__cause__, TransportError)
    assert isinstance(exc_info.value.__cause__.__cause__, httpx.ReadTimeout)


def test_redirect_loop_is_retried_as_transport_error(api, fake, sleep):
    fake.api_responses.extend([httpx.TooManyRedirects("redirect loop")] * 2)

    with pytest.raises(RetriesExhaustedError) as exc_info:
        api.query("/api/v1/services", retries=2)

    assert len(fake.api_requests) == 2
    assert isinstance(exc_info.value.__cause__, TransportError)
    assert isinstance(exc_info.value.__cause__.__cause__, httpx.TooManyRedirects)


# ---------------------------------------------------------------------------
# Independence of calls
# ---------------------------------------------------------------------------


def test_repeated_calls_share_no_state(api, fake):
    """Two identical GETs make two full request cycles with fresh results."""
    fake.api_responses.extend(
        [httpx.Response(200, json={"n": 1}), httpx.Response(200, json={"n": 1})],
    )

    first = api.query("/api/v1/services")
    second = api.query("/api/v1/services")

    assert first == second
    assert first is not second
    assert len(fake.token_requests) == 2
    assert len(fake.api_requests) == 2
