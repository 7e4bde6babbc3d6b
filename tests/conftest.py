"""Shared fixtures: an in-memory control plane behind httpx.MockTransport."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from environment_manager import EnvironmentManagerApi

TOKEN_PATHS = ("/api/token", "/api/v1/token")

SERVER = "em.example.com"
USERNAME = "deployer"
PASSWORD = "hunter2-secret"


class FakeControlPlane:
    """Records requests and replays queued responses.

    Queue entries are httpx.Response objects or exceptions to raise. An
    empty token queue answers 200 with a numbered token; an empty API queue
    answers 200 with an empty JSON object.
    """

    def __init__(self):
        self.token_responses: list[httpx.Response | Exception] = []
        self.api_responses: list[httpx.Response | Exception] = []
        self.requests: list[httpx.Request] = []

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path in TOKEN_PATHS]

    @property
    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path not in TOKEN_PATHS]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path in TOKEN_PATHS:
            if self.token_responses:
                return self._replay(self.token_responses.pop(0))
            return httpx.Response(200, text=f"token-{len(self.token_requests)}\n")
        if self.api_responses:
            return self._replay(self.api_responses.pop(0))
        return httpx.Response(200, json={})

    @staticmethod
    def _replay(item: httpx.Response | Exception) -> httpx.Response:
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def fake() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
def transport(fake: FakeControlPlane) -> httpx.MockTransport:
    return httpx.MockTransport(fake)


@pytest.fixture
def sleep() -> MagicMock:
    """Patched time.sleep so retry intervals cost nothing."""
    with patch("time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def api(transport: httpx.MockTransport, sleep: MagicMock) -> EnvironmentManagerApi:
    """Client wired to the fake control plane with default retry settings."""
    with EnvironmentManagerApi(SERVER, USERNAME, PASSWORD, transport=transport) as client:
        yield client
