"""Value types shared by the authenticator and the query executor.

Credentials are a frozen Pydantic model so the password stays wrapped in a
``SecretStr``. Request specs and response outcomes are plain dataclasses,
created and discarded per call.
"""

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, TypeAlias

import httpx
from pydantic import BaseModel, ConfigDict, SecretStr, field_validator

from .errors import InvalidRequestError, RequestError

DEFAULT_RETRIES = 5
DEFAULT_BACKOFF = 2.0


class HttpMethod(str, enum.Enum):
    """HTTP methods supported by the control plane."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @property
    def requires_body(self) -> bool:
        return self in (HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH)


class TokenEndpoint(str, enum.Enum):
    """Login contract exposed by the target server version.

    The two variants cannot be told apart automatically, so each deployment
    has to pick the one its server speaks.
    """

    LEGACY = "legacy"
    V1 = "v1"

    @property
    def path(self) -> str:
        if self is TokenEndpoint.LEGACY:
            return "/api/token"
        return "/api/v1/token"


class Credentials(BaseModel):
    """Server address and login for one client instance."""

    model_config = ConfigDict(frozen=True)

    server: str
    username: str
    password: SecretStr

    @field_validator("server", "username")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            msg = "must not be empty"
            raise ValueError(msg)
        return value

    @field_validator("server")
    @classmethod
    def _bare_host(cls, value: str) -> str:
        if "://" in value:
            msg = "must be a host name without a scheme, HTTPS is always used"
            raise ValueError(msg)
        return value.rstrip("/")

    @field_validator("password")
    @classmethod
    def _password_not_blank(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            msg = "must not be empty"
            raise ValueError(msg)
        return value


def _is_absent(body: Any) -> bool:
    if body is None:
        return True
    return isinstance(body, (str, bytes)) and not body.strip()


@dataclass(frozen=True)
class RequestSpec:
    """One logical operation against the control plane.

    Validated on construction: an invalid spec raises
    :class:`InvalidRequestError` before anything touches the network.
    """

    path: str
    method: HttpMethod = HttpMethod.GET
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    retries: int = DEFAULT_RETRIES
    backoff: float = DEFAULT_BACKOFF

    def __post_init__(self):
        if not self.path or not self.path.strip():
            msg = "No endpoint specified, cannot continue"
            raise InvalidRequestError(msg)
        # Anything else would let httpx swap out the configured server.
        if not self.path.startswith("/") or self.path.startswith("//"):
            msg = f"Endpoint must be a path on the configured server, got {self.path!r}"
            raise InvalidRequestError(msg)

        raw = self.method.value if isinstance(self.method, HttpMethod) else str(self.method)
        try:
            method = HttpMethod(raw.upper())
        except ValueError:
            msg = f"Cannot process query type {raw!r}"
            raise InvalidRequestError(msg) from None
        object.__setattr__(self, "method", method)

        if method.requires_body and _is_absent(self.body):
            msg = f"{method.value} {self.path} needs a body but nothing was specified"
            raise InvalidRequestError(msg)
        if self.retries < 1:
            msg = "retries must be at least 1"
            raise InvalidRequestError(msg)
        if self.backoff < 0:
            msg = "backoff cannot be negative"
            raise InvalidRequestError(msg)

        object.__setattr__(self, "headers", dict(self.headers))

    def build_headers(self, token: str) -> httpx.Headers:
        """Return default headers merged with the caller's, caller's winning."""
        headers = httpx.Headers(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Authorization": token,
            },
        )
        headers.update(self.headers)
        return headers

    def body_kwargs(self) -> dict[str, Any]:
        """Keyword arguments carrying the body for ``httpx.Client.request``."""
        if self.body is None:
            return {}
        if isinstance(self.body, (str, bytes)):
            return {"content": self.body}
        return {"json": self.body}


# ---------------------------------------------------------------------------
# Response outcomes (internal to the query executor)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Success:
    payload: Any


@dataclass(frozen=True)
class RetryableFailure:
    status: int | None
    reason: str
    sleep: bool = True
    error: RequestError | None = None


@dataclass(frozen=True)
class TerminalFailure:
    error: RequestError


ResponseOutcome: TypeAlias = Success | RetryableFailure | TerminalFailure
