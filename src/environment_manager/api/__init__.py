"""Authenticated query layer for the Environment Manager control plane.

Obtains bearer tokens, issues HTTPS requests with them, classifies the
responses and retries transient failures. Resource-specific request
shaping lives in :mod:`environment_manager.client`.

Exports:
    Authenticator: Exchanges credentials for a bearer token.
    QueryExecutor: Runs a RequestSpec with authentication and retry.
    HttpSession: Thread-local httpx.Client factory with TLS/timeout policy.
    Credentials, HttpMethod, RequestSpec, TokenEndpoint: Value types.
    errors: Module containing the client's exception hierarchy.
"""

from . import errors
from .auth import DEFAULT_AUTH_INTERVAL, DEFAULT_AUTH_RETRIES, Authenticator
from .query import QueryExecutor
from .session import DEFAULT_CONNECT_TIMEOUT, DEFAULT_TIMEOUT, HttpSession
from .types import (
    DEFAULT_BACKOFF,
    DEFAULT_RETRIES,
    Credentials,
    HttpMethod,
    RequestSpec,
    TokenEndpoint,
)

__all__ = [
    "DEFAULT_AUTH_INTERVAL",
    "DEFAULT_AUTH_RETRIES",
    "DEFAULT_BACKOFF",
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_RETRIES",
    "DEFAULT_TIMEOUT",
    "Authenticator",
    "Credentials",
    "HttpMethod",
    "HttpSession",
    "QueryExecutor",
    "RequestSpec",
    "TokenEndpoint",
    "errors",
]
