"""Errors raised by the Environment Manager client.

Every error carries enough context (endpoint, HTTP status, attempt count)
for the caller to log or display it. Credentials never appear in messages.
"""


class EnvironmentManagerError(Exception):
    """Base class for all Environment Manager client errors."""


class InvalidRequestError(EnvironmentManagerError, ValueError):
    """Raised when a request is malformed. No network I/O has been performed."""


class MissingParameterError(InvalidRequestError):
    """Raised when a resource method is called without a required parameter."""

    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__(f"Required parameter '{parameter}' has not been specified")


class RequestError(EnvironmentManagerError):
    """Error tied to a specific control plane endpoint."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str,
        status: int | None = None,
        attempts: int | None = None,
    ):
        self.endpoint = endpoint
        self.status = status
        self.attempts = attempts
        super().__init__(message)


class AuthenticationError(RequestError):
    """Raised when no bearer token could be obtained from the token endpoint."""


class NotFoundError(RequestError):
    """Raised on a 404 response. Never retried."""


class DecodeError(RequestError):
    """Raised when a successful response body is not valid JSON."""


class RetriesExhaustedError(RequestError):
    """Raised when a retryable failure persisted past the retry budget."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str,
        status: int | None,
        attempts: int,
        reason: str,
    ):
        self.reason = reason
        super().__init__(message, endpoint=endpoint, status=status, attempts=attempts)


class TransportError(RequestError):
    """Connection, timeout or TLS failure while talking to the control plane.

    Only surfaced as the ``__cause__`` of :class:`RetriesExhaustedError`.
    """
