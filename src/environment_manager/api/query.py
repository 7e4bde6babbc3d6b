"""Authenticated query execution with response classification and retry.

One call to :meth:`QueryExecutor.execute` walks the loop
authenticate -> send -> classify until it reaches a decoded JSON value, a
terminal error, or the end of the request's retry budget.
"""

import time
from typing import Any

import httpx
import structlog

from .auth import Authenticator
from .errors import DecodeError, NotFoundError, RetriesExhaustedError, TransportError
from .session import HttpSession
from .types import (
    RequestSpec,
    ResponseOutcome,
    RetryableFailure,
    Success,
    TerminalFailure,
)

logger = structlog.get_logger(__name__)


def classify(spec: RequestSpec, response: httpx.Response, attempt: int) -> ResponseOutcome:
    """Map an HTTP response onto a success, retryable or terminal outcome.

    Args:
        spec: The request that produced the response.
        response: Response returned by the control plane.
        attempt: 1-based attempt number, recorded on terminal errors.

    Returns:
        The classified outcome.
    """
    status = response.status_code

    if status == httpx.codes.NO_CONTENT:
        return Success(None)

    if httpx.codes.is_success(status):
        try:
            return Success(response.json())
        except ValueError as exc:
            msg = f"{spec.method.value} {spec.path} returned a non-JSON body: {exc}"
            return TerminalFailure(
                DecodeError(msg, endpoint=spec.path, status=status, attempts=attempt),
            )

    if status == httpx.codes.UNAUTHORIZED:
        # Token may have expired between issuance and use: re-authenticate now.
        return RetryableFailure(status, "unauthorized", sleep=False)

    if status == httpx.codes.NOT_FOUND:
        msg = f"404: Object not found at {spec.path}"
        return TerminalFailure(
            NotFoundError(msg, endpoint=spec.path, status=status, attempts=attempt),
        )

    return RetryableFailure(status, response.reason_phrase or f"HTTP {status}")


class QueryExecutor:
    """Executes request specs against the control plane.

    Holds no per-call state: the attempt counter and last outcome live in
    :meth:`execute`, so one executor can serve concurrent callers.
    """

    def __init__(self, session: HttpSession, authenticator: Authenticator):
        self._session = session
        self._authenticator = authenticator

    def _send(self, spec: RequestSpec, token: str) -> httpx.Response:
        """Send the request and return the response with its body still unread."""
        start_time = time.time()
        logger.debug("Making API request", method=spec.method.value, endpoint=spec.path)
        client = self._session.client
        request = client.build_request(
            spec.method.value,
            spec.path,
            headers=spec.build_headers(token),
            **spec.body_kwargs(),
        )
        response = client.send(request, stream=True)
        duration = time.time() - start_time
        logger.debug(
            "API request completed",
            status=response.status_code,
            duration_seconds=round(duration, 3),
        )
        return response

    @staticmethod
    def _transport_failure(
        spec: RequestSpec,
        exc: httpx.RequestError,
        attempt: int,
    ) -> RetryableFailure:
        msg = f"{spec.method.value} {spec.path} failed: {exc}"
        error = TransportError(msg, endpoint=spec.path, attempts=attempt)
        error.__cause__ = exc
        return RetryableFailure(None, str(exc) or type(exc).__name__, error=error)

    def _attempt(self, spec: RequestSpec, attempt: int) -> ResponseOutcome:
        token = self._authenticator.get_token()
        try:
            response = self._send(spec, token)
        except httpx.RequestError as exc:
            return self._transport_failure(spec, exc, attempt)

        try:
            response.read()
        except httpx.DecodingError as exc:
            # Non-2xx bodies are never parsed, so only a success body is fatal.
            if httpx.codes.is_success(response.status_code):
                msg = f"{spec.method.value} {spec.path} returned an undecodable body: {exc}"
                error = DecodeError(
                    msg,
                    endpoint=spec.path,
                    status=response.status_code,
                    attempts=attempt,
                )
                error.__cause__ = exc
                return TerminalFailure(error)
        except httpx.RequestError as exc:
            return self._transport_failure(spec, exc, attempt)
        finally:
            response.close()
        return classify(spec, response, attempt)

    def execute(self, spec: RequestSpec) -> Any:
        """Run one logical operation.

        Args:
            spec: Validated request to perform.

        Returns:
            The decoded JSON body of the successful response, or None for 204.

        Raises:
            AuthenticationError: If no token could be obtained.
            NotFoundError: On a 404 response.
            DecodeError: If a 2xx response body could not be decoded as JSON.
            RetriesExhaustedError: If every attempt ended in a retryable failure.
        """
        attempt = 0
        while True:
            attempt += 1
            outcome = self._attempt(spec, attempt)

            if isinstance(outcome, Success):
                return outcome.payload
            if isinstance(outcome, TerminalFailure):
                raise outcome.error

            logger.warning(
                "Retryable API failure",
                method=spec.method.value,
                endpoint=spec.path,
                attempt=attempt,
                retries=spec.retries,
                status=outcome.status,
                reason=outcome.reason,
            )
            if attempt >= spec.retries:
                break
            if outcome.sleep:
                time.sleep(spec.backoff)

        msg = (
            f"Max number of retries ({spec.retries}) querying Environment Manager "
            f"{spec.method.value} {spec.path}, last status {outcome.status}: {outcome.reason}"
        )
        raise RetriesExhaustedError(
            msg,
            endpoint=spec.path,
            status=outcome.status,
            attempts=attempt,
            reason=outcome.reason,
        ) from outcome.error
