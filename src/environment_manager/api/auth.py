"""Bearer token acquisition for the Environment Manager control plane."""

import time

import httpx
import structlog

from .errors import AuthenticationError
from .session import HttpSession
from .types import Credentials, TokenEndpoint

logger = structlog.get_logger(__name__)

DEFAULT_AUTH_RETRIES = 5

DEFAULT_AUTH_INTERVAL = 2.0


class Authenticator:
    """Exchanges credentials for a bearer token.

    Tokens are never cached: every call to :meth:`get_token` logs in again,
    which tolerates tokens expiring between requests.
    """

    def __init__(
        self,
        credentials: Credentials,
        session: HttpSession,
        *,
        token_endpoint: TokenEndpoint = TokenEndpoint.LEGACY,
        retries: int = DEFAULT_AUTH_RETRIES,
        interval: float = DEFAULT_AUTH_INTERVAL,
    ):
        """Initialize the authenticator.

        Args:
            credentials: Server and login to authenticate with.
            session: HTTPS session supplying TLS and timeout policy.
            token_endpoint: Login contract of the target server version.
            retries: Maximum number of login attempts (default: 5).
            interval: Fixed pause in seconds between attempts (default: 2.0).

        Raises:
            ValueError: If retries is not positive or interval is negative.
        """
        if retries < 1:
            msg = "retries must be at least 1"
            raise ValueError(msg)
        if interval < 0:
            msg = "interval cannot be negative"
            raise ValueError(msg)

        self._credentials = credentials
        self._session = session
        self._token_endpoint = TokenEndpoint(token_endpoint)
        self._retries = retries
        self._interval = interval

    @property
    def token_endpoint(self) -> TokenEndpoint:
        return self._token_endpoint

    def _post_credentials(self) -> httpx.Response:
        username = self._credentials.username
        password = self._credentials.password.get_secret_value()
        path = self._token_endpoint.path
        if self._token_endpoint is TokenEndpoint.V1:
            return self._session.client.post(
                path,
                json={"username": username, "password": password},
            )
        return self._session.client.post(
            path,
            data={"grant_type": "password", "username": username, "password": password},
        )

    def get_token(self) -> str:
        """Log in and return an ``Authorization`` header value.

        Returns:
            ``"Bearer <token>"`` where token is the trimmed response body.

        Raises:
            AuthenticationError: If the endpoint answered 200 with an empty
                body, or no attempt succeeded.
        """
        path = self._token_endpoint.path
        last_status: int | None = None
        attempt = 0
        while attempt < self._retries:
            attempt += 1
            try:
                response = self._post_credentials()
            except httpx.RequestError as exc:
                last_status = None
                logger.warning(
                    "Token request failed",
                    endpoint=path,
                    attempt=attempt,
                    error=str(exc),
                )
            else:
                last_status = response.status_code
                if response.status_code == httpx.codes.OK:
                    token = response.text.strip()
                    if token:
                        return f"Bearer {token}"
                    logger.warning("Token endpoint returned an empty body", endpoint=path)
                    break
                logger.warning(
                    "Token request rejected",
                    endpoint=path,
                    attempt=attempt,
                    status=response.status_code,
                )

            if attempt < self._retries:
                time.sleep(self._interval)

        msg = (
            f"No token returned from Environment Manager {path} "
            f"after {attempt} attempt(s), last status {last_status}"
        )
        raise AuthenticationError(msg, endpoint=path, status=last_status, attempts=attempt)
