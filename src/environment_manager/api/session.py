"""HTTPS transport shared by the authenticator and the query executor.

Holds the TLS verification and timeout policy for one control plane server
and hands out thread-local ``httpx.Client`` instances.
"""

import threading

import httpx
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0

DEFAULT_TIMEOUT = 30.0


class HttpSession:
    """Thread-local ``httpx.Client`` factory for one control plane server.

    Each thread gets its own client, so concurrent callers never share a
    connection. Can be used as a context manager for automatic cleanup.
    """

    def __init__(
        self,
        server: str,
        *,
        verify_ssl: bool = False,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the session.

        Args:
            server: Control plane host name (and optional port), without scheme.
            verify_ssl: Verify the server's TLS certificate. Disabled by
                default because deployments commonly use self-signed
                certificates.
            connect_timeout: Connection timeout in seconds (default: 10.0).
            timeout: Read/write/pool timeout in seconds (default: 30.0).
            transport: Optional transport override, used in tests.

        Raises:
            ValueError: If server is empty or a timeout is not positive.
        """
        if not server:
            msg = "server cannot be empty"
            raise ValueError(msg)
        if connect_timeout <= 0 or timeout <= 0:
            msg = "timeouts must be positive"
            raise ValueError(msg)

        self.base_url = f"https://{server}"
        self.verify_ssl = verify_ssl
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._transport = transport
        self._local = threading.local()

        if not verify_ssl:
            logger.warning(
                "TLS certificate verification is disabled",
                base_url=self.base_url,
            )

    @property
    def client(self) -> httpx.Client:
        """Get or create the calling thread's ``httpx.Client``."""
        if not hasattr(self._local, "client") or self._local.client.is_closed:
            self._local.client = httpx.Client(
                base_url=self.base_url,
                verify=self.verify_ssl,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._local.client

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Close the calling thread's HTTP client if open.

        Other threads keep their own clients open.
        """
        if hasattr(self._local, "client") and not self._local.client.is_closed:
            self._local.client.close()
