"""Environment Manager API client.

Resource methods validate their arguments, build an ``/api/v1/...`` path
and hand it to the query layer. Responses are returned as decoded JSON.
"""

import os
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from .api import (
    DEFAULT_AUTH_INTERVAL,
    DEFAULT_AUTH_RETRIES,
    DEFAULT_BACKOFF,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    Authenticator,
    Credentials,
    HttpMethod,
    HttpSession,
    QueryExecutor,
    RequestSpec,
    TokenEndpoint,
)
from .api.errors import MissingParameterError
from .config import CONFIG_ENV_VAR, ClientConfig, configure_logging, load_config

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"

DEFAULT_ACCOUNT = "Non-Prod"


def _require(**params: Any) -> None:
    """Raise MissingParameterError for the first absent parameter."""
    for name, value in params.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise MissingParameterError(name)


def _endpoint(*segments: Any, params: dict[str, Any] | None = None) -> str:
    """Build an API path from percent-encoded segments and optional filters.

    Filters whose value is None are left out of the query string.
    """
    path = "/".join([API_PREFIX, *(quote(str(s), safe="") for s in segments)])
    query = {k: v for k, v in (params or {}).items() if v is not None}
    if query:
        path = f"{path}?{httpx.QueryParams(query)}"
    return path


class EnvironmentManagerApi:
    """Client for the Environment Manager control plane.

    Every call authenticates afresh and shares no state with other calls,
    so one instance can be used from several threads. Can be used as a
    context manager for automatic cleanup.
    """

    def __init__(
        self,
        server: str,
        username: str,
        password: str,
        retries: int = DEFAULT_RETRIES,
        *,
        backoff: float = DEFAULT_BACKOFF,
        auth_retries: int = DEFAULT_AUTH_RETRIES,
        auth_interval: float = DEFAULT_AUTH_INTERVAL,
        token_endpoint: TokenEndpoint | str = TokenEndpoint.LEGACY,
        verify_ssl: bool = False,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            server: Control plane host name (e.g., "em.example.com").
            username: Login user name.
            password: Login password. Never logged.
            retries: Default attempts per query (default: 5).
            backoff: Default seconds between retryable failures (default: 2.0).
            auth_retries: Attempts per token request (default: 5).
            auth_interval: Seconds between failed token requests (default: 2.0).
            token_endpoint: Login contract of the target server version.
            verify_ssl: Verify the server's TLS certificate (default: False).
            connect_timeout: Connection timeout in seconds (default: 10.0).
            timeout: Read timeout in seconds (default: 30.0).
            transport: Optional httpx transport override, used in tests.

        Raises:
            ValueError: If server, username or password is empty, or a
                retry or timeout setting is out of range.
        """
        self._credentials = Credentials(server=server, username=username, password=password)
        if retries < 1:
            msg = "retries must be at least 1"
            raise ValueError(msg)
        if backoff < 0:
            msg = "backoff cannot be negative"
            raise ValueError(msg)
        self._retries = retries
        self._backoff = backoff

        self._session = HttpSession(
            self._credentials.server,
            verify_ssl=verify_ssl,
            connect_timeout=connect_timeout,
            timeout=timeout,
            transport=transport,
        )
        authenticator = Authenticator(
            self._credentials,
            self._session,
            token_endpoint=TokenEndpoint(token_endpoint),
            retries=auth_retries,
            interval=auth_interval,
        )
        self._executor = QueryExecutor(self._session, authenticator)

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> "EnvironmentManagerApi":
        """Construct a client from validated config."""
        return cls(
            server=config.server,
            username=config.username,
            password=config.password.get_secret_value(),
            retries=config.retries,
            backoff=config.backoff,
            auth_retries=config.auth_retries,
            auth_interval=config.auth_interval,
            token_endpoint=config.token_endpoint,
            verify_ssl=config.verify_ssl,
            connect_timeout=config.connect_timeout,
            timeout=config.timeout,
            transport=transport,
        )

    @property
    def server(self) -> str:
        return self._credentials.server

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Close the calling thread's HTTP client.

        Clients are thread-local, so clients opened by other threads stay
        open until those threads call ``close()`` themselves. A later call
        from this thread opens a fresh client.
        """
        self._session.close()

    def query(
        self,
        path: str,
        body: Any = None,
        method: HttpMethod | str = HttpMethod.GET,
        *,
        headers: dict[str, str] | None = None,
        retries: int | None = None,
        backoff: float | None = None,
    ) -> Any:
        """Perform an authenticated request against the control plane.

        Args:
            path: API path including any query string (e.g., "/api/v1/services").
            body: JSON-serializable body, or pre-encoded str/bytes.
                Required for POST, PUT and PATCH.
            method: HTTP method, case-insensitive.
            headers: Extra headers. They win over the default headers.
            retries: Attempts for this call (default: client setting).
            backoff: Seconds between retryable failures (default: client setting).

        Returns:
            Decoded JSON response body.

        Raises:
            InvalidRequestError: If the request is malformed. Nothing is sent.
            AuthenticationError: If no token could be obtained.
            NotFoundError: If the control plane answered 404.
            DecodeError: If a successful response was not valid JSON.
            RetriesExhaustedError: If retryable failures used up the budget.
        """
        spec = RequestSpec(
            path=path,
            method=method,
            body=body,
            headers=headers or {},
            retries=self._retries if retries is None else retries,
            backoff=self._backoff if backoff is None else backoff,
        )
        return self._executor.execute(spec)

    def _get(self, *segments: Any, params: dict[str, Any] | None = None) -> Any:
        return self.query(_endpoint(*segments, params=params))

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_accounts_config(self) -> Any:
        """Get config of accounts associated with Environment Manager."""
        return self._get("config", "accounts")

    # ------------------------------------------------------------------
    # AMI
    # ------------------------------------------------------------------

    def get_images_config(self, account: str | None = None) -> Any:
        """Get config of AMI images, optionally for one account."""
        return self._get("config", "images", params={"account": account})

    # ------------------------------------------------------------------
    # ASG
    # ------------------------------------------------------------------

    def get_asgs(self, account: str = DEFAULT_ACCOUNT) -> Any:
        """Get list of ASGs in an account."""
        _require(account=account)
        return self._get("asgs", params={"account": account})

    def get_asg_info(self, environment: str, asgname: str) -> Any:
        _require(environment=environment, asgname=asgname)
        return self._get("asgs", asgname, params={"environment": environment})

    def get_asg_ready(self, environment: str, asgname: str) -> Any:
        _require(environment=environment, asgname=asgname)
        return self._get("asgs", asgname, "ready", params={"environment": environment})

    def get_asg_ips(self, environment: str, asgname: str) -> Any:
        """Get IPs associated with an ASG."""
        _require(environment=environment, asgname=asgname)
        return self._get("asgs", asgname, "ips", params={"environment": environment})

    def get_asg_scaling_schedule(self, environment: str, asgname: str) -> Any:
        _require(environment=environment, asgname=asgname)
        return self._get(
            "asgs",
            asgname,
            "scaling-schedule",
            params={"environment": environment},
        )

    def get_asg_launch_config(self, environment: str, asgname: str) -> Any:
        _require(environment=environment, asgname=asgname)
        return self._get(
            "asgs",
            asgname,
            "launch-config",
            params={"environment": environment},
        )

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def get_audit_config(
        self,
        since_date: str | None = None,
        until_date: str | None = None,
    ) -> Any:
        """Get audit history, optionally bounded by date."""
        return self._get(
            "config",
            "audit",
            params={"since_date": since_date, "until": until_date},
        )

    def get_audit_key_config(self, key: str) -> Any:
        _require(key=key)
        return self._get("config", "audit", key)

    # ------------------------------------------------------------------
    # Cluster
    # ------------------------------------------------------------------

    def get_clusters_config(self) -> Any:
        """Get config of clusters (teams)."""
        return self._get("config", "clusters")

    def get_cluster_config(self, cluster: str) -> Any:
        _require(cluster=cluster)
        return self._get("config", "clusters", cluster)

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    def get_deployments(self) -> Any:
        return self._get("deployments")

    def get_deployment(self, deployment_id: str) -> Any:
        _require(deployment_id=deployment_id)
        return self._get("deployments", deployment_id)

    def get_deployment_log(
        self,
        deployment_id: str,
        instance: str,
        account: str = DEFAULT_ACCOUNT,
    ) -> Any:
        """Get the log of one deployment on one instance."""
        _require(deployment_id=deployment_id, instance=instance, account=account)
        return self._get(
            "deployments",
            deployment_id,
            "log",
            params={"account": account, "instance": instance},
        )

    # ------------------------------------------------------------------
    # Deployment map
    # ------------------------------------------------------------------

    def get_deployment_maps(self) -> Any:
        return self._get("config", "deployment-maps")

    def get_deployment_map(self, deployment_name: str) -> Any:
        _require(deployment_name=deployment_name)
        return self._get("config", "deployment-maps", deployment_name)

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    def get_environments(self) -> Any:
        return self._get("environments")

    def get_environment(self, environment: str) -> Any:
        _require(environment=environment)
        return self._get("environments", environment)

    def get_environment_servers(self, environment: str) -> Any:
        _require(environment=environment)
        return self._get("environments", environment, "servers")

    def get_environment_asg_servers(self, environment: str, asgname: str) -> Any:
        """Get servers belonging to one ASG of an environment."""
        _require(environment=environment, asgname=asgname)
        return self._get("environments", environment, "servers", asgname)

    def get_environment_schedule(self, environment: str) -> Any:
        _require(environment=environment)
        return self._get("environments", environment, "schedule")

    def get_environment_account_name(self, environment: str) -> Any:
        _require(environment=environment)
        return self._get("environments", environment, "accountName")

    def get_environment_schedule_status(
        self,
        environment: str,
        at_time: str | None = None,
    ) -> Any:
        """Get schedule status of an environment, now or at a given time."""
        _require(environment=environment)
        return self._get(
            "environments",
            environment,
            "schedule-status",
            params={"at": at_time},
        )

    def get_environments_config(
        self,
        environment_type: str | None = None,
        cluster: str | None = None,
    ) -> Any:
        """Get config for all environments, optionally filtered."""
        return self._get(
            "config",
            "environments",
            params={"environmentType": environment_type, "cluster": cluster},
        )

    def get_environment_config(self, environment: str) -> Any:
        _require(environment=environment)
        return self._get("config", "environments", environment)

    # ------------------------------------------------------------------
    # Environment type
    # ------------------------------------------------------------------

    def get_environmenttypes_config(self) -> Any:
        return self._get("config", "environment-types")

    def get_environmenttype_config(self, environment_type: str) -> Any:
        _require(environment_type=environment_type)
        return self._get("config", "environment-types", environment_type)

    # ------------------------------------------------------------------
    # Instance
    # ------------------------------------------------------------------

    def get_instances(self) -> Any:
        return self._get("instances")

    def get_instance(self, instance_id: str) -> Any:
        _require(instance_id=instance_id)
        return self._get("instances", instance_id)

    # ------------------------------------------------------------------
    # Load balancer settings
    # ------------------------------------------------------------------

    def get_lbsettings_config(self) -> Any:
        return self._get("config", "lb-settings")

    def get_lbsettings_vhost_config(self, environment: str, vhostname: str) -> Any:
        """Get load balancer config for one virtual host."""
        _require(environment=environment, vhostname=vhostname)
        return self._get("config", "lb-settings", environment, vhostname)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def get_permissions_config(self) -> Any:
        return self._get("config", "permissions")

    def get_permission_config(self, name: str) -> Any:
        _require(name=name)
        return self._get("config", "permissions", name)

    # ------------------------------------------------------------------
    # Service
    # ------------------------------------------------------------------

    def get_services(self) -> Any:
        """Get currently deployed services."""
        return self._get("services")

    def get_service(self, service: str) -> Any:
        _require(service=service)
        return self._get("services", service)

    def get_service_health(self, service: str, environment: str) -> Any:
        _require(service=service, environment=environment)
        return self._get(
            "services",
            service,
            "health",
            params={"environment": environment},
        )

    def get_service_slices(self, service: str) -> Any:
        _require(service=service)
        return self._get("services", service, "slices")

    def get_services_config(self) -> Any:
        return self._get("config", "services")

    def get_service_config(self, service: str, cluster: str) -> Any:
        """Get service config as owned by one cluster (team)."""
        _require(service=service, cluster=cluster)
        return self._get("config", "services", service, cluster)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Any:
        """Get the control plane's own health check."""
        return self._get("diagnostics", "healthcheck")

    # ------------------------------------------------------------------
    # Target state
    # ------------------------------------------------------------------

    def get_target_state(self, environment: str) -> Any:
        _require(environment=environment)
        return self._get("target-state", environment)

    # ------------------------------------------------------------------
    # Upstream
    # ------------------------------------------------------------------

    def get_upstream_slices(self, upstream: str) -> Any:
        _require(upstream=upstream)
        return self._get("upstreams", upstream, "slices")

    def get_upstreams_config(self) -> Any:
        return self._get("config", "upstreams")

    def get_upstream_config(self, upstream: str, account: str = DEFAULT_ACCOUNT) -> Any:
        _require(upstream=upstream, account=account)
        return self._get("config", "upstreams", upstream, params={"account": account})


def create_client(
    config_path: str | None = None,
    transport: httpx.BaseTransport | None = None,
) -> EnvironmentManagerApi:
    """Create a client using a config path or environment default."""
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR, "/config.json")
    config = load_config(resolved_path)
    configure_logging(config.log_level)
    client = EnvironmentManagerApi.from_config(config, transport=transport)
    logger.info(
        "Created Environment Manager client",
        server=client.server,
        token_endpoint=config.token_endpoint.value,
    )
    return client
