"""Configuration and logging setup for the Environment Manager client."""

import json
import logging
import pathlib

import pydantic
import structlog

from .api import (
    DEFAULT_AUTH_INTERVAL,
    DEFAULT_AUTH_RETRIES,
    DEFAULT_BACKOFF,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    TokenEndpoint,
)

CONFIG_ENV_VAR = "ENVIRONMENT_MANAGER_CONFIG_PATH"


class ClientConfig(pydantic.BaseModel):
    """Configuration for an Environment Manager client."""

    server: str = pydantic.Field(description="Control plane host name, without scheme")
    username: str = pydantic.Field(description="Login user name")
    password: pydantic.SecretStr = pydantic.Field(description="Login password")
    retries: int = pydantic.Field(
        DEFAULT_RETRIES,
        description="Attempts per query",
        gt=0,
    )
    backoff: float = pydantic.Field(
        DEFAULT_BACKOFF,
        description="Seconds to sleep between retryable query failures",
        ge=0,
    )
    auth_retries: int = pydantic.Field(
        DEFAULT_AUTH_RETRIES,
        description="Attempts per token request",
        gt=0,
    )
    auth_interval: float = pydantic.Field(
        DEFAULT_AUTH_INTERVAL,
        description="Seconds to sleep between failed token requests",
        ge=0,
    )
    token_endpoint: TokenEndpoint = pydantic.Field(
        TokenEndpoint.LEGACY,
        description="Login contract of the target server: 'legacy' or 'v1'",
    )
    verify_ssl: bool = pydantic.Field(
        False,
        description="Verify the server's TLS certificate",
    )
    connect_timeout: float = pydantic.Field(
        DEFAULT_CONNECT_TIMEOUT,
        description="Connection timeout in seconds",
        gt=0,
    )
    timeout: float = pydantic.Field(
        DEFAULT_TIMEOUT,
        description="Read timeout in seconds",
        gt=0,
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")


def configure_logging(log_level_name: str) -> None:
    """Route the client's structlog events to stdout as logfmt.

    Events below ``log_level_name`` are dropped; an unknown level name falls
    back to INFO.
    """
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg", "endpoint", "attempt"),
                drop_missing=True,
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str | pathlib.Path) -> ClientConfig:
    """Read Environment Manager client settings from a JSON file.

    The file holds the ``ClientConfig`` fields: at least ``server``,
    ``username`` and ``password``.

    Raises:
        FileNotFoundError: If no file exists at ``config_path``.
        ValueError: If the file is not valid JSON or fails validation.
    """
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = (
            f"Environment Manager client config not found: {config_path} "
            f"(pass a path or set {CONFIG_ENV_VAR})"
        )
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            msg = f"Environment Manager client config {config_path} is not valid JSON: {exc}"
            raise ValueError(msg) from exc

    return ClientConfig(**data)
