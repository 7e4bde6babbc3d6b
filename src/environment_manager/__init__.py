"""Environment Manager client.

Python client for the Environment Manager control plane: authenticated,
retrying HTTPS queries plus one method per resource endpoint.
"""

from .api import HttpMethod, TokenEndpoint
from .api.errors import (
    AuthenticationError,
    DecodeError,
    EnvironmentManagerError,
    InvalidRequestError,
    MissingParameterError,
    NotFoundError,
    RetriesExhaustedError,
    TransportError,
)
from .client import EnvironmentManagerApi, create_client
from .config import ClientConfig, configure_logging, load_config

__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "ClientConfig",
    "DecodeError",
    "EnvironmentManagerApi",
    "EnvironmentManagerError",
    "HttpMethod",
    "InvalidRequestError",
    "MissingParameterError",
    "NotFoundError",
    "RetriesExhaustedError",
    "TokenEndpoint",
    "TransportError",
    "configure_logging",
    "create_client",
    "load_config",
]
