"""Airwallex API client core package.

This package provides the resilient HTTP layer used by the CLI to call
the Airwallex REST API. It includes bearer token management, a circuit
breaker, method-aware retries with Retry-After support, and idempotency
keys for financially sensitive operations.

:var __version__: Current package version
:type __version__: str
"""

__version__ = "0.1.0"

from .exceptions import (  # noqa: E402
    APIError,
    AuthenticationError,
    AwxClientError,
    CircuitBreakerOpenError,
    ConfigurationError,
    RateLimitError,
)
from .utils.http_client import APIClient  # noqa: E402

__all__ = [
    "APIClient",
    "APIError",
    "AuthenticationError",
    "AwxClientError",
    "CircuitBreakerOpenError",
    "ConfigurationError",
    "RateLimitError",
    "__version__",
]
