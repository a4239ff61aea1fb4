"""HTTP transport construction with connection pooling and TLS policy.

This module builds the ``httpx.AsyncClient`` used by the API client. It
enforces TLS 1.2 or newer with full certificate and hostname
verification, and bounds the connection pool so the client behaves well
under sustained concurrent use.

Each API client owns its transport; there is no process-wide client.
"""

import logging
import ssl
from typing import Optional

import httpx

from ...config.settings import Settings

logger = logging.getLogger(__name__)


def create_timeout(
    timeout: float = 30.0,
    connect: Optional[float] = 5.0,
) -> httpx.Timeout:
    """Create a timeout configuration object.

    :param timeout: Default timeout for read, write and pool, in seconds
    :type timeout: float
    :param connect: Connection timeout in seconds
    :type connect: Optional[float]
    :return: Configured timeout object
    :rtype: httpx.Timeout
    """
    return httpx.Timeout(timeout, connect=connect)


def create_limits(
    max_keepalive_connections: int = 100,
    max_connections: int = 10,
    keepalive_expiry: float = 90.0,
) -> httpx.Limits:
    """Create a connection limits configuration object.

    The client talks to a single host, so ``max_connections`` is
    effectively the per-host limit.

    :param max_keepalive_connections: Maximum number of idle connections
    :type max_keepalive_connections: int
    :param max_connections: Maximum total number of connections
    :type max_connections: int
    :param keepalive_expiry: Idle connection expiry time in seconds
    :type keepalive_expiry: float
    :return: Configured limits object
    :rtype: httpx.Limits
    """
    return httpx.Limits(
        max_keepalive_connections=max_keepalive_connections,
        max_connections=max_connections,
        keepalive_expiry=keepalive_expiry,
    )


def limits_from_settings(settings: Settings) -> httpx.Limits:
    """Build connection limits from the pool settings."""
    return create_limits(
        max_keepalive_connections=settings.max_idle_connections,
        max_connections=settings.max_connections_per_host,
        keepalive_expiry=settings.idle_connection_timeout,
    )


def create_ssl_context() -> ssl.SSLContext:
    """Create the TLS context used for every API connection.

    :return: Context requiring TLS 1.2+, certificates and hostname checks
    :rtype: ssl.SSLContext
    """
    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.verify_mode = ssl.CERT_REQUIRED
    context.check_hostname = True
    return context


def create_http_client(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    ssl_context: Optional[ssl.SSLContext] = None,
) -> httpx.AsyncClient:
    """Create the pooled async HTTP client for the API.

    :param settings: Client settings supplying timeouts and pool sizes
    :type settings: Settings
    :param transport: Optional transport override (e.g. a mock in tests)
    :type transport: Optional[httpx.AsyncBaseTransport]
    :param ssl_context: Optional TLS context; created if not given
    :type ssl_context: Optional[ssl.SSLContext]
    :return: Configured HTTP client
    :rtype: httpx.AsyncClient
    """
    limits = limits_from_settings(settings)
    if transport is None:
        transport = httpx.AsyncHTTPTransport(
            verify=ssl_context or create_ssl_context(),
            limits=limits,
        )
    logger.debug(
        "Creating HTTP client (max_connections=%d, keepalive=%d, expiry=%.0fs)",
        settings.max_connections_per_host,
        settings.max_idle_connections,
        settings.idle_connection_timeout,
    )
    return httpx.AsyncClient(
        timeout=create_timeout(settings.http_timeout),
        limits=limits,
        transport=transport,
        follow_redirects=False,
    )
