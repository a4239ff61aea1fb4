"""Resilient HTTP client for the Airwallex API.

This module provides the single entry point that the resource wrappers
use to talk to the API. One logical call:

1. Ensures a valid bearer token, refreshing it if needed
2. Fails fast if the circuit breaker is open
3. Attaches the bearer token, API version header and, for financial
   POST operations, an idempotency key
4. Sends the request through the retry policy, replaying the buffered
   body verbatim on every attempt
5. Records each attempt's outcome in the circuit breaker

Examples:
    >>> async with APIClient.from_settings() as client:
    ...     response = await client.get("/api/v1/balances/current")
"""

import asyncio
import json
import logging
import ssl
import time
from typing import Any, Dict, Iterable, Optional

import httpx

from ..auth.token_manager import TokenManager
from ..config.settings import DEFAULT_API_VERSION, DEFAULT_BASE_URL, Settings
from ..config.settings import settings as default_settings
from ..config.settings import validate_base_url
from ..exceptions import (
    AuthenticationError,
    CircuitBreakerOpenError,
    ConfigurationError,
    normalize_api_error,
)
from ..models import Credential, ErrorBody
from .http.circuit_breaker import CircuitBreaker
from .http.client_manager import (
    create_http_client,
    create_ssl_context,
    limits_from_settings,
)
from .http.idempotency import (
    IDEMPOTENCY_HEADER,
    generate_idempotency_key,
    requires_idempotency_key,
)
from .http.retry import RetryAfter, RetryPolicy
from .security import sanitize_headers, sanitize_url, setup_secure_logging

logger = logging.getLogger(__name__)

API_VERSION_HEADER = "x-api-version"


class APIClient:
    """Resilient, token-authenticated client for the Airwallex API.

    Token cache and circuit breaker state live on the instance, so
    several independently configured clients can coexist. A single
    instance is safe to share between concurrent tasks.

    :param client_id: Airwallex client ID
    :type client_id: str
    :param api_key: Airwallex API key
    :type api_key: str
    :param account_id: Optional account to log in as
    :type account_id: Optional[str]
    :param base_url: API base URL
    :type base_url: str
    :param settings: Tuning for timeouts, retries, breaker and pool
    :type settings: Optional[Settings]
    :param transport: Optional transport override, mainly for tests
    :type transport: Optional[httpx.AsyncBaseTransport]
    :param require_https: Reject plain HTTP base URLs
    :type require_https: bool
    :raises ConfigurationError: If credentials or base URL are invalid
    """

    def __init__(
        self,
        client_id: str,
        api_key: str,
        account_id: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        require_https: bool = True,
    ):
        if not client_id:
            raise ConfigurationError("client ID is required", setting="AWX_CLIENT_ID")
        if not api_key:
            raise ConfigurationError("API key is required", setting="AWX_API_KEY")
        try:
            self.base_url = validate_base_url(base_url, require_https=require_https)
        except ValueError as e:
            raise ConfigurationError(str(e), setting="AWX_BASE_URL") from e

        self.settings = settings or default_settings
        self.api_version = self.settings.api_version or DEFAULT_API_VERSION
        self.operation_timeout = self.settings.operation_timeout
        self.credential = Credential(
            client_id=client_id, api_key=api_key, account_id=account_id
        )

        self.ssl_context: ssl.SSLContext = create_ssl_context()
        self.limits = limits_from_settings(self.settings)
        self.http_client = create_http_client(
            self.settings, transport=transport, ssl_context=self.ssl_context
        )
        self.token_manager = TokenManager(
            self.credential,
            self.http_client,
            self.base_url,
            refresh_buffer=self.settings.token_refresh_buffer,
        )
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=self.settings.circuit_breaker_threshold,
            reset_timeout=self.settings.circuit_breaker_reset_timeout,
        )
        self.retry_policy = RetryPolicy(
            max_rate_limit_retries=self.settings.max_rate_limit_retries,
            max_server_error_retries=self.settings.max_server_error_retries,
            rate_limit_base_delay=self.settings.rate_limit_base_delay,
            server_error_retry_delay=self.settings.server_error_retry_delay,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "APIClient":
        """Create a client from configuration.

        Installs sanitized logging at ``settings.log_level`` only when the
        root logger has no handlers yet; a host application's logging
        setup is left as is.

        :param settings: Settings to use; the global settings by default
        :type settings: Optional[Settings]
        :param transport: Optional transport override
        :type transport: Optional[httpx.AsyncBaseTransport]
        :return: Configured client
        :rtype: APIClient
        :raises ConfigurationError: If credentials are missing
        """
        settings = settings or default_settings
        if not settings.client_id:
            raise ConfigurationError(
                "AWX_CLIENT_ID is not set", setting="AWX_CLIENT_ID"
            )
        if settings.api_key is None or not settings.api_key.get_secret_value():
            raise ConfigurationError("AWX_API_KEY is not set", setting="AWX_API_KEY")
        if not logging.getLogger().handlers:
            setup_secure_logging(settings.log_level)
        return cls(
            client_id=settings.client_id,
            api_key=settings.api_key.get_secret_value(),
            account_id=settings.account_id,
            base_url=settings.base_url,
            settings=settings,
            transport=transport,
        )

    async def __aenter__(self) -> "APIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client and its connection pool."""
        await self.http_client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Perform one logical API call.

        The response is returned for every completed exchange, including
        4xx responses and 429/5xx responses left over once retries are
        exhausted; see ``request_json`` for typed errors.

        :param method: HTTP method
        :type method: str
        :param path: Path relative to the base URL, e.g. ``/api/v1/transfers``
        :type path: str
        :param body: Optional JSON-serializable request body
        :type body: Any
        :param params: Optional query parameters
        :type params: Optional[Dict[str, Any]]
        :return: The final HTTP response
        :rtype: httpx.Response
        :raises AuthenticationError: If a valid token cannot be obtained
        :raises CircuitBreakerOpenError: If the circuit breaker is open
        :raises httpx.TransportError: On connection-level failures
        :raises asyncio.TimeoutError: If the operation timeout elapses
        """
        call = self._request(method.upper(), path, body, params)
        if self.operation_timeout is not None:
            return await asyncio.wait_for(call, timeout=self.operation_timeout)
        return await call

    async def _request(
        self,
        method: str,
        path: str,
        body: Any,
        params: Optional[Dict[str, Any]],
    ) -> httpx.Response:
        try:
            token = await self.token_manager.ensure_valid_token()
        except AuthenticationError:
            logger.debug("Token refresh failed for %s %s", method, path)
            raise

        if self.circuit_breaker.is_open():
            raise CircuitBreakerOpenError(self.circuit_breaker.consecutive_failures)

        # Serialized once; every attempt sends these exact bytes.
        content = json.dumps(body).encode("utf-8") if body is not None else None

        headers = {
            "Authorization": f"Bearer {token}",
            API_VERSION_HEADER: self.api_version,
            "Content-Type": "application/json",
        }
        if requires_idempotency_key(method, path):
            headers[IDEMPOTENCY_HEADER] = generate_idempotency_key()

        url = self.base_url + path

        async def send_once() -> httpx.Response:
            return await self._send(method, url, headers, content, params)

        return await self.retry_policy.execute(method, send_once)

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        content: Optional[bytes],
        params: Optional[Dict[str, Any]],
    ) -> httpx.Response:
        """Send a single attempt and feed its outcome to the breaker."""
        request = self.http_client.build_request(
            method, url, headers=headers, content=content, params=params
        )
        logger.debug(
            "API request %s %s headers=%s has_body=%s",
            method,
            sanitize_url(str(request.url)),
            sanitize_headers(dict(request.headers)),
            content is not None,
        )

        start = time.monotonic()
        try:
            response = await self.http_client.send(request)
        except httpx.TransportError as e:
            logger.debug("API request failed: %s", e)
            self.circuit_breaker.record_failure()
            raise

        status = response.status_code
        logger.debug(
            "API response %s %s status=%d duration_ms=%d",
            method,
            request.url.path,
            status,
            (time.monotonic() - start) * 1000,
        )
        if status >= 500:
            self.circuit_breaker.record_failure()
        elif 200 <= status < 300:
            self.circuit_breaker.record_success()
        return response

    async def get(self, path: str, **kwargs) -> httpx.Response:
        """Make a GET request."""
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs) -> httpx.Response:
        """Make a POST request."""
        return await self.request("POST", path, body, **kwargs)

    async def put(self, path: str, body: Any = None, **kwargs) -> httpx.Response:
        """Make a PUT request."""
        return await self.request("PUT", path, body, **kwargs)

    async def patch(self, path: str, body: Any = None, **kwargs) -> httpx.Response:
        """Make a PATCH request."""
        return await self.request("PATCH", path, body, **kwargs)

    async def delete(self, path: str, **kwargs) -> httpx.Response:
        """Make a DELETE request."""
        return await self.request("DELETE", path, **kwargs)

    async def request_json(
        self,
        method: str,
        path: str,
        body: Any = None,
        ok_statuses: Iterable[int] = (200,),
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Perform a call and decode its JSON response.

        :param method: HTTP method
        :type method: str
        :param path: Path relative to the base URL
        :type path: str
        :param body: Optional JSON-serializable request body
        :type body: Any
        :param ok_statuses: Status codes treated as success
        :type ok_statuses: Iterable[int]
        :param params: Optional query parameters
        :type params: Optional[Dict[str, Any]]
        :return: Decoded JSON body, or None for an empty body
        :rtype: Any
        :raises AuthenticationError: For 401/403 responses. This is not an
                                     APIError subclass.
        :raises RateLimitError: For 429 responses left after retries
                                (an APIError subclass)
        :raises APIError: For any other non-success status
        """
        method = method.upper()
        response = await self.request(method, path, body, params=params)
        if response.status_code not in set(ok_statuses):
            raise self.error_for_response(method, path, response)
        if not response.content:
            return None
        return response.json()

    @staticmethod
    def error_for_response(method: str, path: str, response: httpx.Response):
        """Build the typed error for an unsuccessful response."""
        body = ErrorBody.parse(response.content)
        retry_after = None
        if response.status_code == 429:
            parsed = RetryAfter.from_response(response)
            if parsed is not None:
                retry_after = parsed.delay()
        return normalize_api_error(
            response.status_code,
            body,
            method=method,
            url=path,
            retry_after=retry_after,
        )
