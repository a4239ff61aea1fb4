"""Bearer token management for the Airwallex API.

The token manager owns the cached bearer token and its expiry. Callers
ask for a valid token before every API call; the manager refreshes it
through the login endpoint when it is missing or about to expire.

The cache is an immutable ``TokenCache`` that is swapped, never mutated.
Refreshes are serialized by a lock and re-check freshness once acquired,
so concurrent callers that find an expired token share one refresh and
all observe the same token afterwards.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from pydantic import ValidationError

from ..exceptions import APIError, AuthenticationError
from ..models import Credential, ErrorBody, LoginResponse, TokenCache

logger = logging.getLogger(__name__)

LOGIN_PATH = "/api/v1/authentication/login"
LOGIN_METHOD = "POST"
TOKEN_REFRESH_BUFFER = 60.0


class TokenManager:
    """Own the bearer credential cache for one API client.

    :param credential: Client ID and API key
    :type credential: Credential
    :param http_client: HTTP client used for the login call
    :type http_client: httpx.AsyncClient
    :param base_url: API base URL
    :type base_url: str
    :param refresh_buffer: Seconds before expiry at which a token is stale
    :type refresh_buffer: float
    """

    def __init__(
        self,
        credential: Credential,
        http_client: httpx.AsyncClient,
        base_url: str,
        refresh_buffer: float = TOKEN_REFRESH_BUFFER,
    ):
        self.credential = credential
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.refresh_buffer = refresh_buffer
        self._cache: Optional[TokenCache] = None
        self._refresh_lock = asyncio.Lock()

    @property
    def login_url(self) -> str:
        return self.base_url + LOGIN_PATH

    @property
    def cache(self) -> Optional[TokenCache]:
        """The current token cache, or None before the first login."""
        return self._cache

    def set_cache(self, cache: Optional[TokenCache]) -> None:
        """Replace the token cache, e.g. with a token restored from storage."""
        self._cache = cache

    def _fresh_token(self) -> Optional[str]:
        cache = self._cache
        if cache is not None and cache.is_fresh(self.refresh_buffer):
            return cache.token
        return None

    async def ensure_valid_token(self) -> str:
        """Return a token that is valid for the next operation.

        :return: Bearer token
        :rtype: str
        :raises AuthenticationError: If a refresh was needed and failed
        """
        token = self._fresh_token()
        if token is not None:
            return token
        return await self.fetch_token()

    async def fetch_token(self, force: bool = False) -> str:
        """Obtain a new token from the login endpoint.

        Unless ``force`` is set, a token refreshed by a concurrent caller
        while this one waited for the lock is returned instead.

        :param force: Refresh even if the cached token is still fresh
        :type force: bool
        :return: Bearer token
        :rtype: str
        :raises AuthenticationError: On transport failure, a non-success
                                     status, or an unreadable response
        """
        async with self._refresh_lock:
            if not force:
                token = self._fresh_token()
                if token is not None:
                    return token
            cache = await self._login()
            self._cache = cache
            return cache.token

    async def _login(self) -> TokenCache:
        url = self.login_url
        headers = {
            "Content-Type": "application/json",
            "x-client-id": self.credential.client_id,
            "x-api-key": self.credential.api_key.get_secret_value(),
        }
        if self.credential.account_id:
            headers["x-login-as"] = self.credential.account_id

        try:
            response = await self.http_client.request(LOGIN_METHOD, url, headers=headers)
        except httpx.TransportError as e:
            raise AuthenticationError(
                f"authentication failed: {e}", method=LOGIN_METHOD, url=url
            ) from e

        if response.status_code not in (200, 201):
            body = ErrorBody.parse(response.content)
            api_error = APIError.from_body(body, status_code=response.status_code)
            raise AuthenticationError(
                f"authentication failed: {api_error.describe()}",
                method=LOGIN_METHOD,
                url=url,
                status_code=response.status_code,
                api_error=body,
            )

        try:
            login = LoginResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise AuthenticationError(
                f"authentication failed: invalid login response: {e.error_count()} error(s)",
                method=LOGIN_METHOD,
                url=url,
                status_code=response.status_code,
            ) from e

        expires_in = login.expires_at - datetime.now(timezone.utc)
        logger.debug("Refreshed API token (expires in %s)", expires_in)
        return TokenCache(token=login.token, expires_at=login.expires_at)
