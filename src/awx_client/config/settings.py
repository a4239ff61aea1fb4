"""Configuration settings for the Airwallex client core.

This module defines the configuration settings for the client, including
credentials, API endpoint, retry and circuit breaker tuning, and
connection pool sizing. Settings are loaded from ``AWX_``-prefixed
environment variables and .env files.
"""

from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://api.airwallex.com"
DEFAULT_API_VERSION = "2025-11-11"


def validate_base_url(url: str, require_https: bool = True) -> str:
    """Validate an API base URL.

    :param url: Base URL to validate
    :type url: str
    :param require_https: Reject plain ``http://`` URLs when True
    :type require_https: bool
    :return: The URL without a trailing slash
    :rtype: str
    :raises ValueError: If the URL is empty or uses an unsupported scheme
    """
    if not url:
        raise ValueError("api base URL cannot be empty")
    if url.startswith("https://"):
        return url.rstrip("/")
    if require_https:
        raise ValueError("api base URL must use HTTPS")
    if url.startswith("http://"):
        return url.rstrip("/")
    raise ValueError("api base URL must start with http:// or https://")


class Settings(BaseSettings):
    """Client settings loaded from environment variables.

    :param client_id: Airwallex client ID
    :type client_id: Optional[str]
    :param api_key: Airwallex API key
    :type api_key: Optional[SecretStr]
    :param account_id: Account to log in as, for multi-account API keys
    :type account_id: Optional[str]
    :param base_url: Base URL for the Airwallex API
    :type base_url: str
    :param api_version: Value sent in the ``x-api-version`` header
    :type api_version: str
    :param log_level: Logging level for the application
    :type log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    """

    model_config = SettingsConfigDict(
        env_prefix="AWX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Credentials
    client_id: Optional[str] = Field(None, description="Airwallex client ID")
    api_key: Optional[SecretStr] = Field(None, description="Airwallex API key")
    account_id: Optional[str] = Field(
        None, description="Account ID sent as x-login-as on login"
    )

    # API
    base_url: str = Field(DEFAULT_BASE_URL, description="Airwallex API base URL")
    api_version: str = Field(DEFAULT_API_VERSION, description="API version header")

    # Timeouts (seconds)
    http_timeout: float = Field(30.0, gt=0, description="Per-request timeout")
    operation_timeout: Optional[float] = Field(
        45.0,
        gt=0,
        description="Deadline for one logical call, retries included; None disables it",
    )
    token_refresh_buffer: float = Field(
        60.0, ge=0, description="Refresh tokens this long before expiry"
    )

    # Retry policy
    max_rate_limit_retries: int = Field(3, ge=0, description="Retries on 429")
    max_server_error_retries: int = Field(
        1, ge=0, description="Retries on 5xx for idempotent methods"
    )
    rate_limit_base_delay: float = Field(
        1.0, gt=0, description="Initial backoff delay for 429 responses"
    )
    server_error_retry_delay: float = Field(
        1.0, ge=0, description="Fixed delay before retrying a 5xx response"
    )

    # Circuit breaker
    circuit_breaker_threshold: int = Field(
        5, ge=1, description="Consecutive server failures that open the circuit"
    )
    circuit_breaker_reset_timeout: float = Field(
        30.0, ge=0, description="Cooldown before an open circuit closes again"
    )

    # Connection pool
    max_idle_connections: int = Field(100, ge=0, description="Keep-alive pool size")
    max_connections_per_host: int = Field(
        10, ge=1, description="Maximum concurrent connections"
    )
    idle_connection_timeout: float = Field(
        90.0, ge=0, description="Idle keep-alive expiry"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Logging level"
    )

    @field_validator("base_url")
    @classmethod
    def check_base_url(cls, v: str) -> str:
        """Require an HTTPS base URL.

        Plain HTTP is only accepted through the client constructor for
        local test servers, never from configuration.
        """
        return validate_base_url(v, require_https=True)

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v


settings = Settings()
"""Global settings instance.

Created once from the environment. Clients accept an explicit Settings
object, so tests and multiple configurations never depend on it.
"""
