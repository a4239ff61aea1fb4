"""Shared Pydantic models for the Airwallex client core.

The models provide type safety and validation for:
- API credentials
- Cached bearer tokens and their freshness
- The login endpoint response
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, SecretStr, field_validator

# Vendor timestamps may omit the colon in the UTC offset
# ("2025-12-17T08:25:19+0000").
_VENDOR_TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
)


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC3339 or vendor-style timestamp into an aware datetime.

    :param value: Timestamp string from the API
    :type value: str
    :return: Timezone-aware datetime (UTC assumed when no offset is given)
    :rtype: datetime
    :raises ValueError: If the value matches no supported format
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = None
        for fmt in _VENDOR_TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            raise ValueError(f"unsupported timestamp format: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Credential(BaseModel):
    """Client identifier and API key used to obtain bearer tokens.

    Immutable for the lifetime of a client.

    :param client_id: Airwallex client ID
    :type client_id: str
    :param api_key: Airwallex API key
    :type api_key: SecretStr
    :param account_id: Optional account to log in as (multi-account keys)
    :type account_id: Optional[str]
    """

    model_config = ConfigDict(frozen=True)

    client_id: str
    api_key: SecretStr
    account_id: Optional[str] = None


class TokenCache(BaseModel):
    """A bearer token together with its expiry.

    Instances are frozen; a refresh replaces the cache rather than
    mutating it.
    """

    model_config = ConfigDict(frozen=True)

    token: str
    expires_at: datetime

    def is_fresh(self, buffer_seconds: float = 60.0, now: Optional[datetime] = None) -> bool:
        """Return whether the token is usable for the next operation.

        A token is usable only if ``now + buffer < expires_at``.
        """
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now + timedelta(seconds=buffer_seconds) < expires_at


class LoginResponse(BaseModel):
    """Body returned by the authentication login endpoint."""

    token: str
    expires_at: datetime

    @field_validator("expires_at", mode="before")
    @classmethod
    def parse_expires_at(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_timestamp(value)
        return value
