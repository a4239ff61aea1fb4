"""Data models for the Airwallex client core."""

from .api_errors import ErrorBody, ErrorDetails, FieldError
from .base_models import Credential, LoginResponse, TokenCache, parse_timestamp

__all__ = [
    "Credential",
    "ErrorBody",
    "ErrorDetails",
    "FieldError",
    "LoginResponse",
    "TokenCache",
    "parse_timestamp",
]
