"""Structured exception classes for the Airwallex client core."""

import json
from typing import Any, Dict, List, Optional

from .models.api_errors import ErrorBody, FieldError


def _with_request_context(
    message: str,
    method: Optional[str],
    url: Optional[str],
    status_code: Optional[int],
) -> str:
    if not method or not url:
        return message
    if status_code is None:
        return f"{method} {url} failed: {message}"
    return f"{method} {url} failed (status {status_code}): {message}"


class AwxClientError(Exception):
    """Base exception for all Airwallex client errors.

    :param message: Human-readable error message
    :param code: Optional error code for programmatic handling
    :param details: Optional dictionary containing additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the exception with message, code, and details."""
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format.

        :return: Dictionary containing error code, message, and details
        """
        return {
            "error": self.code,
            "message": str(self),
            "details": self.details,
        }

    def to_json(self) -> str:
        """Convert exception to JSON string.

        :return: JSON-encoded string representation of the exception
        """
        return json.dumps(self.to_dict())


class ConfigurationError(AwxClientError):
    """Raised for configuration-related errors.

    :param message: Description of the configuration error
    :param setting: Optional name of the problematic setting
    """

    def __init__(self, message: str, setting: Optional[str] = None):
        """Initialize configuration error with message and optional setting."""
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(message=message, code="CONFIGURATION_ERROR", details=details)
        self.setting = setting


class AuthenticationError(AwxClientError):
    """Raised when authentication fails.

    Covers token refresh failures and 401/403 API responses. When the
    failing request is known, its method, URL and status code are kept
    on the exception and included in its string form.

    :param message: Description of the authentication failure
    :param method: HTTP method of the failing request
    :param url: URL of the failing request
    :param status_code: HTTP status code, when a response was received
    :param api_error: Parsed upstream error body, if any
    """

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        api_error: Optional[ErrorBody] = None,
    ):
        """Initialize authentication error with request context."""
        details: Dict[str, Any] = {}
        if method:
            details["method"] = method
        if url:
            details["url"] = url
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message=message, code="AUTHENTICATION_ERROR", details=details)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.api_error = api_error

    def __str__(self) -> str:
        return _with_request_context(
            self.message, self.method, self.url, self.status_code
        )


class APIError(AwxClientError):
    """Raised for structured errors returned by the Airwallex API.

    :param api_code: Error code from the response body
    :param message: Error message from the response body
    :param status_code: HTTP status code
    :param source: Optional request field the error refers to
    :param field_errors: Optional field-level validation errors
    :param details_text: Optional free-text details
    :param method: HTTP method of the failing request
    :param url: Path or URL of the failing request
    """

    def __init__(
        self,
        api_code: str,
        message: str,
        status_code: Optional[int] = None,
        source: str = "",
        field_errors: Optional[List[FieldError]] = None,
        details_text: str = "",
        method: Optional[str] = None,
        url: Optional[str] = None,
    ):
        """Initialize API error with the decoded body and request context."""
        details: Dict[str, Any] = {"api_code": api_code}
        if status_code is not None:
            details["status_code"] = status_code
        if source:
            details["source"] = source
        if field_errors:
            details["field_errors"] = [fe.model_dump() for fe in field_errors]
        super().__init__(message=message, code="API_ERROR", details=details)
        self.api_code = api_code
        self.status_code = status_code
        self.source = source
        self.field_errors = field_errors or []
        self.details_text = details_text
        self.method = method
        self.url = url

    @classmethod
    def from_body(cls, body: ErrorBody, status_code: Optional[int] = None, **kwargs):
        """Build the error from a parsed response body."""
        return cls(
            api_code=body.code,
            message=body.message,
            status_code=status_code,
            source=body.source,
            field_errors=body.field_errors,
            details_text=body.details_text,
            **kwargs,
        )

    def describe(self) -> str:
        """Return the error text without request context."""
        msg = f"{self.api_code}: {self.message}"
        if self.source:
            msg += f" (source: {self.source})"
        if self.details_text and self.details_text != self.message:
            msg += f" (details: {self.details_text})"
        if self.field_errors:
            msg += "\nField errors:"
            for fe in self.field_errors:
                msg += f"\n  - {fe.source}: {fe.describe()}"
        return msg

    def __str__(self) -> str:
        return _with_request_context(
            self.describe(), self.method, self.url, self.status_code
        )


class RateLimitError(APIError):
    """Raised when rate limiting persists after all retries.

    :param retry_after: Seconds the server asked the client to wait, if known
    """

    def __init__(self, *args, retry_after: Optional[float] = None, **kwargs):
        """Initialize rate limit error with optional Retry-After value."""
        kwargs.setdefault("status_code", 429)
        super().__init__(*args, **kwargs)
        self.code = "RATE_LIMIT_ERROR"
        self.retry_after = retry_after
        if retry_after is not None:
            self.details["retry_after"] = retry_after


class CircuitBreakerOpenError(AwxClientError):
    """Raised when the circuit breaker rejects a call.

    No request is sent while the breaker is open; callers can apply
    their own backoff or alerting.
    """

    def __init__(self, failures: Optional[int] = None):
        """Initialize circuit breaker error with the observed failure count."""
        details = {}
        if failures is not None:
            details["consecutive_failures"] = failures
        super().__init__(
            message="circuit breaker is open, too many recent failures",
            code="CIRCUIT_BREAKER_OPEN",
            details=details,
        )


def normalize_api_error(
    status_code: int,
    body: ErrorBody,
    method: Optional[str] = None,
    url: Optional[str] = None,
    retry_after: Optional[float] = None,
) -> AwxClientError:
    """Map an error response to the most specific exception type.

    401/403 become AuthenticationError, 429 becomes RateLimitError and
    everything else an APIError.
    """
    if status_code in (401, 403):
        return AuthenticationError(
            message=body.message,
            method=method,
            url=url,
            status_code=status_code,
            api_error=body,
        )
    if status_code == 429:
        return RateLimitError.from_body(
            body,
            status_code=status_code,
            method=method,
            url=url,
            retry_after=retry_after,
        )
    return APIError.from_body(body, status_code=status_code, method=method, url=url)


def is_not_found_error(error: Optional[BaseException]) -> bool:
    """Return whether the error indicates a missing resource."""
    if error is None:
        return False
    if isinstance(error, APIError):
        if error.status_code == 404:
            return True
        return error.api_code in (
            "not_found",
            "resource_not_found",
        ) or "not found" in error.message.lower()
    return "not found" in str(error).lower()
