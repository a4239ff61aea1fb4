"""Pydantic models for Airwallex API error bodies.

The API returns JSON error bodies with at least ``code`` and ``message``.
Validation failures add field-level errors, either at the top level
(``errors``) or nested under ``details``. ``details`` itself may also be
a plain string for errors such as ``access_denied``.

Parsed values are truncated so that oversized upstream messages never
reach logs or terminal output verbatim.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

MAX_MESSAGE_LENGTH = 500
MAX_CODE_LENGTH = 100
MAX_SOURCE_LENGTH = 200
MAX_FIELD_ERRORS = 20

UNKNOWN_ERROR_CODE = "unknown_error"


def _truncate(value: str, limit: int, ellipsis: bool = False) -> str:
    if len(value) <= limit:
        return value
    return value[:limit] + ("..." if ellipsis else "")


class FieldError(BaseModel):
    """A single field validation error reported by the API.

    :param source: Name of the offending request field
    :type source: str
    :param code: Machine-readable error code
    :type code: str
    :param message: Optional human-readable message
    :type message: str
    :param params: Optional extra parameters (e.g. ``value_options``)
    :type params: Optional[Dict[str, Any]]
    """

    source: str = ""
    code: str = ""
    message: str = ""
    params: Optional[Dict[str, Any]] = None

    @field_validator("source", "code", "message", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def sanitized(self) -> "FieldError":
        return self.model_copy(
            update={
                "source": _truncate(self.source, MAX_SOURCE_LENGTH),
                "code": _truncate(self.code, MAX_CODE_LENGTH),
                "message": _truncate(self.message, MAX_MESSAGE_LENGTH, True),
            }
        )

    def describe(self) -> str:
        """Return the message shown for this field error."""
        if self.message:
            return self.message
        if self.params and "value_options" in self.params:
            return f"must be one of: {self.params['value_options']}"
        return f"error code {self.code}"


class ErrorDetails(BaseModel):
    """The ``details`` member of an error body.

    Either ``text`` (details sent as a string) or ``errors`` (details sent
    as ``{"errors": [...]}``) is populated, never both.
    """

    text: str = ""
    errors: List[FieldError] = Field(default_factory=list)


class ErrorBody(BaseModel):
    """Decoded Airwallex error response body."""

    code: str = ""
    message: str = ""
    source: str = ""
    errors: List[FieldError] = Field(default_factory=list)
    details: Optional[ErrorDetails] = None

    @field_validator("code", "message", "source", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        """Treat JSON null like an absent string field."""
        return "" if value is None else value

    @field_validator("errors", mode="before")
    @classmethod
    def null_as_no_errors(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("details", mode="before")
    @classmethod
    def coerce_details(cls, value: Any) -> Any:
        """Accept ``details`` as a string or an object with ``errors``.

        Any other shape is dropped rather than failing the whole body.
        """
        if value is None or isinstance(value, ErrorDetails):
            return value
        if isinstance(value, str):
            return {"text": value}
        if isinstance(value, dict):
            errors = value.get("errors")
            if isinstance(errors, list):
                return {"errors": errors}
            return {}
        return None

    @property
    def field_errors(self) -> List[FieldError]:
        """Top-level field errors, falling back to those nested in details."""
        if self.errors:
            return self.errors
        if self.details is not None:
            return self.details.errors
        return []

    @property
    def details_text(self) -> str:
        return self.details.text if self.details is not None else ""

    @classmethod
    def parse(cls, body: bytes) -> "ErrorBody":
        """Parse and sanitize a raw error body.

        :param body: Raw response body bytes
        :type body: bytes
        :return: Sanitized error body; never raises
        :rtype: ErrorBody
        """
        try:
            data = json.loads(body)
            if not isinstance(data, dict):
                raise ValueError("error body is not a JSON object")
            parsed = cls.model_validate(data)
        except (ValueError, ValidationError):
            return cls(
                code=UNKNOWN_ERROR_CODE,
                message="An error occurred processing the API response",
            )

        parsed = parsed.sanitized()
        if not parsed.code and not parsed.message:
            return cls(
                code=UNKNOWN_ERROR_CODE,
                message="An error occurred but no details were provided",
            )
        return parsed

    def sanitized(self) -> "ErrorBody":
        details = self.details
        if details is not None:
            details = ErrorDetails(
                text=_truncate(details.text, MAX_MESSAGE_LENGTH, True),
                errors=[e.sanitized() for e in details.errors[:MAX_FIELD_ERRORS]],
            )
        return ErrorBody(
            code=_truncate(self.code, MAX_CODE_LENGTH),
            message=_truncate(self.message, MAX_MESSAGE_LENGTH, True),
            source=_truncate(self.source, MAX_SOURCE_LENGTH),
            errors=[e.sanitized() for e in self.errors[:MAX_FIELD_ERRORS]],
            details=details,
        )
