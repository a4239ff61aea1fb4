"""Log sanitization and secure logging setup.

Bearer tokens and API keys travel in every request this client makes.
This module keeps them out of logs:
- Pattern-based redaction of tokens and keys in arbitrary strings
- Header and URL sanitization for request debug logging
- A logging formatter that sanitizes every record
"""

import copy
import logging
import re
import sys
from typing import Any, Dict

SENSITIVE_PATTERNS = {
    "jwt_token": re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"),
    "bearer_token": re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE),
    "api_key": re.compile(r"\b[A-Za-z0-9]{64,}\b"),
}

# Headers that should never be logged
SENSITIVE_HEADERS = {
    "authorization",
    "x-api-key",
    "x-client-id",
    "cookie",
    "set-cookie",
}

SENSITIVE_QUERY_PARAMS = ("token", "key", "secret", "password", "api_key")


def sanitize_string(value: str) -> str:
    """Redact tokens and keys embedded in a string.

    :param value: String to sanitize
    :type value: str
    :return: String with each sensitive match replaced by a marker
    :rtype: str
    """
    if not value:
        return value
    for name, pattern in SENSITIVE_PATTERNS.items():
        value = pattern.sub(f"<{name}:REDACTED>", value)
    return value


def sanitize_headers(headers: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize HTTP headers for logging.

    :param headers: Mapping of HTTP headers
    :type headers: Dict[str, Any]
    :return: Copy with sensitive header values redacted
    :rtype: Dict[str, Any]
    """
    if not headers:
        return headers
    sanitized = copy.deepcopy(dict(headers))
    for key, value in sanitized.items():
        if key.lower() in SENSITIVE_HEADERS:
            if isinstance(value, str) and value:
                sanitized[key] = f"<REDACTED:length={len(value)}>"
            else:
                sanitized[key] = "<REDACTED>"
        elif isinstance(value, str):
            sanitized[key] = sanitize_string(value)
    return sanitized


def sanitize_url(url: str) -> str:
    """Redact sensitive query parameters from a URL."""
    if not url:
        return url
    for param in SENSITIVE_QUERY_PARAMS:
        url = re.sub(rf"([?&]{param}=)[^&\s]+", r"\1<REDACTED>", url, flags=re.IGNORECASE)
    return url


class SanitizingFormatter(logging.Formatter):
    """Formatter that redacts sensitive data from every record."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the record after sanitizing its message and arguments.

        :param record: Log record to format
        :type record: logging.LogRecord
        :return: Sanitized log line
        :rtype: str
        """
        if record.args:
            try:
                record.msg = sanitize_string(record.msg % record.args)
                record.args = None
            except (TypeError, ValueError):
                record.msg = sanitize_string(str(record.msg))
                if isinstance(record.args, tuple):
                    record.args = tuple(
                        sanitize_string(a) if isinstance(a, str) else a
                        for a in record.args
                    )
        else:
            record.msg = sanitize_string(str(record.msg))
        return super().format(record)


_LOGGING_CONFIGURED = False


def setup_secure_logging(level: str = "INFO") -> None:
    """Set up root logging with automatic sanitization.

    Safe to call more than once; only the first call installs handlers.

    :param level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    :type level: str
    """
    global _LOGGING_CONFIGURED

    if _LOGGING_CONFIGURED:
        logging.getLogger(__name__).debug("Logging already configured")
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        SanitizingFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )

    # httpx logs full request lines at INFO; keep them at WARNING unless debugging.
    if level.upper() != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)

    _LOGGING_CONFIGURED = True
