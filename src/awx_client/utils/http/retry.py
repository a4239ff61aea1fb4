"""Method-aware retry policy for Airwallex API calls.

This module decides, per HTTP method and response status, whether a
response is retried and how long to wait first:

- 429: up to ``max_rate_limit_retries`` retries for every method. The
  wait honors ``Retry-After`` (delta-seconds or HTTP-date) and otherwise
  uses exponential backoff with jitter.
- 5xx: ``max_server_error_retries`` retries after a fixed delay, for
  idempotent methods (GET, HEAD, OPTIONS) only.
- Anything else is returned as-is.

Waits use ``asyncio.sleep`` so that cancelling the calling task, or
hitting its deadline, interrupts them immediately; no further attempt
is made after that.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

MAX_RATE_LIMIT_RETRIES = 3
MAX_SERVER_ERROR_RETRIES = 1
RATE_LIMIT_BASE_DELAY = 1.0
SERVER_ERROR_RETRY_DELAY = 1.0

# Upper bound on a delta-seconds Retry-After (one day).
MAX_RETRY_AFTER_SECONDS = 86400


def is_idempotent_method(method: str) -> bool:
    """Return whether a method is safe to replay after a server error."""
    return method.upper() in IDEMPOTENT_METHODS


class RetryAfterKind(Enum):
    """How a Retry-After header expressed its wait."""

    DELAY_SECONDS = "delay_seconds"
    HTTP_DATE = "http_date"


@dataclass(frozen=True)
class RetryAfter:
    """A parsed Retry-After header.

    The header is parsed once into either a delay in whole seconds or an
    absolute point in time; ``delay()`` turns either into a wait.
    """

    kind: RetryAfterKind
    seconds: int = 0
    at: Optional[datetime] = None

    @classmethod
    def parse(cls, header: Optional[str]) -> Optional["RetryAfter"]:
        """Parse a raw header value.

        :param header: Header value, or None when absent
        :type header: Optional[str]
        :return: Parsed value, or None if absent or malformed
        :rtype: Optional[RetryAfter]
        """
        value = (header or "").strip()
        if not value:
            return None
        try:
            seconds = int(value)
        except ValueError:
            pass
        else:
            if seconds < 0:
                return None
            return cls(
                kind=RetryAfterKind.DELAY_SECONDS,
                seconds=min(seconds, MAX_RETRY_AFTER_SECONDS),
            )
        try:
            at = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            logger.debug("Ignoring malformed Retry-After header %r", value)
            return None
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        return cls(kind=RetryAfterKind.HTTP_DATE, at=at)

    @classmethod
    def from_response(cls, response: httpx.Response) -> Optional["RetryAfter"]:
        return cls.parse(response.headers.get("retry-after"))

    def delay(self, now: Optional[datetime] = None) -> float:
        """Return the number of seconds to wait, never negative."""
        if self.kind is RetryAfterKind.DELAY_SECONDS:
            return float(self.seconds)
        now = now or datetime.now(timezone.utc)
        return max(0.0, (self.at - now).total_seconds())


@dataclass
class RetryContext:
    """Per-call retry bookkeeping; never shared between calls."""

    http_method: str
    attempt_count: int = 0
    rate_limit_retries: int = 0
    server_error_retries: int = 0

    @property
    def is_idempotent_method(self) -> bool:
        return is_idempotent_method(self.http_method)


class RetryPolicy:
    """Retry engine applied to one logical API call at a time."""

    def __init__(
        self,
        max_rate_limit_retries: int = MAX_RATE_LIMIT_RETRIES,
        max_server_error_retries: int = MAX_SERVER_ERROR_RETRIES,
        rate_limit_base_delay: float = RATE_LIMIT_BASE_DELAY,
        server_error_retry_delay: float = SERVER_ERROR_RETRY_DELAY,
    ):
        """Initialize the policy.

        :param max_rate_limit_retries: Retries allowed for 429 responses
        :type max_rate_limit_retries: int
        :param max_server_error_retries: Retries allowed for 5xx responses
                                         on idempotent methods
        :type max_server_error_retries: int
        :param rate_limit_base_delay: First backoff delay for 429 responses
                                      without Retry-After, in seconds
        :type rate_limit_base_delay: float
        :param server_error_retry_delay: Fixed delay before a 5xx retry
        :type server_error_retry_delay: float
        """
        self.max_rate_limit_retries = max_rate_limit_retries
        self.max_server_error_retries = max_server_error_retries
        self.rate_limit_base_delay = rate_limit_base_delay
        self.server_error_retry_delay = server_error_retry_delay

    def backoff_delay(self, retries: int) -> float:
        """Exponential backoff with jitter for the given retry number.

        Retry ``n`` (0-based) waits ``base * 2**n`` plus up to half of
        that again as jitter.
        """
        delay = self.rate_limit_base_delay * (2**retries)
        return delay + random.uniform(0, delay / 2)

    def next_delay(
        self, context: RetryContext, response: httpx.Response
    ) -> Optional[float]:
        """Decide whether to retry a response and how long to wait.

        Updates the retry counters in ``context`` when a retry is due.

        :return: Seconds to wait before the next attempt, or None to stop
        :rtype: Optional[float]
        """
        status = response.status_code
        if status == 429:
            if context.rate_limit_retries >= self.max_rate_limit_retries:
                return None
            retry_after = RetryAfter.from_response(response)
            if retry_after is not None:
                delay = retry_after.delay()
            else:
                delay = self.backoff_delay(context.rate_limit_retries)
            context.rate_limit_retries += 1
            return delay
        if status >= 500:
            if not context.is_idempotent_method:
                return None
            if context.server_error_retries >= self.max_server_error_retries:
                return None
            context.server_error_retries += 1
            return self.server_error_retry_delay
        return None

    async def execute(
        self,
        method: str,
        send: Callable[[], Awaitable[httpx.Response]],
    ) -> httpx.Response:
        """Run ``send`` until the policy stops retrying.

        ``send`` performs a single attempt and must rebuild its request
        from the same buffered body each time. Transport errors raised by
        ``send`` propagate without a retry.

        :param method: HTTP method of the call
        :type method: str
        :param send: Zero-argument coroutine function performing one attempt
        :type send: Callable[[], Awaitable[httpx.Response]]
        :return: The last response received
        :rtype: httpx.Response
        """
        context = RetryContext(http_method=method.upper())
        while True:
            context.attempt_count += 1
            response = await send()
            delay = self.next_delay(context, response)
            if delay is None:
                if context.attempt_count > 1:
                    logger.debug(
                        "Finished %s after %d attempts with status %d",
                        context.http_method,
                        context.attempt_count,
                        response.status_code,
                    )
                return response

            if response.status_code == 429:
                logger.info(
                    "Rate limited, retrying in %.2fs (attempt %d/%d)",
                    delay,
                    context.rate_limit_retries,
                    self.max_rate_limit_retries,
                )
            else:
                logger.info(
                    "Retrying after server error %d in %.2fs (attempt %d/%d)",
                    response.status_code,
                    delay,
                    context.server_error_retries,
                    self.max_server_error_retries,
                )
            await response.aclose()
            await asyncio.sleep(delay)
