"""Circuit breaker for upstream server failures.

This module provides the circuit breaker that guards every API call.
It counts consecutive server-side failures (5xx responses and transport
errors) and, once the threshold is reached, rejects calls until a
cooldown has elapsed since the last failure.

There is no half-open probing: when the cooldown has passed,
``is_open()`` resets the failure count and the next call is treated like
any other. Client errors (4xx) never reach the breaker.
"""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CircuitBreakerState:
    """Constants representing the possible states of a circuit breaker.

    - CLOSED: Normal operation, requests are allowed
    - OPEN: Circuit is open, requests are blocked
    """

    CLOSED = "closed"
    OPEN = "open"


class CircuitBreaker:
    """Thread-safe consecutive-failure circuit breaker.

    One instance is owned by each client, so independently configured
    clients never share breaker state.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the circuit breaker with configuration.

        :param failure_threshold: Number of consecutive failures before
                                 opening the circuit
        :type failure_threshold: int
        :param reset_timeout: Seconds after the last failure before an
                              open circuit closes again
        :type reset_timeout: float
        :param clock: Monotonic time source, in seconds
        :type clock: Callable[[], float]
        """
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self.consecutive_failures = 0
        self.last_failure_at: Optional[float] = None

    @property
    def state(self) -> str:
        """Return the current state without applying the cooldown reset."""
        with self._lock:
            if self.consecutive_failures >= self.failure_threshold:
                return CircuitBreakerState.OPEN
            return CircuitBreakerState.CLOSED

    def is_open(self) -> bool:
        """Return whether calls should currently be rejected.

        When the threshold has been reached but the cooldown has elapsed,
        the failure count is reset and False is returned.

        :return: True while the circuit is open
        :rtype: bool
        """
        with self._lock:
            if self.consecutive_failures < self.failure_threshold:
                return False
            elapsed = self._clock() - (self.last_failure_at or 0.0)
            if elapsed >= self.reset_timeout:
                self.consecutive_failures = 0
                logger.info("Circuit breaker reset after %.1fs cooldown", elapsed)
                return False
            return True

    def record_success(self) -> None:
        """Reset the consecutive failure count."""
        with self._lock:
            was_open = self.consecutive_failures >= self.failure_threshold
            self.consecutive_failures = 0
        if was_open:
            logger.info("Circuit breaker reset")

    def record_failure(self) -> bool:
        """Record a server-side failure.

        :return: True if this failure opened the circuit
        :rtype: bool
        """
        with self._lock:
            self.consecutive_failures += 1
            self.last_failure_at = self._clock()
            failures = self.consecutive_failures
        if failures == self.failure_threshold:
            logger.warning("Circuit breaker opened after %d consecutive failures", failures)
            return True
        return False
