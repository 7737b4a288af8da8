"""
Retry and circuit breaking for calls to the platform API.

Transient failures (timeouts, dropped connections, 5xx/429 responses) are
retried with exponential backoff. A circuit breaker stops a sync from
issuing one doomed request per record once the platform is clearly down.
"""

import functools
import time
from datetime import datetime
from typing import Callable, Optional, Tuple, Type

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""


class CircuitOpenError(Exception):
    """Raised instead of calling through while the circuit is open."""


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (0 = no retries)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Multiplier applied to the delay after each retry
        exceptions: Exception types that trigger a retry
        on_retry: Optional callback(attempt, exception, delay)

    Raises:
        RetryError: chained to the last exception once retries run out.
        Exceptions outside ``exceptions`` propagate immediately.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delay = base_delay
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        raise RetryError(
                            f"Failed after {max_retries + 1} attempts: {e}"
                        ) from e
                    current_delay = min(delay, max_delay)
                    if on_retry:
                        on_retry(attempt + 1, e, current_delay)
                    time.sleep(current_delay)
                    delay *= exponential_base
        return wrapper
    return decorator


class CircuitBreaker:
    """
    Circuit breaker guarding a flaky dependency.

    States:
    - CLOSED: calls pass through
    - OPEN: too many consecutive failures, calls are refused
    - HALF_OPEN: recovery timeout elapsed, the next call is a probe
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        expected_exception: Type[Exception] = Exception,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception

        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.state = self.CLOSED

    def call(self, func: Callable, *args, **kwargs):
        """
        Execute ``func`` under breaker protection.

        Raises:
            CircuitOpenError: the circuit is open and not yet due for a probe
            Original exception: ``func`` failed
        """
        if self.state == self.OPEN:
            if self._seconds_until_probe() > 0:
                raise CircuitOpenError(
                    f"Circuit breaker is OPEN. Retry after {self._seconds_until_probe():.0f}s"
                )
            self.state = self.HALF_OPEN

        try:
            result = func(*args, **kwargs)
        except self.expected_exception:
            self._on_failure()
            raise
        self.reset()
        return result

    def _seconds_until_probe(self) -> float:
        if self.last_failure_time is None:
            return 0
        elapsed = (datetime.now() - self.last_failure_time).total_seconds()
        return max(0, self.recovery_timeout - elapsed)

    def _on_failure(self):
        self.failure_count += 1
        self.last_failure_time = datetime.now()
        if self.state == self.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.state = self.OPEN

    def reset(self):
        self.failure_count = 0
        self.last_failure_time = None
        self.state = self.CLOSED


def should_retry_http_status(status_code: int) -> bool:
    """Return True for HTTP statuses worth retrying (timeouts, rate limits, 5xx)."""
    return status_code in RETRYABLE_STATUS_CODES
