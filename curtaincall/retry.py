"""
Retry with exponential backoff for scoring-model calls.

Model endpoints time out, rate-limit and return 5xx under load. Transient
failures are retried a small fixed number of times; after that the slot is
treated as a definitive failure for that review and the ensemble degrades.
"""

import functools
import time
from datetime import datetime
from typing import Callable, Optional, Tuple, Type

from .errors import CurtainCallError


class RetryError(CurtainCallError):
    """Raised when all retry attempts are exhausted."""
    pass


class CircuitOpenError(CurtainCallError):
    """Raised when a call is refused because the circuit is open."""
    pass


def _delays(max_retries: int, base_delay: float, max_delay: float, exponential_base: float):
    delay = base_delay
    for _ in range(max_retries):
        yield min(delay, max_delay)
        delay *= exponential_base


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Decorator retrying a synchronous function with exponential backoff.

    Args:
        max_retries: Retry attempts after the first call (0 = no retries)
        base_delay: Initial delay in seconds
        max_delay: Cap on any single delay
        exponential_base: Multiplier applied to the delay after each retry
        exceptions: Exception types that trigger a retry; others propagate
        on_retry: Optional callback(attempt, exception, delay)

    Example:
        @exponential_backoff(max_retries=3, base_delay=1.0)
        def post_review(payload):
            return requests.post(url, json=payload)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delays = _delays(max_retries, base_delay, max_delay, exponential_base)
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    attempt += 1
                    current_delay = next(delays, None)
                    if current_delay is None:
                        raise RetryError(
                            f"Failed after {max_retries + 1} attempts: {e}"
                        ) from e
                    if on_retry:
                        on_retry(attempt, e, current_delay)
                    time.sleep(current_delay)

        return wrapper
    return decorator


class CircuitBreaker:
    """
    Stops calling a model endpoint that keeps failing.

    States:
    - CLOSED: calls pass through
    - OPEN: too many consecutive failures, calls are refused
    - HALF_OPEN: recovery timeout elapsed, next call is a probe
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

    def before_call(self):
        """
        Check whether a call may proceed.

        Raises:
            CircuitOpenError: If the circuit is open and not yet due for a probe
        """
        if self.state == self.OPEN:
            if self._should_attempt_reset():
                self.state = self.HALF_OPEN
            else:
                raise CircuitOpenError(
                    f"Circuit breaker is OPEN. Retry after {self._time_until_reset():.0f}s"
                )

    def _elapsed(self) -> float:
        return (datetime.now() - self.last_failure_time).total_seconds()

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True
        return self._elapsed() >= self.recovery_timeout

    def _time_until_reset(self) -> float:
        if self.last_failure_time is None:
            return 0
        return max(0, self.recovery_timeout - self._elapsed())

    def on_success(self):
        self.failure_count = 0
        self.state = self.CLOSED

    def on_failure(self):
        self.failure_count += 1
        self.last_failure_time = datetime.now()
        if self.state == self.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.state = self.OPEN

    def reset(self):
        self.failure_count = 0
        self.last_failure_time = None
        self.state = self.CLOSED


RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504, 529})


def should_retry_http_status(status_code: int) -> bool:
    """True for HTTP statuses that indicate a transient model endpoint failure."""
    return status_code in RETRYABLE_STATUS_CODES
