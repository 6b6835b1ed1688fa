"""
Retry utility.

A small reusable retry policy that returns a typed result instead of
raising on the final failure.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)

BACKOFF_MODES = ("fixed", "linear", "exponential")


@dataclass
class RetryResult:
    """Outcome of a retried call."""
    success: bool
    value: Any = None
    error: Optional[BaseException] = None
    attempts: int = 0


class RetryPolicy:
    """
    Retries a callable up to max_attempts times.

    Delay between attempts:
    - fixed: delay_seconds
    - linear: delay_seconds * attempt
    - exponential: delay_seconds * 2 ** (attempt - 1)
    """

    def __init__(
        self,
        max_attempts: int = 3,
        delay_seconds: float = 2.0,
        backoff: str = "fixed",
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        sleep: Callable[[float], None] = time.sleep
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        if backoff not in BACKOFF_MODES:
            raise ValueError(f"Invalid backoff: {backoff}. Must be one of {BACKOFF_MODES}")

        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self.backoff = backoff
        self.retry_on = retry_on
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        if self.backoff == "linear":
            return self.delay_seconds * attempt
        if self.backoff == "exponential":
            return self.delay_seconds * (2 ** (attempt - 1))
        return self.delay_seconds

    def run(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> RetryResult:
        """
        Call func until it succeeds or attempts are exhausted.

        Exceptions outside retry_on propagate immediately.
        """
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                value = func(*args, **kwargs)
                return RetryResult(success=True, value=value, attempts=attempt)
            except self.retry_on as e:
                last_error = e
                logger.warning(f"Attempt {attempt}/{self.max_attempts} failed: {e}")
                if attempt < self.max_attempts:
                    delay = self.delay_for(attempt)
                    if delay > 0:
                        logger.info(f"Retrying in {delay:.1f}s...")
                        self._sleep(delay)

        return RetryResult(success=False, error=last_error, attempts=self.max_attempts)
