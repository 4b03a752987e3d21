"""Bounded exponential backoff for transient infrastructure failures.

Only the exception types passed in are retried. Anything else propagates
on the first attempt, so domain errors are never retried by accident.
"""

import logging
import time
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number `attempt` (1-based): base * 2^(attempt-1), capped."""
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


def call_with_retry(
    fn: Callable[..., T],
    *args,
    retry_on: tuple[type[BaseException], ...],
    give_up_on: tuple[type[BaseException], ...] = (),
    attempts: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> T:
    """
    Call fn, retrying on the given exception types.

    Args:
        fn: Callable to invoke
        retry_on: Exception types considered transient
        give_up_on: Subtypes of retry_on that fail the same way every time
        attempts: Total attempts including the first (>= 1)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay
        sleep: Sleep function (injectable for tests)

    Raises:
        The last retryable exception once attempts are exhausted, or any
        non-retryable exception immediately.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        try:
            return fn(*args, **kwargs)
        except retry_on as e:
            if isinstance(e, give_up_on):
                raise
            if attempt == attempts:
                logger.error(
                    "%s failed after %d attempts: %s",
                    getattr(fn, "__name__", repr(fn)),
                    attempts,
                    e,
                )
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.3fs: %s",
                getattr(fn, "__name__", repr(fn)),
                attempt,
                attempts,
                delay,
                e,
            )
            sleep(delay)

    raise AssertionError("unreachable")
