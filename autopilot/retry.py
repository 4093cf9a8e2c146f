"""Retry schedules.

``RetryPolicy`` describes how long to wait before each attempt. Channel
messages use it directly with the linear schedule; blocking HTTP/SMTP calls
wrap it in the ``@retry`` decorator with an exponential schedule and jitter.
"""
from __future__ import annotations

import functools
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt ``k`` (1-based) waits before running.

    Linear (``factor=None``): ``(k - 1) * base_delay``, so three attempts with a
    one second base run at 0s, +1s, +2s. Exponential: ``base_delay * factor **
    (k - 2)`` from the second attempt on, capped at ``max_delay``.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    factor: Optional[float] = None
    max_delay: Optional[float] = None

    def delay_before(self, attempt: int) -> float:
        if attempt <= 1:
            return 0.0
        if self.factor is None:
            delay = (attempt - 1) * self.base_delay
        else:
            delay = self.base_delay * self.factor ** (attempt - 2)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def attempts(self) -> range:
        return range(1, max(self.max_attempts, 1) + 1)


def retry(
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable: Tuple[Type[BaseException], ...] = (Exception,),
) -> Callable:
    """Re-run a blocking call on ``retryable`` errors; the last error propagates."""
    policy = RetryPolicy(max_attempts, base_delay, factor=backoff_factor, max_delay=max_delay)

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 1
            while True:
                try:
                    return fn(*args, **kwargs)
                except retryable as exc:
                    if attempt >= policy.max_attempts:
                        logger.error("%s gave up after %d attempt(s): %s", fn.__qualname__, attempt, exc)
                        raise
                    attempt += 1
                    wait = policy.delay_before(attempt)
                    if jitter:
                        wait *= random.uniform(0.5, 1.5)
                    logger.warning(
                        "%s failed (%s); attempt %d/%d in %.1fs",
                        fn.__qualname__, exc, attempt, policy.max_attempts, wait,
                    )
                    time.sleep(wait)

        return wrapper

    return decorator
