"""Exponential-backoff retry for calls to rate-limited services.

Only transient failures are retried: rate limiting, resource exhaustion and
overload. Anything else propagates on the first failure. With the default
4 retries and a 1 s base the longest total wait is 1 + 2 + 4 + 8 = 15 s.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRIES = 4
DEFAULT_BASE_DELAY = 1.0

TRANSIENT_MARKERS = ("429", "RESOURCE_EXHAUSTED", "503", "Overloaded")


def is_transient_error(exc: BaseException) -> bool:
    """True when *exc* signals a rate limit or an overloaded backend."""
    message = str(exc)
    return any(marker in message for marker in TRANSIENT_MARKERS)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int = DEFAULT_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    should_retry: Callable[[BaseException], bool] = is_transient_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await fn(), retrying up to *retries* times with doubling delays."""
    delay = base_delay
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if attempt >= retries or not should_retry(e):
                raise
            attempt += 1
            logger.warning("transient failure (%s), retry %d/%d in %.1fs",
                           e, attempt, retries, delay)
            await sleep(delay)
            delay *= 2


class RetryPolicy:
    """Retry settings bundled for injection; tests pass a fake *sleep*."""

    def __init__(
        self,
        retries: int = DEFAULT_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.retries = retries
        self.base_delay = base_delay
        self.sleep = sleep

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        return await retry_with_backoff(
            fn, retries=self.retries, base_delay=self.base_delay, sleep=self.sleep,
        )
