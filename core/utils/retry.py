"""Retry with capped exponential backoff.

Usage:
    result = await with_retry(
        lambda: client.fetch(),
        RetryOptions(max_attempts=3, should_retry=is_retryable_error),
    )
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from core.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryOptions:
    """Configuration for retry behavior."""
    max_attempts: int = 3                   # including the first attempt
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30_000
    backoff_multiplier: float = 2.0
    # Only retry if this returns True for (error, attempt)
    should_retry: Optional[Callable[[BaseException, int], bool]] = None
    # Called before sleeping with (error, attempt, delay_ms)
    on_retry: Optional[Callable[[BaseException, int, float], None]] = None

    def get_delay_ms(self, attempt: int) -> float:
        """Delay after a failed attempt (1-based), capped at max_delay_ms."""
        delay = self.initial_delay_ms * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay_ms)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
) -> T:
    """Call fn until it succeeds or attempts are exhausted.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt
        options: Retry configuration (defaults: 3 attempts, 1s, x2, 30s cap)

    Returns:
        The first successful result

    Raises:
        The last error when attempts are exhausted or should_retry rejects it
    """
    opts = options or RetryOptions()

    attempt = 1
    while True:
        try:
            return await fn()
        except Exception as e:
            if attempt >= opts.max_attempts:
                raise
            if opts.should_retry is not None and not opts.should_retry(e, attempt):
                raise

            delay_ms = opts.get_delay_ms(attempt)
            logger.warning(
                f"Attempt {attempt}/{opts.max_attempts} failed: {e}; retrying in {delay_ms:.0f}ms",
                extra_fields={"attempt": attempt, "delay_ms": delay_ms},
            )
            if opts.on_retry is not None:
                opts.on_retry(e, attempt, delay_ms)

            await asyncio.sleep(delay_ms / 1000)
            attempt += 1
