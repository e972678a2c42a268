"""Token-bucket rate limiter for outbound provider requests.

Tokens refill continuously at max_requests per window_ms, so bursts are
smoothed instead of admitted in batches. acquire() never rejects, it only
delays the caller.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class RateLimitConfig:
    """Allow max_requests per window_ms."""
    max_requests: int
    window_ms: int

    def __post_init__(self):
        if self.max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if self.window_ms <= 0:
            raise ValueError("window_ms must be positive")


class TokenBucketRateLimiter:
    """Async token bucket shared by every request path of one client.

    Waiters queue on an asyncio.Lock, so tokens are handed out in FIFO order
    and never double-spent under concurrent callers.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config
        self._clock = clock or time.monotonic
        self._max_tokens = float(config.max_requests)
        self._tokens = float(config.max_requests)
        # Seconds per token
        self._refill_interval = (config.window_ms / 1000) / config.max_requests
        self._last_refill = self._clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(self._max_tokens, self._tokens + elapsed / self._refill_interval)
            self._last_refill = now

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                wait_seconds = (1 - self._tokens) * self._refill_interval
                await asyncio.sleep(wait_seconds)

    def can_acquire(self) -> bool:
        """Check if a token is available without consuming it."""
        self._refill()
        return self._tokens >= 1

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens
