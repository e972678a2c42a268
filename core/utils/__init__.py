"""Shared utilities: content hashing, retry with backoff, rate limiting."""

from core.utils.hashing import content_hash
from core.utils.rate_limiter import RateLimitConfig, TokenBucketRateLimiter
from core.utils.retry import RetryOptions, with_retry

__all__ = [
    "content_hash",
    "RateLimitConfig",
    "TokenBucketRateLimiter",
    "RetryOptions",
    "with_retry",
]
