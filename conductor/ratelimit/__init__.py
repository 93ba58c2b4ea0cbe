"""
Rate limiting layer for outbound calls.

Provides:
- RateLimiter: TTL cache, in-flight deduplication, throttling gate, backoff retry
- navigate / api_call / smart_wait helpers for pages and API clients
"""

from .helpers import api_call, navigate, smart_wait
from .limiter import RateLimiter, build_request_key
from .models import (
    CacheEntry,
    RateLimitError,
    RateLimitStats,
    RateLimitTimeoutError,
    RequestLogEntry,
    is_rate_limit_error,
)

__all__ = [
    "RateLimiter",
    "build_request_key",
    "navigate",
    "api_call",
    "smart_wait",
    "CacheEntry",
    "RequestLogEntry",
    "RateLimitStats",
    "RateLimitError",
    "RateLimitTimeoutError",
    "is_rate_limit_error",
]
