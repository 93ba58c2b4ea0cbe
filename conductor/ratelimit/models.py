"""Data structures and errors for the rate limiter."""

import time
from dataclasses import dataclass
from typing import Any, Optional

from ..config import Priority

MINUTE_WINDOW_MS = 60_000
BURST_WINDOW_MS = 10_000
HOUR_WINDOW_MS = 3_600_000

# Minimum inter-request delay is scaled by priority
PRIORITY_DELAY_FACTORS: dict[Priority, float] = {
    Priority.HIGH: 0.5,
    Priority.MEDIUM: 1.0,
    Priority.LOW: 1.5,
}

RATE_LIMIT_STATUSES = (429, 503)
RATE_LIMIT_PATTERNS = (
    "rate limit",
    "too many requests",
    "quota exceeded",
    "throttled",
)


def monotonic_ms() -> float:
    """Default limiter clock, in milliseconds."""
    return time.monotonic() * 1000


class RateLimitError(Exception):
    """Base exception for rate limiter errors."""
    pass


class RateLimitTimeoutError(RateLimitError):
    """Raised when the throttling gate would block longer than allowed."""

    def __init__(self, reason: str, required_wait_ms: float, max_wait_ms: int):
        self.reason = reason
        self.required_wait_ms = required_wait_ms
        self.max_wait_ms = max_wait_ms
        super().__init__(
            f"Rate limit gate ({reason}) requires {required_wait_ms:.0f}ms, "
            f"exceeding the {max_wait_ms}ms limit"
        )


@dataclass
class CacheEntry:
    """A cached response. Valid while ``now < stored_at_ms + ttl_ms``."""

    data: Any
    stored_at_ms: float
    ttl_ms: int

    def is_valid(self, now_ms: float) -> bool:
        return now_ms < self.stored_at_ms + self.ttl_ms


@dataclass
class RequestLogEntry:
    """An admitted request. ``success`` stays None until the attempt settles."""

    timestamp_ms: float
    endpoint: str
    method: str
    success: Optional[bool] = None


@dataclass
class RateLimitStats:
    """Snapshot of limiter activity."""

    recent_requests: int
    cache_size: int
    success_rate: float
    pending_requests: int

    def to_dict(self) -> dict:
        return {
            "recent_requests": self.recent_requests,
            "cache_size": self.cache_size,
            "success_rate": self.success_rate,
            "pending_requests": self.pending_requests,
        }


def is_rate_limit_error(error: BaseException) -> bool:
    """Whether a failure looks like the remote side throttling us.

    Checks a ``status`` (or ``status_code``) attribute for 429/503, then the
    message for the usual throttling phrases.
    """
    status: Optional[int] = getattr(error, "status", None)
    if status is None:
        status = getattr(error, "status_code", None)
    if status in RATE_LIMIT_STATUSES:
        return True

    message = str(error).lower()
    return any(pattern in message for pattern in RATE_LIMIT_PATTERNS)
