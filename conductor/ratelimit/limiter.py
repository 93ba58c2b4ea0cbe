"""
Rate limiting, request deduplication and response caching.

Guards outbound calls (API requests, page navigations) so that test suites
never overload shared services:

- TTL cache keyed by a normalized request key
- In-flight deduplication: concurrent identical keys share one execution
- Throttling gate with minute and burst windows, hourly endpoint budgets
  and a priority-scaled minimum delay between requests
- Size-bounded cache: the oldest entries are evicted first
- Exponential backoff retry, with rate-limit failures backing off harder

Usage:
    limiter = RateLimiter(get_environment_config("ci").rate_limits)
    cities = await limiter.execute(
        "GET:/api/cities",
        fetch_cities,
        endpoint="/api/cities",
        priority=Priority.HIGH,
    )
"""

import asyncio
import hashlib
import json
from collections import deque
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from ..config import (
    CachingConfig,
    EndpointPolicy,
    EnvironmentConfig,
    Priority,
    RateLimitConfig,
    match_endpoint_policy,
)
from .models import (
    BURST_WINDOW_MS,
    HOUR_WINDOW_MS,
    MINUTE_WINDOW_MS,
    PRIORITY_DELAY_FACTORS,
    CacheEntry,
    RateLimitStats,
    RateLimitTimeoutError,
    RequestLogEntry,
    is_rate_limit_error,
    monotonic_ms,
)

logger = structlog.get_logger()

T = TypeVar("T")

_MISS = object()


def build_request_key(endpoint: str, method: str = "GET", body: Any = None) -> str:
    """Normalize (endpoint, method, body) into a cache/dedup key.

    The body is hashed over its canonical JSON form so that logically equal
    payloads map to the same key regardless of dict ordering.
    """
    canonical = json.dumps(body if body is not None else {}, sort_keys=True, default=str)
    body_hash = hashlib.sha256(canonical.encode()).hexdigest()[:16]
    return f"{method.upper()}:{endpoint.strip()}:{body_hash}"


class RateLimiter:
    """Throttles, deduplicates and caches asynchronous requests.

    All mutable state (cache, pending table, request log) lives here and is
    only touched from the event loop. Requests are logged when the gate
    admits them, so concurrent callers count against the windows at once.

    Endpoints matching an ``EndpointPolicy`` also get an hourly budget.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        caching: Optional[CachingConfig] = None,
        endpoint_policies: Optional[dict[str, EndpointPolicy]] = None,
    ):
        self.config = config or RateLimitConfig()
        self.caching = caching or CachingConfig()
        self.endpoint_policies = endpoint_policies
        self._clock = clock or monotonic_ms
        self.cache: dict[str, CacheEntry] = {}
        self.request_log: list[RequestLogEntry] = []
        self._pending: dict[str, asyncio.Future] = {}
        self._hourly: dict[str, deque[float]] = {}
        self._last_request_ms: Optional[float] = None
        self._gate_lock = asyncio.Lock()
        self._sweeper: Optional[asyncio.Task] = None
        self.log = logger.bind(component="rate_limiter")

    @classmethod
    def from_environment(cls, environment: EnvironmentConfig, **kwargs) -> "RateLimiter":
        """Build a limiter from an environment's rate limits and caching."""
        return cls(environment.rate_limits, caching=environment.caching, **kwargs)

    # =========================================================================
    # Public API
    # =========================================================================

    async def execute(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
        cache_ttl_ms: Optional[int] = None,
        skip_cache: bool = False,
        priority: Priority | str = Priority.MEDIUM,
        endpoint: str = "unknown",
        method: str = "GET",
    ) -> T:
        """Run ``request_fn`` under rate limiting.

        Args:
            key: Cache and deduplication key
            request_fn: Zero-argument coroutine function performing the call
            cache_ttl_ms: TTL for a successful result; None uses the caching
                default, 0 disables caching
            skip_cache: Neither read nor write the cache
            priority: Scales the minimum delay between requests
            endpoint: Recorded in the request log
            method: Recorded in the request log

        Returns:
            The request result, possibly served from cache or a concurrent call.

        Raises:
            RateLimitTimeoutError: If the throttling gate would block too long
            Exception: The last error of ``request_fn`` once retries are exhausted
        """
        skip_cache = skip_cache or not self.caching.enabled
        if not skip_cache:
            cached = self._get_cached(key)
            if cached is not _MISS:
                self.log.debug("Cache hit", key=key)
                return cached

        pending = self._pending.get(key)
        if pending is not None:
            self.log.debug("Joining in-flight request", key=key)
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(
            self._execute_new(
                key,
                request_fn,
                cache_ttl_ms=cache_ttl_ms,
                skip_cache=skip_cache,
                priority=Priority(priority),
                endpoint=endpoint,
                method=method,
            )
        )
        self._pending[key] = task
        return await asyncio.shield(task)

    def invalidate(self, key: str) -> bool:
        """Drop a cached entry. Returns True if one existed."""
        return self.cache.pop(key, None) is not None

    def backoff_delay_ms(self, attempt: int) -> float:
        """Backoff before retrying after ``attempt`` (1-based) failed."""
        delay = self.config.delay_between_requests_ms * self.config.backoff_multiplier ** (attempt - 1)
        return min(delay, self.config.max_backoff_ms)

    def get_stats(self) -> RateLimitStats:
        now = self._clock()
        recent = [e for e in self.request_log if now - e.timestamp_ms < MINUTE_WINDOW_MS]
        successes = sum(1 for e in recent if e.success)
        return RateLimitStats(
            recent_requests=len(recent),
            cache_size=len(self.cache),
            success_rate=successes / len(recent) if recent else 1.0,
            pending_requests=len(self._pending),
        )

    def reset(self) -> None:
        """Forget all cached responses, log entries and timing state."""
        self.cache.clear()
        self.request_log.clear()
        self._pending.clear()
        self._hourly.clear()
        self._last_request_ms = None
        self.log.info("Rate limiter reset")

    def sweep(self) -> tuple[int, int]:
        """Purge expired cache entries and request log entries outside the window.

        Returns:
            (cache entries removed, log entries removed)
        """
        now = self._clock()
        expired = [k for k, entry in self.cache.items() if not entry.is_valid(now)]
        for key in expired:
            del self.cache[key]

        pruned = self._prune_log(now - self.config.request_log_window_ms)
        for hits in self._hourly.values():
            while hits and now - hits[0] >= HOUR_WINDOW_MS:
                hits.popleft()

        if expired or pruned:
            self.log.debug("Sweep completed", cache_removed=len(expired), log_removed=pruned)
        return len(expired), pruned

    def start_sweeper(self) -> None:
        """Start the periodic background sweep."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to finish."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

    # =========================================================================
    # Internals
    # =========================================================================

    def _get_cached(self, key: str) -> Any:
        entry = self.cache.get(key)
        if entry is None:
            return _MISS
        if entry.is_valid(self._clock()):
            return entry.data
        # Lazy purge
        del self.cache[key]
        return _MISS

    def _store(self, key: str, data: Any, ttl_ms: int) -> None:
        now = self._clock()
        self.cache.pop(key, None)
        if len(self.cache) >= self.caching.max_cache_size:
            for stale in [k for k, entry in self.cache.items() if not entry.is_valid(now)]:
                del self.cache[stale]
        # Insertion order is storage order, so the first key is the oldest
        while len(self.cache) >= self.caching.max_cache_size:
            evicted = next(iter(self.cache))
            del self.cache[evicted]
            self.log.debug("Cache entry evicted", key=evicted)
        self.cache[key] = CacheEntry(data=data, stored_at_ms=now, ttl_ms=ttl_ms)

    async def _execute_new(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
        cache_ttl_ms: Optional[int],
        skip_cache: bool,
        priority: Priority,
        endpoint: str,
        method: str,
    ) -> T:
        try:
            entry = await self._apply_gate(priority, endpoint, method)
            result = await self._execute_with_retry(request_fn, entry)

            ttl = self.caching.default_ttl_ms if cache_ttl_ms is None else cache_ttl_ms
            if not skip_cache and ttl > 0:
                self._store(key, result, ttl)
            return result
        finally:
            self._pending.pop(key, None)

    async def _apply_gate(self, priority: Priority, endpoint: str, method: str) -> RequestLogEntry:
        """Wait until the windows allow another request, then admit it."""
        async with self._gate_lock:
            now = self._clock()
            self._prune_log(now - max(self.config.request_log_window_ms, MINUTE_WINDOW_MS))
            in_minute = [e for e in self.request_log if now - e.timestamp_ms < MINUTE_WINDOW_MS]
            in_burst = [e for e in in_minute if now - e.timestamp_ms < BURST_WINDOW_MS]

            if len(in_minute) >= self.config.max_requests_per_minute:
                wait_ms = MINUTE_WINDOW_MS - (now - in_minute[0].timestamp_ms)
                self.log.warning("Minute limit reached", recent=len(in_minute), wait_ms=round(wait_ms))
                await self._gate_sleep("minute_window", wait_ms)

            if len(in_burst) >= self.config.burst_limit:
                self.log.warning("Burst limit reached", recent=len(in_burst), cooldown_ms=self.config.cooldown_period_ms)
                await self._gate_sleep("burst", self.config.cooldown_period_ms)

            hourly = self._hourly_hits(endpoint)
            if hourly is not None:
                hits, limit = hourly
                now = self._clock()
                while hits and now - hits[0] >= HOUR_WINDOW_MS:
                    hits.popleft()
                if len(hits) >= limit:
                    wait_ms = HOUR_WINDOW_MS - (now - hits[0])
                    self.log.warning("Hourly endpoint budget reached", endpoint=endpoint, limit=limit)
                    await self._gate_sleep("hourly_budget", wait_ms)

            if self._last_request_ms is not None:
                min_delay = self.config.delay_between_requests_ms * PRIORITY_DELAY_FACTORS[priority]
                elapsed = self._clock() - self._last_request_ms
                if elapsed < min_delay:
                    await self._gate_sleep("min_delay", min_delay - elapsed)

            admitted_at = self._clock()
            self._last_request_ms = admitted_at
            if hourly is not None:
                hourly[0].append(admitted_at)
            entry = RequestLogEntry(timestamp_ms=admitted_at, endpoint=endpoint, method=method)
            self.request_log.append(entry)
            return entry

    def _hourly_hits(self, endpoint: str) -> Optional[tuple[deque[float], int]]:
        match = match_endpoint_policy(endpoint, self.endpoint_policies)
        if match is None:
            return None
        key, policy = match
        return self._hourly.setdefault(key, deque()), policy.max_requests_per_hour

    def _prune_log(self, cutoff_ms: float) -> int:
        before = len(self.request_log)
        self.request_log = [e for e in self.request_log if e.timestamp_ms > cutoff_ms]
        return before - len(self.request_log)

    async def _gate_sleep(self, reason: str, wait_ms: float) -> None:
        if wait_ms <= 0:
            return
        if wait_ms > self.config.max_gate_wait_ms:
            raise RateLimitTimeoutError(reason, wait_ms, self.config.max_gate_wait_ms)
        await asyncio.sleep(wait_ms / 1000)

    async def _execute_with_retry(
        self,
        request_fn: Callable[[], Awaitable[T]],
        entry: RequestLogEntry,
    ) -> T:
        attempts = self.config.retry_attempts
        endpoint = entry.endpoint
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            if attempt > 1:
                # Retries bypass the gate but still count against the windows
                entry = RequestLogEntry(timestamp_ms=self._clock(), endpoint=endpoint, method=entry.method)
                self.request_log.append(entry)
            try:
                result = await request_fn()
                entry.success = True
                return result
            except Exception as e:
                last_error = e
                entry.success = False
                backoff = self.backoff_delay_ms(attempt)

                if is_rate_limit_error(e):
                    # Throttled responses always back off, even after the last attempt
                    self.log.warning(
                        "Rate limited, backing off",
                        endpoint=endpoint,
                        attempt=attempt,
                        max_attempts=attempts,
                        backoff_ms=round(backoff),
                    )
                    await asyncio.sleep(backoff / 1000)
                elif attempt < attempts:
                    self.log.warning(
                        "Request failed, retrying",
                        endpoint=endpoint,
                        attempt=attempt,
                        max_attempts=attempts,
                        error=str(e),
                        backoff_ms=round(backoff),
                    )
                    await asyncio.sleep(backoff / 1000)

        self.log.error("Request failed after retries", endpoint=endpoint, attempts=attempts, error=str(last_error))
        raise last_error

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval_ms / 1000)
            self.sweep()
