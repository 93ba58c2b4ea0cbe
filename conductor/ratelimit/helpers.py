"""Rate-limited page navigation, API calls and polling."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from ..browser import BrowserPage
from ..config import Priority, get_endpoint_policy
from ..http import ApiClient, ApiRequest
from ..timing.waits import WaitTimeoutError
from .limiter import RateLimiter, build_request_key

logger = structlog.get_logger()


async def navigate(
    limiter: RateLimiter,
    page: BrowserPage,
    url: str,
    priority: Priority | str = Priority.MEDIUM,
    wait_until: str = "networkidle",
    timeout_ms: int = 30000,
) -> None:
    """Navigate through the limiter. Navigations are never cached."""

    async def _goto() -> bool:
        await page.goto(url, wait_until=wait_until, timeout_ms=timeout_ms)
        return True

    await limiter.execute(
        f"navigate:{url}",
        _goto,
        skip_cache=True,
        priority=priority,
        endpoint=url,
        method="GET",
    )


async def api_call(
    limiter: RateLimiter,
    client: ApiClient,
    url: str,
    method: str = "GET",
    body: Any = None,
    headers: Optional[dict[str, str]] = None,
    priority: Optional[Priority | str] = None,
    cache_ttl_ms: Optional[int] = None,
) -> Any:
    """Send an API request through the limiter and return the response body.

    Only GET responses are cached. A known endpoint supplies the priority and
    TTL the caller leaves out; otherwise medium priority and the limiter's
    default TTL apply. Error statuses raise ``ApiError`` so the limiter can
    classify and retry them.
    """
    method = method.upper()
    policy = get_endpoint_policy(url)
    if priority is None:
        priority = policy.priority if policy else Priority.MEDIUM
    if cache_ttl_ms is None and policy is not None:
        cache_ttl_ms = policy.cache_ttl_ms
    request = ApiRequest(url=url, method=method, headers=headers or {}, body=body)

    async def _send() -> Any:
        response = await client.request(request)
        response.raise_for_status()
        return response.body

    return await limiter.execute(
        "api:" + build_request_key(url, method, body),
        _send,
        cache_ttl_ms=cache_ttl_ms if method == "GET" else 0,
        priority=priority,
        endpoint=url,
        method=method,
    )


async def smart_wait(
    condition: Callable[[], Awaitable[bool]],
    timeout_ms: int = 30000,
    interval_ms: int = 1000,
    description: str = "condition",
    clock: Optional[Callable[[], float]] = None,
) -> None:
    """Poll ``condition`` at a gentle interval until it holds.

    Check errors are logged and polling continues.

    Raises:
        WaitTimeoutError: If the condition does not hold within ``timeout_ms``
    """
    loop_clock = clock or (lambda: asyncio.get_running_loop().time() * 1000)
    started = loop_clock()

    while loop_clock() - started < timeout_ms:
        try:
            if await condition():
                return
        except Exception as e:
            logger.warning("Error checking condition", description=description, error=str(e))
        await asyncio.sleep(interval_ms / 1000)

    raise WaitTimeoutError(description, timeout_ms)
