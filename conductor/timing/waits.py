"""
Polling wait primitives.

Every wait has the same shape: check at a fixed interval until the condition
holds, or raise ``WaitTimeoutError`` once the timeout elapses. Check errors
are logged and polling continues. Network listeners are always removed,
whatever the exit path.

Usage:
    waits = WaitStrategy()
    await waits.wait_for_element(page, "#city-list", state="visible")
    await waits.wait_for_network_idle(page, ignore_urls=["analytics"])
    await waits.wait_for_dynamic_content(page, ".review-card", expected_count=5)
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional

import structlog

from ..browser import BrowserPage, NetworkEvent
from .timeouts import TimeoutPolicy

logger = structlog.get_logger()

_UNSET = object()

PAGE_ELEMENT_COUNT_SCRIPT = "() => document.querySelectorAll('*').length"


class WaitTimeoutError(TimeoutError):
    """Raised when a wait condition does not hold in time."""

    def __init__(self, description: str, timeout_ms: float, detail: Optional[str] = None):
        self.description = description
        self.timeout_ms = timeout_ms
        self.detail = detail
        message = f"Timeout waiting for {description} after {timeout_ms:.0f}ms"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class LoadStrategy(str, Enum):
    """How to decide a page has finished loading."""
    NETWORK_IDLE = "network_idle"
    DOM_CONTENT_LOADED = "dom_content_loaded"
    LOAD = "load"
    CUSTOM = "custom"  # DOM stability polling


LOAD_STATES: dict[LoadStrategy, str] = {
    LoadStrategy.NETWORK_IDLE: "networkidle",
    LoadStrategy.DOM_CONTENT_LOADED: "domcontentloaded",
    LoadStrategy.LOAD: "load",
    LoadStrategy.CUSTOM: "networkidle",
}

ELEMENT_STATES = ("attached", "detached", "visible", "hidden")


def _given(value: Optional[float], fallback: float) -> float:
    return fallback if value is None else value


class WaitStrategy:
    """Condition polling against a BrowserPage.

    Args:
        policy: Timeout policy; the element-wait budget comes from it
        default_timeout_ms: Budget when a call gives none
        network_quiet_ms: How long the network must stay idle
        stability_interval_ms: Poll interval for DOM and element checks
        network_poll_ms: Poll interval while waiting for network idle
        clock: Millisecond clock, the event loop clock by default
    """

    def __init__(
        self,
        policy: Optional[TimeoutPolicy] = None,
        default_timeout_ms: int = 30000,
        network_quiet_ms: int = 500,
        stability_interval_ms: int = 100,
        network_poll_ms: int = 50,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.policy = policy or TimeoutPolicy()
        self.default_timeout_ms = default_timeout_ms
        self.network_quiet_ms = network_quiet_ms
        self.stability_interval_ms = stability_interval_ms
        self.network_poll_ms = network_poll_ms
        self._clock = clock or (lambda: asyncio.get_running_loop().time() * 1000)
        self.log = logger.bind(component="wait_strategy")

    # =========================================================================
    # Element and text waits
    # =========================================================================

    async def wait_for_element(
        self,
        page: BrowserPage,
        selector: str,
        state: str = "visible",
        timeout_ms: Optional[int] = None,
    ) -> None:
        """Wait for an element to reach a state: attached, detached, visible or hidden."""
        if state not in ELEMENT_STATES:
            raise ValueError(f"Unknown element state: {state}")

        async def check() -> bool:
            if state == "attached":
                return await page.count(selector) > 0
            if state == "detached":
                return await page.count(selector) == 0
            if state == "visible":
                return await page.is_visible(selector)
            return await page.count(selector) == 0 or not await page.is_visible(selector)

        await self._poll(
            check,
            _given(timeout_ms, self.policy.base_timeout("element_wait")),
            self.stability_interval_ms,
            f"element '{selector}' to be {state}",
        )

    async def wait_for_elements(
        self,
        page: BrowserPage,
        selector: str,
        min_count: int,
        timeout_ms: Optional[int] = None,
    ) -> int:
        """Wait for at least ``min_count`` matches. Returns the count seen."""
        seen = 0

        async def check() -> bool:
            nonlocal seen
            seen = await page.count(selector)
            return seen >= min_count

        await self._poll(
            check,
            _given(timeout_ms, self.default_timeout_ms),
            self.stability_interval_ms,
            f"at least {min_count} elements matching '{selector}'",
            detail=lambda: f"found {seen}",
        )
        return seen

    async def wait_for_element_count(
        self,
        page: BrowserPage,
        selector: str,
        count: int,
        timeout_ms: Optional[int] = None,
    ) -> None:
        """Wait for exactly ``count`` matches."""

        async def check() -> bool:
            return await page.count(selector) == count

        await self._poll(
            check,
            _given(timeout_ms, self.default_timeout_ms),
            self.stability_interval_ms,
            f"exactly {count} elements matching '{selector}'",
        )

    async def wait_for_text(self, page: BrowserPage, text: str, timeout_ms: Optional[int] = None) -> None:
        async def check() -> bool:
            return text in (await page.text_content() or "")

        await self._poll(check, _given(timeout_ms, self.default_timeout_ms), self.stability_interval_ms, f"text '{text}'")

    async def wait_for_text_to_disappear(
        self,
        page: BrowserPage,
        text: str,
        timeout_ms: Optional[int] = None,
    ) -> None:
        async def check() -> bool:
            return text not in (await page.text_content() or "")

        await self._poll(
            check,
            _given(timeout_ms, self.default_timeout_ms),
            self.stability_interval_ms,
            f"text '{text}' to disappear",
        )

    async def wait_for_condition(
        self,
        condition: Callable[[], Awaitable[bool]],
        timeout_ms: Optional[int] = None,
        interval_ms: Optional[int] = None,
        description: str = "custom condition",
    ) -> None:
        """Poll an arbitrary async predicate."""
        await self._poll(
            condition,
            _given(timeout_ms, self.default_timeout_ms),
            _given(interval_ms, self.stability_interval_ms),
            description,
        )

    # =========================================================================
    # Stability waits
    # =========================================================================

    async def wait_for_dynamic_content(
        self,
        page: BrowserPage,
        selector: str,
        expected_count: Optional[int] = None,
        stable: bool = True,
        stable_ms: int = 2000,
        timeout_ms: Optional[int] = None,
    ) -> int:
        """Wait for dynamically loaded content.

        With ``stable`` the match count must also stop changing for
        ``stable_ms``. Without it, reaching ``expected_count`` is enough.

        Returns:
            The final match count
        """
        timeout_ms = _given(timeout_ms, self.default_timeout_ms)
        description = f"dynamic content '{selector}'"

        if not stable:
            if expected_count is None:
                return await page.count(selector)
            return await self.wait_for_elements(page, selector, expected_count, timeout_ms)

        return await self._wait_until_stable(
            lambda: page.count(selector),
            stable_ms,
            timeout_ms,
            description,
            accept=lambda count: expected_count is None or count >= expected_count,
        )

    async def wait_for_page_stability(
        self,
        page: BrowserPage,
        quiet_ms: int = 2000,
        timeout_ms: Optional[int] = None,
    ) -> None:
        """Wait until the DOM element count stops changing for ``quiet_ms``."""
        await self._wait_until_stable(
            lambda: page.evaluate(PAGE_ELEMENT_COUNT_SCRIPT),
            quiet_ms,
            _given(timeout_ms, self.default_timeout_ms),
            "page stability",
        )

    async def wait_for_element_to_stop_moving(
        self,
        page: BrowserPage,
        selector: str,
        quiet_ms: int = 1000,
        timeout_ms: Optional[int] = None,
    ) -> None:
        """Wait until an element's position stays put for ``quiet_ms``."""
        timeout_ms = _given(timeout_ms, self.default_timeout_ms)
        await self.wait_for_element(page, selector, "visible", timeout_ms)

        async def position() -> Any:
            box = await page.bounding_box(selector)
            return (box.x, box.y) if box else None

        await self._wait_until_stable(
            position,
            quiet_ms,
            timeout_ms,
            f"element '{selector}' to stop moving",
            accept=lambda pos: pos is not None,
        )

    # =========================================================================
    # Network and navigation waits
    # =========================================================================

    async def wait_for_network_idle(
        self,
        page: BrowserPage,
        ignore_urls: Iterable[str] = (),
        timeout_ms: Optional[int] = None,
    ) -> None:
        """Wait until no tracked request is outstanding for the quiet period.

        Requests whose URL contains any of ``ignore_urls`` are not tracked.
        """
        timeout_ms = _given(timeout_ms, self.default_timeout_ms)
        ignored = tuple(ignore_urls)
        pending = 0
        idle_since: Optional[float] = None

        def tracked(event: NetworkEvent) -> bool:
            return not any(part in event.url for part in ignored)

        def on_request(event: NetworkEvent) -> None:
            nonlocal pending, idle_since
            if tracked(event):
                pending += 1
                idle_since = None

        def on_finished(event: NetworkEvent) -> None:
            nonlocal pending, idle_since
            if tracked(event):
                pending = max(0, pending - 1)
                if pending == 0:
                    idle_since = self._clock()

        page.on("request", on_request)
        page.on("response", on_finished)
        page.on("requestfailed", on_finished)

        started = self._clock()
        try:
            while self._clock() - started < timeout_ms:
                if pending == 0:
                    now = self._clock()
                    if idle_since is None:
                        idle_since = now
                    elif now - idle_since >= self.network_quiet_ms:
                        return
                await asyncio.sleep(self.network_poll_ms / 1000)
        finally:
            page.off("request", on_request)
            page.off("response", on_finished)
            page.off("requestfailed", on_finished)

        raise WaitTimeoutError("network idle", timeout_ms, detail=f"{pending} requests pending")

    async def wait_for_response(
        self,
        page: BrowserPage,
        url_part: str,
        timeout_ms: Optional[int] = None,
    ) -> Any:
        """Wait for a response whose URL contains ``url_part``."""
        timeout_ms = _given(timeout_ms, self.policy.base_timeout("api_call"))
        try:
            return await page.wait_for_response(lambda url: url_part in url, timeout_ms)
        except asyncio.TimeoutError as e:
            raise WaitTimeoutError(f"response from '{url_part}'", timeout_ms) from e

    async def wait_for_ajax_completion(
        self,
        page: BrowserPage,
        ignore_urls: Iterable[str] = (),
        url_part: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> None:
        """Wait for one specific response, or for the network to go idle."""
        if url_part:
            await self.wait_for_response(page, url_part, timeout_ms)
        else:
            await self.wait_for_network_idle(page, ignore_urls, timeout_ms)

    async def wait_for_navigation(
        self,
        page: BrowserPage,
        url: str,
        strategy: LoadStrategy | str = LoadStrategy.NETWORK_IDLE,
        timeout_ms: Optional[int] = None,
    ) -> None:
        """Navigate and then wait according to ``strategy``."""
        strategy = LoadStrategy(strategy)
        timeout_ms = _given(timeout_ms, self.policy.base_timeout("navigation"))
        await page.goto(url, wait_until=LOAD_STATES[strategy], timeout_ms=timeout_ms)

        if strategy == LoadStrategy.NETWORK_IDLE:
            await self.wait_for_network_idle(page, timeout_ms=timeout_ms)
        elif strategy == LoadStrategy.CUSTOM:
            await self.wait_for_page_stability(page, timeout_ms=timeout_ms)

    async def wait_for_load_state(
        self,
        page: BrowserPage,
        strategy: LoadStrategy | str = LoadStrategy.NETWORK_IDLE,
        timeout_ms: Optional[int] = None,
    ) -> None:
        strategy = LoadStrategy(strategy)
        if strategy == LoadStrategy.CUSTOM:
            await self.wait_for_page_stability(page, timeout_ms=timeout_ms)
        else:
            await page.wait_for_load_state(LOAD_STATES[strategy], timeout_ms=timeout_ms)

    # =========================================================================
    # Polling core
    # =========================================================================

    async def _poll(
        self,
        check: Callable[[], Awaitable[bool]],
        timeout_ms: float,
        interval_ms: float,
        description: str,
        detail: Optional[Callable[[], str]] = None,
    ) -> None:
        started = self._clock()
        while self._clock() - started < timeout_ms:
            try:
                if await self._bounded(check, started, timeout_ms, description, detail):
                    return
            except WaitTimeoutError:
                raise
            except Exception as e:
                self.log.debug("Wait check failed", description=description, error=str(e))
            await asyncio.sleep(interval_ms / 1000)

        raise WaitTimeoutError(description, timeout_ms, detail() if detail else None)

    async def _wait_until_stable(
        self,
        sample: Callable[[], Awaitable[Any]],
        quiet_ms: float,
        timeout_ms: float,
        description: str,
        accept: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """Wait until ``sample()`` returns the same value for ``quiet_ms``."""
        started = self._clock()
        last: Any = _UNSET

        def last_seen() -> Optional[str]:
            return f"last value {last!r}" if last is not _UNSET else None

        stable_since: Optional[float] = None

        while self._clock() - started < timeout_ms:
            try:
                current = await self._bounded(sample, started, timeout_ms, description, last_seen)
            except WaitTimeoutError:
                raise
            except Exception as e:
                self.log.debug("Stability sample failed", description=description, error=str(e))
                current = _UNSET

            if current is not _UNSET and current == last:
                now = self._clock()
                if stable_since is None:
                    stable_since = now
                elif now - stable_since >= quiet_ms and (accept is None or accept(current)):
                    return current
            else:
                stable_since = None
                last = current

            await asyncio.sleep(self.stability_interval_ms / 1000)

        raise WaitTimeoutError(description, timeout_ms, detail=last_seen())

    async def _bounded(
        self,
        call: Callable[[], Awaitable[Any]],
        started: float,
        timeout_ms: float,
        description: str,
        detail: Optional[Callable[[], Optional[str]]] = None,
    ) -> Any:
        """Await one check, cut off at whatever is left of the wait budget."""
        remaining_ms = max(timeout_ms - (self._clock() - started), 0)
        try:
            return await asyncio.wait_for(call(), remaining_ms / 1000)
        except asyncio.TimeoutError as e:
            if isinstance(e, WaitTimeoutError):
                raise
            raise WaitTimeoutError(description, timeout_ms, detail() if detail else None) from e
