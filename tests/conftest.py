"""Shared fixtures for conductor tests."""

from collections import defaultdict
from typing import Any, Optional

import pytest

from conductor.browser import (
    BoundingBox,
    BrowserEnvironment,
    BrowserPage,
    BrowserType,
    NetworkEvent,
    PageProvider,
    Viewport,
)


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "smoke: mark test as smoke test (fast, critical path - included in CI)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


class FakeClock:
    """Manually advanced millisecond clock.

    ``sleep`` can be used as the side effect of a patched ``asyncio.sleep``
    so that waiting moves time forward.
    """

    def __init__(self, start_ms: float = 0.0):
        self.now_ms = start_ms
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms

    def sleep(self, seconds: float, *args) -> None:
        self.sleeps.append(seconds * 1000)
        self.now_ms += seconds * 1000


class FakePage(BrowserPage):
    """In-memory BrowserPage.

    ``failures`` maps a method name to exceptions raised by its next calls,
    in order.
    """

    def __init__(
        self,
        counts: Optional[dict[str, int]] = None,
        visible: Optional[set[str]] = None,
        text: str = "",
        evaluate_result: Any = None,
    ):
        self.counts = counts or {}
        self.visible = visible if visible is not None else set(self.counts)
        self.text = text
        self.evaluate_result = evaluate_result
        self.url = "about:blank"
        self.calls: list[tuple] = []
        self.failures: dict[str, list[BaseException]] = defaultdict(list)
        self.handlers: dict[str, list] = defaultdict(list)
        self.boxes: dict[str, BoundingBox] = {}

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if self.failures.get(name):
            raise self.failures[name].pop(0)

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    def emit(self, event: str, network_event: NetworkEvent) -> None:
        for handler in list(self.handlers[event]):
            handler(network_event)

    async def goto(self, url, wait_until="load", timeout_ms=None):
        self._record("goto", url, wait_until)
        self.url = url

    async def click(self, selector):
        self._record("click", selector)

    async def fill(self, selector, value):
        self._record("fill", selector, value)

    async def screenshot(self, path=None, full_page=True):
        self._record("screenshot", path)
        if path:
            with open(path, "wb") as f:
                f.write(b"png")
        return b"png"

    async def evaluate(self, script, arg=None):
        self._record("evaluate", script)
        if callable(self.evaluate_result):
            return self.evaluate_result(script)
        return self.evaluate_result

    async def current_url(self):
        return self.url

    async def count(self, selector):
        return self.counts.get(selector, 0)

    async def is_visible(self, selector):
        return selector in self.visible

    async def text_content(self, selector="body"):
        return self.text

    async def bounding_box(self, selector):
        return self.boxes.get(selector)

    def on(self, event, handler):
        self.handlers[event].append(handler)

    def off(self, event, handler):
        if handler in self.handlers[event]:
            self.handlers[event].remove(handler)

    async def wait_for_load_state(self, state="load", timeout_ms=None):
        self._record("wait_for_load_state", state)

    async def reload(self, wait_until="load"):
        self._record("reload", wait_until)


class FakeProvider(PageProvider):
    """Hands out FakePages and tracks which are still open."""

    def __init__(self, page_factory=None):
        self.page_factory = page_factory or (lambda env: FakePage())
        self.opened: list[tuple[str, FakePage]] = []
        self.closed: list[FakePage] = []

    async def open_page(self, environment):
        page = self.page_factory(environment)
        self.opened.append((environment.name, page))
        return page

    async def close_page(self, page):
        self.closed.append(page)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_page():
    return FakePage(counts={"#submit": 1, "#email": 1}, text="Welcome to Paris")


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def desktop_env():
    return BrowserEnvironment(
        name="Chrome Desktop",
        type=BrowserType.CHROMIUM,
        viewport=Viewport(1920, 1080),
    )


@pytest.fixture
def mobile_env():
    return BrowserEnvironment(
        name="Chrome Mobile",
        type=BrowserType.CHROMIUM,
        viewport=Viewport(375, 667),
        is_mobile=True,
        has_touch=True,
    )


@pytest.fixture
def make_page():
    """Factory for FakePages with custom DOM state."""
    return FakePage


@pytest.fixture
def make_provider():
    """Factory for FakeProviders with a custom page factory."""
    return FakeProvider
