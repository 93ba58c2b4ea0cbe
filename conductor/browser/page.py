"""Browser page abstraction consumed by the orchestration engine.

The engine never drives a browser itself. Everything it needs from a page
(navigation, input, screenshots, script evaluation, network events) goes
through ``BrowserPage``; concrete adapters (Playwright, Selenium, a remote
browser pool) live outside this package.

Architecture:
    PipelineOrchestrator ─► ExecutionEngine ─► PageProvider.open_page(env)
                                                    │
                                                    ▼
                                               BrowserPage
                              (goto / click / fill / screenshot / evaluate)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .environments import BrowserEnvironment

NETWORK_EVENTS = ("request", "response", "requestfailed")


@dataclass(frozen=True)
class NetworkEvent:
    """A request, response or failed request seen by the page."""

    url: str
    method: str = "GET"
    status: Optional[int] = None  # None for requests and failures
    size: int = 0


NetworkHandler = Callable[[NetworkEvent], None]


@dataclass(frozen=True)
class BoundingBox:
    """Element geometry in CSS pixels."""

    x: float
    y: float
    width: float
    height: float


class BrowserPage(ABC):
    """Abstract handle to one open browser page.

    Implement this interface to plug a browser automation library into the
    engine. Methods raise on failure; the engine classifies the exception
    message to decide whether to retry.
    """

    @abstractmethod
    async def goto(self, url: str, wait_until: str = "load", timeout_ms: Optional[int] = None) -> None:
        """Navigate to a URL."""

    @abstractmethod
    async def click(self, selector: str) -> None:
        """Click an element."""

    @abstractmethod
    async def fill(self, selector: str, value: str) -> None:
        """Fill a form field."""

    @abstractmethod
    async def screenshot(self, path: Optional[str] = None, full_page: bool = True) -> bytes:
        """Capture the page, writing it to ``path`` when given."""

    @abstractmethod
    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a script in the page and return its result."""

    @abstractmethod
    async def current_url(self) -> str:
        """Get the current page URL."""

    @abstractmethod
    async def count(self, selector: str) -> int:
        """Number of elements matching a selector."""

    @abstractmethod
    async def is_visible(self, selector: str) -> bool:
        """Whether the first matching element is visible."""

    @abstractmethod
    async def text_content(self, selector: str = "body") -> str:
        """Text content of an element, the whole body by default."""

    @abstractmethod
    async def bounding_box(self, selector: str) -> Optional[BoundingBox]:
        """Geometry of the first matching element, None when not rendered."""

    @abstractmethod
    def on(self, event: str, handler: NetworkHandler) -> None:
        """Subscribe to a network event (see NETWORK_EVENTS)."""

    @abstractmethod
    def off(self, event: str, handler: NetworkHandler) -> None:
        """Unsubscribe a handler registered with ``on``."""

    # Optional methods with default implementations

    async def wait_for_response(self, predicate: Callable[[str], bool], timeout_ms: int) -> Any:
        """Wait for a response whose URL satisfies ``predicate``. Raises asyncio.TimeoutError."""
        raise NotImplementedError("wait_for_response not implemented for this page")

    async def wait_for_load_state(self, state: str = "load", timeout_ms: Optional[int] = None) -> None:
        """Wait for a document load state."""
        raise NotImplementedError("wait_for_load_state not implemented for this page")

    async def reload(self, wait_until: str = "load") -> None:
        """Reload the current page."""
        raise NotImplementedError("reload not implemented for this page")

    async def start_tracing(self) -> None:
        """Begin recording a trace. Pages without tracing ignore this."""

    async def stop_tracing(self, path: Optional[str] = None) -> Optional[str]:
        """Stop tracing, keeping the trace at ``path`` when given.

        Returns the saved path, or None when nothing was written.
        """
        return None

    async def save_video(self, path: str) -> Optional[str]:
        """Save the page recording to ``path``. Returns None when not recording."""
        return None


class PageProvider(ABC):
    """Opens and releases pages for execution environments."""

    @abstractmethod
    async def open_page(self, environment: BrowserEnvironment) -> BrowserPage:
        """Launch (or lease) a page configured for ``environment``."""

    @abstractmethod
    async def close_page(self, page: BrowserPage) -> None:
        """Release every resource behind ``page``."""

    async def close_all(self) -> None:
        """Release any pages still open. Providers that pool pages override this."""
