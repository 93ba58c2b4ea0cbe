"""Browser collaborator interfaces and environment presets.

Usage:
    from conductor.browser import BROWSER_ENVIRONMENTS, BrowserPage, PageProvider

    class PlaywrightProvider(PageProvider):
        async def open_page(self, environment):
            ...
"""

from .environments import (
    BROWSER_ENVIRONMENTS,
    DEVICE_PROFILES,
    BrowserEnvironment,
    BrowserType,
    DeviceProfile,
    Viewport,
    get_environment,
)
from .page import NETWORK_EVENTS, BoundingBox, BrowserPage, NetworkEvent, NetworkHandler, PageProvider

__all__ = [
    "BrowserEnvironment",
    "BrowserType",
    "DeviceProfile",
    "Viewport",
    "BROWSER_ENVIRONMENTS",
    "DEVICE_PROFILES",
    "get_environment",
    "BrowserPage",
    "PageProvider",
    "BoundingBox",
    "NetworkEvent",
    "NetworkHandler",
    "NETWORK_EVENTS",
]
