"""Browser and device execution environments."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class BrowserType(str, Enum):
    """Supported browser engines."""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


@dataclass(frozen=True)
class Viewport:
    width: int
    height: int

    def to_dict(self) -> dict:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class BrowserEnvironment:
    """One cell of the execution matrix: a browser engine plus device settings."""

    name: str
    type: BrowserType = BrowserType.CHROMIUM
    headless: bool = True
    viewport: Viewport = field(default_factory=lambda: Viewport(1920, 1080))
    user_agent: Optional[str] = None
    device_scale_factor: float = 1.0
    is_mobile: bool = False
    has_touch: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.type.value,
            "headless": self.headless,
            "viewport": self.viewport.to_dict(),
            "user_agent": self.user_agent,
            "device_scale_factor": self.device_scale_factor,
            "is_mobile": self.is_mobile,
            "has_touch": self.has_touch,
        }


@dataclass(frozen=True)
class DeviceProfile:
    """Device emulation settings that can be applied to any browser type."""

    name: str
    viewport: Viewport
    user_agent: str
    device_scale_factor: float
    is_mobile: bool
    has_touch: bool

    def as_environment(self, browser_type: BrowserType = BrowserType.CHROMIUM) -> BrowserEnvironment:
        return BrowserEnvironment(
            name=self.name,
            type=browser_type,
            viewport=self.viewport,
            user_agent=self.user_agent,
            device_scale_factor=self.device_scale_factor,
            is_mobile=self.is_mobile,
            has_touch=self.has_touch,
        )


IPHONE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 14_0 like Mac OS X) AppleWebKit/605.1.15"
IPAD_UA = "Mozilla/5.0 (iPad; CPU OS 14_0 like Mac OS X) AppleWebKit/605.1.15"
ANDROID_UA = "Mozilla/5.0 (Linux; Android 11; SM-G991B) AppleWebKit/537.36"
DESKTOP_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

BROWSER_ENVIRONMENTS: list[BrowserEnvironment] = [
    BrowserEnvironment(name="Chrome Desktop", type=BrowserType.CHROMIUM),
    BrowserEnvironment(name="Firefox Desktop", type=BrowserType.FIREFOX),
    BrowserEnvironment(name="Safari Desktop", type=BrowserType.WEBKIT),
    BrowserEnvironment(
        name="Chrome Mobile",
        type=BrowserType.CHROMIUM,
        viewport=Viewport(375, 667),
        user_agent=IPHONE_UA,
        device_scale_factor=2,
        is_mobile=True,
        has_touch=True,
    ),
    BrowserEnvironment(
        name="iPad",
        type=BrowserType.WEBKIT,
        viewport=Viewport(768, 1024),
        user_agent=IPAD_UA,
        device_scale_factor=2,
        is_mobile=True,
        has_touch=True,
    ),
]

DEVICE_PROFILES: list[DeviceProfile] = [
    DeviceProfile("iPhone 12", Viewport(390, 844), IPHONE_UA, 3, True, True),
    DeviceProfile("iPhone 12 Pro Max", Viewport(428, 926), IPHONE_UA, 3, True, True),
    DeviceProfile("Galaxy S21", Viewport(384, 854), ANDROID_UA, 2.75, True, True),
    DeviceProfile("iPad Pro", Viewport(1024, 1366), IPAD_UA, 2, True, True),
    DeviceProfile("Desktop 1920x1080", Viewport(1920, 1080), DESKTOP_UA, 1, False, False),
    DeviceProfile("Desktop 1366x768", Viewport(1366, 768), DESKTOP_UA, 1, False, False),
]


def get_environment(name: str) -> BrowserEnvironment:
    """Look up a preset environment or device profile by name."""
    for env in BROWSER_ENVIRONMENTS:
        if env.name == name:
            return env
    for profile in DEVICE_PROFILES:
        if profile.name == name:
            return profile.as_environment()
    raise KeyError(f"Unknown browser environment: {name}")
