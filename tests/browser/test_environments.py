"""Tests for browser environment presets."""

import pytest


class TestEnvironments:
    """Tests for BROWSER_ENVIRONMENTS and get_environment()."""

    def test_preset_names_are_unique(self):
        from conductor.browser import BROWSER_ENVIRONMENTS

        names = [env.name for env in BROWSER_ENVIRONMENTS]

        assert len(names) == len(set(names))
        assert "Chrome Desktop" in names

    def test_lookup_preset(self):
        from conductor.browser import BrowserType, get_environment

        env = get_environment("Safari Desktop")

        assert env.type == BrowserType.WEBKIT
        assert env.viewport.to_dict() == {"width": 1920, "height": 1080}

    def test_lookup_device_profile(self):
        from conductor.browser import get_environment

        env = get_environment("Galaxy S21")

        assert env.is_mobile is True
        assert env.device_scale_factor == 2.75
        assert env.to_dict()["type"] == "chromium"

    def test_unknown_environment(self):
        from conductor.browser import get_environment

        with pytest.raises(KeyError, match="Netscape"):
            get_environment("Netscape")

    def test_device_profile_on_other_engine(self):
        from conductor.browser import DEVICE_PROFILES, BrowserType

        ipad = next(p for p in DEVICE_PROFILES if p.name == "iPad Pro")

        assert ipad.as_environment(BrowserType.WEBKIT).type == BrowserType.WEBKIT
