"""Tests for device profiles."""

import pytest
from pydantic import ValidationError

from perf_sentinel.audit.devices import CANONICAL_PROFILES, DESKTOP, MOBILE, DeviceProfile, ScreenEmulation


class TestCanonicalProfiles:
    """Test the built-in desktop and mobile profiles."""

    def test_declared_order(self):
        """Test profiles are listed desktop first, then mobile."""
        assert [profile.name for profile in CANONICAL_PROFILES] == ["desktop", "mobile"]

    def test_desktop_disables_screen_emulation(self):
        """Test desktop turns screen emulation off."""
        assert DESKTOP.to_lighthouse_flags() == ["--form-factor=desktop", "--screenEmulation.disabled"]

    def test_mobile_uses_engine_defaults(self):
        """Test mobile keeps the engine's default emulation."""
        flags = MOBILE.to_lighthouse_flags()

        assert flags[0] == "--form-factor=mobile"
        assert "--screenEmulation.mobile=true" in flags
        assert "--screenEmulation.height=823" in flags

    def test_profiles_are_immutable(self):
        """Test profiles cannot be modified."""
        with pytest.raises(ValidationError):
            DESKTOP.name = "tablet"


class TestCustomProfile:
    """Test user-defined profiles."""

    def test_extra_flags_are_appended(self):
        """Test custom profiles carry extra flags."""
        profile = DeviceProfile(
            name="tablet",
            form_factor="mobile",
            screen=ScreenEmulation(width=820, height=1180, device_scale_factor=2, mobile=True),
            extra_flags=("--throttling-method=devtools",),
        )

        flags = profile.to_lighthouse_flags()

        assert "--screenEmulation.width=820" in flags
        assert flags[-1] == "--throttling-method=devtools"

    def test_invalid_screen_rejected(self):
        """Test non-positive screen sizes are rejected."""
        with pytest.raises(ValidationError):
            ScreenEmulation(width=0)
