"""Device profiles applied to audit runs."""

from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ScreenEmulation(BaseModel):
    """Screen emulation parameters understood by the audit engine."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(default=412, ge=1, description="Viewport width in CSS pixels")
    height: int = Field(default=823, ge=1, description="Viewport height in CSS pixels")
    device_scale_factor: float = Field(default=1.75, gt=0, description="Pixel density")
    mobile: bool = Field(default=True, description="Emulate a mobile device")
    disabled: bool = Field(default=False, description="Disable screen emulation entirely")


class DeviceProfile(BaseModel):
    """Named emulation configuration for one class of device."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Device label written to the result row")
    form_factor: str = Field(description="Engine form factor: desktop or mobile")
    screen: ScreenEmulation = Field(default_factory=ScreenEmulation)
    extra_flags: Tuple[str, ...] = Field(default=(), description="Additional engine flags")

    def to_lighthouse_flags(self) -> List[str]:
        """Encode the profile as Lighthouse command-line flags."""
        flags = [f"--form-factor={self.form_factor}"]

        if self.screen.disabled:
            flags.append("--screenEmulation.disabled")
        else:
            flags.extend([
                f"--screenEmulation.mobile={'true' if self.screen.mobile else 'false'}",
                f"--screenEmulation.width={self.screen.width}",
                f"--screenEmulation.height={self.screen.height}",
                f"--screenEmulation.deviceScaleFactor={self.screen.device_scale_factor}",
            ])

        flags.extend(self.extra_flags)
        return flags


DESKTOP = DeviceProfile(
    name="desktop",
    form_factor="desktop",
    screen=ScreenEmulation(width=1350, height=940, device_scale_factor=1, mobile=False, disabled=True),
)

MOBILE = DeviceProfile(
    name="mobile",
    form_factor="mobile",
    screen=ScreenEmulation(),
)

CANONICAL_PROFILES = (DESKTOP, MOBILE)
