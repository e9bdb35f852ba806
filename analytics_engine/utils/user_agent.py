"""User-agent parsing into the device/browser snapshot stored on views."""

import re
from dataclasses import asdict, dataclass
from typing import Optional

UNKNOWN = "Unknown"

# (name, pattern with a version group), first match wins
_BROWSERS: tuple[tuple[str, re.Pattern], ...] = (
    ("Edge", re.compile(r"Edg(?:e|A|iOS)?/([\d.]+)")),
    ("Opera", re.compile(r"(?:OPR|Opera)/([\d.]+)")),
    ("Samsung Internet", re.compile(r"SamsungBrowser/([\d.]+)")),
    ("Firefox", re.compile(r"(?:Firefox|FxiOS)/([\d.]+)")),
    ("Chrome", re.compile(r"(?:Chrome|CriOS)/([\d.]+)")),
    ("Safari", re.compile(r"Version/([\d.]+).*Safari/")),
    ("Internet Explorer", re.compile(r"(?:MSIE |Trident/.*rv:)([\d.]+)")),
)

_PLATFORMS: tuple[tuple[str, re.Pattern], ...] = (
    ("Windows", re.compile(r"Windows NT ([\d.]+)")),
    ("iOS", re.compile(r"(?:iPhone|iPad|iPod).*?OS ([\d_]+)")),
    ("Android", re.compile(r"Android ([\d.]+)")),
    ("OS X", re.compile(r"Mac OS X ([\d_.]+)")),
    ("Chrome OS", re.compile(r"CrOS \S+ ([\d.]+)")),
    ("Linux", re.compile(r"Linux()")),
)

_TABLET = re.compile(r"iPad|Tablet|Nexus (?:7|9|10)|SM-T\d+|Kindle|Silk|Android(?!.*Mobile)", re.IGNORECASE)
_MOBILE = re.compile(r"Mobile|iPhone|iPod|Android.*Mobile|Windows Phone|BlackBerry|Opera Mini", re.IGNORECASE)


@dataclass
class UserAgentDetails:
    device: str = "Desktop"
    device_type: str = UNKNOWN
    platform: str = UNKNOWN
    os: str = UNKNOWN
    browser: str = UNKNOWN
    browser_version: str = UNKNOWN

    def as_dict(self) -> dict[str, str]:
        return asdict(self)


def _first_match(patterns, user_agent: str) -> tuple[Optional[str], Optional[str]]:
    for name, pattern in patterns:
        match = pattern.search(user_agent)
        if match:
            return name, (match.group(1) or "").replace("_", ".") or None
    return None, None


def parse_user_agent(user_agent: Optional[str]) -> UserAgentDetails:
    """
    Derive device class, platform/OS and browser from a user-agent string.

    Unrecognized parts are reported as ``"Unknown"``; an empty string yields
    a desktop device with every other field unknown.
    """
    details = UserAgentDetails()
    if not user_agent:
        return details

    if _TABLET.search(user_agent):
        details.device = "Tablet"
    elif _MOBILE.search(user_agent):
        details.device = "Mobile"
    details.device_type = details.device.lower()

    platform, platform_version = _first_match(_PLATFORMS, user_agent)
    if platform:
        details.platform = platform
        details.os = f"{platform} {platform_version}" if platform_version else platform

    browser, browser_version = _first_match(_BROWSERS, user_agent)
    if browser:
        details.browser = browser
        details.browser_version = browser_version or UNKNOWN

    return details
