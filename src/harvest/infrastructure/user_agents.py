"""
Browser identity spoofing.

Supplies realistic user-agent strings and header sets that stay
consistent with the chosen identity: client-hint headers only accompany
Chromium-family identities, Safari gets its own Accept value, and the
reported platform matches the user-agent string.
"""

import logging
import random
import re
from enum import Enum
from typing import Dict, List, Optional, Union

from harvest.constants import DESKTOP_IDENTITY_WEIGHT

logger = logging.getLogger(__name__)


class DeviceType(str, Enum):
    """Device class of a browser identity."""
    DESKTOP = "desktop"
    MOBILE = "mobile"


class BrowserFamily(str, Enum):
    """Browser family of a browser identity."""
    CHROME = "chrome"
    FIREFOX = "firefox"
    SAFARI = "safari"
    EDGE = "edge"
    IOS = "ios"
    ANDROID = "android"


USER_AGENTS: Dict[DeviceType, Dict[BrowserFamily, List[str]]] = {
    DeviceType.DESKTOP: {
        BrowserFamily.CHROME: [
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
        ],
        BrowserFamily.FIREFOX: [
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
            "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/119.0",
        ],
        BrowserFamily.SAFARI: [
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Safari/605.1.15",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.6 Safari/605.1.15",
        ],
        BrowserFamily.EDGE: [
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36 Edg/119.0.0.0",
        ],
    },
    DeviceType.MOBILE: {
        BrowserFamily.IOS: [
            "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1",
            "Mozilla/5.0 (iPhone; CPU iPhone OS 16_6_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1",
            "Mozilla/5.0 (iPad; CPU OS 17_2 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1",
        ],
        BrowserFamily.ANDROID: [
            "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",
            "Mozilla/5.0 (Linux; Android 13; SM-S901U) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",
            "Mozilla/5.0 (Linux; Android 13; SM-A536B) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Mobile Safari/537.36",
        ],
    },
}

# Identity used when a (device, browser) pair has no catalog entry
FALLBACK_USER_AGENT = USER_AGENTS[DeviceType.DESKTOP][BrowserFamily.CHROME][0]

BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "DNT": "1",  # Do Not Track
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Pragma": "no-cache",
    "Cache-Control": "no-cache",
}

SAFARI_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

_CHROME_VERSION_RE = re.compile(r"Chrome/(\d+)")


def detect_platform(user_agent: str) -> str:
    """Platform name reported in sec-ch-ua-platform for a user-agent string."""
    # Mobile platforms first: Android strings also mention Linux, iOS ones mention Mac OS X
    if "Android" in user_agent:
        return "Android"
    if "iPhone" in user_agent or "iPad" in user_agent:
        return "iOS"
    if "Windows" in user_agent:
        return "Windows"
    if "Mac" in user_agent:
        return "macOS"
    if "Linux" in user_agent:
        return "Linux"
    return "Unknown"


def is_chromium(user_agent: str) -> bool:
    return "Chrome/" in user_agent


class UserAgentProvider:
    """Picks browser identities and builds header sets that match them."""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Args:
            rng: Random source; pass a seeded instance for deterministic picks
        """
        self._rng = rng or random.Random()

    def pick(
        self,
        device: Optional[Union[DeviceType, str]] = None,
        browser: Optional[Union[BrowserFamily, str]] = None,
    ) -> str:
        """
        Pick a user-agent string.

        Args:
            device: Device class; drawn with a desktop bias when omitted
            browser: Browser family; drawn uniformly within the device when omitted

        Returns:
            A user-agent string. Unknown or mismatched combinations fall back
            to a desktop Chrome identity.
        """
        try:
            family = BrowserFamily(browser) if browser else None
            if device:
                device_type = DeviceType(device)
            elif family:
                device_type = self._device_for(family)
            else:
                device_type = self._pick_device()
            family_pool = USER_AGENTS[device_type]
            agents = family_pool[family] if family else family_pool[self._rng.choice(list(family_pool))]
        except (KeyError, ValueError):
            logger.debug(f"No identity for device={device!r} browser={browser!r}; using fallback")
            return FALLBACK_USER_AGENT

        return self._rng.choice(agents)

    def _pick_device(self) -> DeviceType:
        if self._rng.random() < DESKTOP_IDENTITY_WEIGHT:
            return DeviceType.DESKTOP
        return DeviceType.MOBILE

    @staticmethod
    def _device_for(family: BrowserFamily) -> DeviceType:
        for device_type, families in USER_AGENTS.items():
            if family in families:
                return device_type
        raise KeyError(family)

    def headers_for(self, user_agent: str) -> Dict[str, str]:
        """
        Build a navigation header set consistent with a user-agent string.

        Args:
            user_agent: Identity the request will present

        Returns:
            Header map including User-Agent
        """
        headers = {"User-Agent": user_agent, **BASE_HEADERS}

        if is_chromium(user_agent):
            version_match = _CHROME_VERSION_RE.search(user_agent)
            version = version_match.group(1) if version_match else "120"
            brand = "Microsoft Edge" if "Edg/" in user_agent else "Google Chrome"
            headers["sec-ch-ua"] = (
                f'"{brand}";v="{version}", "Chromium";v="{version}", "Not?A_Brand";v="24"'
            )
            headers["sec-ch-ua-mobile"] = "?1" if "Mobile" in user_agent else "?0"
            headers["sec-ch-ua-platform"] = f'"{detect_platform(user_agent)}"'
        elif "Safari" in user_agent and "Firefox" not in user_agent:
            headers["Accept"] = SAFARI_ACCEPT

        return headers

    def random_identity(self) -> Dict[str, str]:
        """Pick an identity and return its full header set."""
        return self.headers_for(self.pick())

    @staticmethod
    def all_user_agents() -> Dict[str, Dict[str, List[str]]]:
        """Copy of the identity catalog keyed by device and browser name."""
        return {
            device.value: {browser.value: list(agents) for browser, agents in families.items()}
            for device, families in USER_AGENTS.items()
        }
