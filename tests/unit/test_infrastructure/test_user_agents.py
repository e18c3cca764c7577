"""Unit tests for browser identity spoofing."""

import random

import pytest

from harvest.infrastructure.user_agents import (
    BrowserFamily,
    DeviceType,
    FALLBACK_USER_AGENT,
    SAFARI_ACCEPT,
    USER_AGENTS,
    UserAgentProvider,
    detect_platform,
)

CHROME_WINDOWS = USER_AGENTS[DeviceType.DESKTOP][BrowserFamily.CHROME][0]
FIREFOX_WINDOWS = USER_AGENTS[DeviceType.DESKTOP][BrowserFamily.FIREFOX][0]
SAFARI_MAC = USER_AGENTS[DeviceType.DESKTOP][BrowserFamily.SAFARI][0]
EDGE_WINDOWS = USER_AGENTS[DeviceType.DESKTOP][BrowserFamily.EDGE][0]
ANDROID_PIXEL = USER_AGENTS[DeviceType.MOBILE][BrowserFamily.ANDROID][0]
IPHONE = USER_AGENTS[DeviceType.MOBILE][BrowserFamily.IOS][0]


@pytest.fixture
def provider():
    """Provider with a seeded random source."""
    return UserAgentProvider(rng=random.Random(1234))


class TestPick:
    """Tests for UserAgentProvider.pick."""

    def test_pick_with_device_and_browser(self, provider):
        """Explicit combinations come from the matching catalog list."""
        agent = provider.pick(DeviceType.DESKTOP, BrowserFamily.FIREFOX)
        assert agent in USER_AGENTS[DeviceType.DESKTOP][BrowserFamily.FIREFOX]

    def test_pick_accepts_strings(self, provider):
        """Plain string values work as well as enum members."""
        agent = provider.pick("mobile", "ios")
        assert agent in USER_AGENTS[DeviceType.MOBILE][BrowserFamily.IOS]

    def test_pick_browser_only_infers_device(self, provider):
        """A browser without a device is looked up in its own device class."""
        for _ in range(20):
            agent = provider.pick(browser=BrowserFamily.ANDROID)
            assert agent in USER_AGENTS[DeviceType.MOBILE][BrowserFamily.ANDROID]

    def test_pick_device_only(self, provider):
        """A device without a browser draws from that device's catalog."""
        mobile_agents = [a for agents in USER_AGENTS[DeviceType.MOBILE].values() for a in agents]
        for _ in range(20):
            assert provider.pick(device=DeviceType.MOBILE) in mobile_agents

    def test_mismatched_combination_falls_back(self, provider):
        """A browser that does not exist for the device yields the fallback."""
        assert provider.pick(DeviceType.MOBILE, BrowserFamily.FIREFOX) == FALLBACK_USER_AGENT

    def test_unknown_values_fall_back(self, provider):
        """Unknown names yield the fallback instead of raising."""
        assert provider.pick("tablet", "chrome") == FALLBACK_USER_AGENT
        assert provider.pick("desktop", "lynx") == FALLBACK_USER_AGENT

    def test_seeded_picks_are_reproducible(self):
        """Two providers with the same seed pick the same identities."""
        first = UserAgentProvider(rng=random.Random(7))
        second = UserAgentProvider(rng=random.Random(7))

        assert [first.pick() for _ in range(10)] == [second.pick() for _ in range(10)]

    def test_desktop_bias(self):
        """Unconstrained picks favour desktop identities."""
        provider = UserAgentProvider(rng=random.Random(42))
        desktop_agents = {a for agents in USER_AGENTS[DeviceType.DESKTOP].values() for a in agents}

        picks = [provider.pick() for _ in range(1000)]
        desktop_share = sum(1 for agent in picks if agent in desktop_agents) / len(picks)

        assert 0.6 < desktop_share < 0.8


class TestHeadersFor:
    """Tests for UserAgentProvider.headers_for."""

    def test_chrome_headers_have_client_hints(self, provider):
        """Chromium identities carry sec-ch-ua headers."""
        headers = provider.headers_for(CHROME_WINDOWS)

        assert headers["User-Agent"] == CHROME_WINDOWS
        assert '"Google Chrome";v="120"' in headers["sec-ch-ua"]
        assert headers["sec-ch-ua-mobile"] == "?0"
        assert headers["sec-ch-ua-platform"] == '"Windows"'

    def test_edge_brand(self, provider):
        """Edge identities report the Edge brand."""
        headers = provider.headers_for(EDGE_WINDOWS)
        assert '"Microsoft Edge"' in headers["sec-ch-ua"]

    def test_android_is_mobile(self, provider):
        """Android Chrome reports a mobile Android client."""
        headers = provider.headers_for(ANDROID_PIXEL)

        assert headers["sec-ch-ua-mobile"] == "?1"
        assert headers["sec-ch-ua-platform"] == '"Android"'

    def test_firefox_has_no_client_hints(self, provider):
        """Firefox never sends client-hint headers."""
        headers = provider.headers_for(FIREFOX_WINDOWS)

        assert not any(name.startswith("sec-ch-ua") for name in headers)
        assert headers["Accept"] != SAFARI_ACCEPT

    def test_safari_accept(self, provider):
        """Safari gets its own Accept value and no client hints."""
        headers = provider.headers_for(SAFARI_MAC)

        assert headers["Accept"] == SAFARI_ACCEPT
        assert "sec-ch-ua" not in headers

    def test_base_headers_present(self, provider):
        """Every identity carries the navigation headers."""
        headers = provider.headers_for(IPHONE)

        assert headers["Accept-Language"] == "en-US,en;q=0.9"
        assert headers["Sec-Fetch-Mode"] == "navigate"
        assert headers["Upgrade-Insecure-Requests"] == "1"

    def test_random_identity(self, provider):
        """random_identity returns a header set for a catalog identity."""
        headers = provider.random_identity()
        all_agents = {a for families in USER_AGENTS.values() for agents in families.values() for a in agents}

        assert headers["User-Agent"] in all_agents


class TestDetectPlatform:
    """Tests for platform detection."""

    @pytest.mark.parametrize("agent,platform", [
        (CHROME_WINDOWS, "Windows"),
        (SAFARI_MAC, "macOS"),
        (ANDROID_PIXEL, "Android"),
        (IPHONE, "iOS"),
        (USER_AGENTS[DeviceType.DESKTOP][BrowserFamily.CHROME][2], "Linux"),
        ("curl/8.0", "Unknown"),
    ])
    def test_detect_platform(self, agent, platform):
        assert detect_platform(agent) == platform


class TestCatalog:
    """Tests for the identity catalog."""

    def test_all_user_agents_is_a_copy(self):
        """Mutating the returned catalog leaves the provider untouched."""
        catalog = UserAgentProvider.all_user_agents()
        catalog["desktop"]["chrome"].clear()

        assert USER_AGENTS[DeviceType.DESKTOP][BrowserFamily.CHROME]
        assert set(UserAgentProvider.all_user_agents()) == {"desktop", "mobile"}
