"""
Infrastructure Package.

Provides browser identities, proxy parsing and page fetching for the
extraction pipeline.
"""

from .user_agents import (
    UserAgentProvider,
    DeviceType,
    BrowserFamily,
    USER_AGENTS,
)
from .proxy import (
    ProxyResolver,
    ProxyConfig,
    ProxyType,
    format_proxy_url,
)
from .fetcher import (
    PageFetcher,
    RequestOptions,
    FetchedPage,
)

__all__ = [
    # Identities
    "UserAgentProvider",
    "DeviceType",
    "BrowserFamily",
    "USER_AGENTS",
    # Proxies
    "ProxyResolver",
    "ProxyConfig",
    "ProxyType",
    "format_proxy_url",
    # Fetching
    "PageFetcher",
    "RequestOptions",
    "FetchedPage",
]
