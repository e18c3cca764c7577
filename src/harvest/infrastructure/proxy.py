"""
Proxy descriptor parsing.

Turns user-supplied proxy descriptors into ProxyConfig objects and then
into the proxy URL handed to the HTTP transport. Two textual forms are
accepted:

- URI form: scheme://[user:pass@]host[:port]
- Legacy form: host:port[:user[:pass]] (always an HTTP proxy)

Parsing never raises; malformed descriptors yield None and the caller
continues without a proxy.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

logger = logging.getLogger(__name__)


class ProxyType(str, Enum):
    """Supported proxy types."""
    HTTP = "http"
    HTTPS = "https"
    SOCKS4 = "socks4"
    SOCKS5 = "socks5"


DEFAULT_PORTS = {
    ProxyType.HTTP: 80,
    ProxyType.HTTPS: 443,
    ProxyType.SOCKS4: 1080,
    ProxyType.SOCKS5: 1080,
}

# Proxy schemes the httpx transport can tunnel through
TRANSPORT_SCHEMES = {ProxyType.HTTP, ProxyType.HTTPS, ProxyType.SOCKS5}


@dataclass(frozen=True)
class ProxyConfig:
    """Configuration for a single proxy."""
    host: str
    port: int
    proxy_type: ProxyType = ProxyType.HTTP
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def url(self) -> str:
        """Get proxy URL with credentials percent-encoded."""
        return format_proxy_url(self)


def format_proxy_url(config: ProxyConfig, redact: bool = False) -> str:
    """
    Format a proxy configuration as a URL string.

    Args:
        config: Proxy to format
        redact: Replace the password with *** (for logs)
    """
    auth = ""
    if config.username:
        auth = quote(config.username, safe="")
        if config.password:
            secret = "***" if redact else quote(config.password, safe="")
            auth = f"{auth}:{secret}"
        auth += "@"
    return f"{config.proxy_type.value}://{auth}{config.host}:{config.port}"


def _parse_port(value: str) -> Optional[int]:
    if not value.isdigit():
        return None
    port = int(value)
    if not 0 < port < 65536:
        return None
    return port


class ProxyResolver:
    """Parses proxy descriptors and maps them onto transport settings."""

    def parse(self, descriptor: Optional[str]) -> Optional[ProxyConfig]:
        """
        Parse a proxy descriptor.

        Args:
            descriptor: URI or legacy host:port[:user[:pass]] string

        Returns:
            ProxyConfig, or None when the descriptor is malformed
        """
        if not descriptor or not descriptor.strip():
            return None
        descriptor = descriptor.strip()

        if "://" in descriptor:
            return self._parse_uri(descriptor)
        return self._parse_legacy(descriptor)

    def _parse_uri(self, descriptor: str) -> Optional[ProxyConfig]:
        try:
            parsed = urlsplit(descriptor)
            proxy_type = ProxyType(parsed.scheme.lower())
            # hostname and port raise on malformed brackets or ports
            host = parsed.hostname
            port = parsed.port
        except ValueError as e:
            logger.debug(f"Malformed proxy URI: {e}")
            return None

        if not host or port == 0:
            return None

        return ProxyConfig(
            host=host,
            port=port or DEFAULT_PORTS[proxy_type],
            proxy_type=proxy_type,
            username=unquote(parsed.username) if parsed.username else None,
            password=unquote(parsed.password) if parsed.password else None,
        )

    def _parse_legacy(self, descriptor: str) -> Optional[ProxyConfig]:
        parts = descriptor.split(":")
        if not 2 <= len(parts) <= 4:
            return None

        host = parts[0].strip()
        port = _parse_port(parts[1].strip())
        if not host or " " in host or port is None:
            return None

        return ProxyConfig(
            host=host,
            port=port,
            proxy_type=ProxyType.HTTP,
            username=parts[2] if len(parts) > 2 and parts[2] else None,
            password=parts[3] if len(parts) > 3 and parts[3] else None,
        )

    @staticmethod
    def supports_transport(config: ProxyConfig) -> bool:
        """Whether the HTTP transport can route through this proxy type."""
        return config.proxy_type in TRANSPORT_SCHEMES

    @staticmethod
    def to_transport_config(config: ProxyConfig) -> str:
        """Map a ProxyConfig onto the proxy URL accepted by httpx."""
        return format_proxy_url(config)
