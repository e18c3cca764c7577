"""Data models for the extraction pipeline."""

from dataclasses import dataclass, field, fields as dataclass_fields
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from harvest.constants import DEFAULT_PAGE_LIMIT, DEFAULT_REQUEST_INTERVAL_SECONDS
from harvest.exceptions import ConfigurationError
from harvest.utils.captcha_solver import CaptchaType


class PageType(str, Enum):
    """Hint describing what kind of page the target URL is."""
    PRODUCT_LISTING = "product_listing"
    PRODUCT_DETAIL = "product_detail"
    CATEGORY_PAGE = "category_page"
    SEARCH_RESULTS = "search_results"


class PaginationType(str, Enum):
    """How successive pages of a listing are reached."""
    STANDARD = "standard"  # ?page=N
    INFINITE_SCROLL = "infinite_scroll"
    LOAD_MORE = "load_more"


class ProtectionKind(str, Enum):
    """Classification of a fetched page."""
    CLEAN = "clean"
    CHALLENGE_PAGE = "challenge_page"
    CAPTCHA = "captcha"


@dataclass(frozen=True)
class ScrapeConfiguration:
    """Read-only snapshot of one scrape target and its evasion settings."""

    url: str
    name: str = ""
    page_type: PageType = PageType.PRODUCT_LISTING
    pagination_type: PaginationType = PaginationType.STANDARD
    page_limit: int = DEFAULT_PAGE_LIMIT
    request_interval: float = DEFAULT_REQUEST_INTERVAL_SECONDS
    use_user_agent_spoofing: bool = True
    use_challenge_bypass: bool = False
    use_captcha_handling: bool = False
    proxy_url: Optional[str] = None
    container_selector: Optional[str] = None

    def validate(self) -> None:
        """Raise ConfigurationError if this configuration cannot be run."""
        if not self.url or not self.url.strip():
            raise ConfigurationError("No target URL specified in configuration")
        if self.page_limit < 1:
            raise ConfigurationError(f"Page limit must be at least 1, got {self.page_limit}")
        if self.request_interval < 0:
            raise ConfigurationError(
                f"Request interval must not be negative, got {self.request_interval}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScrapeConfiguration":
        """Build a configuration from a plain mapping, ignoring unknown keys.

        Raises:
            ConfigurationError: If an enum value or number is malformed
        """
        known = {f.name for f in dataclass_fields(cls)}
        values = {key: value for key, value in data.items() if key in known}

        try:
            if "page_type" in values:
                values["page_type"] = PageType(values["page_type"])
            if "pagination_type" in values:
                values["pagination_type"] = PaginationType(values["pagination_type"])
            if "page_limit" in values:
                values["page_limit"] = int(values["page_limit"])
            if "request_interval" in values:
                values["request_interval"] = float(values["request_interval"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

        values.setdefault("url", "")
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "name": self.name,
            "page_type": self.page_type.value,
            "pagination_type": self.pagination_type.value,
            "page_limit": self.page_limit,
            "request_interval": self.request_interval,
            "use_user_agent_spoofing": self.use_user_agent_spoofing,
            "use_challenge_bypass": self.use_challenge_bypass,
            "use_captcha_handling": self.use_captcha_handling,
            "proxy_url": self.proxy_url,
            "container_selector": self.container_selector,
        }


@dataclass(frozen=True)
class FieldDefinition:
    """One named extraction rule evaluated relative to a container element."""

    name: str
    selector: str
    attribute: str = "text"  # text, html, or any attribute name
    regex: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldDefinition":
        if not data.get("name") or not data.get("selector"):
            raise ConfigurationError(f"Field definition needs a name and a selector: {data}")
        return cls(
            name=str(data["name"]),
            selector=str(data["selector"]),
            attribute=str(data.get("attribute") or "text"),
            regex=data.get("regex") or None,
        )


@dataclass
class ExtractedRecord:
    """One structured record produced from a container element."""

    title: str
    price: Optional[str] = None
    description: Optional[str] = None
    rating: Optional[str] = None
    review_count: Optional[str] = None
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    category: Optional[str] = None
    in_stock: bool = True
    extra: dict[str, str] = field(default_factory=dict)
    page_number: Optional[int] = None
    extracted_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "title": self.title,
            "price": self.price,
            "description": self.description,
            "rating": self.rating,
            "review_count": self.review_count,
            "image_url": self.image_url,
            "product_url": self.product_url,
            "category": self.category,
            "in_stock": self.in_stock,
            "extra": dict(self.extra),
            "page_number": self.page_number,
            "extracted_at": self.extracted_at.isoformat(),
        }


@dataclass(frozen=True)
class ProtectionVerdict:
    """Result of classifying a fetched page."""

    kind: ProtectionKind = ProtectionKind.CLEAN
    challenge_type: Optional[CaptchaType] = None
    site_key: Optional[str] = None
    indicators: tuple[str, ...] = ()

    @property
    def is_clean(self) -> bool:
        return self.kind == ProtectionKind.CLEAN

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "challenge_type": self.challenge_type.value if self.challenge_type else None,
            "site_key": self.site_key,
            "indicators": list(self.indicators),
        }


@dataclass
class RunOutcome:
    """Terminal summary of one crawl run."""

    success: bool
    items_scraped: int = 0
    duration_seconds: float = 0.0
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    pages_fetched: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "success": self.success,
            "items_scraped": self.items_scraped,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
            "warnings": list(self.warnings),
            "pages_fetched": self.pages_fetched,
        }
