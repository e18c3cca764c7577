"""
Page fetching with bounded retry.

Each fetch opens its own httpx.AsyncClient so that identity, proxy and
cookie settings never leak between pages. Transient transport failures
are retried a fixed number of times with a fixed pause; HTTP error
statuses are returned to the caller so bot-protection pages can be
inspected.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Dict, Optional

import httpx

from harvest.constants import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RETRY_DELAY_SECONDS,
)
from harvest.exceptions import FetchFailed

logger = logging.getLogger(__name__)


@dataclass
class RequestOptions:
    """Per-request settings built by the orchestrator."""
    headers: Dict[str, str] = field(default_factory=dict)
    proxy: Optional[str] = None
    follow_redirects: bool = True
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    cookies: Dict[str, str] = field(default_factory=dict)

    def copy(self, **changes) -> "RequestOptions":
        """Return a copy with its own header and cookie maps."""
        clone = replace(self, headers=dict(self.headers), cookies=dict(self.cookies))
        return replace(clone, **changes) if changes else clone


@dataclass
class FetchedPage:
    """Response data for one fetched page."""
    url: str
    status_code: int
    body: str
    final_url: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class PageFetcher:
    """Fetches single pages with a timeout, a redirect cap and bounded retry."""

    def __init__(
        self,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            timeout: Overall time budget for one attempt, in seconds
            max_attempts: Attempts before FetchFailed is raised
            retry_delay: Pause between attempts, in seconds
            max_redirects: Hard cap on redirects, regardless of request options
            transport: Custom httpx transport; takes precedence over proxy routing
            sleep: Coroutine used for the pause between attempts
        """
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.max_redirects = max_redirects
        self._transport = transport
        self._sleep = sleep

    async def fetch(
        self,
        url: str,
        options: Optional[RequestOptions] = None,
        form_data: Optional[Dict[str, str]] = None,
    ) -> FetchedPage:
        """
        Fetch a page, retrying transient failures.

        Args:
            url: Page URL
            options: Headers, proxy and cookies for the request
            form_data: When given, the page is requested with a form POST

        Returns:
            FetchedPage, whatever the HTTP status

        Raises:
            FetchFailed: If every attempt ended in a transport error or timeout
        """
        options = options or RequestOptions()
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await asyncio.wait_for(
                    self._request(url, options, form_data),
                    timeout=self.timeout,
                )
            except (httpx.TooManyRedirects, httpx.UnsupportedProtocol, httpx.InvalidURL) as e:
                # Retrying cannot change the outcome
                raise FetchFailed(url, attempt, e) from e
            except (httpx.RequestError, asyncio.TimeoutError) as e:
                last_error = e
                reason = str(e) or type(e).__name__
                logger.warning(f"Attempt {attempt}/{self.max_attempts} for {url} failed: {reason}")

            if attempt < self.max_attempts:
                await self._sleep(self.retry_delay)

        raise FetchFailed(url, self.max_attempts, last_error)

    async def _request(
        self,
        url: str,
        options: RequestOptions,
        form_data: Optional[Dict[str, str]],
    ) -> FetchedPage:
        client_kwargs = {
            "timeout": httpx.Timeout(self.timeout),
            "follow_redirects": options.follow_redirects,
            "max_redirects": min(options.max_redirects, self.max_redirects),
            "headers": options.headers,
            "cookies": options.cookies,
        }
        if self._transport is not None:
            client_kwargs["transport"] = self._transport
        elif options.proxy:
            client_kwargs["proxy"] = options.proxy

        async with httpx.AsyncClient(**client_kwargs) as client:
            if form_data is not None:
                response = await client.post(url, data=form_data)
            else:
                response = await client.get(url)
            cookies = {cookie.name: cookie.value for cookie in client.cookies.jar}

        logger.debug(f"Fetched {url} -> {response.status_code} ({len(response.content)} bytes)")

        return FetchedPage(
            url=url,
            status_code=response.status_code,
            body=response.text,
            final_url=str(response.url),
            headers=dict(response.headers),
            cookies=cookies,
        )
