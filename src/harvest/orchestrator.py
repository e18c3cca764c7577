"""
Crawl orchestration.

CrawlOrchestrator drives one run: it validates the configuration, walks
the pages in order, fetches each one with the configured identity and
proxy, reacts to bot protection, extracts and persists records, and
reports progress. A failure on the first page fails the run; a failure
on a later page ends pagination with the records gathered so far.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from harvest.config import HarvestConfig
from harvest.constants import (
    DEFAULT_CONTAINER_SELECTOR,
    DETAIL_PAGE_CONTAINER_SELECTOR,
    PAGE_QUERY_PARAMETER,
)
from harvest.exceptions import (
    ConfigurationError,
    FetchFailed,
    NoContainersFound,
    PersistenceError,
    ProtectionBlocked,
    SolverRejected,
    SolverUnavailable,
)
from harvest.extraction.field_extractor import FieldExtractor
from harvest.extraction.markup import parse_document
from harvest.infrastructure.fetcher import FetchedPage, PageFetcher, RequestOptions
from harvest.infrastructure.proxy import ProxyResolver, format_proxy_url
from harvest.infrastructure.user_agents import UserAgentProvider
from harvest.models import (
    FieldDefinition,
    PageType,
    PaginationType,
    ProtectionKind,
    RunOutcome,
    ScrapeConfiguration,
)
from harvest.storage import AbstractRecordSink, MemoryRecordSink
from harvest.utils.challenge_handler import ChallengeResponder, ProtectionDetector

logger = logging.getLogger(__name__)

# (items_scraped_so_far, status) -> None, sync or async
ProgressSink = Callable[[int, str], Any]

# Headers sent when identity spoofing is disabled
BASE_REQUEST_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
}


class RunState(str, Enum):
    """Lifecycle of a crawl run."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def build_page_url(base_url: str, page: int) -> str:
    """URL of a listing page: page 1 is the base URL, later pages add ?page=N."""
    if page <= 1:
        return base_url
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{PAGE_QUERY_PARAMETER}={page}"


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class CrawlOrchestrator:
    """Runs one crawl of a scrape configuration. Instances are single-use."""

    def __init__(
        self,
        config: ScrapeConfiguration,
        fields: Sequence[FieldDefinition],
        progress_sink: Optional[ProgressSink] = None,
        record_sink: Optional[AbstractRecordSink] = None,
        *,
        solver_credential: Optional[str] = None,
        harvest_config: Optional[HarvestConfig] = None,
        fetcher: Optional[PageFetcher] = None,
        detector: Optional[ProtectionDetector] = None,
        responder: Optional[ChallengeResponder] = None,
        extractor: Optional[FieldExtractor] = None,
        user_agents: Optional[UserAgentProvider] = None,
        proxy_resolver: Optional[ProxyResolver] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            config: What to crawl and which evasion features to use
            fields: Extraction rules
            progress_sink: Called with (items_scraped, status) as the run advances
            record_sink: Receives every extracted record; defaults to memory
            solver_credential: CAPTCHA solver API key; falls back to harvest_config
            harvest_config: Timeouts, retry bounds and progress cadence
            fetcher: Page fetcher; built from harvest_config when omitted
            detector: Protection classifier
            responder: Challenge and CAPTCHA reactions
            extractor: Record extractor
            user_agents: Identity source
            proxy_resolver: Proxy descriptor parser
            sleep: Coroutine used for the delay between pages
        """
        self.config = config
        self.fields = list(fields)
        self.harvest_config = harvest_config or HarvestConfig()
        self.progress_sink = progress_sink
        self.record_sink = record_sink if record_sink is not None else MemoryRecordSink()
        self.solver_credential = solver_credential or self.harvest_config.captcha_api_key

        self.user_agents = user_agents or UserAgentProvider()
        self.fetcher = fetcher or PageFetcher(
            timeout=self.harvest_config.request_timeout,
            max_attempts=self.harvest_config.max_retries,
            retry_delay=self.harvest_config.retry_delay,
            max_redirects=self.harvest_config.max_redirects,
        )
        self.detector = detector or ProtectionDetector()
        self.responder = responder or ChallengeResponder(
            user_agents=self.user_agents,
            solver_service=self.harvest_config.captcha_service,
        )
        self.extractor = extractor or FieldExtractor()
        self.proxy_resolver = proxy_resolver or ProxyResolver()
        self._sleep = sleep

        self.state = RunState.IDLE
        self.warnings: List[str] = []
        self.items_scraped = 0
        self.pages_fetched = 0
        self._started_at = 0.0

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> RunOutcome:
        """
        Execute the crawl.

        Returns:
            RunOutcome describing the finished run

        Raises:
            RuntimeError: If this orchestrator has already run
        """
        if self.state != RunState.IDLE:
            raise RuntimeError(f"Crawl orchestrator already used (state: {self.state.value})")

        self.state = RunState.RUNNING
        self._started_at = asyncio.get_running_loop().time()

        try:
            self._validate()
        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return await self._finish_failed(str(e))

        name = self.config.name or self.config.url
        logger.info(f"Starting crawl of {name} (up to {self._page_limit()} pages)")
        await self._report(RunState.RUNNING.value)

        if self.config.pagination_type != PaginationType.STANDARD and self.config.page_limit > 1:
            self._warn(
                f"Pagination type '{self.config.pagination_type.value}' requires browser "
                f"automation; only the first page will be fetched"
            )

        proxy = self._resolve_proxy()
        container_selector = self._container_selector()
        page_limit = self._page_limit()

        for page in range(1, page_limit + 1):
            page_url = build_page_url(self.config.url, page)

            if page > 1:
                await self._sleep(self.config.request_interval)

            logger.info(f"Processing page {page}: {page_url}")
            try:
                await self._process_page(page, page_url, proxy, container_selector)
            except NoContainersFound:
                if page == 1:
                    return await self._finish_failed(
                        f"No elements found on page 1. Please verify that the "
                        f"selector '{container_selector}' is correct."
                    )
                self._warn(f"No elements found on page {page}; stopping pagination")
                break
            except Exception as e:
                reason = str(e) or type(e).__name__
                if page == 1:
                    logger.error(f"Error processing page 1: {reason}")
                    return await self._finish_failed(reason)
                self._warn(f"Error processing page {page}: {reason}")
                break

        self.state = RunState.COMPLETED
        await self._report(RunState.COMPLETED.value)
        outcome = self._outcome(success=True)
        logger.info(
            f"Crawl of {name} completed: {outcome.items_scraped} items from "
            f"{outcome.pages_fetched} pages in {outcome.duration_seconds:.1f}s "
            f"({len(outcome.warnings)} warnings)"
        )
        return outcome

    def _validate(self) -> None:
        self.config.validate()
        if not self.fields:
            raise ConfigurationError("No data fields defined for extraction")

    async def _finish_failed(self, error: str) -> RunOutcome:
        self.state = RunState.FAILED
        await self._report(RunState.FAILED.value)
        return self._outcome(success=False, error=error)

    def _outcome(self, success: bool, error: Optional[str] = None) -> RunOutcome:
        elapsed = asyncio.get_running_loop().time() - self._started_at
        return RunOutcome(
            success=success,
            items_scraped=self.items_scraped,
            duration_seconds=round(elapsed, 2),
            error=error,
            warnings=list(self.warnings),
            pages_fetched=self.pages_fetched,
        )

    # ------------------------------------------------------------------
    # Per-run setup
    # ------------------------------------------------------------------

    def _page_limit(self) -> int:
        if self.config.pagination_type != PaginationType.STANDARD:
            return 1
        return self.config.page_limit

    def _container_selector(self) -> str:
        if self.config.container_selector:
            return self.config.container_selector
        if self.config.page_type == PageType.PRODUCT_DETAIL:
            return DETAIL_PAGE_CONTAINER_SELECTOR
        return DEFAULT_CONTAINER_SELECTOR

    def _resolve_proxy(self) -> Optional[str]:
        if not self.config.proxy_url:
            return None

        proxy_config = self.proxy_resolver.parse(self.config.proxy_url)
        if proxy_config is None:
            self._warn(f"Invalid proxy configuration: {self.config.proxy_url}")
            return None

        if not self.proxy_resolver.supports_transport(proxy_config):
            self._warn(
                f"Proxy type '{proxy_config.proxy_type.value}' is not supported; "
                f"continuing without proxy"
            )
            return None

        logger.info(f"Using proxy {format_proxy_url(proxy_config, redact=True)}")
        return self.proxy_resolver.to_transport_config(proxy_config)

    def _request_options(self, identity: Optional[str], proxy: Optional[str]) -> RequestOptions:
        headers = dict(BASE_REQUEST_HEADERS)
        if identity:
            headers.update(self.user_agents.headers_for(identity))
        else:
            headers["User-Agent"] = self.harvest_config.default_user_agent

        return RequestOptions(
            headers=headers,
            proxy=proxy,
            max_redirects=self.harvest_config.max_redirects,
        )

    # ------------------------------------------------------------------
    # Per-page cycle
    # ------------------------------------------------------------------

    async def _process_page(
        self,
        page: int,
        page_url: str,
        proxy: Optional[str],
        container_selector: str,
    ) -> int:
        identity = self.user_agents.pick() if self.config.use_user_agent_spoofing else None
        options = self._request_options(identity, proxy)

        fetched = await self.fetcher.fetch(page_url, options)
        self.pages_fetched += 1

        try:
            fetched = await self._respond_to_protection(page, page_url, fetched, identity, options)
        except ProtectionBlocked as e:
            self._warn(str(e))
            fetched = e.fetched or fetched

        document = parse_document(fetched.body)
        records = self.extractor.extract_all(
            document,
            container_selector,
            self.fields,
            base_url=page_url,
            warnings=self.warnings,
            page_number=page,
        )
        logger.info(f"Found {len(records)} elements on page {page}")

        return await self._persist(page, records)

    async def _respond_to_protection(
        self,
        page: int,
        page_url: str,
        fetched: FetchedPage,
        identity: Optional[str],
        options: RequestOptions,
    ) -> FetchedPage:
        """Try to get past a protection page; raises ProtectionBlocked when it cannot."""
        verdict = self.detector.classify(fetched.body, fetched.status_code)

        if verdict.kind == ProtectionKind.CHALLENGE_PAGE:
            logger.info(f"Challenge page on page {page}: {', '.join(verdict.indicators)}")
            if not self.config.use_challenge_bypass:
                raise ProtectionBlocked(
                    f"Challenge page detected on page {page}; challenge bypass is disabled"
                )

            bypass = self.responder.prepare_bypass(page_url, identity, options, cookies=fetched.cookies)
            if bypass is options:
                raise ProtectionBlocked(
                    f"Challenge page detected on page {page}; request could not be adjusted for bypass"
                )

            try:
                retried = await self.fetcher.fetch(page_url, bypass)
            except FetchFailed as e:
                raise ProtectionBlocked(f"Challenge bypass on page {page} failed: {e}") from e

            if self.detector.classify(retried.body, retried.status_code).kind == ProtectionKind.CHALLENGE_PAGE:
                raise ProtectionBlocked(
                    f"Challenge page persisted on page {page} after bypass attempt",
                    fetched=retried,
                )
            return retried

        if verdict.kind == ProtectionKind.CAPTCHA:
            captcha_name = verdict.challenge_type.value
            logger.info(f"CAPTCHA ({captcha_name}) on page {page}")
            if not self.config.use_captcha_handling:
                raise ProtectionBlocked(
                    f"CAPTCHA ({captcha_name}) detected on page {page}; CAPTCHA handling is disabled"
                )
            if not verdict.site_key:
                raise ProtectionBlocked(
                    f"CAPTCHA ({captcha_name}) detected on page {page} without a site key; "
                    f"automated bypass cannot be attempted"
                )

            try:
                token = await self.responder.request_solution(
                    verdict.challenge_type,
                    verdict.site_key,
                    page_url,
                    self.solver_credential,
                )
            except (SolverUnavailable, SolverRejected) as e:
                raise ProtectionBlocked(f"CAPTCHA on page {page} not solved: {e}") from e

            form_data = self.responder.apply_solution(verdict.challenge_type, token)
            try:
                return await self.fetcher.fetch(page_url, options, form_data=form_data)
            except FetchFailed as e:
                raise ProtectionBlocked(f"CAPTCHA solution for page {page} not accepted: {e}") from e

        return fetched

    async def _persist(self, page: int, records) -> int:
        persisted = 0
        interval = max(1, self.harvest_config.progress_interval)

        for index, record in enumerate(records, start=1):
            try:
                await _maybe_await(self.record_sink.persist(record))
            except Exception as e:
                self._warn(f"Failed to store item {index} on page {page}: {e}")
                continue

            persisted += 1
            self.items_scraped += 1
            if self.items_scraped % interval == 0:
                await self._report(RunState.RUNNING.value)

        if records and persisted == 0:
            raise PersistenceError(f"None of the {len(records)} items on page {page} could be stored")

        await self._report(RunState.RUNNING.value)
        return persisted

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    async def _report(self, status: str) -> None:
        if self.progress_sink is None:
            return
        try:
            await _maybe_await(self.progress_sink(self.items_scraped, status))
        except Exception as e:
            self._warn(f"Progress report failed: {e}")


async def run_crawl(
    config: ScrapeConfiguration,
    fields: Sequence[FieldDefinition],
    progress_sink: Optional[ProgressSink] = None,
    record_sink: Optional[AbstractRecordSink] = None,
    **kwargs,
) -> RunOutcome:
    """
    Crawl a configuration and return its outcome.

    Args:
        config: Scrape configuration
        fields: Extraction rules
        progress_sink: Called with (items_scraped, status)
        record_sink: Receives every extracted record
        **kwargs: Passed to CrawlOrchestrator

    Returns:
        RunOutcome
    """
    orchestrator = CrawlOrchestrator(config, fields, progress_sink, record_sink, **kwargs)
    return await orchestrator.run()
