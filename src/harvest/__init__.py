"""Harvest: configurable web data extraction with bot-protection handling."""

__version__ = "0.1.0"

from harvest.models import (
    ScrapeConfiguration,
    FieldDefinition,
    ExtractedRecord,
    ProtectionVerdict,
    RunOutcome,
    PageType,
    PaginationType,
    ProtectionKind,
)
from harvest.exceptions import (
    HarvestError,
    ConfigurationError,
    FetchFailed,
    ProtectionBlocked,
    SolverUnavailable,
    SolverRejected,
    NoContainersFound,
    FieldExtractionError,
    PersistenceError,
    SelectorError,
)
from harvest.config import HarvestConfig, settings
from harvest.orchestrator import CrawlOrchestrator, RunState, build_page_url, run_crawl
from harvest.storage import AbstractRecordSink, MemoryRecordSink, SqliteRecordSink
from harvest.jobs import JobTracker
from harvest.job_loader import load_job

from harvest.infrastructure import (
    UserAgentProvider,
    ProxyResolver,
    ProxyConfig,
    PageFetcher,
    RequestOptions,
    FetchedPage,
)
from harvest.utils.challenge_handler import ProtectionDetector, ChallengeResponder
from harvest.extraction import FieldExtractor, parse_document, normalize_url

__all__ = [
    "__version__",
    # Models
    "ScrapeConfiguration",
    "FieldDefinition",
    "ExtractedRecord",
    "ProtectionVerdict",
    "RunOutcome",
    "PageType",
    "PaginationType",
    "ProtectionKind",
    # Errors
    "HarvestError",
    "ConfigurationError",
    "FetchFailed",
    "ProtectionBlocked",
    "SolverUnavailable",
    "SolverRejected",
    "NoContainersFound",
    "FieldExtractionError",
    "PersistenceError",
    "SelectorError",
    # Configuration
    "HarvestConfig",
    "settings",
    # Crawling
    "CrawlOrchestrator",
    "RunState",
    "build_page_url",
    "run_crawl",
    "AbstractRecordSink",
    "MemoryRecordSink",
    "SqliteRecordSink",
    "JobTracker",
    "load_job",
    # Components
    "UserAgentProvider",
    "ProxyResolver",
    "ProxyConfig",
    "PageFetcher",
    "RequestOptions",
    "FetchedPage",
    "ProtectionDetector",
    "ChallengeResponder",
    "FieldExtractor",
    "parse_document",
    "normalize_url",
]
