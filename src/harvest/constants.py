# src/harvest/constants.py
"""Centralized constants for the extraction pipeline.

This module contains fixed bounds and defaults that are used across
multiple modules. For user-configurable runtime values, see config.py
and HarvestConfig.
"""

# =============================================================================
# Fetching Constants
# =============================================================================

# Overall request timeout for a single page fetch
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30

# Attempts per page before a fetch is reported as failed
DEFAULT_MAX_ATTEMPTS = 3

# Fixed pause between fetch attempts
DEFAULT_RETRY_DELAY_SECONDS = 2.0

# Upper bound on redirects followed for a single fetch
DEFAULT_MAX_REDIRECTS = 5

# Identity used when user-agent spoofing is disabled
DEFAULT_USER_AGENT = "Harvest-Bot/1.0"


# =============================================================================
# Crawl Constants
# =============================================================================

DEFAULT_PAGE_LIMIT = 5

# Seconds to wait between page requests
DEFAULT_REQUEST_INTERVAL_SECONDS = 3

# Progress is reported at least this often (in persisted records) within a page
PROGRESS_REPORT_INTERVAL = 5

# Container heuristic used when a configuration has no override
DEFAULT_CONTAINER_SELECTOR = ".product-item, .product, [data-product-id]"

# Container used for single-item detail pages
DETAIL_PAGE_CONTAINER_SELECTOR = "body"

# Query parameter carrying the page number for standard pagination
PAGE_QUERY_PARAMETER = "page"


# =============================================================================
# Identity Constants
# =============================================================================

# Share of identities drawn from desktop browsers
DESKTOP_IDENTITY_WEIGHT = 0.7


# =============================================================================
# CAPTCHA Solver Constants
# =============================================================================

DEFAULT_CAPTCHA_SERVICE = "2captcha"

# Maximum time to wait for an external solver
SOLVER_TIMEOUT_SECONDS = 120

# Seconds between solver status checks
SOLVER_POLL_INTERVAL_SECONDS = 5.0
