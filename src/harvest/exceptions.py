"""Error taxonomy for the extraction pipeline."""

from typing import Optional


class HarvestError(Exception):
    """Base class for all harvest errors."""


class ConfigurationError(HarvestError):
    """A scrape configuration cannot be run (missing URL, no fields, bad job file)."""


class FetchFailed(HarvestError):
    """A page could not be fetched after exhausting all attempts."""

    def __init__(self, url: str, attempts: int, last_error: Optional[BaseException] = None):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        reason = str(last_error) if last_error else "unknown error"
        super().__init__(f"Failed to fetch {url} after {attempts} attempts: {reason}")


class ProtectionBlocked(HarvestError):
    """A protection mechanism was detected and could not be bypassed.

    Carries the page content that should be processed anyway, if any.
    """

    def __init__(self, message: str, fetched=None):
        self.fetched = fetched
        super().__init__(message)


class SolverUnavailable(HarvestError):
    """No CAPTCHA solver credential is configured."""


class SolverRejected(HarvestError):
    """The external CAPTCHA solver reported an error."""


class NoContainersFound(HarvestError):
    """The container selector matched nothing on a page."""

    def __init__(self, selector: str):
        self.selector = selector
        super().__init__(f"No elements matched container selector '{selector}'")


class FieldExtractionError(HarvestError):
    """A single field could not be extracted from a container."""

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Field '{field_name}': {reason}")


class PersistenceError(HarvestError):
    """Records from a page could not be handed to the record sink."""


class SelectorError(ConfigurationError):
    """A CSS selector could not be parsed."""

    def __init__(self, selector: str, reason: str):
        self.selector = selector
        super().__init__(f"Invalid selector '{selector}': {reason}")
