"""Job tracking for crawl runs."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from harvest.models import RunOutcome

logger = logging.getLogger(__name__)


class JobTracker:
    """
    In-memory job status for one crawl run.

    Pass an instance as the progress sink of a crawl; it records the latest
    item count and status, and absorbs the final RunOutcome via finish().
    """

    def __init__(self, job_id: Optional[str] = None):
        self.job_id = job_id
        self.status = "pending"
        self.items_scraped = 0
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None
        self.duration_seconds: Optional[float] = None
        self.error: Optional[str] = None
        self.warnings: List[str] = []
        self.updates = 0

    def __call__(self, items_scraped: int, status: str) -> None:
        if self.started_at is None:
            self.started_at = datetime.now()
        self.items_scraped = items_scraped
        self.status = status
        self.updates += 1
        logger.debug(f"Job {self.job_id or '-'}: {status} ({items_scraped} items)")

    def finish(self, outcome: RunOutcome) -> None:
        """Record the terminal outcome of the run."""
        self.finished_at = datetime.now()
        if self.started_at is None:
            self.started_at = self.finished_at
        self.status = "completed" if outcome.success else "failed"
        self.items_scraped = outcome.items_scraped
        self.duration_seconds = outcome.duration_seconds
        self.error = outcome.error
        self.warnings = list(outcome.warnings)

    @property
    def is_finished(self) -> bool:
        return self.status in ("completed", "failed")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "items_scraped": self.items_scraped,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
            "warnings": list(self.warnings),
        }
