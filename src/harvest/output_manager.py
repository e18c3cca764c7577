"""Output manager for exporting crawl results with timestamps."""

import csv
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union
from urllib.parse import urlparse

from harvest.models import ExtractedRecord, RunOutcome, ScrapeConfiguration

logger = logging.getLogger(__name__)

RecordLike = Union[ExtractedRecord, Dict[str, Any]]

CSV_COLUMNS = [
    "Title",
    "Price",
    "Description",
    "Rating",
    "ReviewCount",
    "Category",
    "InStock",
    "ProductURL",
    "ImageURL",
    "DateScraped",
]

EXPORT_FORMATS = ("json", "csv")


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that handles datetime objects."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


def _record_to_dict(record: RecordLike) -> Dict[str, Any]:
    if isinstance(record, ExtractedRecord):
        return record.to_dict()
    data = dict(record)
    # Rows read back from SQLite name these differently
    data.setdefault("extra", data.get("additional_data", {}))
    data.setdefault("extracted_at", data.get("date_scraped"))
    return data


def _csv_row(data: Dict[str, Any]) -> Dict[str, Any]:
    scraped = data.get("extracted_at")
    if isinstance(scraped, datetime):
        scraped = scraped.isoformat()
    return {
        "Title": data.get("title") or "",
        "Price": data.get("price") or "",
        "Description": data.get("description") or "",
        "Rating": data.get("rating") or "",
        "ReviewCount": data.get("review_count") or "",
        "Category": data.get("category") or "",
        "InStock": "Yes" if data.get("in_stock", True) else "No",
        "ProductURL": data.get("product_url") or "",
        "ImageURL": data.get("image_url") or "",
        "DateScraped": scraped or "",
    }


class OutputManager:
    """Manages organized output of crawl results with timestamps and directories."""

    def __init__(self, base_output_dir: str = "harvests"):
        """Initialize output manager.

        Args:
            base_output_dir: Base directory for all crawl outputs
        """
        self.base_output_dir = Path(base_output_dir)
        self.base_output_dir.mkdir(parents=True, exist_ok=True)

    def create_run_directory(self, start_url: str, timestamp: Optional[datetime] = None) -> Path:
        """Create a timestamped directory for this run.

        Args:
            start_url: The URL that was crawled
            timestamp: Optional timestamp (defaults to now)

        Returns:
            Path to the created directory

        Example structure:
            harvests/
            └── shop.example.com/
                ├── 2025-11-23_143022/
                │   ├── outcome.json
                │   ├── records.json
                │   └── records.csv
                └── latest -> 2025-11-23_143022
        """
        if timestamp is None:
            timestamp = datetime.now()

        domain = urlparse(start_url).netloc or "unknown"
        domain = domain.replace(":", "_").replace("/", "_")
        timestamp_str = timestamp.strftime("%Y-%m-%d_%H%M%S")

        run_dir = self.base_output_dir / domain / timestamp_str
        run_dir.mkdir(parents=True, exist_ok=True)
        return run_dir

    def save_outcome(
        self,
        run_dir: Path,
        config: ScrapeConfiguration,
        outcome: RunOutcome,
    ) -> Path:
        """Write outcome.json with the configuration and the run summary."""
        path = run_dir / "outcome.json"
        self._save_json(path, {
            "saved_at": datetime.now(),
            "configuration": config.to_dict(),
            "outcome": outcome.to_dict(),
        })
        self._create_latest_link(run_dir)
        return path

    def export_records(
        self,
        run_dir: Path,
        records: Iterable[RecordLike],
        formats: Sequence[str] = ("json",),
        basename: str = "records",
    ) -> List[Path]:
        """Export records in each requested format.

        Args:
            run_dir: Directory to write into
            records: ExtractedRecords or rows read back from storage
            formats: Any of "json" and "csv"
            basename: File name without extension

        Returns:
            Paths of the written files
        """
        rows = [_record_to_dict(record) for record in records]
        written = []

        for export_format in formats:
            export_format = export_format.lower()
            if export_format not in EXPORT_FORMATS:
                raise ValueError(f"Invalid export format '{export_format}'. Use 'json' or 'csv'")

            path = run_dir / f"{basename}.{export_format}"
            if export_format == "json":
                self._save_json(path, rows)
            else:
                self._save_csv(path, rows)
            logger.info(f"Exported {len(rows)} records to {path}")
            written.append(path)

        return written

    def _save_json(self, filepath: Path, data: Any) -> None:
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, cls=DateTimeEncoder)

    def _save_csv(self, filepath: Path, rows: List[Dict[str, Any]]) -> None:
        with open(filepath, "w", newline="", encoding="utf-8") as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=CSV_COLUMNS)
            writer.writeheader()
            for row in rows:
                writer.writerow(_csv_row(row))

    def _create_latest_link(self, run_dir: Path) -> None:
        """Create/update 'latest' symlink to this run."""
        latest_link = run_dir.parent / "latest"

        if latest_link.exists() or latest_link.is_symlink():
            latest_link.unlink()

        try:
            latest_link.symlink_to(run_dir.name)
        except OSError as e:
            # Some filesystems do not support symlinks
            logger.debug(f"Could not create latest link: {e}")
