# src/harvest/storage.py
"""Record sinks: where extracted records go once a page is processed."""

import json
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from harvest.config import settings
from harvest.models import ExtractedRecord

logger = logging.getLogger(__name__)

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS scraped_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    config_name TEXT NOT NULL,
    title TEXT NOT NULL,
    price TEXT,
    description TEXT,
    rating TEXT,
    review_count TEXT,
    image_url TEXT,
    product_url TEXT,
    category TEXT,
    in_stock INTEGER NOT NULL DEFAULT 1,
    additional_data TEXT,
    page_number INTEGER,
    date_scraped TIMESTAMP NOT NULL
);
"""

CREATE_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_scraped_records_config ON scraped_records (config_name);
"""


class AbstractRecordSink(ABC):
    """Destination for extracted records."""

    @abstractmethod
    def persist(self, record: ExtractedRecord) -> None:
        """Store one record.

        Raises:
            Exception: Any error is treated by the crawl as a per-record failure.
        """
        pass

    def close(self) -> None:
        """Release resources held by the sink."""


class MemoryRecordSink(AbstractRecordSink):
    """Keeps records in a list."""

    def __init__(self):
        self.records: List[ExtractedRecord] = []

    def persist(self, record: ExtractedRecord) -> None:
        self.records.append(record)

    def __len__(self) -> int:
        return len(self.records)


class SqliteRecordSink(AbstractRecordSink):
    """SQLite-backed record store."""

    def __init__(self, db_url: Optional[str] = None, config_name: str = "default"):
        """Open (and if needed create) the record database.

        Args:
            db_url: Database URL (sqlite:///path/to/db.db). Defaults to settings.DATABASE_URL.
            config_name: Name of the scrape configuration the records belong to
        """
        self.db_url = db_url or settings.DATABASE_URL
        self.db_path = self.db_url.replace("sqlite:///", "")
        self.config_name = config_name
        self.conn: Optional[sqlite3.Connection] = None
        self.connect()
        self.create_schema()

    def connect(self) -> None:
        """Establish SQLite connection."""
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        logger.debug(f"Connected to local SQLite database: {self.db_path}")

    def close(self) -> None:
        """Close SQLite connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed local SQLite connection")

    def create_schema(self) -> None:
        with self.conn:
            self.conn.execute(CREATE_TABLE_SQL)
            self.conn.execute(CREATE_INDEX_SQL)

    def persist(self, record: ExtractedRecord) -> None:
        """Insert one record."""
        if not record.title:
            raise ValueError("The 'title' field is required.")

        row = {
            "config_name": self.config_name,
            "title": record.title,
            "price": record.price,
            "description": record.description,
            "rating": record.rating,
            "review_count": record.review_count,
            "image_url": record.image_url,
            "product_url": record.product_url,
            "category": record.category,
            "in_stock": int(record.in_stock),
            "additional_data": json.dumps(record.extra) if record.extra else None,
            "page_number": record.page_number,
            "date_scraped": record.extracted_at.isoformat(),
        }
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)

        with self.conn:
            self.conn.execute(
                f"INSERT INTO scraped_records ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )

    def get_records(self, limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        """Records of this configuration, oldest first."""
        query_sql = "SELECT * FROM scraped_records WHERE config_name = ? ORDER BY id ASC"
        params: list = [self.config_name]
        if limit is not None:
            query_sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        cursor = self.conn.cursor()
        cursor.execute(query_sql, params)
        return [self._row_to_dict(row) for row in cursor.fetchall()]

    def count(self) -> int:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT COUNT(*) AS total FROM scraped_records WHERE config_name = ?",
            (self.config_name,),
        )
        return cursor.fetchone()["total"]

    def search(self, term: str) -> List[Dict[str, Any]]:
        """Records whose title or description contains term (case-insensitive)."""
        pattern = f"%{term}%"
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT * FROM scraped_records "
            "WHERE config_name = ? AND (title LIKE ? OR description LIKE ?) "
            "ORDER BY id ASC",
            (self.config_name, pattern, pattern),
        )
        return [self._row_to_dict(row) for row in cursor.fetchall()]

    def delete_records(self) -> int:
        """Delete all records of this configuration and return how many went."""
        with self.conn:
            cursor = self.conn.execute(
                "DELETE FROM scraped_records WHERE config_name = ?",
                (self.config_name,),
            )
        logger.info(f"Deleted {cursor.rowcount} records for '{self.config_name}'")
        return cursor.rowcount

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
        data = dict(row)
        data["in_stock"] = bool(data["in_stock"])
        data["additional_data"] = json.loads(data["additional_data"]) if data["additional_data"] else {}
        data["date_scraped"] = datetime.fromisoformat(data["date_scraped"])
        return data
