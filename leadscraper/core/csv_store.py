"""Flat-file storage for scraped businesses and query records."""

from __future__ import annotations

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from leadscraper.etl.transform import is_duplicate_row, utc_now
from leadscraper.models import SaveOutcome

logger = logging.getLogger(__name__)

# CSV header -> row key
BUSINESS_COLUMNS = (
    ("name", "name"),
    ("rating", "rating"),
    ("reviewCount", "review_count"),
    ("address", "address"),
    ("phone", "phone"),
    ("website", "website"),
    ("placeId", "place_id"),
    ("placeUrl", "place_url"),
    ("query", "query"),
    ("querySlug", "query_slug"),
    ("email", "email"),
    ("emailExtractedAt", "email_extracted_at"),
    ("hours", "hours"),
    ("category", "category"),
    ("description", "description"),
    ("scrapedAt", "scraped_at"),
)
QUERY_COLUMNS = (
    ("query", "query"),
    ("querySlug", "query_slug"),
    ("totalBusinesses", "total_businesses"),
    ("lastScrapedAt", "last_scraped_at"),
    ("scrapedCount", "scraped_count"),
    ("createdAt", "created_at"),
)
QUERIES_FILENAME = "queries.csv"


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or value == "" or value == "null":
        return None
    return value


def _to_number(value: Optional[str], cast) -> Optional[Any]:
    value = _blank_to_none(value)
    if value is None:
        return None
    try:
        return cast(float(value))
    except ValueError:
        return None


class CsvStore:
    """One ``businesses_<slug>.csv`` per query plus a shared ``queries.csv``."""

    def __init__(self, csv_dir: Union[str, Path]) -> None:
        self.csv_dir = Path(csv_dir)

    def _ensure_dir(self) -> None:
        self.csv_dir.mkdir(parents=True, exist_ok=True)

    def businesses_path(self, query_slug: str) -> Path:
        return self.csv_dir / f"businesses_{query_slug}.csv"

    @property
    def queries_path(self) -> Path:
        return self.csv_dir / QUERIES_FILENAME

    def read_businesses(self, query_slug: str) -> List[Dict[str, Any]]:
        path = self.businesses_path(query_slug)
        if not path.exists():
            return []
        rows: List[Dict[str, Any]] = []
        with path.open(newline="", encoding="utf-8") as handle:
            for raw in csv.DictReader(handle):
                row = {key: _blank_to_none(raw.get(header)) for header, key in BUSINESS_COLUMNS}
                row["rating"] = _to_number(raw.get("rating"), float)
                row["review_count"] = _to_number(raw.get("reviewCount"), int)
                rows.append(row)
        return rows

    def count_businesses(self, query_slug: str) -> int:
        return len(self.read_businesses(query_slug))

    def find_duplicate(self, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        existing = self.read_businesses(row["query_slug"])
        if row.get("place_id"):
            for candidate in existing:
                if candidate.get("place_id") == row["place_id"] and candidate.get("query_slug") == row["query_slug"]:
                    return candidate
        for candidate in existing:
            if is_duplicate_row(candidate, row):
                return candidate
        return None

    def save_business(self, row: Dict[str, Any]) -> SaveOutcome:
        if self.find_duplicate(row) is not None:
            logger.info("Duplicate: %s (skipped)", row.get("name"))
            return SaveOutcome.DUPLICATE

        self._ensure_dir()
        path = self.businesses_path(row["query_slug"])
        write_header = not path.exists()
        with path.open("a", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle)
            if write_header:
                writer.writerow([header for header, _ in BUSINESS_COLUMNS])
            writer.writerow([_cell(row.get(key)) for _, key in BUSINESS_COLUMNS])
        logger.info("Saved to CSV: %s", row.get("name"))
        return SaveOutcome.SAVED

    def read_queries(self) -> List[Dict[str, Any]]:
        if not self.queries_path.exists():
            return []
        queries: List[Dict[str, Any]] = []
        with self.queries_path.open(newline="", encoding="utf-8") as handle:
            for raw in csv.DictReader(handle):
                record = {key: _blank_to_none(raw.get(header)) for header, key in QUERY_COLUMNS}
                record["total_businesses"] = _to_number(raw.get("totalBusinesses"), int) or 0
                record["scraped_count"] = _to_number(raw.get("scrapedCount"), int) or 0
                queries.append(record)
        return queries

    def _write_queries(self, queries: List[Dict[str, Any]]) -> None:
        self._ensure_dir()
        with self.queries_path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle)
            writer.writerow([header for header, _ in QUERY_COLUMNS])
            for record in queries:
                writer.writerow([_cell(record.get(key)) for _, key in QUERY_COLUMNS])

    def update_query_record(self, query: str, query_slug: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Create the query record or bump its scrape counter, then refresh its total."""
        now = now or utc_now()
        queries = self.read_queries()
        record = next((q for q in queries if q.get("query_slug") == query_slug), None)
        if record is None:
            record = {
                "query": query,
                "query_slug": query_slug,
                "total_businesses": 0,
                "last_scraped_at": now,
                "scraped_count": 1,
                "created_at": now,
            }
            queries.append(record)
            logger.info("Created new query record in CSV: %s", query)
        else:
            record["scraped_count"] += 1
            record["last_scraped_at"] = now
            logger.info("Updated query record in CSV: %s (scraped %d times)", query, record["scraped_count"])

        record["total_businesses"] = self.count_businesses(query_slug)
        self._write_queries(queries)
        return record

    def refresh_query_total(self, query_slug: str) -> int:
        total = self.count_businesses(query_slug)
        queries = self.read_queries()
        for record in queries:
            if record.get("query_slug") == query_slug:
                record["total_businesses"] = total
        if queries:
            self._write_queries(queries)
        return total
