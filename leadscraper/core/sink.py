"""Record sink wiring the scraper callback to PostgreSQL or CSV storage."""

import logging
from typing import Optional

from leadscraper.core import db
from leadscraper.core.config import Settings, get_settings
from leadscraper.core.csv_store import CsvStore
from leadscraper.etl.transform import create_query_slug, to_business_row
from leadscraper.models import BusinessRecord, SaveOutcome, ScrapeStats

logger = logging.getLogger(__name__)

STORAGE_DB = "postgres"
STORAGE_CSV = "csv"


class RecordSink:
    """Persist each scraped record as it arrives and tally the outcomes.

    The database is used when ``DATABASE_URL`` is configured and a pool can be
    opened; otherwise rows go to per-query CSV files. Calling the sink never
    raises: storage failures are counted as errors.
    """

    def __init__(
        self,
        query: str,
        settings: Optional[Settings] = None,
        *,
        csv_store: Optional[CsvStore] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.query = query
        self.query_slug = create_query_slug(query)
        self.csv_store = csv_store or CsvStore(self.settings.csv_dir)
        self.storage = STORAGE_DB if self._database_available() else STORAGE_CSV
        self.stats = ScrapeStats(query=query, query_slug=self.query_slug, storage=self.storage)

    def _database_available(self) -> bool:
        if not self.settings.database_url:
            return False
        try:
            db.init_pool(dsn=self.settings.database_url)
            db.ensure_schema()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Database unavailable (%s); falling back to CSV storage", exc)
            return False
        return True

    @property
    def uses_database(self) -> bool:
        return self.storage == STORAGE_DB

    def start(self) -> None:
        try:
            if self.uses_database:
                db.upsert_query_record(self.query, self.query_slug)
            else:
                self.csv_store.update_query_record(self.query, self.query_slug)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to update query record for %s: %s", self.query, exc)

    def __call__(self, record: BusinessRecord, query: Optional[str] = None) -> SaveOutcome:
        query = query or self.query
        try:
            row = to_business_row(record, query, create_query_slug(query))
            if self.uses_database:
                outcome = db.insert_business(row)
            else:
                outcome = self.csv_store.save_business(row)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error saving business %s: %s", record.name, exc)
            outcome = SaveOutcome.ERROR
        self.stats.record(outcome)
        return outcome

    def finish(self) -> ScrapeStats:
        try:
            if self.uses_database:
                self.stats.total_in_query = db.refresh_query_total(self.query_slug)
            else:
                self.stats.total_in_query = self.csv_store.refresh_query_total(self.query_slug)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to refresh totals for %s: %s", self.query_slug, exc)
        logger.info(
            "Query %s: %d processed, %d saved, %d duplicates, %d errors (%d stored in total, %s)",
            self.query_slug,
            self.stats.total,
            self.stats.saved,
            self.stats.duplicates,
            self.stats.errors,
            self.stats.total_in_query,
            self.storage,
        )
        return self.stats
