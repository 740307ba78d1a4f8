"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    database_url: str = ""
    worker_port: int = 9000
    csv_dir: str = "csv_data"
    headless: bool = True
    nav_timeout_ms: int = 30000
    detail_timeout_ms: int = 15000
    max_scrolls: int = 100
    settle_delay_ms: int = 1500
    record_delay_ms: int = 2000


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    database_url = os.getenv("DATABASE_URL", "")
    worker_port = int(os.getenv("WORKER_PORT", "9000"))
    csv_dir = os.getenv("CSV_DIR", "csv_data")
    headless = _env_bool("SCRAPER_HEADLESS", "true")
    nav_timeout_ms = int(os.getenv("SCRAPER_NAV_TIMEOUT_MS", "30000"))
    detail_timeout_ms = int(os.getenv("SCRAPER_DETAIL_TIMEOUT_MS", "15000"))
    max_scrolls = int(os.getenv("SCRAPER_MAX_SCROLLS", "100"))
    settle_delay_ms = int(os.getenv("SCRAPER_SETTLE_DELAY_MS", "1500"))
    record_delay_ms = int(os.getenv("SCRAPER_RECORD_DELAY_MS", "2000"))

    if not database_url:
        logger.warning("DATABASE_URL is not set; records will be stored as CSV in %s.", csv_dir)
    if max_scrolls <= 0:
        logger.warning("SCRAPER_MAX_SCROLLS=%d disables scrolling; only the first results will be read.", max_scrolls)

    return Settings(
        database_url=database_url,
        worker_port=worker_port,
        csv_dir=csv_dir,
        headless=headless,
        nav_timeout_ms=nav_timeout_ms,
        detail_timeout_ms=detail_timeout_ms,
        max_scrolls=max_scrolls,
        settle_delay_ms=settle_delay_ms,
        record_delay_ms=record_delay_ms,
    )
