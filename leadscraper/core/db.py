"""Database helpers for the scraper."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

import psycopg2
from psycopg2 import errors, extras, pool

from leadscraper.core.config import get_settings
from leadscraper.models import SaveOutcome

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


def init_pool(minconn: int = 1, maxconn: int = 5, dsn: Optional[str] = None) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool.

    ``dsn`` falls back to ``DATABASE_URL`` from the environment settings. It is
    only read on first use; later calls return the existing pool.
    """
    global _connection_pool
    if _connection_pool is None:
        dsn = dsn or get_settings().database_url
        if not dsn:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=dsn,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


def _prepare_params(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": row.get("name"),
        "rating": row.get("rating"),
        "review_count": row.get("review_count"),
        "address": row.get("address"),
        "phone": row.get("phone"),
        "website": row.get("website"),
        "place_id": row.get("place_id") or None,
        "place_url": row.get("place_url"),
        "query": row.get("query"),
        "query_slug": row.get("query_slug"),
        "email": row.get("email"),
        "email_extracted_at": row.get("email_extracted_at"),
        "hours": row.get("hours"),
        "category": row.get("category"),
        "description": row.get("description"),
        "verified_business_name": row.get("verified_business_name"),
        "raw": extras.Json(row.get("raw") or {}),
        "scraped_at": row.get("scraped_at"),
    }


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS businesses (
    id BIGSERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    rating NUMERIC,
    review_count INTEGER,
    address TEXT,
    phone TEXT,
    website TEXT,
    place_id TEXT,
    place_url TEXT,
    query TEXT NOT NULL,
    query_slug TEXT NOT NULL,
    email TEXT,
    email_extracted_at TIMESTAMPTZ,
    hours TEXT,
    category TEXT,
    description TEXT,
    verified_business_name TEXT,
    raw JSONB,
    scraped_at TIMESTAMPTZ DEFAULT NOW()
);
CREATE UNIQUE INDEX IF NOT EXISTS businesses_place_query_uniq
    ON businesses (place_id, query_slug) WHERE place_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS businesses_query_slug_scraped_idx
    ON businesses (query_slug, scraped_at DESC);
CREATE TABLE IF NOT EXISTS queries (
    query TEXT NOT NULL UNIQUE,
    query_slug TEXT PRIMARY KEY,
    total_businesses INTEGER NOT NULL DEFAULT 0,
    last_scraped_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    scraped_count INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_FIND_BY_PLACE_ID = """
SELECT id FROM businesses
WHERE place_id = %(place_id)s AND query_slug = %(query_slug)s
LIMIT 1;
"""

_FIND_BY_NAME = """
SELECT id FROM businesses
WHERE name = %(name)s
  AND query_slug = %(query_slug)s
  AND place_id IS NOT DISTINCT FROM %(place_id)s
LIMIT 1;
"""

_INSERT_BUSINESS = """
INSERT INTO businesses (
    name,
    rating,
    review_count,
    address,
    phone,
    website,
    place_id,
    place_url,
    query,
    query_slug,
    email,
    email_extracted_at,
    hours,
    category,
    description,
    verified_business_name,
    raw,
    scraped_at
) VALUES (
    %(name)s,
    %(rating)s,
    %(review_count)s,
    %(address)s,
    %(phone)s,
    %(website)s,
    %(place_id)s,
    %(place_url)s,
    %(query)s,
    %(query_slug)s,
    %(email)s,
    %(email_extracted_at)s,
    %(hours)s,
    %(category)s,
    %(description)s,
    %(verified_business_name)s,
    %(raw)s,
    COALESCE(%(scraped_at)s, NOW())
);
"""

_UPSERT_QUERY = """
INSERT INTO queries (query, query_slug, total_businesses, last_scraped_at, scraped_count, created_at)
VALUES (%(query)s, %(query_slug)s, 0, NOW(), 1, NOW())
ON CONFLICT (query_slug) DO UPDATE SET
    scraped_count = queries.scraped_count + 1,
    last_scraped_at = NOW()
RETURNING scraped_count;
"""

_REFRESH_QUERY_TOTAL = """
UPDATE queries
SET total_businesses = (SELECT COUNT(*) FROM businesses WHERE query_slug = %(query_slug)s)
WHERE query_slug = %(query_slug)s
RETURNING total_businesses;
"""


def ensure_schema() -> None:
    """Create the businesses and queries tables when they are missing."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        conn.commit()


def find_duplicate(row: Dict[str, Any]) -> bool:
    params = _prepare_params(row)
    with get_connection() as conn:
        with conn.cursor() as cur:
            if params["place_id"]:
                cur.execute(_FIND_BY_PLACE_ID, params)
                if cur.fetchone() is not None:
                    return True
            cur.execute(_FIND_BY_NAME, params)
            return cur.fetchone() is not None


def insert_business(row: Dict[str, Any]) -> SaveOutcome:
    """Insert a business row unless the same business is already stored for the query."""
    params = _prepare_params(row)
    if not params["name"] or not params["query_slug"]:
        raise ValueError("name and query_slug are required for insert")

    if find_duplicate(row):
        logger.info("Duplicate: %s (skipped)", params["name"])
        return SaveOutcome.DUPLICATE

    with get_connection() as conn:
        try:
            with conn.cursor() as cur:
                cur.execute(_INSERT_BUSINESS, params)
            conn.commit()
        except errors.UniqueViolation:
            conn.rollback()
            logger.info("Duplicate: %s (skipped)", params["name"])
            return SaveOutcome.DUPLICATE
        except psycopg2.Error:
            conn.rollback()
            raise
    logger.info("Saved to DB: %s", params["name"])
    return SaveOutcome.SAVED


def upsert_query_record(query: str, query_slug: str) -> int:
    """Create the query record or bump its scrape counter; returns the counter."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_UPSERT_QUERY, {"query": query, "query_slug": query_slug})
            row = cur.fetchone()
        conn.commit()
    scraped_count = int(row[0]) if row else 1
    logger.info("Query record %s scraped %d time(s)", query_slug, scraped_count)
    return scraped_count


def refresh_query_total(query_slug: str) -> int:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_REFRESH_QUERY_TOTAL, {"query_slug": query_slug})
            row = cur.fetchone()
        conn.commit()
    return int(row[0]) if row else 0
