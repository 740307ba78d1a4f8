"""Utilities for transforming scraped business records into storage rows."""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from leadscraper.models import BusinessRecord

logger = logging.getLogger(__name__)

_SLUG_SEPARATOR = re.compile(r"[^a-z0-9]+")


def create_query_slug(query: str) -> str:
    slug = _SLUG_SEPARATOR.sub("_", (query or "").strip().lower())
    return slug.strip("_")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_business_row(
    record: BusinessRecord,
    query: str,
    query_slug: Optional[str] = None,
    scraped_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Flatten a record into the column set shared by the CSV and SQL stores."""
    if query_slug is None:
        query_slug = create_query_slug(query)

    return {
        "name": record.name,
        "rating": record.rating,
        "review_count": record.review_count,
        "address": record.address,
        "phone": record.phone,
        "website": record.website,
        "place_id": record.place_id,
        "place_url": record.place_url,
        "query": query,
        "query_slug": query_slug,
        "email": None,
        "email_extracted_at": None,
        "hours": record.hours,
        "category": record.category,
        "description": record.description,
        "verified_business_name": record.verified_business_name,
        "scraped_at": scraped_at or utc_now(),
        "raw": record.to_dict(),
    }


def is_duplicate_row(existing: Dict[str, Any], row: Dict[str, Any]) -> bool:
    """Dual-key match used by both stores.

    Same place id within a query slug is a duplicate. Otherwise the same name
    within the query slug is a duplicate when the place ids agree, a missing
    place id on both sides counting as agreement.
    """
    if existing.get("query_slug") != row.get("query_slug"):
        return False
    place_id = row.get("place_id") or None
    existing_place_id = existing.get("place_id") or None
    if place_id and existing_place_id == place_id:
        return True
    return existing.get("name") == row.get("name") and existing_place_id == place_id
