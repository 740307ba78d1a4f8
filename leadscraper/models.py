"""Core data models shared by the Maps scraper, its sinks and entrypoints."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Optional

_CAMEL_KEYS = {
    "review_count": "reviewCount",
    "place_id": "placeId",
    "place_url": "placeUrl",
    "verified_business_name": "verifiedBusinessName",
}


@dataclass(slots=True)
class BusinessRecord:
    """A business listing recovered from the Maps UI.

    Summary records carry only the list-view fields. Enriched records also
    carry the detail-page fields (hours, category, description and the name
    the detail page displayed).
    """

    name: str
    rating: Optional[float] = None
    review_count: Optional[int] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    place_id: Optional[str] = None
    place_url: Optional[str] = None
    hours: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    verified_business_name: Optional[str] = None

    def merged(self, **changes: Any) -> "BusinessRecord":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {_CAMEL_KEYS.get(f.name, f.name): getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class Viewport:
    width: int
    height: int


@dataclass(frozen=True)
class Identity:
    """Randomized browsing identity applied once per scrape session."""

    user_agent: str
    viewport: Viewport
    timezone: str
    platform: str
    timezone_offset: int
    locale: str = "en-US"


class SaveOutcome(str, Enum):
    SAVED = "saved"
    DUPLICATE = "duplicate"
    ERROR = "error"


@dataclass
class ScrapeStats:
    """Per-query persistence tally built by the record sink."""

    query: str
    query_slug: str
    total: int = 0
    saved: int = 0
    duplicates: int = 0
    errors: int = 0
    total_in_query: int = 0
    storage: str = field(default="csv")

    def record(self, outcome: SaveOutcome) -> None:
        self.total += 1
        if outcome is SaveOutcome.SAVED:
            self.saved += 1
        elif outcome is SaveOutcome.DUPLICATE:
            self.duplicates += 1
        else:
            self.errors += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "saved": self.saved,
            "duplicates": self.duplicates,
            "errors": self.errors,
            "query": self.query,
            "querySlug": self.query_slug,
            "totalInQuery": self.total_in_query,
            "storage": self.storage,
        }
