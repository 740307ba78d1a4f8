"""CLI job to scrape a Google Maps search and persist the listings."""

import argparse
import json
import logging
import time
from dataclasses import replace
from typing import Any, Dict, Optional

from leadscraper.core.config import Settings, get_settings
from leadscraper.core.sink import RecordSink
from leadscraper.maps.scraper import scrape

logger = logging.getLogger(__name__)


def build_query(
    query: Optional[str] = None,
    type_business: Optional[str] = None,
    city: Optional[str] = None,
    country: Optional[str] = None,
) -> str:
    """Use ``query`` verbatim, or compose "<type> in <city>, <country>" from the parts."""
    if query and query.strip():
        return query.strip()
    type_business = (type_business or "").strip()
    location = ", ".join(part.strip() for part in (city, country) if part and part.strip())
    if type_business and location:
        return f"{type_business} in {location}"
    return type_business or location


def run_query_job(
    *,
    query: Optional[str] = None,
    type_business: Optional[str] = None,
    city: Optional[str] = None,
    country: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    settings = settings or get_settings()
    query = build_query(query, type_business, city, country)
    if not query:
        raise ValueError("Query parameters are empty")

    logger.info("Running Maps scrape for query=%s", query)
    started = time.monotonic()

    sink = RecordSink(query, settings)
    sink.start()
    records = scrape(query, on_record=sink, settings=settings)
    stats = sink.finish()

    elapsed = time.monotonic() - started
    logger.info("Completed run: %d businesses in %.1fs", len(records), elapsed)
    return {
        "query": query,
        "count": len(records),
        "elapsed_seconds": round(elapsed, 1),
        "stats": stats.to_dict(),
        "results": [record.to_dict() for record in records],
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scrape business listings from a Google Maps search")
    parser.add_argument("query", nargs="?", help='Free-text search, e.g. "coffee shops in Austin, TX"')
    parser.add_argument("--type", dest="type_business", help="Business type to search")
    parser.add_argument("--city", dest="city", help="City filter")
    parser.add_argument("--country", dest="country", help="Country filter")
    parser.add_argument(
        "--max-scrolls",
        dest="max_scrolls",
        type=int,
        default=get_settings().max_scrolls,
        help="Maximum number of scroll iterations over the result list",
    )
    parser.add_argument("--summary-only", action="store_true", help="Omit the per-business results from the output")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    if not build_query(args.query, args.type_business, args.city, args.country):
        parser.error("a query or --type/--city/--country is required")

    settings = get_settings()
    if args.max_scrolls != settings.max_scrolls:
        settings = replace(settings, max_scrolls=args.max_scrolls)

    summary = run_query_job(
        query=args.query,
        type_business=args.type_business,
        city=args.city,
        country=args.country,
        settings=settings,
    )
    if args.summary_only:
        summary.pop("results", None)
    print(json.dumps(summary, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
