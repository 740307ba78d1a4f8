"""Per-business detail page visits.

``DetailNavigator.enrich`` is strictly additive: it never raises and whatever
goes wrong, the caller gets back at least the summary it passed in.
"""

from __future__ import annotations

import logging
from typing import Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from leadscraper.core.config import Settings
from leadscraper.maps.extractor import DetailFields, clean_website, displayed_name, extract_details, parse_html
from leadscraper.models import BusinessRecord

logger = logging.getLogger(__name__)

DETAIL_TIMEOUT_MS = 15000
BACK_TIMEOUT_MS = 10000
PAGE_SETTLE_MS = 3000
CONTROLS_WAIT_MS = 3000
CONTROLS_SETTLE_MS = 1000
RETURN_SETTLE_MS = 2000
RETURN_EXTRA_WAIT_MS = 2000
ESCAPE_SETTLE_MS = 1000
NAME_COMPARE_CHARS = 20
WAIT_UNTIL = "domcontentloaded"

SEARCH_PATH_MARKER = "/maps/search/"
RESULT_MARKER = '[role="article"]'
CONTACT_CONTROLS = '[data-value="Phone"], [data-value="Website"], button[data-value="Phone"], a[href^="tel:"]'


def names_match(expected: str, found: Optional[str]) -> bool:
    """Loose identity check between the listed name and the detail page header.

    Titles get truncated and localized inconsistently, so both sides are cut
    to their first 20 characters and compared case-insensitively in either
    direction.
    """
    if not expected or not found:
        return False
    expected_head = expected[:NAME_COMPARE_CHARS].lower()
    found_head = found[:NAME_COMPARE_CHARS].lower()
    return expected_head in found_head or found_head in expected_head


def merge_details(summary: BusinessRecord, details: DetailFields) -> BusinessRecord:
    # The detail page may show a parent-company site; it still wins over the list value.
    website = clean_website(details.website) or clean_website(summary.website)
    return summary.merged(
        phone=details.phone or summary.phone,
        website=website,
        address=details.address or summary.address,
        hours=details.hours,
        category=details.category,
        description=details.description,
        verified_business_name=details.displayed_name,
    )


class DetailNavigator:
    """Visit a business detail page and fold its fields into the summary record."""

    def __init__(
        self,
        page: Page,
        settings: Optional[Settings] = None,
        *,
        settle_delay_ms: int = PAGE_SETTLE_MS,
    ) -> None:
        self.page = page
        self.timeout_ms = settings.detail_timeout_ms if settings else DETAIL_TIMEOUT_MS
        self.settle_delay_ms = settle_delay_ms

    def enrich(self, summary: BusinessRecord) -> BusinessRecord:
        if not summary.place_url:
            logger.info("No place URL for %s; keeping list data", summary.name)
            return summary

        try:
            prior_url = self.page.url
            if not self._open(summary):
                return summary

            self._verify_identity(summary)
            self._wait_for_contact_controls()
            details = extract_details(self.page.content())
            enriched = merge_details(summary, details)
            logger.info(
                "Details extracted for %s: phone=%s website=%s (source=%s) address=%s category=%s",
                summary.name,
                enriched.phone or "N/A",
                enriched.website or "N/A",
                "detail page" if details.website else "list view",
                enriched.address or "N/A",
                enriched.category or "N/A",
            )

            self._return_to(prior_url, summary.name)
            return enriched
        except Exception as exc:  # noqa: BLE001
            logger.error("Error extracting details for %s: %s", summary.name, exc)
            self._recover()
            return summary

    def _open(self, summary: BusinessRecord) -> bool:
        try:
            self.page.goto(summary.place_url, wait_until=WAIT_UNTIL, timeout=self.timeout_ms)
        except PlaywrightError as exc:
            logger.warning("Could not navigate to place URL for %s: %s", summary.name, exc)
            return False
        self.page.wait_for_timeout(self.settle_delay_ms)
        return True

    def _verify_identity(self, summary: BusinessRecord) -> None:
        found = displayed_name(parse_html(self.page.content()))
        if not names_match(summary.name, found):
            logger.warning("Page title does not match expected business: expected=%r found=%r", summary.name, found)

    def _wait_for_contact_controls(self) -> None:
        try:
            self.page.wait_for_selector(CONTACT_CONTROLS, timeout=CONTROLS_WAIT_MS)
        except PlaywrightError:
            logger.debug("Contact controls did not appear within %dms", CONTROLS_WAIT_MS)
        self.page.wait_for_timeout(CONTROLS_SETTLE_MS)

    def back_on_results(self) -> bool:
        return self.page.query_selector(RESULT_MARKER) is not None

    def _return_to(self, prior_url: str, name: str) -> None:
        if not prior_url:
            return
        try:
            self.page.goto(prior_url, wait_until=WAIT_UNTIL, timeout=self.timeout_ms)
            self.page.wait_for_timeout(RETURN_SETTLE_MS)
            if not self.back_on_results():
                logger.warning("May not be back on the results list after %s; waiting longer", name)
                self.page.wait_for_timeout(RETURN_EXTRA_WAIT_MS)
        except PlaywrightError as exc:
            logger.warning("Could not navigate back to results list after %s: %s", name, exc)

    def _recover(self) -> None:
        try:
            if SEARCH_PATH_MARKER not in (self.page.url or ""):
                self.page.go_back(wait_until=WAIT_UNTIL, timeout=BACK_TIMEOUT_MS)
                self.page.wait_for_timeout(RETURN_SETTLE_MS)
            else:
                self.page.keyboard.press("Escape")
                self.page.wait_for_timeout(ESCAPE_SETTLE_MS)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Recovery navigation failed: %s", exc)
