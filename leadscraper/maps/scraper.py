"""Google Maps search scraping driven through a headless Chromium session."""

from __future__ import annotations

import logging
import random
from typing import Callable, List, Optional
from urllib.parse import quote

from playwright.sync_api import Browser, Page, sync_playwright
from playwright.sync_api import Error as PlaywrightError

from leadscraper.core.config import Settings, get_settings
from leadscraper.maps.consent import dismiss_cookie_consent
from leadscraper.maps.detail import DetailNavigator
from leadscraper.maps.enumerator import enumerate_summaries
from leadscraper.maps.fingerprint import choose_identity, new_identity_context
from leadscraper.models import BusinessRecord

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.google.com/maps/search/"
RESULT_MARKER = '[role="article"]'
RESULTS_WAIT_MS = 15000
POST_SEARCH_SETTLE_MS = 3000
SHOW_MORE_SETTLE_MS = 2000
LIST_RETRY_WAIT_MS = 2000
PRE_NAVIGATION_DELAY_MS = (1000, 3000)
WAIT_UNTIL = "domcontentloaded"

SHOW_MORE_SELECTORS = (
    'button[aria-label*="more"]',
    'button:has-text("Show more")',
    '[data-value="More results"]',
)
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
    "--window-size=1920,1080",
]

RecordCallback = Callable[[BusinessRecord, str], object]


class ScrapeError(RuntimeError):
    """Raised when the search results view cannot be reached at all."""


def search_url(query: str) -> str:
    return SEARCH_URL + quote(query, safe="")


class GoogleMapsScraper:
    """Run Maps searches and enrich every listed business.

    A browser passed in by the caller is reused and left open; otherwise the
    scraper launches its own Chromium and closes it once the scrape finishes.
    """

    def __init__(self, settings: Optional[Settings] = None, browser: Optional[Browser] = None) -> None:
        self.settings = settings or get_settings()
        self._browser = browser
        self._owns_browser = browser is None
        self._playwright = None

    def _ensure_browser(self) -> Browser:
        if self._browser is None:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=self.settings.headless, args=LAUNCH_ARGS)
        return self._browser

    def scrape(self, query: str, on_record: Optional[RecordCallback] = None) -> List[BusinessRecord]:
        query = (query or "").strip()
        if not query:
            raise ValueError("query must be a non-empty string")

        context = None
        try:
            context = new_identity_context(self._ensure_browser(), choose_identity())
            page = context.new_page()
            self._open_search(page, query)
            dismiss_cookie_consent(page)
            self._show_more(page)

            summaries = enumerate_summaries(
                page,
                max_iterations=self.settings.max_scrolls,
                settle_delay_ms=self.settings.settle_delay_ms,
            )
            if not summaries:
                logger.warning("No businesses found for query %r", query)
                return []
            return self._process(page, query, summaries, on_record)
        finally:
            if context is not None:
                try:
                    context.close()
                except Exception as exc:  # noqa: BLE001
                    logger.debug("Failed to close browser context: %s", exc)
            if self._owns_browser:
                self.close()

    def _open_search(self, page: Page, query: str) -> None:
        url = search_url(query)
        page.wait_for_timeout(random.randint(*PRE_NAVIGATION_DELAY_MS))
        logger.info("Navigating to %s", url)
        try:
            page.goto(url, wait_until=WAIT_UNTIL, timeout=self.settings.nav_timeout_ms)
        except PlaywrightError as exc:
            raise ScrapeError(f"Could not open Maps search for {query!r}: {exc}") from exc

        try:
            page.wait_for_selector(RESULT_MARKER, timeout=RESULTS_WAIT_MS)
        except PlaywrightError:
            logger.warning("Results marker not found within %dms; continuing with fallbacks", RESULTS_WAIT_MS)
        page.wait_for_timeout(POST_SEARCH_SETTLE_MS)

    def _show_more(self, page: Page) -> bool:
        try:
            for selector in SHOW_MORE_SELECTORS:
                button = page.query_selector(selector)
                if button is not None:
                    logger.info("Found 'Show more' button, clicking")
                    button.click()
                    page.wait_for_timeout(SHOW_MORE_SETTLE_MS)
                    return True
        except Exception as exc:  # noqa: BLE001
            logger.debug("'Show more' click failed: %s", exc)
        return False

    def _process(
        self,
        page: Page,
        query: str,
        summaries: List[BusinessRecord],
        on_record: Optional[RecordCallback],
    ) -> List[BusinessRecord]:
        navigator = DetailNavigator(page, self.settings)
        results: List[BusinessRecord] = []
        total = len(summaries)
        logger.info("Starting detailed extraction for %d businesses", total)

        for index, summary in enumerate(summaries, start=1):
            logger.info("[%d/%d] Processing %s", index, total, summary.name)
            try:
                record = navigator.enrich(summary)
            except Exception as exc:  # noqa: BLE001
                logger.error("Detail extraction failed for %s: %s", summary.name, exc)
                record = summary
            results.append(record)

            if on_record is not None:
                try:
                    on_record(record, query)
                except Exception as exc:  # noqa: BLE001
                    logger.error("Record callback failed for %s: %s", record.name, exc)

            page.wait_for_timeout(self.settings.record_delay_ms)
            self._ensure_list_visible(page)

        logger.info("Completed detailed extraction: %d businesses", len(results))
        return results

    @staticmethod
    def _ensure_list_visible(page: Page) -> None:
        try:
            if page.query_selector(RESULT_MARKER) is None:
                logger.warning("Not back on the results list; waiting longer")
                page.wait_for_timeout(LIST_RETRY_WAIT_MS)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Results list check failed: %s", exc)

    def close(self) -> None:
        if self._browser is not None and self._owns_browser:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None

    def __enter__(self) -> "GoogleMapsScraper":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        self.close()


def scrape(
    query: str,
    on_record: Optional[RecordCallback] = None,
    settings: Optional[Settings] = None,
) -> List[BusinessRecord]:
    """Scrape one Maps search end to end in a fresh browser."""
    with GoogleMapsScraper(settings or get_settings()) as scraper:
        return scraper.scrape(query, on_record=on_record)
