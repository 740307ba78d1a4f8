"""Incremental disclosure of the virtualized Maps result feed.

The feed has no "load more" signal. The only evidence that more results exist
is new DOM nodes appearing after a nudge, so the driver keeps nudging until
two consecutive counts agree or the iteration cap is hit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from playwright.sync_api import Page

from leadscraper.maps.extractor import extract_summary
from leadscraper.models import BusinessRecord

logger = logging.getLogger(__name__)

MAX_SCROLL_ITERATIONS = 100
STABLE_CHECKS = 2
SETTLE_DELAY_MS = 1500
KEY_PRESSES = 3
KEY_PRESS_DELAY_MS = 100
HOVER_DELAY_MS = 500
LOADING_WAIT_MS = 2000
FINAL_SETTLE_MS = 2000

RESULT_MARKER = '[role="article"]'
COUNT_SELECTORS = (
    '[role="article"]',
    ".Nv2PK",
    ".THOPZb",
    'a[href*="/maps/place/"]',
)
CARD_SELECTORS = (
    '[role="article"]',
    '[data-value="Directions"]',
    ".Nv2PK",
    ".THOPZb",
    '[jsaction*="mouseover"]',
    'a[href*="/maps/place/"]',
)

_COUNT_SCRIPT = """
(selectors) => {
  let maxCount = 0;
  for (const selector of selectors) {
    const count = document.querySelectorAll(selector).length;
    if (count > maxCount) maxCount = count;
  }
  return maxCount;
}
"""

_SCROLL_CONTAINER_SCRIPT = """
() => {
  const container = document.querySelector('[role="feed"]') ||
    document.querySelector('[role="main"]') ||
    document.querySelector('.m6QErb') ||
    document.querySelector('[aria-label*="Results"]');
  if (!container) return false;
  container.scrollTop = container.scrollHeight;
  container.scrollBy(0, 1000);
  return true;
}
"""

_SCROLL_INNER_SCRIPT = """
() => {
  let scrolled = 0;
  for (const div of document.querySelectorAll('div')) {
    if (div.scrollHeight - div.clientHeight > 100) {
      div.scrollTop = div.scrollHeight;
      div.scrollBy(0, 500);
      scrolled += 1;
    }
  }
  const first = document.querySelector('[role="article"]');
  if (first) first.focus();
  return scrolled;
}
"""

_SCROLL_LAST_CARD_SCRIPT = """
() => {
  const cards = document.querySelectorAll('[role="article"]');
  if (!cards.length) return false;
  cards[cards.length - 1].scrollIntoView({ behavior: 'smooth', block: 'end' });
  return true;
}
"""

_LOADING_DONE_SCRIPT = """
() => document.querySelectorAll('[aria-busy="true"], .loading, [class*="loading"]').length === 0
"""

_COLLECT_CARDS_SCRIPT = """
(selectors) => {
  const seen = new Set();
  const cards = [];
  for (const selector of selectors) {
    for (const el of document.querySelectorAll(selector)) {
      const href = el.getAttribute('href') || '';
      const key = (el.textContent || '').substring(0, 50) + href;
      if (seen.has(key)) continue;
      seen.add(key);
      const link = el.matches('a[href*="/maps/place/"]') ? el :
        (el.querySelector('a[href*="/maps/place/"]') || el.closest('a[href*="/maps/place/"]'));
      cards.push({ html: el.outerHTML, href: link ? link.getAttribute('href') : null });
    }
  }
  return cards;
}
"""


@dataclass(frozen=True)
class CardSnapshot:
    html: str
    href: Optional[str] = None


class ScrollDriver:
    """Scroll the result feed until the rendered result count stops growing."""

    def __init__(
        self,
        page: Page,
        *,
        max_iterations: int = MAX_SCROLL_ITERATIONS,
        settle_delay_ms: int = SETTLE_DELAY_MS,
        count_selectors: Sequence[str] = COUNT_SELECTORS,
    ) -> None:
        self.page = page
        self.max_iterations = max_iterations
        self.settle_delay_ms = settle_delay_ms
        self.count_selectors = list(count_selectors)
        self.iterations = 0
        self.result_count = 0

    def count_results(self) -> int:
        return int(self.page.evaluate(_COUNT_SCRIPT, self.count_selectors) or 0)

    def run(self) -> int:
        previous: Optional[int] = None
        repeats = 0
        self.iterations = 0

        while self.iterations < self.max_iterations:
            self.result_count = self.count_results()
            self.iterations += 1
            logger.info("Scroll attempt %d: found %d results", self.iterations, self.result_count)

            repeats = repeats + 1 if self.result_count == previous else 1
            if repeats >= STABLE_CHECKS:
                logger.info("Result count stable at %d after %d checks", self.result_count, self.iterations)
                return self.result_count
            previous = self.result_count

            self.nudge(self.iterations - 1)
            self._wait_for_loading()
            self.page.wait_for_timeout(self.settle_delay_ms)

        logger.info("Scroll cap of %d reached with %d results", self.max_iterations, self.result_count)
        return self.result_count

    def nudge(self, iteration: int) -> None:
        """Fire every lazy-load trigger; each one may fail on its own."""
        self._attempt("scroll container", lambda: self.page.evaluate(_SCROLL_CONTAINER_SCRIPT))
        self._attempt("scroll inner", lambda: self.page.evaluate(_SCROLL_INNER_SCRIPT))
        self._attempt("key presses", self._press_down)
        self._attempt("scroll last card", lambda: self.page.evaluate(_SCROLL_LAST_CARD_SCRIPT))
        self._attempt("hover card", lambda: self._hover_card(iteration))

    def _press_down(self) -> None:
        for _ in range(KEY_PRESSES):
            self.page.keyboard.press("ArrowDown")
            self.page.wait_for_timeout(KEY_PRESS_DELAY_MS)

    def _hover_card(self, iteration: int) -> None:
        cards = self.page.query_selector_all(RESULT_MARKER)
        if not cards:
            return
        cards[min(len(cards) - 1, iteration)].hover()
        self.page.wait_for_timeout(HOVER_DELAY_MS)

    def _wait_for_loading(self) -> None:
        self._attempt(
            "loading indicators",
            lambda: self.page.wait_for_function(_LOADING_DONE_SCRIPT, timeout=LOADING_WAIT_MS),
        )

    @staticmethod
    def _attempt(label: str, action) -> None:
        try:
            action()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Nudge '%s' failed: %s", label, exc)


def collect_cards(page: Page, selectors: Sequence[str] = CARD_SELECTORS) -> List[CardSnapshot]:
    raw: List[Dict[str, Any]] = page.evaluate(_COLLECT_CARDS_SCRIPT, list(selectors)) or []
    return [CardSnapshot(html=item.get("html") or "", href=item.get("href")) for item in raw]


def dedupe_by_name(records: Sequence[BusinessRecord]) -> List[BusinessRecord]:
    """Keep the first record for each exact (case-sensitive) name."""
    seen = set()
    unique: List[BusinessRecord] = []
    for record in records:
        if record.name in seen:
            continue
        seen.add(record.name)
        unique.append(record)
    return unique


def summaries_from_cards(cards: Sequence[CardSnapshot]) -> List[BusinessRecord]:
    summaries: List[BusinessRecord] = []
    for position, card in enumerate(cards, start=1):
        try:
            record = extract_summary(card.html, position, card.href)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to extract card %d: %s", position, exc)
            continue
        if record is not None:
            summaries.append(record)
    return dedupe_by_name(summaries)


def enumerate_summaries(
    page: Page,
    *,
    max_iterations: int = MAX_SCROLL_ITERATIONS,
    settle_delay_ms: int = SETTLE_DELAY_MS,
) -> List[BusinessRecord]:
    """Scroll the feed to exhaustion and return unique summary records in list order."""
    driver = ScrollDriver(page, max_iterations=max_iterations, settle_delay_ms=settle_delay_ms)
    driver.run()
    page.wait_for_timeout(FINAL_SETTLE_MS)
    cards = collect_cards(page)
    logger.info("Collected %d candidate cards after %d scroll attempts", len(cards), driver.iterations)
    summaries = summaries_from_cards(cards)
    logger.info("Extracted %d unique businesses from the result list", len(summaries))
    return summaries
