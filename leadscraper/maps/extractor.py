"""Field extraction for Maps result cards and place detail pages.

Maps markup uses generated class names that drift between releases, so every
field is recovered through an ordered chain of small rules. Each rule takes a
parsed node and returns a value or ``None``; the first validated value wins.
Rules run from the most stable signals (``data-value``/``aria-label``
attributes) down to positional or free-text guesses. A rule that raises only
costs that rule: the chain moves on and the field may end up ``None``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from leadscraper.models import BusinessRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")
Rule = Callable[[Tag], Optional[T]]

MAPS_BASE_URL = "https://www.google.com"
MAP_HOST = "google.com"
DENYLISTED_DOMAINS = (
    "google.com",
    "youtube.com",
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "linkedin.com",
    "pinterest.com",
    "tumblr.com",
    "reddit.com",
    "github.com",
    "stackoverflow.com",
)

PHONE_MIN_DIGITS = 7
PHONE_MAX_DIGITS = 15
PHONE_CANDIDATE_REGEX = re.compile(r"[\d\s+\-()]{7,}")
PHONE_TEXT_PATTERNS = (
    re.compile(r"\+?[\d\s\-()]{10,}"),
    re.compile(r"\+?\d{1,4}[\s\-]?\d{1,4}[\s\-]?\d{1,4}[\s\-]?\d{1,9}"),
)
RATING_REGEX = re.compile(r"(\d+(?:\.\d+)?)")
REVIEWS_LABEL_REGEX = re.compile(r"(\d[\d,]*)\s*reviews?", re.IGNORECASE)
INTEGER_REGEX = re.compile(r"(\d[\d,]*)")
PLACE_ID_REGEX = re.compile(r"/place/([^/?#]+)")
EXTERNAL_URL_REGEX = re.compile(r"^https?://[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

POSITIONAL_NAME = "Business {index}"
MIN_ADDRESS_LENGTH = 10

PLACE_LINK_SELECTOR = 'a[href*="/maps/place/"]'
MAIN_REGION_SELECTORS = ('[role="main"]', ".m6QErb")
CONTACT_BLOCK_SELECTOR = ".Io6YTe.fontBodyMedium"
PHONE_CONTROL_SELECTORS = (
    'a[data-value="Phone"]',
    'button[data-value="Phone"]',
    '[data-value="Phone"]',
    '[data-item-id^="phone"]',
)
WEBSITE_CONTROL_SELECTORS = (
    'a[data-value="Website"]',
    'button[data-value="Website"]',
    '[data-value="Website"]',
    'a[data-item-id="authority"]',
)
DETAIL_ADDRESS_SELECTORS = (
    '[data-item-id="address"]',
    '[data-value="Directions"]',
    'button[data-value="Directions"]',
    ".Io6YTe",
    ".fontBodyMedium",
    '[aria-label*="Address"]',
)
HOURS_SELECTORS = ('[aria-label*="hours" i]', ".t39EBf")
CATEGORY_SELECTORS = (".DkEaL", '[jsaction*="category"]')
DESCRIPTION_SELECTORS = (".PYvSYb", '[aria-label^="About"] .fontBodyMedium')
DISPLAYED_NAME_SELECTORS = (
    '[role="main"] h1',
    "h1",
    '[data-attrid="title"]',
    ".x3AX1-LfntMc-header-title-title",
    ".qBF1Pd",
    ".fontHeadlineSmall",
    "title",
)


@dataclass(frozen=True)
class DetailFields:
    """Field candidates read from a place detail page."""

    phone: Optional[str] = None
    website: Optional[str] = None
    address: Optional[str] = None
    hours: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    displayed_name: Optional[str] = None


# ---------- Shared helpers ----------


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def first_match(node: Tag, rules: Sequence[Rule], field_name: str) -> Optional[T]:
    """Run ``rules`` in order and return the first non-empty result."""
    for rule in rules:
        try:
            value = rule(node)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Rule %s for %s failed: %s", getattr(rule, "__name__", rule), field_name, exc)
            continue
        if value is not None and value != "":
            return value
    return None


def _text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    return node.get_text(" ", strip=True)


def _text_or_label(node: Optional[Tag]) -> Optional[str]:
    if node is None:
        return None
    text = _text(node) or (node.get("aria-label") or "").strip()
    return text or None


def _select_first(node: Tag, selectors: Iterable[str]) -> Optional[Tag]:
    for selector in selectors:
        found = node.select_one(selector)
        if found is not None:
            return found
    return None


def main_region(soup: Tag) -> Optional[Tag]:
    return _select_first(soup, MAIN_REGION_SELECTORS)


def _hostname(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def is_self_referential(url: Optional[str]) -> bool:
    """True when ``url`` mentions the map host anywhere (maps, search or redirect links)."""
    if not url:
        return False
    return MAP_HOST in url.lower()


def is_denylisted(url: str) -> bool:
    host = _hostname(url)
    return any(_host_matches(host, domain) for domain in DENYLISTED_DOMAINS)


def clean_website(url: Optional[str]) -> Optional[str]:
    if not url or is_self_referential(url):
        return None
    return url


def _external_href(link: Optional[Tag]) -> Optional[str]:
    if link is None:
        return None
    href = (link.get("href") or "").strip()
    if not href.startswith("http") or is_denylisted(href):
        return None
    return href


def is_valid_phone(value: Optional[str]) -> bool:
    if not value:
        return False
    digits = re.sub(r"\D", "", value)
    return PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS


def normalize_phone(raw: Optional[str]) -> Optional[str]:
    """Return the first phone-like run in ``raw`` that has 7-15 digits."""
    if not raw:
        return None
    text = raw.strip()
    if text.lower().startswith("tel:"):
        text = text[4:]
    for match in PHONE_CANDIDATE_REGEX.finditer(text):
        candidate = match.group(0).strip()
        if is_valid_phone(candidate):
            return candidate
    return None


def place_id_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    match = PLACE_ID_REGEX.search(url)
    return match.group(1) if match else None


def absolute_place_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    return url if url.startswith("http") else urljoin(MAPS_BASE_URL, url)


# ---------- Result card rules ----------


def _name_from_label(card: Tag) -> Optional[str]:
    label = (card.get("aria-label") or "").strip()
    if label:
        return label
    link = card.select_one(f"{PLACE_LINK_SELECTOR}[aria-label]")
    return (link.get("aria-label") or "").strip() if link else None


def _name_from_heading(card: Tag) -> Optional[str]:
    return _text(card.select_one("h1, h2, h3")) or None


def _name_from_class_marker(card: Tag) -> Optional[str]:
    return _text(_select_first(card, (".qBF1Pd", ".fontHeadlineSmall"))) or None


def _name_from_own_text(card: Tag) -> Optional[str]:
    return next(iter(card.stripped_strings), None)


NAME_RULES: List[Rule] = [
    _name_from_label,
    _name_from_heading,
    _name_from_class_marker,
    _name_from_own_text,
]


def _rating_from_label(card: Tag) -> Optional[float]:
    node = _select_first(card, ('[aria-label*="stars"]', '[aria-label*="rating"]'))
    return _parse_rating(node.get("aria-label") if node else None)


def _rating_from_class(card: Tag) -> Optional[float]:
    return _parse_rating(_text(card.select_one(".MW4etd")))


def _parse_rating(text: Optional[str]) -> Optional[float]:
    match = RATING_REGEX.search(text or "")
    return float(match.group(1)) if match else None


RATING_RULES: List[Rule] = [_rating_from_label, _rating_from_class]


def _reviews_from_label(card: Tag) -> Optional[int]:
    for node in card.select('[aria-label*="review" i]'):
        match = REVIEWS_LABEL_REGEX.search(node.get("aria-label") or "")
        if match:
            return int(match.group(1).replace(",", ""))
    return None


def _reviews_from_class(card: Tag) -> Optional[int]:
    match = INTEGER_REGEX.search(_text(card.select_one(".UY7F9")))
    return int(match.group(1).replace(",", "")) if match else None


REVIEW_COUNT_RULES: List[Rule] = [_reviews_from_label, _reviews_from_class]


def _card_address_from_last_line(card: Tag) -> Optional[str]:
    return _text(card.select_one(".W4Efsd:last-of-type")) or None


def _card_address_from_body(card: Tag) -> Optional[str]:
    return _text(card.select_one(".fontBodyMedium")) or None


CARD_ADDRESS_RULES: List[Rule] = [_card_address_from_last_line, _card_address_from_body]


def _card_phone_from_control(card: Tag) -> Optional[str]:
    node = _select_first(card, ('[data-value="Phone"]', '[aria-label*="phone" i]'))
    if node is None:
        return None
    return normalize_phone(node.get("aria-label")) or normalize_phone(_text(node))


CARD_PHONE_RULES: List[Rule] = [_card_phone_from_control]


def _card_website_from_control(card: Tag) -> Optional[str]:
    node = card.select_one('[data-value="Website"]')
    return clean_website((node.get("href") or "").strip()) if node else None


def _card_website_from_links(card: Tag) -> Optional[str]:
    for link in card.select('a[href^="http"]'):
        href = _external_href(link)
        if href:
            return href
    return None


CARD_WEBSITE_RULES: List[Rule] = [_card_website_from_control, _card_website_from_links]


def extract_summary(html: str, position: int, link_href: Optional[str] = None) -> Optional[BusinessRecord]:
    """Build a summary record from a result card's outer HTML.

    ``position`` is the 1-based index of the card in the list; it only feeds
    the positional placeholder name, which is treated as "no name" and makes
    the card be discarded.
    """
    soup = parse_html(html)
    card = soup.find(True)
    if card is None:
        return None

    placeholder = POSITIONAL_NAME.format(index=position)
    name = first_match(card, NAME_RULES, "name") or placeholder
    if name == placeholder:
        logger.debug("Discarding card %d without a name", position)
        return None

    if not link_href:
        if card.name == "a" and "/maps/place/" in (card.get("href") or ""):
            link_href = card.get("href")
        else:
            link = card.select_one(PLACE_LINK_SELECTOR)
            link_href = link.get("href") if link else None

    place_url = absolute_place_url(link_href)
    return BusinessRecord(
        name=name,
        rating=first_match(card, RATING_RULES, "rating"),
        review_count=first_match(card, REVIEW_COUNT_RULES, "review_count"),
        address=first_match(card, CARD_ADDRESS_RULES, "address"),
        phone=first_match(card, CARD_PHONE_RULES, "phone"),
        website=clean_website(first_match(card, CARD_WEBSITE_RULES, "website")),
        place_id=place_id_from_url(place_url),
        place_url=place_url,
    )


# ---------- Detail page rules ----------


def _phone_from_control(page: Tag) -> Optional[str]:
    node = _select_first(page, PHONE_CONTROL_SELECTORS)
    if node is None:
        return None
    parent_link = node.find_parent("a", href=True)
    candidates = (
        node.get("aria-label"),
        _text(node),
        node.get("href"),
        parent_link.get("href") if parent_link else None,
        node.get("title"),
    )
    for candidate in candidates:
        phone = normalize_phone(candidate)
        if phone:
            return phone
    return None


def _phone_from_contact_block(page: Tag) -> Optional[str]:
    region = main_region(page)
    if region is None:
        return None
    for block in region.select(CONTACT_BLOCK_SELECTOR):
        text = _text(block) or block.get("aria-label") or ""
        tel_link = block.select_one('a[href^="tel:"]')
        lowered = text.lower()
        if "phone" in lowered or "call" in lowered or tel_link is not None:
            phone = normalize_phone(tel_link.get("href") if tel_link else text)
            if phone:
                return phone
    return None


def _phone_from_tel_link(page: Tag) -> Optional[str]:
    region = main_region(page)
    if region is None:
        return None
    for link in region.select('a[href^="tel:"]'):
        phone = normalize_phone(link.get("href"))
        if phone:
            return phone
    return None


def _phone_from_text(page: Tag) -> Optional[str]:
    region = main_region(page)
    if region is None:
        return None
    # One line per text node so a postcode never runs into the next line's number.
    lines = region.get_text("\n", strip=True).splitlines()
    for pattern in PHONE_TEXT_PATTERNS:
        for line in lines:
            for match in pattern.finditer(line):
                candidate = match.group(0).strip()
                if is_valid_phone(candidate):
                    return candidate
    return None


DETAIL_PHONE_RULES: List[Rule] = [
    _phone_from_control,
    _phone_from_contact_block,
    _phone_from_tel_link,
    _phone_from_text,
]


def _website_from_control(page: Tag) -> Optional[str]:
    for selector in WEBSITE_CONTROL_SELECTORS:
        node = page.select_one(selector)
        if node is None:
            continue
        link = node if node.get("href") else node.find_parent("a", href=True)
        href = _external_href(link)
        if href:
            return href
    return None


def _website_from_labeled_link(page: Tag) -> Optional[str]:
    region = main_region(page)
    if region is None:
        return None
    for link in region.select('a[href^="http"]'):
        label = (link.get("aria-label") or "").lower()
        text = _text(link).lower()
        labeled = "website" in label or "website" in text or link.find_parent(attrs={"data-value": "Website"})
        if labeled:
            href = _external_href(link)
            if href:
                return href
    return None


def _website_from_contact_block(page: Tag) -> Optional[str]:
    for block in page.select(CONTACT_BLOCK_SELECTOR):
        link = block.select_one('a[href^="http"]') or block.find_parent("a", href=True)
        href = _external_href(link)
        if href:
            return href
    return None


def _website_from_any_link(page: Tag) -> Optional[str]:
    region = main_region(page)
    if region is None:
        return None
    for link in region.select('a[href^="http"]'):
        href = _external_href(link)
        if href and EXTERNAL_URL_REGEX.match(href):
            return href
    return None


DETAIL_WEBSITE_RULES: List[Rule] = [
    _website_from_control,
    _website_from_labeled_link,
    _website_from_contact_block,
    _website_from_any_link,
]


def _detail_address(page: Tag) -> Optional[str]:
    for selector in DETAIL_ADDRESS_SELECTORS:
        node = page.select_one(selector)
        text = _text_or_label(node)
        if text and len(text) > MIN_ADDRESS_LENGTH:
            return text
    return None


def _single_lookup(selectors: Sequence[str]) -> Rule:
    def lookup(page: Tag) -> Optional[str]:
        return _text_or_label(_select_first(page, selectors))

    return lookup


def extract_details(html: str) -> DetailFields:
    """Read every detail-page field candidate from the rendered page HTML."""
    soup = parse_html(html)
    return DetailFields(
        phone=first_match(soup, DETAIL_PHONE_RULES, "phone"),
        website=clean_website(first_match(soup, DETAIL_WEBSITE_RULES, "website")),
        address=first_match(soup, [_detail_address], "address"),
        hours=first_match(soup, [_single_lookup(HOURS_SELECTORS)], "hours"),
        category=first_match(soup, [_single_lookup(CATEGORY_SELECTORS)], "category"),
        description=first_match(soup, [_single_lookup(DESCRIPTION_SELECTORS)], "description"),
        displayed_name=displayed_name(soup),
    )


def displayed_name(soup: Tag) -> Optional[str]:
    """Business name as shown by the detail page header (or document title)."""
    rules = [_single_lookup((selector,)) for selector in DISPLAYED_NAME_SELECTORS]
    return first_match(soup, rules, "displayed_name")
