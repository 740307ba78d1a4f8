"""Best-effort dismissal of cookie consent dialogs.

Nothing downstream depends on the outcome: an undismissed dialog only hides
part of the view, it does not block extraction.
"""

from __future__ import annotations

import logging
from typing import Optional

from playwright.sync_api import ElementHandle, Page

logger = logging.getLogger(__name__)

DIALOG_APPEAR_WAIT_MS = 2000
AFTER_CLICK_WAIT_MS = 1500

ATTRIBUTE_SELECTORS = (
    'button[jsname="b3VHJd"]',
    'button[jsname="higCR"]',
    'form[action*="consent"] button[type="button"]:first-of-type',
    'form[action*="consent"] button:first-child',
    'button[data-action="reject"]',
    'button[data-action="decline"]',
    'button[data-consent="reject"]',
    'button[data-consent="decline"]',
    'button[data-cookiefirst-action="reject"]',
    '[role="dialog"] form button:first-of-type',
    '[role="dialog"] button[type="button"]:first-of-type',
    '[role="alertdialog"] button:first-of-type',
    'button[value="reject"]',
    'button[value="decline"]',
    'button[name="reject"]',
    'button[name="decline"]',
    "button.reject-all",
    "button.decline-all",
    'button[class*="reject"]',
    'button[class*="decline"]',
)
DIALOG_SELECTOR = '[role="dialog"], [role="alertdialog"], form[action*="consent"], form[action*="cookie"]'
NON_REJECT_WORDS = ("info", "more", "learn", "detail")
REJECT_PATTERNS = (
    "reject all", "reject", "decline all", "decline",
    "rechazar todo", "rechazar", "denegar",
    "tout refuser", "refuser", "rejeter",
    "alle ablehnen", "ablehnen",
    "rifiuta tutto", "rifiuta",
    "rejeitar tudo", "rejeitar",
    "alles afwijzen", "afwijzen",
    "odrzuć wszystko", "odrzuć",
    "отклонить все", "отклонить",
    "رفض الكل", "رفض",
    "全部拒绝", "拒绝",
    "すべて拒否", "拒否",
    "모두 거부", "거부",
    "सभी अस्वीकार", "अस्वीकार",
    "tümünü reddet", "reddet",
    "avvisa alla", "avvisa",
    "avvis alle", "avvis",
    "afvis alle", "afvis",
    "hylkää kaikki", "hylkää",
)


def _button_text(button: ElementHandle) -> str:
    try:
        return (button.text_content() or "").strip()
    except Exception:  # noqa: BLE001
        return ""


def _is_visible(button: ElementHandle) -> bool:
    try:
        return button.is_visible()
    except Exception:  # noqa: BLE001
        return False


def _click(page: Page, button: ElementHandle, strategy: str) -> bool:
    logger.info("Found cookie button (%s): %r - clicking", strategy, _button_text(button))
    button.click()
    page.wait_for_timeout(AFTER_CLICK_WAIT_MS)
    return True


def _by_attribute(page: Page) -> bool:
    for selector in ATTRIBUTE_SELECTORS:
        try:
            button = page.query_selector(selector)
            if button is not None and _is_visible(button):
                return _click(page, button, "attribute")
        except Exception as exc:  # noqa: BLE001
            logger.debug("Consent selector %s failed: %s", selector, exc)
    return False


def _pick_by_position(buttons) -> Optional[ElementHandle]:
    if len(buttons) < 2:
        return None
    first_text = _button_text(buttons[0]).lower()
    if not any(word in first_text for word in NON_REJECT_WORDS):
        return buttons[0]
    return buttons[1]


def _by_position(page: Page) -> bool:
    for dialog in page.query_selector_all(DIALOG_SELECTOR):
        button = _pick_by_position(dialog.query_selector_all("button"))
        if button is not None:
            return _click(page, button, "position")
    return False


def _by_text(page: Page) -> bool:
    for button in page.query_selector_all('button, a[role="button"]'):
        if not _is_visible(button):
            continue
        text = _button_text(button).lower()
        if any(pattern in text for pattern in REJECT_PATTERNS):
            return _click(page, button, "text")
    return False


def dismiss_cookie_consent(page: Page, *, detailed: bool = True) -> bool:
    """Try to reject a cookie consent dialog; returns True if a button was clicked.

    Quick mode (``detailed=False``) only tries the language-agnostic attribute
    selectors.
    """
    try:
        page.wait_for_timeout(DIALOG_APPEAR_WAIT_MS)
        if _by_attribute(page):
            return True
        if not detailed:
            return False
        for strategy in (_by_position, _by_text):
            try:
                if strategy(page):
                    return True
            except Exception as exc:  # noqa: BLE001
                logger.debug("Consent strategy %s failed: %s", strategy.__name__, exc)
        logger.info("No cookie dialog found or already dismissed")
        return False
    except Exception as exc:  # noqa: BLE001
        logger.warning("Error handling cookie consent (continuing anyway): %s", exc)
        return False
