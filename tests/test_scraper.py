"""Tests for the scrape orchestrator."""

from unittest.mock import patch

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from leadscraper.core.config import Settings
from leadscraper.maps import scraper
from leadscraper.models import BusinessRecord

SETTINGS = Settings(record_delay_ms=0, settle_delay_ms=0, max_scrolls=5)


class FakePage:
    def __init__(self, goto_error=None, marker_error=None, list_visible=True):
        self.goto_error = goto_error
        self.marker_error = marker_error
        self.list_visible = list_visible
        self.url = "about:blank"
        self.gotos = []
        self.waits = []

    def goto(self, url, wait_until=None, timeout=None):
        self.gotos.append((url, timeout))
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url

    def wait_for_selector(self, selector, timeout=None):
        if self.marker_error is not None:
            raise self.marker_error

    def wait_for_timeout(self, ms):
        self.waits.append(ms)

    def query_selector(self, selector):
        if selector == scraper.RESULT_MARKER:
            return object() if self.list_visible else None
        return None


class FakeContext:
    def __init__(self, page):
        self.page = page
        self.closed = False

    def new_page(self):
        return self.page

    def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class FakeNavigator:
    def __init__(self, page, settings):
        self.page = page
        self.settings = settings

    def enrich(self, summary):
        return summary.merged(category="Coffee shop")


@pytest.fixture
def page():
    return FakePage()


@pytest.fixture
def context(page, monkeypatch):
    ctx = FakeContext(page)
    monkeypatch.setattr(scraper, "new_identity_context", lambda browser, identity: ctx)
    monkeypatch.setattr(scraper, "dismiss_cookie_consent", lambda page: False)
    monkeypatch.setattr(scraper, "DetailNavigator", FakeNavigator)
    return ctx


def test_search_url_quotes_query():
    assert scraper.search_url("coffee shops in Austin, TX") == (
        "https://www.google.com/maps/search/coffee%20shops%20in%20Austin%2C%20TX"
    )


def test_scrape_rejects_empty_query():
    with pytest.raises(ValueError):
        scraper.GoogleMapsScraper(SETTINGS, browser=FakeBrowser()).scrape("   ")


@patch("leadscraper.maps.scraper.enumerate_summaries")
def test_scrape_enriches_each_summary(mock_enumerate, context, page):
    mock_enumerate.return_value = [BusinessRecord(name="Alpha"), BusinessRecord(name="Beta")]
    browser = FakeBrowser()
    seen = []

    results = scraper.GoogleMapsScraper(SETTINGS, browser=browser).scrape(
        "coffee in Austin",
        on_record=lambda record, query: seen.append((record.name, query)),
    )

    assert [r.name for r in results] == ["Alpha", "Beta"]
    assert all(r.category == "Coffee shop" for r in results)
    assert seen == [("Alpha", "coffee in Austin"), ("Beta", "coffee in Austin")]
    assert page.gotos[0][0] == scraper.search_url("coffee in Austin")
    assert page.gotos[0][1] == SETTINGS.nav_timeout_ms
    assert mock_enumerate.call_args.kwargs["max_iterations"] == 5
    assert context.closed is True
    assert browser.closed is False


@patch("leadscraper.maps.scraper.enumerate_summaries")
def test_scrape_absorbs_callback_errors(mock_enumerate, context, caplog):
    mock_enumerate.return_value = [BusinessRecord(name="Alpha"), BusinessRecord(name="Beta")]

    def failing_sink(record, query):
        raise RuntimeError("disk full")

    with caplog.at_level("ERROR"):
        results = scraper.GoogleMapsScraper(SETTINGS, browser=FakeBrowser()).scrape("coffee", on_record=failing_sink)

    assert len(results) == 2
    assert "disk full" in " ".join(caplog.messages)


@patch("leadscraper.maps.scraper.enumerate_summaries")
def test_scrape_keeps_summary_when_navigator_fails(mock_enumerate, context, monkeypatch, caplog):
    class FlakyNavigator(FakeNavigator):
        def enrich(self, summary):
            if summary.name == "Alpha":
                raise RuntimeError("target closed")
            return super().enrich(summary)

    monkeypatch.setattr(scraper, "DetailNavigator", FlakyNavigator)
    alpha = BusinessRecord(name="Alpha", phone="555-0100")
    mock_enumerate.return_value = [alpha, BusinessRecord(name="Beta")]
    seen = []

    with caplog.at_level("ERROR"):
        results = scraper.GoogleMapsScraper(SETTINGS, browser=FakeBrowser()).scrape(
            "coffee",
            on_record=lambda record, query: seen.append(record),
        )

    assert results[0] is alpha
    assert results[1].name == "Beta"
    assert results[1].category == "Coffee shop"
    assert seen == results
    assert "target closed" in " ".join(caplog.messages)


def test_scrape_closes_launched_browser_when_context_fails(monkeypatch):
    def broken_context(browser, identity):
        raise RuntimeError("browser crashed")

    monkeypatch.setattr(scraper, "new_identity_context", broken_context)
    owned = scraper.GoogleMapsScraper(SETTINGS)
    launched = FakeBrowser()
    owned._browser = launched

    with pytest.raises(RuntimeError):
        owned.scrape("coffee")

    assert launched.closed is True


@patch("leadscraper.maps.scraper.enumerate_summaries")
def test_scrape_raises_when_search_cannot_load(mock_enumerate, monkeypatch):
    page = FakePage(goto_error=PlaywrightTimeoutError("Timeout 30000ms exceeded"))
    ctx = FakeContext(page)
    monkeypatch.setattr(scraper, "new_identity_context", lambda browser, identity: ctx)

    with pytest.raises(scraper.ScrapeError):
        scraper.GoogleMapsScraper(SETTINGS, browser=FakeBrowser()).scrape("coffee")

    assert ctx.closed is True
    mock_enumerate.assert_not_called()


@patch("leadscraper.maps.scraper.enumerate_summaries")
def test_missing_results_marker_is_not_fatal(mock_enumerate, monkeypatch):
    page = FakePage(marker_error=PlaywrightTimeoutError("Timeout 15000ms exceeded"))
    monkeypatch.setattr(scraper, "new_identity_context", lambda browser, identity: FakeContext(page))
    monkeypatch.setattr(scraper, "dismiss_cookie_consent", lambda page: False)
    mock_enumerate.return_value = []

    assert scraper.GoogleMapsScraper(SETTINGS, browser=FakeBrowser()).scrape("coffee") == []


@patch("leadscraper.maps.scraper.enumerate_summaries")
def test_scrape_waits_when_list_is_not_back(mock_enumerate, context, page):
    page.list_visible = False
    mock_enumerate.return_value = [BusinessRecord(name="Alpha")]

    scraper.GoogleMapsScraper(SETTINGS, browser=FakeBrowser()).scrape("coffee")

    assert page.waits[-1] == scraper.LIST_RETRY_WAIT_MS


def test_scraper_closes_only_browsers_it_launched():
    supplied = FakeBrowser()
    borrowed = scraper.GoogleMapsScraper(SETTINGS, browser=supplied)
    borrowed.close()
    assert supplied.closed is False

    owned = scraper.GoogleMapsScraper(SETTINGS)
    launched = FakeBrowser()
    owned._browser = launched
    owned.close()
    assert launched.closed is True


@patch("leadscraper.maps.scraper.GoogleMapsScraper.scrape")
def test_module_scrape_uses_fresh_scraper(mock_scrape):
    mock_scrape.return_value = [BusinessRecord(name="Alpha")]

    results = scraper.scrape("coffee", settings=SETTINGS)

    assert [r.name for r in results] == ["Alpha"]
    mock_scrape.assert_called_once_with("coffee", on_record=None)
