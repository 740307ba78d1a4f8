"""Tests for the scroll driver and result card enumeration."""

from leadscraper.maps import enumerator
from leadscraper.models import BusinessRecord


class DummyKeyboard:
    def __init__(self):
        self.presses = []

    def press(self, key):
        self.presses.append(key)


class DummyCard:
    def __init__(self, index, hovered):
        self.index = index
        self.hovered = hovered

    def hover(self):
        self.hovered.append(self.index)


class FakePage:
    def __init__(self, counts, cards=None, fail_nudges=False, card_handles=0):
        self.counts = list(counts)
        self.cards = cards or []
        self.fail_nudges = fail_nudges
        self.card_handles = card_handles
        self.count_calls = 0
        self.waits = []
        self.hovered = []
        self.keyboard = DummyKeyboard()

    def evaluate(self, script, arg=None):
        if script == enumerator._COUNT_SCRIPT:
            self.count_calls += 1
            return self.counts.pop(0) if len(self.counts) > 1 else self.counts[0]
        if script == enumerator._COLLECT_CARDS_SCRIPT:
            return self.cards
        if self.fail_nudges:
            raise RuntimeError("detached frame")
        return True

    def wait_for_function(self, script, timeout=None):
        raise TimeoutError("still loading")

    def wait_for_timeout(self, ms):
        self.waits.append(ms)

    def query_selector_all(self, selector):
        return [DummyCard(i, self.hovered) for i in range(self.card_handles)]


def test_scroll_driver_stops_when_two_counts_agree():
    page = FakePage([5, 5])
    driver = enumerator.ScrollDriver(page, settle_delay_ms=0)

    assert driver.run() == 5
    assert driver.iterations == 2
    assert page.count_calls == 2
    assert page.keyboard.presses == ["ArrowDown"] * enumerator.KEY_PRESSES


def test_scroll_driver_respects_iteration_cap():
    page = FakePage([1, 2, 3, 4, 5, 6])
    driver = enumerator.ScrollDriver(page, max_iterations=3, settle_delay_ms=0)

    assert driver.run() == 3
    assert driver.iterations == 3


def test_scroll_driver_keeps_going_while_count_grows():
    page = FakePage([10, 20, 30, 30])
    driver = enumerator.ScrollDriver(page, settle_delay_ms=0)

    assert driver.run() == 30
    assert driver.iterations == 4


def test_scroll_driver_tolerates_failing_nudges():
    page = FakePage([2, 4, 4], fail_nudges=True)
    driver = enumerator.ScrollDriver(page, settle_delay_ms=250)

    assert driver.run() == 4
    assert driver.iterations == 3
    assert page.waits.count(250) == 2


def test_scroll_driver_hovers_card_by_iteration():
    page = FakePage([1, 2, 3, 3], card_handles=2)
    driver = enumerator.ScrollDriver(page, settle_delay_ms=0)

    driver.run()

    assert page.hovered == [0, 1, 1]


def test_dedupe_by_name_keeps_first_exact_match():
    records = [
        BusinessRecord(name="A", phone="1"),
        BusinessRecord(name="B"),
        BusinessRecord(name="A", phone="2"),
        BusinessRecord(name="a"),
    ]

    unique = enumerator.dedupe_by_name(records)

    assert [r.name for r in unique] == ["A", "B", "a"]
    assert unique[0].phone == "1"


def test_summaries_from_cards_drops_nameless_and_duplicates():
    cards = [
        enumerator.CardSnapshot('<div aria-label="Alpha"></div>', "/maps/place/alpha"),
        enumerator.CardSnapshot('<div role="article"></div>'),
        enumerator.CardSnapshot('<div aria-label="Beta"></div>'),
        enumerator.CardSnapshot('<div aria-label="Alpha"></div>', "/maps/place/alpha2"),
    ]

    records = enumerator.summaries_from_cards(cards)

    assert [r.name for r in records] == ["Alpha", "Beta"]
    assert records[0].place_id == "alpha"


def test_enumerate_summaries_collects_after_scrolling():
    cards = [
        {"html": '<div aria-label="Alpha"><span class="MW4etd">4.1</span></div>', "href": "/maps/place/alpha"},
        {"html": '<div aria-label="Beta"></div>', "href": None},
    ]
    page = FakePage([2, 2], cards=cards)

    records = enumerator.enumerate_summaries(page, settle_delay_ms=0)

    assert [r.name for r in records] == ["Alpha", "Beta"]
    assert records[0].rating == 4.1
    assert records[0].place_url == "https://www.google.com/maps/place/alpha"
    assert enumerator.FINAL_SETTLE_MS in page.waits


def test_collect_cards_handles_empty_page():
    page = FakePage([0])
    page.cards = None

    assert enumerator.collect_cards(page) == []
