from leadscraper.models import BusinessRecord, SaveOutcome, ScrapeStats


def test_business_record_to_dict_uses_storage_keys():
    record = BusinessRecord(name="Acme", review_count=3, place_id="pid", verified_business_name="Acme Inc")

    data = record.to_dict()

    assert data["name"] == "Acme"
    assert data["reviewCount"] == 3
    assert data["placeId"] == "pid"
    assert data["verifiedBusinessName"] == "Acme Inc"
    assert "review_count" not in data


def test_merged_returns_new_record():
    summary = BusinessRecord(name="Acme", phone="555-1111")

    enriched = summary.merged(category="Bakery")

    assert enriched is not summary
    assert enriched.category == "Bakery"
    assert enriched.phone == "555-1111"
    assert summary.category is None


def test_scrape_stats_tally():
    stats = ScrapeStats(query="coffee", query_slug="coffee")
    for outcome in (SaveOutcome.SAVED, SaveOutcome.SAVED, SaveOutcome.DUPLICATE, SaveOutcome.ERROR):
        stats.record(outcome)

    data = stats.to_dict()

    assert data == {
        "total": 4,
        "saved": 2,
        "duplicates": 1,
        "errors": 1,
        "query": "coffee",
        "querySlug": "coffee",
        "totalInQuery": 0,
        "storage": "csv",
    }
