import pytest

from leadscraper.core import sink as sink_module
from leadscraper.core.config import Settings
from leadscraper.core.sink import RecordSink
from leadscraper.models import BusinessRecord, SaveOutcome

QUERY = "plumbers in Leeds"


@pytest.fixture
def csv_settings(tmp_path):
    return Settings(database_url="", csv_dir=str(tmp_path))


def test_sink_uses_csv_without_database(csv_settings):
    record_sink = RecordSink(QUERY, csv_settings)
    record_sink.start()

    outcomes = [
        record_sink(BusinessRecord(name="Pipe Pros", place_id="p1"), QUERY),
        record_sink(BusinessRecord(name="Pipe Pros", place_id="p1"), QUERY),
        record_sink(BusinessRecord(name="Drain Kings"), QUERY),
    ]
    stats = record_sink.finish()

    assert record_sink.uses_database is False
    assert outcomes == [SaveOutcome.SAVED, SaveOutcome.DUPLICATE, SaveOutcome.SAVED]
    assert stats.to_dict() == {
        "total": 3,
        "saved": 2,
        "duplicates": 1,
        "errors": 0,
        "query": QUERY,
        "querySlug": "plumbers_in_leeds",
        "totalInQuery": 2,
        "storage": "csv",
    }
    assert record_sink.csv_store.read_queries()[0]["total_businesses"] == 2


def test_sink_falls_back_to_csv_when_pool_fails(monkeypatch, tmp_path, caplog):
    def broken_pool(dsn=None):
        raise RuntimeError("connection refused")

    monkeypatch.setattr(sink_module.db, "init_pool", broken_pool)
    settings = Settings(database_url="postgres://nowhere/db", csv_dir=str(tmp_path))

    with caplog.at_level("WARNING"):
        record_sink = RecordSink(QUERY, settings)

    assert record_sink.storage == "csv"
    assert "falling back to CSV" in " ".join(caplog.messages)


def test_sink_uses_database_when_available(monkeypatch, tmp_path):
    calls = {"inserted": [], "queries": []}

    monkeypatch.setattr(sink_module.db, "init_pool", lambda dsn=None: object())
    monkeypatch.setattr(sink_module.db, "ensure_schema", lambda: None)
    monkeypatch.setattr(
        sink_module.db,
        "upsert_query_record",
        lambda query, slug: calls["queries"].append((query, slug)) or 1,
    )
    monkeypatch.setattr(
        sink_module.db,
        "insert_business",
        lambda row: calls["inserted"].append(row) or SaveOutcome.SAVED,
    )
    monkeypatch.setattr(sink_module.db, "refresh_query_total", lambda slug: 41)

    record_sink = RecordSink(QUERY, Settings(database_url="postgres://db", csv_dir=str(tmp_path)))
    record_sink.start()
    record_sink(BusinessRecord(name="Pipe Pros", phone="0113 496 0000"), QUERY)
    stats = record_sink.finish()

    assert record_sink.uses_database is True
    assert calls["queries"] == [(QUERY, "plumbers_in_leeds")]
    assert calls["inserted"][0]["phone"] == "0113 496 0000"
    assert calls["inserted"][0]["query_slug"] == "plumbers_in_leeds"
    assert stats.saved == 1
    assert stats.total_in_query == 41
    assert stats.storage == "postgres"
    assert not list(tmp_path.iterdir())


def test_sink_opens_pool_with_its_own_database_url(monkeypatch, tmp_path):
    dsns = []

    monkeypatch.setattr(sink_module.db, "init_pool", lambda dsn=None: dsns.append(dsn))
    monkeypatch.setattr(sink_module.db, "ensure_schema", lambda: None)

    record_sink = RecordSink(QUERY, Settings(database_url="postgres://explicit/db", csv_dir=str(tmp_path)))

    assert dsns == ["postgres://explicit/db"]
    assert record_sink.uses_database is True


def test_sink_never_raises(csv_settings, monkeypatch):
    record_sink = RecordSink(QUERY, csv_settings)

    def explode(row):
        raise OSError("disk full")

    monkeypatch.setattr(record_sink.csv_store, "save_business", explode)

    assert record_sink(BusinessRecord(name="Pipe Pros"), QUERY) is SaveOutcome.ERROR
    assert record_sink.stats.errors == 1
    assert record_sink.stats.total == 1
