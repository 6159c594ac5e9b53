import logging
from datetime import datetime, timezone

import httpx
import pytest

from listing_map.collectors.apify.collector import ApifyDatasetCollector, DatasetFetchError
from listing_map.core.ingest import NO_ITEMS_MESSAGE, NO_VALID_MESSAGE, ingest_items, ingest_payload
from listing_map.core.normalize import is_valid_property, item_to_property, items_from_payload
from listing_map.core.settings import Settings
from listing_map.jobs import ingest_dataset


class FakeRepo:
    def __init__(self, fail_history: bool = False) -> None:
        self.properties: list[dict] = []
        self.history: list[dict] = []
        self.fail_history = fail_history

    def upsert_properties(self, rows):
        self.properties.extend(rows)

    def insert_price_history(self, rows):
        if self.fail_history:
            raise RuntimeError("history table missing")
        self.history.extend(rows)


ITEM = {
    "id": "34567",
    "title": "Piso en Chamberí",
    "price": 350000,
    "size": 70,
    "rooms": 3,
    "bathrooms": 2,
    "latitude": 40.43,
    "longitude": -3.70,
    "url": "https://www.idealista.com/inmueble/34567/",
    "thumbnail": "https://img.example.com/1.jpg",
}


def test_items_from_payload_cases():
    assert items_from_payload({"resource": {"defaultDatasetId": "ds1"}}) == ([], "ds1")
    assert items_from_payload([ITEM, "junk"]) == ([ITEM], None)
    assert items_from_payload(ITEM) == ([ITEM], None)
    assert items_from_payload({"hello": "world"}) == ([], None)
    assert items_from_payload("text") == ([], None)


def test_item_to_property_builds_point_and_defaults():
    seen = datetime(2024, 1, 1, tzinfo=timezone.utc)
    row = item_to_property(ITEM, seen_at=seen)
    assert row["location"] == "POINT(-3.7 40.43)"
    assert row["size_m2"] == 70
    assert row["image_url"] == "https://img.example.com/1.jpg"
    assert row["last_seen"] == seen.isoformat()

    sparse = item_to_property({"url": "https://x"})
    assert sparse["id"].startswith("unknown_")
    assert sparse["title"] == "Untitled"
    assert sparse["currency"] == "EUR"
    assert sparse["location"] is None
    assert is_valid_property(sparse) is False


def test_ingest_items_upserts_and_records_history():
    repo = FakeRepo()
    collector = ApifyDatasetCollector("ds1")
    result = ingest_items(repo, collector, [ITEM, {"id": "no-price", "url": "https://x"}])
    assert (result.message, result.count) == ("Success", 1)
    assert [row["id"] for row in repo.properties] == ["34567"]
    assert repo.history[0]["property_id"] == "34567"
    assert repo.history[0]["price"] == 350000


def test_ingest_items_messages():
    repo = FakeRepo()
    collector = ApifyDatasetCollector("ds1")
    assert ingest_items(repo, collector, []).message == NO_ITEMS_MESSAGE
    assert ingest_items(repo, collector, [{"id": "1", "price": 0, "url": "u"}]).message == NO_VALID_MESSAGE
    assert repo.properties == []


def test_history_failure_is_not_fatal(caplog):
    repo = FakeRepo(fail_history=True)
    with caplog.at_level(logging.ERROR):
        result = ingest_items(repo, ApifyDatasetCollector("ds1"), [ITEM])
    assert result.count == 1
    assert "Error inserting price history" in caplog.text


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_collector_fetches_dataset_items():
    seen_urls = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_urls.append(str(request.url))
        return httpx.Response(200, json=[ITEM, 7])

    collector = ApifyDatasetCollector("abc", client=_client(handler))
    assert collector.fetch() == [ITEM]
    assert seen_urls == ["https://api.apify.com/v2/datasets/abc/items?clean=true&format=json"]


def test_collector_raises_on_http_error():
    collector = ApifyDatasetCollector("abc", client=_client(lambda request: httpx.Response(404)))
    with pytest.raises(DatasetFetchError):
        collector.fetch()


def test_ingest_payload_fetches_dataset_for_run_notifications():
    client = _client(lambda request: httpx.Response(200, json=[ITEM]))
    repo = FakeRepo()
    result = ingest_payload(
        repo,
        {"resource": {"defaultDatasetId": "run-1"}},
        lambda dataset_id: ApifyDatasetCollector(dataset_id or "", client=client),
    )
    assert result.count == 1
    assert repo.properties[0]["id"] == "34567"


def _flaky(failures):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) <= len(failures):
            failure = failures[len(calls) - 1]
            if isinstance(failure, Exception):
                raise failure
            return httpx.Response(failure)
        return httpx.Response(200, json=[ITEM])

    return handler, calls


def test_fetch_dataset_retries_server_and_connection_errors(monkeypatch):
    sleeps = []
    monkeypatch.setattr(ingest_dataset.time, "sleep", sleeps.append)
    handler, calls = _flaky([503, httpx.ConnectError("refused")])
    collector = ApifyDatasetCollector("ds1", client=_client(handler))

    assert ingest_dataset.fetch_dataset(collector, max_attempts=3) == [ITEM]
    assert len(calls) == 3
    assert sleeps == [2.0, 4.0]


def test_fetch_dataset_gives_up_after_last_attempt(monkeypatch):
    monkeypatch.setattr(ingest_dataset.time, "sleep", lambda seconds: None)
    handler, calls = _flaky([500, 500])
    collector = ApifyDatasetCollector("ds1", client=_client(handler))

    with pytest.raises(DatasetFetchError):
        ingest_dataset.fetch_dataset(collector, max_attempts=2)
    assert len(calls) == 2


def test_fetch_dataset_does_not_retry_malformed_body(monkeypatch):
    sleeps = []
    monkeypatch.setattr(ingest_dataset.time, "sleep", sleeps.append)
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, content=b"<html>")

    collector = ApifyDatasetCollector("ds1", client=_client(handler))
    with pytest.raises(ValueError):
        ingest_dataset.fetch_dataset(collector, max_attempts=3)
    assert len(calls) == 1
    assert sleeps == []


def test_run_ingest_stores_fetched_dataset(monkeypatch):
    monkeypatch.setattr(ingest_dataset.time, "sleep", lambda seconds: None)
    handler, _ = _flaky([502])
    repo = FakeRepo()
    result = ingest_dataset.run_ingest(
        "ds1",
        settings=Settings(supabase_url=None, supabase_key=None, map_token=""),
        repo=repo,
        collector=ApifyDatasetCollector("ds1", client=_client(handler)),
    )
    assert (result.message, result.count) == ("Success", 1)
    assert repo.history[0]["property_id"] == "34567"
