from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from listing_map.collectors.apify.collector import ApifyDatasetCollector
from listing_map.collectors.base import Collector
from listing_map.core.normalize import history_rows, items_from_payload
from listing_map.core.supabase_repo import SupabaseRepo


LOGGER = logging.getLogger(__name__)

NO_ITEMS_MESSAGE = "No items found to process"
NO_VALID_MESSAGE = "No valid properties to insert"


@dataclass(slots=True)
class IngestResult:
    message: str
    count: int = 0


def ingest_items(repo: SupabaseRepo, collector: Collector, items: list[dict[str, Any]]) -> IngestResult:
    if not items:
        return IngestResult(NO_ITEMS_MESSAGE)

    rows = collector.normalize_all(items)
    if not rows:
        return IngestResult(NO_VALID_MESSAGE)

    # Last write wins on id.
    repo.upsert_properties(rows)
    try:
        repo.insert_price_history(history_rows(rows, recorded_at=datetime.now(timezone.utc)))
    except Exception as exc:  # noqa: BLE001
        LOGGER.error("Error inserting price history: %s", exc)

    LOGGER.info("Ingested source=%s received=%s stored=%s", collector.source_name, len(items), len(rows))
    return IngestResult("Success", count=len(rows))


def ingest_payload(
    repo: SupabaseRepo,
    body: Any,
    collector_factory: Callable[[str | None], Collector],
) -> IngestResult:
    """Webhook entry: inline items are stored directly, run notifications fetch their dataset."""
    items, dataset_id = items_from_payload(body)
    collector = collector_factory(dataset_id)
    if dataset_id is not None:
        LOGGER.info("Received run notification for dataset %s", dataset_id)
        items = collector.fetch()
    return ingest_items(repo, collector, items)


def dataset_collector_factory(dataset_url: str, timeout_seconds: float) -> Callable[[str | None], Collector]:
    def factory(dataset_id: str | None) -> Collector:
        return ApifyDatasetCollector(dataset_id or "", dataset_url=dataset_url, timeout_seconds=timeout_seconds)

    return factory
