from __future__ import annotations

import argparse
import logging
import time
from typing import Any

import httpx

from listing_map.collectors.apify.collector import ApifyDatasetCollector, DatasetFetchError
from listing_map.core.ingest import IngestResult, ingest_items
from listing_map.core.settings import Settings
from listing_map.core.supabase_repo import SupabaseRepo


logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
LOGGER = logging.getLogger(__name__)

RETRYABLE_ERRORS = (DatasetFetchError, httpx.TransportError)
RETRY_BACKOFF_SECONDS = 2.0


def run_ingest(
    dataset_id: str,
    settings: Settings | None = None,
    max_attempts: int = 3,
    repo: SupabaseRepo | None = None,
    collector: ApifyDatasetCollector | None = None,
) -> IngestResult:
    settings = settings or Settings.from_env()
    repo = repo or SupabaseRepo(settings.supabase_url, settings.supabase_key)
    collector = collector or ApifyDatasetCollector(
        dataset_id,
        dataset_url=settings.dataset_url,
        timeout_seconds=settings.dataset_timeout_seconds,
    )
    items = fetch_dataset(collector, max_attempts=max_attempts)
    result = ingest_items(repo, collector, items)
    LOGGER.info("Dataset %s: %s (count=%s)", dataset_id, result.message, result.count)
    return result


def fetch_dataset(collector: ApifyDatasetCollector, max_attempts: int = 3) -> list[dict[str, Any]]:
    """Fetch a dataset, retrying HTTP errors and dropped connections with linear backoff.

    Anything else (a malformed body, a bad URL template) is raised on the first attempt.
    """
    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return collector.fetch()
        except RETRYABLE_ERRORS as exc:
            if attempt == attempts:
                LOGGER.error("Dataset %s unavailable after %s attempts: %s", collector.dataset_id, attempts, exc)
                raise
            delay = RETRY_BACKOFF_SECONDS * attempt
            LOGGER.warning("Dataset %s fetch failed (%s), retrying in %.0fs", collector.dataset_id, exc, delay)
            time.sleep(delay)
    return []


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Ingest a scraper dataset into the listing store.")
    parser.add_argument("dataset_id", help="Dataset id reported by the scraper run.")
    parser.add_argument("--attempts", type=int, default=3, help="Fetch attempts before giving up.")
    args = parser.parse_args()
    run_ingest(args.dataset_id, max_attempts=args.attempts)
