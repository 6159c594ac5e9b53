from __future__ import annotations

import logging
from typing import Any

import httpx

from listing_map.collectors.base import Collector
from listing_map.core.normalize import is_valid_property, item_to_property
from listing_map.core.settings import DEFAULT_DATASET_URL

LOGGER = logging.getLogger(__name__)


class DatasetFetchError(RuntimeError):
    pass


class ApifyDatasetCollector(Collector):
    source_name = "apify"

    def __init__(
        self,
        dataset_id: str,
        dataset_url: str = DEFAULT_DATASET_URL,
        timeout_seconds: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.dataset_id = dataset_id
        self.dataset_url = dataset_url
        self.timeout_seconds = timeout_seconds
        self._client = client

    @property
    def url(self) -> str:
        return self.dataset_url.format(dataset_id=self.dataset_id)

    def fetch(self) -> list[dict[str, Any]]:
        LOGGER.info("Fetching dataset %s", self.dataset_id)
        if self._client is not None:
            return self._fetch_with(self._client)
        with httpx.Client(timeout=self.timeout_seconds, follow_redirects=True) as client:
            return self._fetch_with(client)

    def normalize(self, raw_item: dict[str, Any]) -> dict[str, Any] | None:
        row = item_to_property(raw_item, seen_at=self.seen_timestamp())
        return row if is_valid_property(row) else None

    def _fetch_with(self, client: httpx.Client) -> list[dict[str, Any]]:
        response = client.get(self.url)
        if response.status_code >= 400:
            raise DatasetFetchError(
                f"Failed to fetch dataset {self.dataset_id}: {response.status_code} {response.reason_phrase}"
            )
        payload = response.json()
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]
