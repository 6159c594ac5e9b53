from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any


class Collector(ABC):
    """A scraper output feed reshaped into `properties` rows."""

    source_name: str

    @abstractmethod
    def fetch(self) -> list[dict[str, Any]]:
        """Fetch raw scraper items."""

    @abstractmethod
    def normalize(self, raw_item: dict[str, Any]) -> dict[str, Any] | None:
        """Reshape one raw item, or None when it cannot be stored."""

    def normalize_all(self, raw_items: list[dict[str, Any]]) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for item in raw_items:
            row = self.normalize(item)
            if row is not None:
                rows.append(row)
        return rows

    def seen_timestamp(self) -> datetime:
        return datetime.now(timezone.utc)
