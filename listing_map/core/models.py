from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime
from typing import Any


LngLat = tuple[float, float]


class PriceCategory(str, Enum):
    CHEAP = "cheap"
    MEDIUM = "medium"
    EXPENSIVE = "expensive"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class PriceHistoryEntry:
    price: float
    recorded_at: str | None


@dataclass(slots=True)
class Listing:
    id: str
    title: str
    price: float
    currency: str = "EUR"
    size_m2: float = 0.0
    rooms: int | None = None
    bathrooms: int | None = None
    location: Any = None  # "POINT(lng lat)" or {"coordinates": [lng, lat]}
    year_built: int | None = None
    url: str = ""
    image_url: str | None = None
    address: str | None = None
    province: str | None = None
    city: str | None = None
    created_at: str | None = None
    last_seen: str | None = None
    price_history: list[PriceHistoryEntry] = field(default_factory=list)

    @property
    def price_per_m2(self) -> float:
        return self.price / self.size_m2 if self.size_m2 > 0 else 0.0

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> Listing:
        history_rows = row.get("price_history")
        history: list[PriceHistoryEntry] = []
        if isinstance(history_rows, list):
            for item in history_rows:
                if not isinstance(item, dict):
                    continue
                history.append(
                    PriceHistoryEntry(
                        price=_safe_float(item.get("price")),
                        recorded_at=item.get("recorded_at"),
                    )
                )
        year_built = _safe_int(row.get("year_built"))
        return cls(
            id=str(row.get("id")),
            title=str(row.get("title") or ""),
            price=_safe_float(row.get("price")),
            currency=str(row.get("currency") or "EUR"),
            size_m2=_safe_float(row.get("size_m2")),
            rooms=_safe_int(row.get("rooms")),
            bathrooms=_safe_int(row.get("bathrooms")),
            location=row.get("location"),
            year_built=year_built,
            url=str(row.get("url") or ""),
            image_url=row.get("image_url"),
            address=row.get("address"),
            province=row.get("province"),
            city=row.get("city"),
            created_at=row.get("created_at"),
            last_seen=row.get("last_seen"),
            price_history=history,
        )


@dataclass(frozen=True, slots=True)
class Range:
    low: float | datetime
    high: float | datetime

    def contains(self, value: Any) -> bool:
        return self.low <= value <= self.high

    def clamp(self, value: Any) -> Any:
        return max(self.low, min(self.high, value))


@dataclass(frozen=True, slots=True)
class Bounds:
    """Data-derived outer range plus the user-selected sub-range."""

    available: Range
    selected: Range

    @classmethod
    def full(cls, low: Any, high: Any) -> Bounds:
        span = Range(low, high)
        return cls(available=span, selected=span)

    def select(self, low: Any, high: Any) -> Bounds:
        return Bounds(
            available=self.available,
            selected=Range(self.available.clamp(low), self.available.clamp(high)),
        )


def _safe_float(value: Any) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def _safe_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
