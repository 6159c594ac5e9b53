from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any


def items_from_payload(body: Any) -> tuple[list[dict[str, Any]], str | None]:
    """
    Returns (inline items, dataset id). A run notification carries only the dataset id;
    a list or a single object with an id carries the items themselves.
    """
    if isinstance(body, dict):
        resource = body.get("resource")
        if isinstance(resource, dict) and resource.get("defaultDatasetId"):
            return [], str(resource["defaultDatasetId"])
        if body.get("id"):
            return [body], None
        return [], None
    if isinstance(body, list):
        return [item for item in body if isinstance(item, dict)], None
    return [], None


def location_point(latitude: Any, longitude: Any) -> str | None:
    if not latitude or not longitude:
        return None
    return f"POINT({longitude} {latitude})"


def item_to_property(item: dict[str, Any], seen_at: datetime | None = None) -> dict[str, Any]:
    now = (seen_at or datetime.now(timezone.utc)).isoformat()
    return {
        "id": str(item.get("id") or f"unknown_{uuid.uuid4().hex}"),
        "title": item.get("title") or "Untitled",
        "price": _number(item.get("price")),
        "currency": item.get("currency") or "EUR",
        "size_m2": _number(item.get("size")),
        "rooms": int(_number(item.get("rooms"))),
        "bathrooms": int(_number(item.get("bathrooms"))),
        "location": location_point(item.get("latitude"), item.get("longitude")),
        "address": item.get("address") or None,
        "province": item.get("province") or None,
        "city": item.get("city") or None,
        "url": item.get("url") or "",
        "image_url": item.get("thumbnail") or None,
        "last_seen": now,
    }


def is_valid_property(row: dict[str, Any]) -> bool:
    return row.get("price", 0) > 0 and bool(row.get("url"))


def history_rows(rows: list[dict[str, Any]], recorded_at: datetime | None = None) -> list[dict[str, Any]]:
    stamp = (recorded_at or datetime.now(timezone.utc)).isoformat()
    return [{"property_id": row["id"], "price": row["price"], "recorded_at": stamp} for row in rows]


def _number(value: Any) -> float:
    try:
        return float(value) if value else 0.0
    except (TypeError, ValueError):
        return 0.0
