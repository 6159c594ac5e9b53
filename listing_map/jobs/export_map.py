from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Sequence, cast

from listing_map.core.engine import PROPERTIES_SOURCE_ID, InMemoryMapEngine
from listing_map.core.models import LngLat, PriceCategory
from listing_map.core.selection import JsonFileStorage
from listing_map.core.settings import Settings
from listing_map.core.supabase_repo import SupabaseRepo
from listing_map.core.view import MapView


logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
LOGGER = logging.getLogger(__name__)


def parse_polygon(raw: str) -> list[LngLat]:
    # Format: "lng,lat;lng,lat;..."
    points: list[LngLat] = []
    for chunk in raw.split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        lng, lat = chunk.split(",", 1)
        points.append((float(lng), float(lat)))
    return points


def export_filtered(
    records: Sequence[dict[str, Any]],
    settings: Settings,
    min_price: float | None = None,
    max_price: float | None = None,
    hidden: Sequence[str] = (),
    polygon: Sequence[LngLat] = (),
) -> dict[str, Any]:
    with MapView(settings.map_token, InMemoryMapEngine, storage=JsonFileStorage(settings.storage_path)) as view:
        if view.fatal_error:
            raise SystemExit(view.fatal_error)
        view.load_records(records)
        if min_price is not None:
            view.set_price_low(min_price)
        if max_price is not None:
            view.set_price_high(max_price)
        for name in hidden:
            view.toggle_category(PriceCategory(name))
        if polygon:
            view.start_drawing()
            for point in polygon:
                view.on_map_click(point)
            view.complete_polygon()
        engine = cast(InMemoryMapEngine, view.engine)
        return engine.sources[PROPERTIES_SOURCE_ID]


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Export the filtered listing map as GeoJSON.")
    parser.add_argument("output", type=Path, help="Destination .geojson file.")
    parser.add_argument("--min-price", type=float, default=None)
    parser.add_argument("--max-price", type=float, default=None)
    parser.add_argument(
        "--hide",
        action="append",
        default=[],
        choices=[category.value for category in PriceCategory],
        help="Price-per-m2 bucket to hide (repeatable).",
    )
    parser.add_argument("--polygon", default="", help='Search area as "lng,lat;lng,lat;lng,lat".')
    args = parser.parse_args()

    settings = Settings.from_env()
    repo = SupabaseRepo(settings.supabase_url, settings.supabase_key)
    records = repo.fetch_listings_with_history()
    LOGGER.info("Fetched properties: %s", len(records))
    collection = export_filtered(
        records,
        settings,
        min_price=args.min_price,
        max_price=args.max_price,
        hidden=args.hide,
        polygon=parse_polygon(args.polygon),
    )
    args.output.write_text(json.dumps(collection, ensure_ascii=False), encoding="utf-8")
    LOGGER.info("Wrote %s features to %s", len(collection["features"]), args.output)
