from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, Sequence

from listing_map.core.engine import DEFAULT_CENTER, DEFAULT_ZOOM, PROPERTIES_SOURCE_ID, MapEngine
from listing_map.core.filters import FilterState, filter_listings
from listing_map.core.geometry import bounding_box
from listing_map.core.models import Listing, LngLat


FIT_PADDING = 50
FIT_MAX_ZOOM = 14
FIT_DURATION_MS = 1000


def listing_feature(listing: Listing, coordinates: LngLat) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [coordinates[0], coordinates[1]]},
        "properties": {
            "id": listing.id,
            "title": listing.title,
            "price": listing.price,
            "currency": listing.currency,
            "size_m2": listing.size_m2,
            "price_per_m2": listing.price_per_m2,
            "rooms": listing.rooms,
            "bathrooms": listing.bathrooms,
            "url": listing.url,
            "image_url": listing.image_url,
            "year_built": listing.year_built or None,
            "price_history_json": json.dumps([asdict(entry) for entry in listing.price_history]),
        },
    }


def feature_collection(features: list[dict[str, Any]]) -> dict[str, Any]:
    return {"type": "FeatureCollection", "features": features}


class MapDataSynchronizer:
    """Pushes the filtered listing set to the engine and frames the first non-empty result once."""

    def __init__(self, engine: MapEngine) -> None:
        self.engine = engine
        self.auto_framed = False

    def sync(self, listings: Sequence[Listing], state: FilterState) -> list[dict[str, Any]]:
        located = filter_listings(listings, state)
        features = [listing_feature(listing, coordinates) for listing, coordinates in located]
        self.engine.set_source_data(PROPERTIES_SOURCE_ID, feature_collection(features))
        if features and not self.auto_framed and self._at_default_view():
            bbox = bounding_box([coordinates for _, coordinates in located])
            if bbox is not None:
                self.auto_framed = True
                self.engine.fit_bounds(bbox, FIT_PADDING, FIT_MAX_ZOOM, FIT_DURATION_MS)
        return features

    def _at_default_view(self) -> bool:
        return self.engine.zoom == DEFAULT_ZOOM and tuple(self.engine.center) == DEFAULT_CENTER
