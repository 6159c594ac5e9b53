from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Sequence

from listing_map.core import polygon
from listing_map.core.bounds import PRICE_STEP, FacetBounds, recompute_bounds
from listing_map.core.engine import CLUSTER_FALLBACK_ZOOM, POLYGON_SOURCE_ID, MapEngine
from listing_map.core.filters import ALL_CATEGORIES, FilterState
from listing_map.core.geometry import polygon_feature_collection, wrap_longitude
from listing_map.core.models import Bounds, Listing, LngLat, PriceCategory
from listing_map.core.popup import build_popup
from listing_map.core.selection import KeyValueStorage, SelectionCommand, SelectionLists
from listing_map.core.sync import MapDataSynchronizer
from listing_map.core.timeline import DAY, day_start


LOGGER = logging.getLogger(__name__)

EngineFactory = Callable[[str], MapEngine]


class MapView:
    """
    Owns listings, filter facets, polygon and selection state for one mounted map.
    Every event handler reads current state from the instance and re-syncs the engine.
    """

    def __init__(
        self,
        access_token: str,
        engine_factory: EngineFactory,
        storage: KeyValueStorage | None = None,
        now: datetime | None = None,
    ) -> None:
        self.access_token = access_token
        self.engine_factory = engine_factory
        self.engine: MapEngine | None = None
        self.synchronizer: MapDataSynchronizer | None = None
        self.fatal_error: str | None = None
        self.loaded = False

        self.listings: list[Listing] = []
        self.bounds = FacetBounds.initial(now)
        self.visible_categories: frozenset[PriceCategory] = ALL_CATEGORIES
        self.polygon = polygon.PolygonState()
        self.selection = SelectionLists(storage)
        self.hovering_vertex = False
        self.hovering_listing = False

    # Lifecycle

    def mount(self) -> None:
        if self.engine is not None:
            return
        if not self.access_token:
            LOGGER.error("Map access token is missing")
            self.fatal_error = "Map access token is missing."
            return
        try:
            self.engine = self.engine_factory(self.access_token)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Map initialization failed: %s", exc)
            self.fatal_error = f"Init Error: {exc}"
            return
        self.synchronizer = MapDataSynchronizer(self.engine)
        self.loaded = True
        self._render()

    def unmount(self) -> None:
        self.loaded = False
        engine, self.engine = self.engine, None
        self.synchronizer = None
        if engine is not None:
            engine.remove()

    def __enter__(self) -> MapView:
        self.mount()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unmount()

    # Data

    def set_listings(self, listings: Sequence[Listing]) -> None:
        self.listings = list(listings)
        self.bounds = recompute_bounds(self.listings, self.bounds)
        self._render()

    def load_records(self, records: Sequence[dict[str, Any]]) -> None:
        self.set_listings([Listing.from_record(record) for record in records])

    @property
    def listings_by_id(self) -> dict[str, Listing]:
        return {str(listing.id): listing for listing in self.listings}

    def filter_state(self) -> FilterState:
        return FilterState(
            price=self.bounds.price.selected,
            size=self.bounds.size.selected,
            year=self.bounds.year.selected,
            timeline_start=self.bounds.timeline.selected.low,
            timeline_end=self.bounds.timeline.available.high,
            visible_categories=self.visible_categories,
            polygon=self.polygon.filter_polygon,
        )

    # Filter widgets

    def toggle_category(self, category: PriceCategory) -> None:
        self.visible_categories = self.visible_categories ^ {category}
        self._render()

    def set_price_low(self, value: float) -> None:
        selected = self.bounds.price.selected
        self._set_bounds(price=self.bounds.price.select(min(value, selected.high - PRICE_STEP), selected.high))

    def set_price_high(self, value: float) -> None:
        selected = self.bounds.price.selected
        self._set_bounds(price=self.bounds.price.select(selected.low, max(value, selected.low + PRICE_STEP)))

    def set_size_low(self, value: float) -> None:
        selected = self.bounds.size.selected
        self._set_bounds(size=self.bounds.size.select(min(value, selected.high - 1), selected.high))

    def set_size_high(self, value: float) -> None:
        selected = self.bounds.size.selected
        self._set_bounds(size=self.bounds.size.select(selected.low, max(value, selected.low + 1)))

    def set_year_low(self, value: int) -> None:
        selected = self.bounds.year.selected
        self._set_bounds(year=self.bounds.year.select(min(value, selected.high - 1), selected.high))

    def set_year_high(self, value: int) -> None:
        selected = self.bounds.year.selected
        self._set_bounds(year=self.bounds.year.select(selected.low, max(value, selected.low + 1)))

    def set_timeline_start(self, value: datetime) -> None:
        available = self.bounds.timeline.available
        if available.high <= available.low:
            return
        start = day_start(min(value, available.high - DAY))
        self._set_bounds(timeline=self.bounds.timeline.select(start, available.high))

    def _set_bounds(self, **changes: Bounds) -> None:
        self.bounds = replace(self.bounds, **changes)
        self._render()

    # Polygon search

    def start_drawing(self) -> None:
        self._set_polygon(polygon.start_drawing(self.polygon))

    def complete_polygon(self) -> None:
        self._set_polygon(polygon.complete(self.polygon))

    def clear_polygon(self) -> None:
        self._set_polygon(polygon.clear(self.polygon))

    def on_map_click(self, lnglat: LngLat) -> None:
        self._set_polygon(polygon.add_point(self.polygon, lnglat))

    def on_vertex_press(self, vertex_lnglat: LngLat) -> None:
        self._set_polygon(polygon.press_vertex(self.polygon, vertex_lnglat))

    def on_pointer_move(self, lnglat: LngLat) -> None:
        self._set_polygon(polygon.move_pointer(self.polygon, lnglat))

    def on_pointer_release(self) -> None:
        self._set_polygon(polygon.release(self.polygon))

    def on_hover(self, vertex: bool = False, listing: bool = False) -> None:
        self.hovering_vertex = vertex
        self.hovering_listing = listing
        if self.engine is not None:
            self.engine.set_cursor(self.cursor)

    @property
    def cursor(self) -> str:
        return polygon.cursor_for(self.polygon, self.hovering_vertex, self.hovering_listing)

    def _set_polygon(self, state: polygon.PolygonState) -> None:
        if state == self.polygon:
            return
        self.polygon = state
        self._render()

    # Popups and selection

    def on_listing_click(self, features: Sequence[dict[str, Any]], click_lnglat: LngLat) -> str | None:
        if self.engine is None or self.polygon.phase is polygon.PolygonPhase.DRAWING or not features:
            return None
        popup = build_popup([feature.get("properties") or {} for feature in features], self.selection.snapshot())
        if popup is None:
            return None
        html, max_width = popup
        lng, lat = features[0]["geometry"]["coordinates"][:2]
        anchor = (wrap_longitude(float(lng), click_lnglat[0]), float(lat))
        self.engine.show_popup(anchor, html, max_width)
        return html

    def on_cluster_click(self, cluster_id: int, cluster_lnglat: LngLat) -> None:
        if self.engine is None or self.polygon.phase is polygon.PolygonPhase.DRAWING:
            return
        zoom = self.engine.cluster_expansion_zoom(cluster_id)
        self.engine.ease_to(cluster_lnglat, zoom or CLUSTER_FALLBACK_ZOOM)

    def dispatch(self, command: SelectionCommand | dict[str, Any]) -> None:
        """Single entry point for controls rendered inside popups."""
        if not isinstance(command, SelectionCommand):
            command = SelectionCommand.parse(command)
        self.selection.apply(command)

    def remove_favorite(self, listing_id: str) -> None:
        self.selection.remove_favorite(listing_id)

    def remove_compare(self, listing_id: str) -> None:
        self.selection.remove_compare(listing_id)

    # Engine sync

    def _render(self) -> None:
        if self.engine is None or self.synchronizer is None or not self.loaded:
            return
        self.engine.set_source_data(
            POLYGON_SOURCE_ID,
            polygon_feature_collection(self.polygon.points, self.polygon.is_closed),
        )
        self.engine.set_drag_pan(self.polygon.pan_enabled)
        self.engine.set_cursor(self.cursor)
        self.synchronizer.sync(self.listings, self.filter_state())
