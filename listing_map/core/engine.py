from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from listing_map.core.models import LngLat


PROPERTIES_SOURCE_ID = "properties"
POLYGON_SOURCE_ID = "search-polygon"
DEFAULT_CENTER: LngLat = (-9.139, 38.722)  # Lisbon
DEFAULT_ZOOM = 12.0
CLUSTER_FALLBACK_ZOOM = 14.0


class MapInitError(RuntimeError):
    """Map engine could not be created; the view cannot be used."""


class MapEngine(Protocol):
    center: LngLat
    zoom: float

    def set_source_data(self, source_id: str, collection: dict[str, Any]) -> None: ...

    def fit_bounds(
        self,
        bbox: tuple[LngLat, LngLat],
        padding: int,
        max_zoom: float,
        duration_ms: int,
    ) -> None: ...

    def cluster_expansion_zoom(self, cluster_id: int) -> float | None: ...

    def ease_to(self, center: LngLat, zoom: float) -> None: ...

    def set_drag_pan(self, enabled: bool) -> None: ...

    def set_cursor(self, cursor: str) -> None: ...

    def show_popup(self, lnglat: LngLat, html: str, max_width: str) -> None: ...

    def remove(self) -> None: ...


@dataclass
class Popup:
    lnglat: LngLat
    html: str
    max_width: str


@dataclass
class InMemoryMapEngine:
    """Headless engine that keeps the latest state pushed by the view."""

    access_token: str
    center: LngLat = DEFAULT_CENTER
    zoom: float = DEFAULT_ZOOM
    sources: dict[str, dict[str, Any]] = field(default_factory=dict)
    drag_pan: bool = True
    cursor: str = ""
    popups: list[Popup] = field(default_factory=list)
    fitted: list[tuple[LngLat, LngLat]] = field(default_factory=list)
    cluster_zooms: dict[int, float] = field(default_factory=dict)
    removed: bool = False

    def __post_init__(self) -> None:
        if not self.access_token:
            raise MapInitError("Map access token is missing.")
        self.sources.setdefault(PROPERTIES_SOURCE_ID, {"type": "FeatureCollection", "features": []})
        self.sources.setdefault(POLYGON_SOURCE_ID, {"type": "FeatureCollection", "features": []})

    def set_source_data(self, source_id: str, collection: dict[str, Any]) -> None:
        if source_id not in self.sources:
            raise KeyError(f"Unknown source: {source_id}")
        self.sources[source_id] = collection

    def fit_bounds(
        self,
        bbox: tuple[LngLat, LngLat],
        padding: int,
        max_zoom: float,
        duration_ms: int,
    ) -> None:
        (west, south), (east, north) = bbox
        self.fitted.append(bbox)
        self.center = ((west + east) / 2, (south + north) / 2)
        self.zoom = min(self.zoom, max_zoom)

    def cluster_expansion_zoom(self, cluster_id: int) -> float | None:
        return self.cluster_zooms.get(cluster_id)

    def ease_to(self, center: LngLat, zoom: float) -> None:
        self.center = center
        self.zoom = zoom

    def set_drag_pan(self, enabled: bool) -> None:
        self.drag_pan = enabled

    def set_cursor(self, cursor: str) -> None:
        self.cursor = cursor

    def show_popup(self, lnglat: LngLat, html: str, max_width: str) -> None:
        self.popups.append(Popup(lnglat=lnglat, html=html, max_width=max_width))

    def remove(self) -> None:
        self.removed = True
