from __future__ import annotations

import math
import re
import sys
from typing import Any, Sequence

from listing_map.core.models import LngLat


POINT_PATTERN = re.compile(r"POINT\(([^ ]+) ([^ ]+)\)")
HORIZONTAL_EDGE_EPSILON = sys.float_info.epsilon


def parse_coordinates(location: Any) -> LngLat | None:
    """
    Accepts "POINT(lng lat)" text or {"coordinates": [lng, lat]}.
    Returns None when neither encoding matches; such listings are not renderable.
    """
    if isinstance(location, str) and location.startswith("POINT"):
        match = POINT_PATTERN.match(location)
        if not match:
            return None
        try:
            return float(match.group(1)), float(match.group(2))
        except ValueError:
            return None

    if isinstance(location, dict):
        coordinates = location.get("coordinates")
        if isinstance(coordinates, (list, tuple)) and len(coordinates) == 2:
            try:
                return float(coordinates[0]), float(coordinates[1])
            except (TypeError, ValueError):
                return None

    return None


def point_in_polygon(point: LngLat, polygon: Sequence[LngLat]) -> bool:
    # Even-odd ray casting; the ring is closed implicitly (last vertex joins the first).
    if len(polygon) < 3:
        return False
    x, y = point
    inside = False
    j = len(polygon) - 1
    for i, vertex in enumerate(polygon):
        xi, yi = vertex[0], vertex[1]
        xj, yj = polygon[j][0], polygon[j][1]
        if (yi > y) != (yj > y):
            denominator = (yj - yi) or HORIZONTAL_EDGE_EPSILON
            if x < (xj - xi) * (y - yi) / denominator + xi:
                inside = not inside
        j = i
    return inside


def nearest_vertex(points: Sequence[LngLat], target: LngLat) -> int:
    closest_index = -1
    closest_distance = math.inf
    for index, point in enumerate(points):
        distance = math.hypot(point[0] - target[0], point[1] - target[1])
        if distance < closest_distance:
            closest_distance = distance
            closest_index = index
    return closest_index


def bounding_box(points: Sequence[LngLat]) -> tuple[LngLat, LngLat] | None:
    if not points:
        return None
    lngs = [p[0] for p in points]
    lats = [p[1] for p in points]
    return (min(lngs), min(lats)), (max(lngs), max(lats))


def wrap_longitude(anchor_lng: float, click_lng: float) -> float:
    # Keeps a popup on the copy of the world that was clicked.
    while abs(click_lng - anchor_lng) > 180:
        anchor_lng += 360 if click_lng > anchor_lng else -360
    return anchor_lng


def polygon_feature_collection(points: Sequence[LngLat], closed: bool) -> dict[str, Any]:
    coordinates = [[p[0], p[1]] for p in points]
    features: list[dict[str, Any]] = []
    if coordinates:
        features.append(
            {"type": "Feature", "geometry": {"type": "LineString", "coordinates": coordinates}, "properties": {}}
        )
        features.append(
            {"type": "Feature", "geometry": {"type": "MultiPoint", "coordinates": coordinates}, "properties": {}}
        )
    if closed and len(coordinates) >= 3:
        ring = [*coordinates, coordinates[0]]
        features.append({"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [ring]}, "properties": {}})
    return {"type": "FeatureCollection", "features": features}
