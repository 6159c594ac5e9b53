from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from listing_map.core.geometry import nearest_vertex
from listing_map.core.models import LngLat


MIN_POLYGON_POINTS = 3


class PolygonPhase(str, Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    CLOSED = "closed"
    # Closed polygon with one vertex following the pointer.
    DRAGGING = "dragging"


@dataclass(frozen=True, slots=True)
class PolygonState:
    phase: PolygonPhase = PolygonPhase.IDLE
    points: tuple[LngLat, ...] = ()
    dragged_index: int | None = None

    @property
    def is_closed(self) -> bool:
        return self.phase in {PolygonPhase.CLOSED, PolygonPhase.DRAGGING}

    @property
    def has_filter(self) -> bool:
        return self.is_closed and len(self.points) >= MIN_POLYGON_POINTS

    @property
    def filter_polygon(self) -> tuple[LngLat, ...]:
        return self.points if self.has_filter else ()

    @property
    def can_complete(self) -> bool:
        return self.phase is PolygonPhase.DRAWING and len(self.points) >= MIN_POLYGON_POINTS

    @property
    def pan_enabled(self) -> bool:
        return self.phase is not PolygonPhase.DRAGGING

    @property
    def status_text(self) -> str:
        if self.phase is PolygonPhase.DRAWING:
            return f"Click on map to add points ({len(self.points)})."
        if self.has_filter:
            if self.phase is PolygonPhase.DRAGGING:
                return "Editing vertex… release mouse to apply."
            return f"Polygon locked ({len(self.points)} points). Drag points to adjust."
        return "Start drawing to filter listings by area."


def start_drawing(state: PolygonState) -> PolygonState:
    return PolygonState(phase=PolygonPhase.DRAWING)


def add_point(state: PolygonState, point: LngLat) -> PolygonState:
    if state.phase is not PolygonPhase.DRAWING:
        return state
    return replace(state, points=(*state.points, (float(point[0]), float(point[1]))))


def complete(state: PolygonState) -> PolygonState:
    if not state.can_complete:
        return state
    return replace(state, phase=PolygonPhase.CLOSED)


def clear(state: PolygonState) -> PolygonState:
    return PolygonState()


def press_vertex(state: PolygonState, target: LngLat) -> PolygonState:
    # Presses while drawing are map clicks and add points instead.
    if state.phase is not PolygonPhase.CLOSED:
        return state
    index = nearest_vertex(state.points, target)
    if index < 0:
        return state
    return replace(state, phase=PolygonPhase.DRAGGING, dragged_index=index)


def move_pointer(state: PolygonState, point: LngLat) -> PolygonState:
    if state.phase is not PolygonPhase.DRAGGING or state.dragged_index is None:
        return state
    if not 0 <= state.dragged_index < len(state.points):
        return state
    points = list(state.points)
    points[state.dragged_index] = (float(point[0]), float(point[1]))
    return replace(state, points=tuple(points))


def release(state: PolygonState) -> PolygonState:
    if state.phase is not PolygonPhase.DRAGGING:
        return state
    return replace(state, phase=PolygonPhase.CLOSED, dragged_index=None)


def cursor_for(state: PolygonState, hovering_vertex: bool = False, hovering_listing: bool = False) -> str:
    if state.phase is PolygonPhase.DRAGGING:
        return "grabbing"
    if state.phase is PolygonPhase.DRAWING:
        return "crosshair"
    if hovering_vertex:
        return "grab"
    if hovering_listing:
        return "pointer"
    return ""
