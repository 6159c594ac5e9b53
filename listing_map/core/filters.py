from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Sequence

from listing_map.core.geometry import parse_coordinates, point_in_polygon
from listing_map.core.models import Listing, LngLat, PriceCategory, Range
from listing_map.core.timeline import day_start, history_days


CHEAP_BELOW_PER_M2 = 3000
MEDIUM_BELOW_PER_M2 = 5000
ALL_CATEGORIES = frozenset(PriceCategory)


@dataclass(frozen=True, slots=True)
class FilterState:
    price: Range
    size: Range
    year: Range
    timeline_start: datetime
    # Upper end of the timeline window follows the newest date in the data, not a user value.
    timeline_end: datetime
    visible_categories: frozenset[PriceCategory] = ALL_CATEGORIES
    polygon: tuple[LngLat, ...] = field(default_factory=tuple)


def price_category(listing: Listing) -> PriceCategory:
    if listing.size_m2 <= 0:
        return PriceCategory.UNKNOWN
    per_m2 = listing.price / listing.size_m2
    if per_m2 < CHEAP_BELOW_PER_M2:
        return PriceCategory.CHEAP
    if per_m2 < MEDIUM_BELOW_PER_M2:
        return PriceCategory.MEDIUM
    return PriceCategory.EXPENSIVE


def passes_price(listing: Listing, state: FilterState) -> bool:
    return listing.price <= 0 or state.price.contains(listing.price)


def passes_size(listing: Listing, state: FilterState) -> bool:
    # Unknown size (0) is left to the category filter.
    return listing.size_m2 <= 0 or state.size.contains(listing.size_m2)


def passes_category(listing: Listing, state: FilterState) -> bool:
    return price_category(listing) in state.visible_categories


def passes_year(listing: Listing, state: FilterState) -> bool:
    year = listing.year_built
    return not year or year <= 0 or state.year.contains(year)


def passes_timeline(listing: Listing, state: FilterState) -> bool:
    start = day_start(state.timeline_start)
    end = day_start(state.timeline_end)
    days = history_days(listing) or [end]
    return any(start <= day <= end for day in days)


def passes_polygon(coordinates: LngLat, state: FilterState) -> bool:
    if len(state.polygon) < 3:
        return True
    return point_in_polygon(coordinates, state.polygon)


def listing_passes(listing: Listing, coordinates: LngLat, state: FilterState) -> bool:
    return (
        passes_price(listing, state)
        and passes_size(listing, state)
        and passes_category(listing, state)
        and passes_year(listing, state)
        and passes_timeline(listing, state)
        and passes_polygon(coordinates, state)
    )


def locate(listings: Iterable[Listing]) -> list[tuple[Listing, LngLat]]:
    located: list[tuple[Listing, LngLat]] = []
    for listing in listings:
        coordinates = parse_coordinates(listing.location)
        if coordinates is not None:
            located.append((listing, coordinates))
    return located


def filter_listings(listings: Sequence[Listing], state: FilterState) -> list[tuple[Listing, LngLat]]:
    """Listings without a usable location are dropped before any facet is checked."""
    return [
        (listing, coordinates)
        for listing, coordinates in locate(listings)
        if listing_passes(listing, coordinates, state)
    ]
