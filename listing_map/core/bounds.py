from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Sequence

from listing_map.core.models import Bounds, Listing
from listing_map.core.timeline import DAY, day_start, listing_days


PRICE_FILTER_CAP = 1_000_000
PRICE_STEP = 10_000
SIZE_STEP = 10
DEFAULT_MAX_SIZE = 500
DEFAULT_MAX_PRICE = 5_000_000
DEFAULT_YEARS = (1900, 2030)
DEFAULT_TIMELINE_DAYS = 180


@dataclass(frozen=True, slots=True)
class FacetBounds:
    size: Bounds
    price: Bounds
    year: Bounds
    timeline: Bounds

    @classmethod
    def initial(cls, now: datetime | None = None) -> FacetBounds:
        today = day_start(now or datetime.now())
        return cls(
            size=Bounds.full(0, DEFAULT_MAX_SIZE),
            price=Bounds.full(0, DEFAULT_MAX_PRICE),
            year=Bounds.full(*DEFAULT_YEARS),
            timeline=Bounds.full(today - DEFAULT_TIMELINE_DAYS * DAY, today),
        )


def size_bounds(listings: Sequence[Listing], previous: Bounds) -> Bounds:
    # Only ever widens; a smaller data max keeps the previous bound and selection.
    if not listings:
        return previous
    observed = max(listing.size_m2 or 0 for listing in listings)
    ceiling = math.ceil(observed / SIZE_STEP) * SIZE_STEP
    if ceiling > previous.available.high:
        return Bounds.full(0, ceiling)
    return previous


def price_bounds(listings: Sequence[Listing], previous: Bounds) -> Bounds:
    prices = [listing.price for listing in listings if listing.price > 0]
    if not prices:
        return previous
    low_raw = math.floor(min(prices) / PRICE_STEP) * PRICE_STEP
    high_raw = math.ceil(max(prices) / PRICE_STEP) * PRICE_STEP
    high = min(high_raw, PRICE_FILTER_CAP)
    low = min(low_raw, high)
    return Bounds.full(low, high)


def year_bounds(listings: Sequence[Listing], previous: Bounds) -> Bounds:
    years = [listing.year_built for listing in listings if listing.year_built and listing.year_built > 0]
    if not years:
        return previous
    return Bounds.full(min(years), max(years))


def timeline_bounds(listings: Sequence[Listing], previous: Bounds) -> Bounds:
    days = [day for listing in listings for day in listing_days(listing)]
    if not days:
        return previous
    return Bounds.full(min(days), max(days))


def recompute_bounds(listings: Sequence[Listing], previous: FacetBounds) -> FacetBounds:
    """Recompute every facet from a freshly loaded listing array."""
    if not listings:
        return previous
    return replace(
        previous,
        size=size_bounds(listings, previous.size),
        price=price_bounds(listings, previous.price),
        year=year_bounds(listings, previous.year),
        timeline=timeline_bounds(listings, previous.timeline),
    )
