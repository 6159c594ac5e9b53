from datetime import datetime

from listing_map.core.bounds import (
    PRICE_FILTER_CAP,
    FacetBounds,
    price_bounds,
    recompute_bounds,
    size_bounds,
    timeline_bounds,
    year_bounds,
)
from listing_map.core.models import Bounds, Range
from listing_map.tests.factories import make_listing


NOW = datetime(2024, 6, 15, 13, 45)


def test_initial_bounds_cover_last_180_days():
    bounds = FacetBounds.initial(NOW)
    assert bounds.size.available == Range(0, 500)
    assert bounds.timeline.available.high == datetime(2024, 6, 15)
    assert (bounds.timeline.available.high - bounds.timeline.available.low).days == 180


def test_size_bound_only_widens():
    start = Bounds.full(0, 500)
    assert size_bounds([make_listing("a", size_m2=95)], start) is start

    widened = size_bounds([make_listing("a", size_m2=731)], start)
    assert widened == Bounds.full(0, 740)

    narrowed_input = size_bounds([make_listing("a", size_m2=600)], widened.select(100, 200))
    assert narrowed_input.available == Range(0, 740)
    assert narrowed_input.selected == Range(100, 200)

    assert size_bounds([make_listing("a", size_m2=1000)], widened).available == Range(0, 1000)


def test_price_bounds_round_to_ten_thousand_and_reset_selection():
    previous = Bounds.full(0, 5_000_000).select(300_000, 400_000)
    bounds = price_bounds([make_listing("a", price=123_456), make_listing("b", price=987_654)], previous)
    assert bounds == Bounds.full(120_000, 990_000)


def test_price_bounds_cap_and_ignore_non_positive():
    bounds = price_bounds([make_listing("a", price=1_234_567), make_listing("b", price=0)], Bounds.full(0, 1))
    assert bounds == Bounds.full(PRICE_FILTER_CAP, PRICE_FILTER_CAP)

    unchanged = Bounds.full(0, 10)
    assert price_bounds([make_listing("a", price=0)], unchanged) is unchanged


def test_year_bounds_skip_missing_years():
    listings = [
        make_listing("a", year_built=None),
        make_listing("b", year_built=0),
        make_listing("c", year_built=1950),
        make_listing("d", year_built=2001),
    ]
    assert year_bounds(listings, Bounds.full(1900, 2030)) == Bounds.full(1950, 2001)


def test_timeline_bounds_use_history_days_or_creation_day():
    listings = [
        make_listing("a", history=[(1, "2024-03-05T15:30:00"), (2, "2024-01-02T08:00:00")]),
        make_listing("b", created_at="2023-12-25T10:00:00"),
        make_listing("c"),
    ]
    bounds = timeline_bounds(listings, Bounds.full(NOW, NOW))
    assert bounds == Bounds.full(datetime(2023, 12, 25), datetime(2024, 3, 5))


def test_recompute_is_idempotent_and_ignores_empty_input():
    listings = [
        make_listing("a", price=250_000, size_m2=80, year_built=1980, history=[(250_000, "2024-02-01")]),
        make_listing("b", price=410_000, size_m2=0, history=[(400_000, "2024-04-10")]),
    ]
    initial = FacetBounds.initial(NOW)
    first = recompute_bounds(listings, initial)
    assert recompute_bounds(listings, first) == first
    assert recompute_bounds([], first) is first
    assert first.price.selected == Range(250_000, 410_000)
    assert first.year.selected == Range(1980, 1980)
    assert first.timeline.selected == Range(datetime(2024, 2, 1), datetime(2024, 4, 10))
