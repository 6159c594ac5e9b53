from __future__ import annotations

from datetime import datetime, timedelta

from listing_map.core.models import Listing


DAY = timedelta(days=1)


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        # Day boundaries are taken in local time.
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def day_start(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def history_days(listing: Listing) -> list[datetime]:
    days: list[datetime] = []
    for entry in listing.price_history:
        parsed = parse_timestamp(entry.recorded_at)
        if parsed is not None:
            days.append(day_start(parsed))
    return days


def listing_days(listing: Listing) -> list[datetime]:
    """History days, or the creation day when the listing has no usable history."""
    days = history_days(listing)
    if days:
        return days
    created = parse_timestamp(listing.created_at)
    return [day_start(created)] if created is not None else []
