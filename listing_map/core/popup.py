from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Any, Sequence

from listing_map.core.selection import SelectionAction, SelectionSnapshot
from listing_map.core.timeline import parse_timestamp


LOGGER = logging.getLogger(__name__)

SINGLE_MAX_WIDTH = "400px"
STACKED_MAX_WIDTH = "340px"
BAR_MIN_PERCENT = 20.0
BAR_MAX_PERCENT = 90.0
BAR_FLAT_PERCENT = 50.0


@dataclass(frozen=True, slots=True)
class ChartBar:
    price: float
    recorded_at: datetime | None
    height_percent: float
    is_latest: bool

    @property
    def date_label(self) -> str:
        if self.recorded_at is None:
            return "--"
        return f"{self.recorded_at.day}.{self.recorded_at.month:02d}"


def format_price(value: float) -> str:
    # Dot-grouped thousands, comma decimals.
    text = f"{value:,.2f}".rstrip("0").rstrip(".")
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_price_compact(value: float) -> str:
    if abs(value) >= 1_000_000_000:
        return f"{format_price(round(value / 1_000_000_000, 1))} Mrd."
    if abs(value) >= 1_000_000:
        return f"{format_price(round(value / 1_000_000, 1))} Mio."
    return format_price(round(value))


def parse_history(history_json: str | None, current_price: float, now: datetime | None = None) -> list[dict[str, Any]]:
    history: list[dict[str, Any]] = []
    try:
        parsed = json.loads(history_json or "[]")
        if isinstance(parsed, list):
            history = [item for item in parsed if isinstance(item, dict)]
        else:
            LOGGER.warning("Ignoring price history: expected an array, got %s", type(parsed).__name__)
    except ValueError:
        LOGGER.exception("Failed to parse price history")
    if not history:
        history = [{"price": current_price, "recorded_at": (now or datetime.now()).isoformat()}]
    return history


def build_chart(history_json: str | None, current_price: float, now: datetime | None = None) -> list[ChartBar]:
    points: list[tuple[float, datetime | None]] = []
    for item in parse_history(history_json, current_price, now=now):
        try:
            price = float(item.get("price") or 0)
        except (TypeError, ValueError):
            price = 0.0
        points.append((price, parse_timestamp(item.get("recorded_at"))))
    points.sort(key=lambda point: point[1] or datetime.min)

    prices = [price for price, _ in points]
    low = min(prices)
    spread = max(prices) - low
    bars: list[ChartBar] = []
    for index, (price, recorded_at) in enumerate(points):
        height = BAR_FLAT_PERCENT
        if spread > 0:
            height = BAR_MIN_PERCENT + (BAR_MAX_PERCENT - BAR_MIN_PERCENT) * ((price - low) / spread)
        bars.append(
            ChartBar(
                price=price,
                recorded_at=recorded_at,
                height_percent=height,
                is_latest=index == len(points) - 1,
            )
        )
    return bars


def render_chart(bars: Sequence[ChartBar], currency: str = "€") -> str:
    parts = []
    for bar in bars:
        color = "bg-green-500" if bar.is_latest else "bg-gray-300"
        parts.append(
            '<div class="flex flex-col items-center justify-end h-full w-full">'
            f'<span class="text-[10px] text-gray-600" title="{escape(format_price(bar.price))} {escape(currency)}">'
            f"{escape(format_price_compact(bar.price))}</span>"
            f'<div class="{color} w-3/4 rounded-t" style="height: {bar.height_percent:.1f}%"></div>'
            f'<span class="text-[9px] text-gray-400 mt-1">{escape(bar.date_label)}</span>'
            "</div>"
        )
    return (
        '<div class="mt-3 pt-3 border-t border-gray-100">'
        '<h4 class="text-xs font-semibold text-gray-500 mb-2 uppercase">Price History</h4>'
        '<div class="w-full h-24 bg-slate-50 flex items-end justify-between px-2 pb-1 gap-1">'
        f"{''.join(parts)}</div></div>"
    )


def _command_button(action: SelectionAction, listing_id: str, label: str, css: str) -> str:
    return (
        f'<button type="button" data-command="{action.value}" data-listing-id="{escape(listing_id)}" '
        f'class="{css}">{escape(label)}</button>'
    )


def render_single(props: dict[str, Any], selection: SelectionSnapshot, now: datetime | None = None) -> str:
    listing_id = str(props.get("id"))
    price = float(props.get("price") or 0)
    size = float(props.get("size_m2") or 0)
    currency = str(props.get("currency") or "")
    size_html = f"{format_price(size)} m²" if size > 0 else '<span class="text-gray-400 italic">N/A</span>'
    per_m2_html = ""
    if size > 0:
        per_m2_html = f'<span class="font-medium bg-gray-100 px-1 rounded">{price / size:.0f} {escape(currency)}/m²</span>'
    image_html = ""
    if props.get("image_url"):
        image_html = f'<div class="relative w-full h-40"><img src="{escape(str(props["image_url"]))}" class="w-full h-full object-cover rounded-t"/></div>'

    favorite_label = "★ Favorited" if listing_id in selection.favorites else "☆ Favorite"
    compare_label = "⇄ In compare" if listing_id in selection.compare else "⇄ Compare"
    chart_html = render_chart(build_chart(props.get("price_history_json"), price, now=now), currency=currency)

    return (
        '<div class="p-0 text-black w-[300px] sm:w-[340px]">'
        f"{image_html}"
        '<div class="p-4">'
        f'<h3 class="font-bold text-base mb-1 text-gray-800">{escape(str(props.get("title") or ""))}</h3>'
        f'<div class="text-2xl font-bold text-green-600 mb-2">{escape(format_price(price))} {escape(currency)}</div>'
        '<div class="grid grid-cols-2 gap-y-2 gap-x-4 text-xs text-gray-600 mb-2">'
        f'<div><span class="font-bold mr-1 text-gray-800">{size_html}</span></div>'
        f"<div>{per_m2_html}</div>"
        f'<div><span class="font-bold mr-1 text-gray-800">{escape(str(props.get("rooms") or "--"))}</span> Rooms</div>'
        f'<div><span class="font-bold mr-1 text-gray-800">{escape(str(props.get("bathrooms") or "--"))}</span> Baths</div>'
        "</div>"
        '<div class="grid grid-cols-2 gap-2 mt-3">'
        f'{_command_button(SelectionAction.TOGGLE_FAVORITE, listing_id, favorite_label, "text-xs py-2 px-2 rounded border border-amber-300 bg-amber-50 text-amber-700")}'
        f'{_command_button(SelectionAction.TOGGLE_COMPARE, listing_id, compare_label, "text-xs py-2 px-2 rounded border border-purple-300 bg-purple-50 text-purple-700")}'
        "</div>"
        f"{chart_html}"
        f'<a href="{escape(str(props.get("url") or ""))}" target="_blank" '
        'class="mt-4 block w-full text-center bg-blue-600 text-white text-sm py-2.5 px-4 rounded-md">View listing</a>'
        "</div></div>"
    )


def render_stacked(features_props: Sequence[dict[str, Any]], selection: SelectionSnapshot) -> str:
    rows = []
    for props in features_props:
        listing_id = str(props.get("id"))
        size = float(props.get("size_m2") or 0)
        currency = str(props.get("currency") or "")
        size_text = f"{format_price(size)} m²" if size > 0 else "N/A"
        image_html = ""
        if props.get("image_url"):
            image_html = (
                '<div class="w-16 h-16 shrink-0 rounded overflow-hidden">'
                f'<img src="{escape(str(props["image_url"]))}" class="w-full h-full object-cover"/></div>'
            )
        favorite_label = "★ Saved" if listing_id in selection.favorites else "☆ Save"
        compare_label = "⇄ Added" if listing_id in selection.compare else "⇄ Compare"
        rows.append(
            '<div class="flex gap-3 p-3 border-b border-gray-100">'
            f"{image_html}"
            '<div class="flex-1 min-w-0">'
            f'<div class="font-bold text-green-600 text-sm">{escape(format_price(float(props.get("price") or 0)))} {escape(currency)}</div>'
            f'<div class="text-xs text-gray-500 mb-1">{escape(size_text)} • {escape(str(props.get("rooms") or "-"))} Rooms</div>'
            f'<div class="text-xs text-gray-800 mb-2">{escape(str(props.get("title") or ""))}</div>'
            '<div class="flex gap-1.5 mb-2">'
            f'{_command_button(SelectionAction.TOGGLE_FAVORITE, listing_id, favorite_label, "text-[10px] px-1.5 py-1 rounded border border-amber-300")}'
            f'{_command_button(SelectionAction.TOGGLE_COMPARE, listing_id, compare_label, "text-[10px] px-1.5 py-1 rounded border border-purple-300")}'
            "</div>"
            f'<a href="{escape(str(props.get("url") or ""))}" target="_blank" class="text-[10px] font-bold text-blue-600">View Listing &rarr;</a>'
            "</div></div>"
        )
    return (
        '<div class="text-black w-[300px] max-h-[400px] flex flex-col">'
        '<div class="bg-gray-50 px-3 py-2 border-b border-gray-200">'
        f'<span class="font-bold text-xs text-gray-600 uppercase">{len(features_props)} Properties Here</span>'
        "</div>"
        f'<div class="overflow-y-auto">{"".join(rows)}</div>'
        "</div>"
    )


def build_popup(
    features_props: Sequence[dict[str, Any]],
    selection: SelectionSnapshot,
    now: datetime | None = None,
) -> tuple[str, str] | None:
    """Returns (html, max_width) for the clicked point features, or None when nothing was hit."""
    if not features_props:
        return None
    if len(features_props) == 1:
        return render_single(features_props[0], selection, now=now), SINGLE_MAX_WIDTH
    return render_stacked(features_props, selection), STACKED_MAX_WIDTH
