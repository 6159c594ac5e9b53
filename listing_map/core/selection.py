from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

from listing_map.core.models import Listing


LOGGER = logging.getLogger(__name__)

MAX_COMPARE_ITEMS = 4
FAVORITES_STORAGE_KEY = "re_tracker_favorites_v1"
COMPARE_STORAGE_KEY = "re_tracker_compare_v1"


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...


class JsonFileStorage:
    """Local key/value store kept as one JSON object on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def get_item(self, key: str) -> str | None:
        data = self._read()
        value = data.get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # The previous file stays intact until the new content is fully written.
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            tmp_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            LOGGER.exception("Failed to read storage file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}


class SelectionAction(str, Enum):
    TOGGLE_FAVORITE = "toggle_favorite"
    TOGGLE_COMPARE = "toggle_compare"


@dataclass(frozen=True, slots=True)
class SelectionCommand:
    action: SelectionAction
    listing_id: str

    @classmethod
    def parse(cls, payload: Mapping[str, Any]) -> SelectionCommand:
        """Build a command from a popup button payload.

        Accepts the button's ``dataset`` as the browser exposes it (``command``, ``listingId``)
        as well as the snake_case ``listing_id`` form.
        """
        raw_action = payload.get("command") or payload.get("action")
        listing_id = payload.get("listing_id")
        if listing_id is None:
            listing_id = payload.get("listingId")
        try:
            action = SelectionAction(raw_action)
        except ValueError as exc:
            raise ValueError(f"Unknown selection command: {raw_action!r}") from exc
        if listing_id is None or str(listing_id) == "":
            raise ValueError("Selection command requires a listing_id.")
        return cls(action=action, listing_id=str(listing_id))


@dataclass(frozen=True, slots=True)
class SelectionSnapshot:
    favorites: frozenset[str]
    compare: frozenset[str]


class SelectionLists:
    """Favorites (unbounded) and compare (capped) id lists, persisted after every change."""

    def __init__(self, storage: KeyValueStorage | None = None) -> None:
        self.storage = storage
        self.favorites: list[str] = []
        self.compare: list[str] = []
        if storage is not None:
            self.favorites = _load_ids(storage, FAVORITES_STORAGE_KEY)
            self.compare = _load_ids(storage, COMPARE_STORAGE_KEY)[:MAX_COMPARE_ITEMS]

    def snapshot(self) -> SelectionSnapshot:
        return SelectionSnapshot(favorites=frozenset(self.favorites), compare=frozenset(self.compare))

    def toggle_favorite(self, listing_id: str) -> None:
        if listing_id in self.favorites:
            self.favorites = [item for item in self.favorites if item != listing_id]
        else:
            self.favorites = [*self.favorites, listing_id]
        self._persist(FAVORITES_STORAGE_KEY, self.favorites)

    def toggle_compare(self, listing_id: str) -> None:
        if listing_id in self.compare:
            self.compare = [item for item in self.compare if item != listing_id]
        elif len(self.compare) >= MAX_COMPARE_ITEMS:
            return
        else:
            self.compare = [*self.compare, listing_id]
        self._persist(COMPARE_STORAGE_KEY, self.compare)

    def remove_favorite(self, listing_id: str) -> None:
        if listing_id not in self.favorites:
            return
        self.favorites = [item for item in self.favorites if item != listing_id]
        self._persist(FAVORITES_STORAGE_KEY, self.favorites)

    def remove_compare(self, listing_id: str) -> None:
        if listing_id not in self.compare:
            return
        self.compare = [item for item in self.compare if item != listing_id]
        self._persist(COMPARE_STORAGE_KEY, self.compare)

    def apply(self, command: SelectionCommand) -> None:
        if command.action is SelectionAction.TOGGLE_FAVORITE:
            self.toggle_favorite(command.listing_id)
        elif command.action is SelectionAction.TOGGLE_COMPARE:
            self.toggle_compare(command.listing_id)

    def favorite_listings(self, by_id: Mapping[str, Listing]) -> list[Listing]:
        return _resolve(self.favorites, by_id)

    def compare_listings(self, by_id: Mapping[str, Listing]) -> list[Listing]:
        return _resolve(self.compare, by_id)

    def compare_ready(self, by_id: Mapping[str, Listing]) -> bool:
        return len(self.compare_listings(by_id)) >= 2

    def compare_rows(self, by_id: Mapping[str, Listing]) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for listing in self.compare_listings(by_id):
            size = listing.size_m2 or 0
            rows.append(
                {
                    "id": listing.id,
                    "title": listing.title,
                    "price": listing.price,
                    "currency": listing.currency,
                    "size_m2": size if size > 0 else None,
                    "price_per_m2": round(listing.price / size) if size > 0 else None,
                    "rooms": listing.rooms,
                    "bathrooms": listing.bathrooms,
                    "url": listing.url,
                }
            )
        return rows

    def _persist(self, key: str, ids: Sequence[str]) -> None:
        if self.storage is not None:
            self.storage.set_item(key, json.dumps(list(ids)))


def _load_ids(storage: KeyValueStorage, key: str) -> list[str]:
    raw = storage.get_item(key)
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        LOGGER.exception("Failed to read stored list %s", key)
        return []
    if not isinstance(parsed, list):
        LOGGER.warning("Ignoring stored list %s: expected an array", key)
        return []
    return [str(item) for item in parsed]


def _resolve(ids: Sequence[str], by_id: Mapping[str, Listing]) -> list[Listing]:
    # Orphaned ids stay stored; they are only skipped here.
    return [by_id[item] for item in ids if item in by_id]
