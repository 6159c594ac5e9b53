import json
import logging
import pathlib

import pytest

from listing_map.core.selection import (
    COMPARE_STORAGE_KEY,
    FAVORITES_STORAGE_KEY,
    MAX_COMPARE_ITEMS,
    JsonFileStorage,
    SelectionAction,
    SelectionCommand,
    SelectionLists,
)
from listing_map.tests.factories import MemoryStorage, make_listing


def test_double_toggle_restores_favorites(storage):
    lists = SelectionLists(storage)
    lists.toggle_favorite("x")
    original = list(lists.favorites)
    lists.toggle_favorite("a")
    lists.toggle_favorite("a")
    assert lists.favorites == original
    assert json.loads(storage.data[FAVORITES_STORAGE_KEY]) == ["x"]


def test_compare_never_exceeds_capacity(storage):
    lists = SelectionLists(storage)
    for attempt in range(10):
        lists.toggle_compare(str(attempt % 6))
        assert len(lists.compare) <= MAX_COMPARE_ITEMS
    assert len(json.loads(storage.data[COMPARE_STORAGE_KEY])) <= MAX_COMPARE_ITEMS


def test_compare_add_beyond_capacity_is_noop(storage):
    lists = SelectionLists(storage)
    for listing_id in "abcd":
        lists.toggle_compare(listing_id)
    lists.toggle_compare("e")
    assert lists.compare == ["a", "b", "c", "d"]
    lists.toggle_compare("b")
    lists.toggle_compare("e")
    assert lists.compare == ["a", "c", "d", "e"]


def test_restore_coerces_ids_and_truncates_compare():
    storage = MemoryStorage(
        {
            FAVORITES_STORAGE_KEY: json.dumps(["a", 2, 3.5]),
            COMPARE_STORAGE_KEY: json.dumps(["1", "2", "3", "4", "5", "6"]),
        }
    )
    lists = SelectionLists(storage)
    assert lists.favorites == ["a", "2", "3.5"]
    assert lists.compare == ["1", "2", "3", "4"]


def test_corrupt_storage_falls_back_to_empty(caplog):
    storage = MemoryStorage({FAVORITES_STORAGE_KEY: "{broken", COMPARE_STORAGE_KEY: json.dumps({"a": 1})})
    with caplog.at_level(logging.WARNING):
        lists = SelectionLists(storage)
    assert lists.favorites == []
    assert lists.compare == []
    assert "Failed to read stored list" in caplog.text


def test_remove_missing_id_is_noop(storage):
    lists = SelectionLists(storage)
    lists.remove_favorite("missing")
    lists.remove_compare("missing")
    assert storage.data == {}


def test_orphaned_ids_are_skipped_only_when_rendering(storage):
    lists = SelectionLists(storage)
    for listing_id in ("a", "gone", "b"):
        lists.toggle_compare(listing_id)
    by_id = {"a": make_listing("a", price=300_000, size_m2=60), "b": make_listing("b", size_m2=0)}
    assert [listing.id for listing in lists.compare_listings(by_id)] == ["a", "b"]
    assert lists.compare == ["a", "gone", "b"]
    assert lists.compare_ready(by_id) is True

    rows = lists.compare_rows(by_id)
    assert rows[0]["price_per_m2"] == 5000
    assert rows[1]["size_m2"] is None
    assert rows[1]["price_per_m2"] is None


def test_command_parse_and_apply(storage):
    lists = SelectionLists(storage)
    command = SelectionCommand.parse({"command": "toggle_compare", "listing_id": 42})
    assert command == SelectionCommand(SelectionAction.TOGGLE_COMPARE, "42")
    lists.apply(command)
    assert lists.compare == ["42"]

    with pytest.raises(ValueError):
        SelectionCommand.parse({"command": "delete_everything", "listing_id": "1"})
    with pytest.raises(ValueError):
        SelectionCommand.parse({"command": "toggle_favorite"})


def test_command_parse_accepts_browser_dataset_keys():
    payload = {"command": "toggle_favorite", "listingId": "abc-1"}
    assert SelectionCommand.parse(payload) == SelectionCommand(SelectionAction.TOGGLE_FAVORITE, "abc-1")
    assert SelectionCommand.parse({"command": "toggle_compare", "listingId": 0}).listing_id == "0"


def test_json_file_storage_round_trip(tmp_path):
    path = tmp_path / "nested" / "storage.json"
    first = SelectionLists(JsonFileStorage(path))
    first.toggle_favorite("a")
    first.toggle_compare("b")

    second = SelectionLists(JsonFileStorage(path))
    assert second.favorites == ["a"]
    assert second.compare == ["b"]


def test_json_file_storage_tolerates_garbage(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("not json", encoding="utf-8")
    assert JsonFileStorage(path).get_item(FAVORITES_STORAGE_KEY) is None


def test_json_file_storage_keeps_previous_file_when_write_fails(tmp_path, monkeypatch):
    path = tmp_path / "storage.json"
    lists = SelectionLists(JsonFileStorage(path))
    lists.toggle_favorite("a")

    original_write_text = pathlib.Path.write_text

    def interrupted_write(self, text, *args, **kwargs):
        original_write_text(self, text[: len(text) // 2], *args, **kwargs)
        raise OSError("disk full")

    monkeypatch.setattr(pathlib.Path, "write_text", interrupted_write)
    with pytest.raises(OSError):
        lists.toggle_favorite("b")
    monkeypatch.undo()

    assert SelectionLists(JsonFileStorage(path)).favorites == ["a"]
    assert [item.name for item in tmp_path.iterdir()] == ["storage.json"]
