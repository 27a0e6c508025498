import json
import sqlite3
import threading
import time
from pathlib import Path

from speeddial.model import Folder, Link, make_unsorted_folder
from speeddial.storage import ITEMS_KEY, ItemStorage, items_from_payload


def _items():
    return [
        make_unsorted_folder(),
        Folder(id="work", title="Work", order=0, depth=0),
        Link(id="l1", title="Example", url="https://example.com", parent_id="work", order=0),
    ]


def test_save_and_load_roundtrip(tmp_path: Path):
    storage = ItemStorage.in_dir(tmp_path)
    storage.save(_items())
    assert ItemStorage.in_dir(tmp_path).load() == _items()


def test_stored_payload_uses_camel_case_keys(tmp_path: Path):
    storage = ItemStorage.in_dir(tmp_path)
    storage.save(_items())
    conn = sqlite3.connect(tmp_path / "speeddial.sqlite")
    try:
        row = conn.execute("SELECT value_json FROM kv_store WHERE key = ?", (ITEMS_KEY,)).fetchone()
    finally:
        conn.close()
    data = json.loads(row[0])
    assert data[2] == {
        "id": "l1",
        "type": "link",
        "title": "Example",
        "url": "https://example.com",
        "parentId": "work",
        "order": 0,
    }


def test_load_with_nothing_stored_is_empty(tmp_path: Path):
    assert ItemStorage.in_dir(tmp_path).load() == []


def test_debounced_saves_coalesce_and_flush(tmp_path: Path):
    storage = ItemStorage.in_dir(tmp_path, debounce_ms=10_000)
    items = _items()
    storage.save(items[:1], immediate=False)
    storage.save(items, immediate=False)
    assert storage.has_pending_write
    assert ItemStorage.in_dir(tmp_path).load() == []

    assert storage.flush()
    assert not storage.has_pending_write
    assert ItemStorage.in_dir(tmp_path).load() == items
    assert storage.flush() is False


def test_debounced_save_fires_on_its_own(tmp_path: Path):
    storage = ItemStorage.in_dir(tmp_path, debounce_ms=20)
    storage.save(_items(), immediate=False)
    deadline = time.time() + 5
    while storage.has_pending_write and time.time() < deadline:
        time.sleep(0.02)
    # The write happens right after the pending flag clears.
    time.sleep(0.1)
    assert ItemStorage.in_dir(tmp_path).load() == _items()


def test_debounced_payload_is_captured_at_call_time(tmp_path: Path):
    storage = ItemStorage.in_dir(tmp_path, debounce_ms=10_000)
    items = _items()
    storage.save(items, immediate=False)
    items[1].title = "Changed later"
    storage.flush()
    assert ItemStorage.in_dir(tmp_path).load()[1].title == "Work"


def test_immediate_save_supersedes_pending_one(tmp_path: Path):
    storage = ItemStorage.in_dir(tmp_path, debounce_ms=10_000)
    storage.save(_items()[:1], immediate=False)
    storage.save(_items(), immediate=True)
    assert not storage.has_pending_write
    assert len(ItemStorage.in_dir(tmp_path).load()) == 3


def test_unwritable_database_falls_back_to_json(tmp_path: Path):
    db_path = tmp_path / "db-is-a-dir"
    db_path.mkdir()
    fallback = tmp_path / "fallback.json"
    storage = ItemStorage(db_path, fallback_path=fallback)

    storage.save(_items())
    assert fallback.exists()
    stored = json.loads(fallback.read_text(encoding="utf-8"))["entries"][ITEMS_KEY]
    assert stored["value"][1]["title"] == "Work"
    assert storage.load() == _items()


def test_generic_values(tmp_path: Path):
    storage = ItemStorage.in_dir(tmp_path)
    storage.set_value("searchHistory", ["python", "rust"])
    assert storage.get_value("searchHistory") == ["python", "rust"]
    assert storage.get_value("missing") is None


def test_items_from_payload_skips_invalid_and_duplicate_entries():
    data = [
        {"id": "f", "type": "folder", "title": "F", "parentId": "root", "order": 0},
        {"id": "broken", "type": "link", "title": "No url"},
        {"id": "x", "type": "separator"},
        "not an object",
        {"id": "f", "type": "folder", "title": "Dupe", "parentId": "root", "order": 1},
        {"id": "l", "type": "link", "title": "", "url": "https://l.example", "parentId": "f", "order": 3},
    ]
    items = items_from_payload(data)
    assert [i.id for i in items] == ["f", "l"]
    assert items[1].title == "https://l.example"


def test_items_without_order_get_their_position():
    data = [
        {"id": "a", "type": "link", "title": "A", "url": "https://a.example"},
        {"id": "b", "type": "link", "title": "B", "url": "https://b.example"},
        {"id": "c", "type": "link", "title": "C", "url": "https://c.example", "order": 0},
    ]
    items = items_from_payload(data)
    assert [(i.id, i.order, i.parent_id) for i in items] == [("a", 0, "root"), ("b", 1, "root"), ("c", 0, "root")]


def test_items_from_payload_rejects_non_list():
    assert items_from_payload({"items": []}) == []


def _ids(path: Path):
    return [i.id for i in ItemStorage.in_dir(path).load()]


def test_late_debounced_write_does_not_overwrite_newer_save(tmp_path: Path):
    storage = ItemStorage.in_dir(tmp_path, debounce_ms=10)
    write = storage._debouncer.fn
    started, finished = threading.Event(), threading.Event()

    def slow_write(entry):
        started.set()
        time.sleep(0.2)
        write(entry)
        finished.set()

    storage._debouncer.fn = slow_write
    storage.save([Folder(id="old", title="Old", order=0, depth=0)], immediate=False)
    assert started.wait(5)
    # The timer has taken its payload but not written it yet.
    storage.save([Folder(id="new", title="New", order=0, depth=0)], immediate=True)
    assert finished.wait(5)

    assert _ids(tmp_path) == ["new"]


def test_newer_fallback_copy_wins_over_older_database_row(tmp_path: Path):
    storage = ItemStorage.in_dir(tmp_path)
    storage.save([Folder(id="v1", title="V1", order=0, depth=0)])

    def broken_init():
        raise sqlite3.OperationalError("database is locked")

    storage.init = broken_init
    storage.save([Folder(id="v2", title="V2", order=0, depth=0)])
    del storage.init
    assert _ids(tmp_path) == ["v2"]

    storage.save([Folder(id="v3", title="V3", order=0, depth=0)])
    assert not (tmp_path / "speeddial-fallback.json").exists()
    assert _ids(tmp_path) == ["v3"]
