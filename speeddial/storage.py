from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .log import get_logger
from .model import ROOT_ID, Folder, Item, Link

log = get_logger(__name__)

ITEMS_KEY = "speedDialItems"
SEARCH_HISTORY_KEY = "searchHistory"
STORAGE_DEBOUNCE_MS = 300


class StoredFolder(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["folder"]
    id: str
    title: str = ""
    parent_id: str = Field(ROOT_ID, alias="parentId")
    order: Optional[int] = None
    depth: Optional[int] = None


class StoredLink(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["link"]
    id: str
    title: str = ""
    url: str
    parent_id: str = Field(ROOT_ID, alias="parentId")
    order: Optional[int] = None


def items_to_payload(items: Sequence[Item]) -> str:
    return json.dumps([i.to_dict() for i in items], ensure_ascii=False)


def items_from_payload(data: Any) -> List[Item]:
    """Validate a stored item list; broken entries are skipped, not fatal.

    Entries without an `order` get their list position, which is how
    collections saved before ordering existed are migrated.
    """
    if not isinstance(data, list):
        log.warning("Stored items are not a list (%s); starting empty.", type(data).__name__)
        return []

    out: List[Item] = []
    seen = set()
    for index, raw in enumerate(data):
        try:
            stored = _validate_entry(raw)
        except (ValidationError, ValueError) as e:
            log.warning("Skipping invalid stored item #%d: %s", index, e)
            continue
        if stored.id in seen:
            log.warning("Skipping duplicate stored item id: %s", stored.id)
            continue
        seen.add(stored.id)
        order = index if stored.order is None else stored.order
        if isinstance(stored, StoredFolder):
            out.append(Folder(id=stored.id, title=stored.title, parent_id=stored.parent_id, order=order, depth=stored.depth))
        else:
            out.append(Link(id=stored.id, title=stored.title or stored.url, url=stored.url, parent_id=stored.parent_id, order=order))
    return out


def _validate_entry(raw: Any) -> Union[StoredFolder, StoredLink]:
    if not isinstance(raw, dict):
        raise ValueError("entry is not an object")
    kind = raw.get("type")
    if kind == "folder":
        return StoredFolder.model_validate(raw)
    if kind == "link":
        return StoredLink.model_validate(raw)
    raise ValueError(f"unknown item type {kind!r}")


class _Debouncer:
    """Run `fn` once `wait_s` after the last `call()`; bursts coalesce."""

    def __init__(self, wait_s: float, fn: Callable[[Any], None]):
        self.wait_s = wait_s
        self.fn = fn
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending: Any = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def call(self, payload: Any) -> None:
        with self._lock:
            self._pending = payload
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.wait_s, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending = None

    def flush(self) -> bool:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            payload, self._pending = self._pending, None
        if payload is None:
            return False
        self.fn(payload)
        return True

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
            payload, self._pending = self._pending, None
        if payload is not None:
            self.fn(payload)


class ItemStorage:
    """Durable home of the item collection.

    Primary store is a small SQLite key/value table; when it cannot be
    written the JSON fallback file next to it is used instead. Immediate
    saves write synchronously, others are debounced and coalesced. The
    payload is serialised when `save()` is called, so the timer thread never
    reads live items.

    Every `save()` takes a sequence number; a write older than the last one
    committed is dropped, so a timer write that loses the race against a
    later immediate save cannot overwrite it.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        fallback_path: Optional[Path] = None,
        debounce_ms: int = STORAGE_DEBOUNCE_MS,
    ):
        self.db_path = Path(db_path)
        self.fallback_path = Path(fallback_path) if fallback_path else self.db_path.with_suffix(".json")
        self._write_lock = threading.Lock()
        self._seq_lock = threading.Lock()
        self._seq = 0
        self._written_seq = 0
        self._debouncer = _Debouncer(max(0, debounce_ms) / 1000.0, self._write_items_payload)

    @classmethod
    def in_dir(cls, state_dir: Path, *, debounce_ms: int = STORAGE_DEBOUNCE_MS) -> "ItemStorage":
        state_dir = Path(state_dir)
        return cls(
            state_dir / "speeddial.sqlite",
            fallback_path=state_dir / "speeddial-fallback.json",
            debounce_ms=debounce_ms,
        )

    # -- schema ---------------------------------------------------------

    def init(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    # -- items ----------------------------------------------------------

    def load(self) -> List[Item]:
        data = self.get_value(ITEMS_KEY)
        if data is None:
            return []
        items = items_from_payload(data)
        log.info("Loaded %d items from %s", len(items), self.db_path)
        return items

    def save(self, items: Sequence[Item], *, immediate: bool = True) -> None:
        payload = items_to_payload(items)
        with self._seq_lock:
            self._seq += 1
            entry = (self._seq, payload)
        if immediate:
            self._debouncer.cancel()
            self._write_items_payload(entry)
        else:
            self._debouncer.call(entry)

    def flush(self) -> bool:
        return self._debouncer.flush()

    @property
    def has_pending_write(self) -> bool:
        return self._debouncer.pending

    def close(self) -> None:
        self.flush()

    def _write_items_payload(self, entry: Tuple[int, str]) -> None:
        seq, payload = entry
        with self._write_lock:
            if seq <= self._written_seq:
                log.debug("Dropping items write #%d; #%d is already on disk", seq, self._written_seq)
                return
            self._written_seq = seq
            self._put_locked(ITEMS_KEY, payload)

    # -- generic keys ---------------------------------------------------

    def get_value(self, key: str) -> Any:
        """Newest copy of `key` across the database and the fallback file."""
        found = None
        try:
            if self.db_path.exists():
                with sqlite3.connect(self.db_path) as conn:
                    row = conn.execute(
                        "SELECT value_json, updated_at FROM kv_store WHERE key = ?", (key,)
                    ).fetchone()
                if row is not None:
                    found = (row[1], json.loads(row[0]))
        except (sqlite3.Error, json.JSONDecodeError) as e:
            log.warning("Reading %s from %s failed (%s); trying fallback file.", key, self.db_path, e)

        spare = self._read_fallback().get(key)
        if isinstance(spare, dict) and "value" in spare:
            updated_at = str(spare.get("updated_at") or "")
            if found is None or updated_at > found[0]:
                found = (updated_at, spare["value"])
        return None if found is None else found[1]

    def set_value(self, key: str, value: Any) -> None:
        with self._write_lock:
            self._put_locked(key, json.dumps(value, ensure_ascii=False))

    def _put_locked(self, key: str, value_json: str) -> None:
        now = datetime.now(timezone.utc).isoformat(timespec="microseconds")
        try:
            self.init()
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value_json, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value_json=excluded.value_json,
                        updated_at=excluded.updated_at
                    """,
                    (key, value_json, now),
                )
        except (sqlite3.Error, OSError) as e:
            log.error("Saving %s to %s failed: %s", key, self.db_path, e)
            self._write_fallback(key, value_json, now)
            return
        self._drop_fallback(key)

    # -- fallback file --------------------------------------------------
    # Layout: {"entries": {key: {"value": ..., "updated_at": iso}}}

    def _read_fallback(self) -> dict:
        try:
            if not self.fallback_path.exists():
                return {}
            data = json.loads(self.fallback_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            log.warning("Reading fallback store %s failed: %s", self.fallback_path, e)
            return {}
        entries = data.get("entries") if isinstance(data, dict) else None
        return entries if isinstance(entries, dict) else {}

    def _store_fallback(self, entries: dict) -> None:
        self.fallback_path.parent.mkdir(parents=True, exist_ok=True)
        self.fallback_path.write_text(json.dumps({"entries": entries}, ensure_ascii=False), encoding="utf-8")

    def _write_fallback(self, key: str, value_json: str, updated_at: str) -> None:
        try:
            entries = self._read_fallback()
            entries[key] = {"value": json.loads(value_json), "updated_at": updated_at}
            self._store_fallback(entries)
            log.warning("Saved %s to fallback store %s", key, self.fallback_path)
        except OSError as e:
            log.error("Fallback store %s is not writable either: %s", self.fallback_path, e)

    def _drop_fallback(self, key: str) -> None:
        # The database copy is now the newest one.
        entries = self._read_fallback()
        if key not in entries:
            return
        del entries[key]
        try:
            if entries:
                self._store_fallback(entries)
            else:
                self.fallback_path.unlink()
        except OSError as e:
            log.warning("Could not clear %s from fallback store %s: %s", key, self.fallback_path, e)
