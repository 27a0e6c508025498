from __future__ import annotations

from typing import List, Optional

from .log import get_logger
from .storage import SEARCH_HISTORY_KEY

log = get_logger(__name__)

MAX_SEARCH_HISTORY = 50


class SearchHistory:
    """Recent search queries, most recent first, case-insensitively unique."""

    def __init__(self, storage=None, *, max_entries: int = MAX_SEARCH_HISTORY):
        self.storage = storage
        self.max_entries = max(1, int(max_entries))
        self.entries: List[str] = []

    def load(self) -> List[str]:
        if self.storage is None:
            return self.entries
        data = self.storage.get_value(SEARCH_HISTORY_KEY)
        if isinstance(data, list):
            self.entries = [str(x) for x in data if str(x).strip()][: self.max_entries]
        else:
            self.entries = []
        return self.entries

    def add(self, query: str) -> bool:
        q = (query or "").strip()
        if not q:
            return False
        key = q.lower()
        self.entries = [q] + [h for h in self.entries if h.lower() != key]
        del self.entries[self.max_entries:]
        self._save()
        return True

    def remove(self, query: str) -> bool:
        key = (query or "").strip().lower()
        kept = [h for h in self.entries if h.lower() != key]
        if len(kept) == len(self.entries):
            return False
        self.entries = kept
        self._save()
        return True

    def matching(self, query: str, limit: Optional[int] = 5) -> List[str]:
        key = (query or "").strip().lower()
        if not key:
            return []
        out = [h for h in self.entries if key in h.lower() and h.lower() != key]
        return out if limit is None else out[:limit]

    def _save(self) -> None:
        if self.storage is not None:
            self.storage.set_value(SEARCH_HISTORY_KEY, self.entries)
