from __future__ import annotations

from collections import deque
from typing import Callable, Iterable, List, Optional, Tuple

from .log import get_logger
from .model import FOLDER, LINK, ROOT_ID, UNSORTED_FOLDER_ID, Folder, Item, Link

log = get_logger(__name__)

Listener = Callable[[], None]


class TreeStore:
    """Flat item collection plus the read queries the rest of the engine needs.

    Items live in one insertion-ordered list; parent/child structure is
    derived from `parent_id`. Folders and links keep independent `order`
    sequences per parent, so listings show a parent's folders first and its
    links second, each sorted by `order` with insertion order breaking ties.

    The store never mutates items itself. The mutation engine and the undo
    manager do that and then call `notify_changed()`.
    """

    def __init__(self, items: Optional[Iterable[Item]] = None):
        self.items: List[Item] = list(items or [])
        self.active_folder_id: str = ROOT_ID
        self._listeners: List[Listener] = []

    # -- collection -----------------------------------------------------

    def replace(self, items: Iterable[Item]) -> None:
        self.items = list(items)

    def get(self, item_id: str) -> Optional[Item]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        item = self.get(folder_id)
        return item if isinstance(item, Folder) else None

    def contains(self, item_id: str) -> bool:
        return self.get(item_id) is not None

    def folder_exists(self, folder_id: str) -> bool:
        return folder_id == ROOT_ID or self.get_folder(folder_id) is not None

    def __len__(self) -> int:
        return len(self.items)

    # -- ordering -------------------------------------------------------

    def siblings(self, parent_id: str, kind: str) -> List[Item]:
        """Same-type children of `parent_id`, sorted by order (stable)."""
        cls = Folder if kind == FOLDER else Link
        same = [i for i in self.items if i.parent_id == parent_id and isinstance(i, cls)]
        return sorted(same, key=lambda i: i.order)

    def children_of(self, parent_id: str) -> List[Item]:
        folders = self.siblings(parent_id, FOLDER)
        if parent_id == ROOT_ID:
            # Unsorted always heads the root listing, whatever its stored order.
            folders.sort(key=lambda f: f.id != UNSORTED_FOLDER_ID)
        return folders + self.siblings(parent_id, LINK)

    def max_order(self, parent_id: str, kind: str) -> Optional[int]:
        orders = [i.order for i in self.siblings(parent_id, kind)]
        return max(orders) if orders else None

    def next_order(self, parent_id: str, kind: str) -> int:
        current = self.max_order(parent_id, kind)
        return 0 if current is None else current + 1

    # -- hierarchy ------------------------------------------------------

    def child_folder_ids(self, folder_id: str) -> List[str]:
        return [i.id for i in self.items if isinstance(i, Folder) and i.parent_id == folder_id]

    def is_descendant(self, ancestor_id: str, candidate_id: str) -> bool:
        # BFS over folder children only; links never have children.
        seen = set()
        queue = deque([ancestor_id])
        while queue:
            current = queue.popleft()
            for child_id in self.child_folder_ids(current):
                if child_id in seen:
                    continue
                if child_id == candidate_id:
                    return True
                seen.add(child_id)
                queue.append(child_id)
        return False

    def is_self_or_descendant(self, folder_id: str, candidate_id: str) -> bool:
        return folder_id == candidate_id or self.is_descendant(folder_id, candidate_id)

    def descendants_depth_first(self, folder_id: str) -> List[Item]:
        """Every item below `folder_id`, children before their parents."""
        out: List[Item] = []
        for child in [i for i in self.items if i.parent_id == folder_id]:
            if isinstance(child, Folder):
                out.extend(self.descendants_depth_first(child.id))
            out.append(child)
        return out

    def path_to(self, folder_id: str) -> List[Folder]:
        """Ancestor chain from the top-level folder down to `folder_id`.

        Returns an empty list for root and for chains that do not reach root.
        """
        chain: List[Folder] = []
        seen = set()
        current = folder_id
        while current and current != ROOT_ID:
            if current in seen:
                return []
            seen.add(current)
            folder = self.get_folder(current)
            if folder is None:
                return []
            chain.append(folder)
            current = folder.parent_id
        chain.reverse()
        return chain

    def depth_of(self, folder_id: str) -> int:
        if folder_id == ROOT_ID:
            return -1
        path = self.path_to(folder_id)
        return len(path) - 1 if path else -1

    def folder_hierarchy(self, parent_id: str = ROOT_ID, depth: int = 0) -> List[Tuple[Folder, int]]:
        out: List[Tuple[Folder, int]] = []
        for item in self.children_of(parent_id):
            if not isinstance(item, Folder):
                continue
            out.append((item, depth))
            out.extend(self.folder_hierarchy(item.id, depth + 1))
        return out

    # -- counts ---------------------------------------------------------

    def total_link_count(self) -> int:
        return sum(1 for i in self.items if isinstance(i, Link))

    def link_count_under(self, folder_id: str) -> int:
        count = 0
        for item in self.items:
            if item.parent_id != folder_id:
                continue
            if isinstance(item, Link):
                count += 1
            else:
                count += self.link_count_under(item.id)
        return count

    def folder_descendant_count(self, folder_id: str) -> int:
        child_ids = self.child_folder_ids(folder_id)
        return len(child_ids) + sum(self.folder_descendant_count(c) for c in child_ids)

    def direct_child_count(self, folder_id: str) -> int:
        return sum(1 for i in self.items if i.parent_id == folder_id)

    # -- lookups --------------------------------------------------------

    def find_links_by_url(self, url: str, parent_id: Optional[str] = None) -> List[Link]:
        key = (url or "").strip().lower()
        out = []
        for item in self.items:
            if not isinstance(item, Link) or item.url.lower() != key:
                continue
            if parent_id is not None and item.parent_id != parent_id:
                continue
            out.append(item)
        return out

    def saved_urls(self) -> set[str]:
        return {i.url.lower() for i in self.items if isinstance(i, Link)}

    # -- change notification --------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def notify_changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                log.warning("Tree change listener failed: %s", e)
