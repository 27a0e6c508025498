from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from .log import get_logger
from .model import (
    FOLDER,
    LINK,
    ROOT_ID,
    UNSORTED_FOLDER_ID,
    UNSORTED_ORDER,
    Folder,
    Item,
    Link,
    is_unsorted,
    make_unsorted_folder,
    new_id,
)
from .tree import TreeStore
from .undo import UndoManager
from .url_norm import ALLOWED_SCHEMES, DEFAULT_SCHEME, normalize_url, title_from_url

log = get_logger(__name__)

BEFORE = "before"
AFTER = "after"


class MutationRejected(Exception):
    """A mutation was declined; nothing changed. `reason` is user-facing."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class MoveConflict(MutationRejected):
    pass


class ProtectedItem(MutationRejected):
    pass


class MutationEngine:
    """All writes to the tree go through here.

    Each operation validates first, then snapshots for undo, mutates,
    saves and signals the change. A rejected call raises
    `MutationRejected` before anything is touched; an unknown id is a
    silent no-op.
    """

    def __init__(
        self,
        tree: TreeStore,
        undo: UndoManager,
        storage=None,
        *,
        default_scheme: str = DEFAULT_SCHEME,
        allowed_schemes: Sequence[str] = ALLOWED_SCHEMES,
    ):
        self.tree = tree
        self.undo = undo
        self.storage = storage
        self.default_scheme = default_scheme
        self.allowed_schemes = tuple(allowed_schemes)

    # -- create ---------------------------------------------------------

    def create_link(self, parent_id: Optional[str], title: str, url: str) -> Optional[Link]:
        if parent_id is not None and not self.tree.folder_exists(parent_id):
            return None
        url = self._normalize(url)
        if not url:
            raise MutationRejected("A link needs an address")

        self.undo.snapshot()
        link = self._insert_link(parent_id, title, url)
        self._commit()
        log.debug("Created link %s in %s", link.id, link.parent_id)
        return link

    def create_folder(self, parent_id: Optional[str], title: str) -> Optional[Folder]:
        parent_id = parent_id or ROOT_ID
        title = (title or "").strip()
        if not title:
            raise MutationRejected("A folder needs a name")
        if not self.tree.folder_exists(parent_id):
            return None

        self.undo.snapshot()
        folder = self._insert_folder(parent_id, title)
        self._commit()
        log.debug("Created folder %s in %s", folder.id, parent_id)
        return folder

    def save_link(self, url: str, title: str, folder_id: Optional[str] = None) -> Optional[Link]:
        """Save a page, reusing an existing link with the same url in the target folder."""
        if (url or "").strip().lower().startswith("chrome://newtab"):
            return None
        target = folder_id or UNSORTED_FOLDER_ID
        if target != UNSORTED_FOLDER_ID and not self.tree.folder_exists(target):
            return None
        url = self._normalize(url)
        if not url:
            raise MutationRejected("A link needs an address")

        existing = self.tree.find_links_by_url(url, parent_id=target)
        if existing:
            link = existing[0]
            title = (title or "").strip()
            if title and link.title != title:
                self.undo.snapshot()
                link.title = title
                self._commit()
            return link

        self.undo.snapshot()
        link = self._insert_link(None if target == UNSORTED_FOLDER_ID else target, title, url)
        self._commit()
        return link

    # -- edit -----------------------------------------------------------

    def rename(self, item_id: str, new_title: str) -> bool:
        item = self.tree.get(item_id)
        if item is None:
            return False
        if is_unsorted(item):
            raise ProtectedItem("The Unsorted folder cannot be renamed")
        new_title = (new_title or "").strip()
        if not new_title or new_title == item.title:
            return False

        self.undo.snapshot()
        item.title = new_title
        self._commit()
        return True

    def edit_link(self, item_id: str, new_title: str, new_url: str) -> bool:
        item = self.tree.get(item_id)
        if not isinstance(item, Link):
            return False
        url = self._normalize(new_url) or item.url
        title = (new_title or "").strip() or title_from_url(url)
        if title == item.title and url == item.url:
            return False

        self.undo.snapshot()
        item.title = title
        item.url = url
        self._commit()
        return True

    # -- delete ---------------------------------------------------------

    def delete_item(self, item_id: str) -> bool:
        return self.delete_items([item_id]) > 0

    def delete_items(self, item_ids: Iterable[str]) -> int:
        """Delete items (folders cascade) under a single undo snapshot.

        Returns the number of top-level items removed.
        """
        targets: List[Item] = []
        for item_id in dict.fromkeys(item_ids):
            item = self.tree.get(item_id)
            if item is None:
                continue
            if is_unsorted(item):
                raise ProtectedItem("The Unsorted folder cannot be deleted")
            targets.append(item)
        if not targets:
            return 0

        self.undo.snapshot()
        removed_ids = set()
        for item in targets:
            if item.id in removed_ids:
                # Already gone with an ancestor deleted earlier in this batch.
                continue
            removed_ids.update(self._remove_cascade(item))

        if self.tree.active_folder_id in removed_ids:
            self.tree.active_folder_id = ROOT_ID
        self._drop_unsorted_if_empty()
        self._commit()
        log.debug("Deleted %d items (%d including descendants)", len(targets), len(removed_ids))
        return len(targets)

    def _remove_cascade(self, item: Item) -> set:
        doomed: List[Item] = []
        if isinstance(item, Folder):
            doomed.extend(self.tree.descendants_depth_first(item.id))
        doomed.append(item)
        doomed_ids = {i.id for i in doomed}
        self.tree.items = [i for i in self.tree.items if i.id not in doomed_ids]
        return doomed_ids

    # -- move -----------------------------------------------------------

    def move_items(self, item_ids: Sequence[str], target_folder_id: str) -> int:
        """Move items into a folder; returns how many actually changed parent."""
        if not self.tree.folder_exists(target_folder_id):
            return 0
        moving = [self.tree.get(i) for i in dict.fromkeys(item_ids)]
        moving = [i for i in moving if i is not None]

        self._check_move(moving, target_folder_id)

        # Items already in the target keep their place.
        moving = [i for i in moving if i.parent_id != target_folder_id]
        if not moving:
            return 0

        self.undo.snapshot()
        left_unsorted = self._reparent(moving, target_folder_id)
        if left_unsorted:
            self._drop_unsorted_if_empty()
        self._commit()
        log.debug("Moved %d items into %s", len(moving), target_folder_id)
        return len(moving)

    def _check_move(self, moving: Sequence[Item], target_folder_id: str) -> None:
        for item in moving:
            if not isinstance(item, Folder):
                continue
            if is_unsorted(item):
                raise ProtectedItem("The Unsorted folder cannot be moved")
            if self.tree.is_self_or_descendant(item.id, target_folder_id):
                raise MoveConflict("Cannot move a folder into itself or a subfolder")

    def _reparent(self, moving: Sequence[Item], target_folder_id: str) -> bool:
        next_orders = {
            FOLDER: self.tree.next_order(target_folder_id, FOLDER),
            LINK: self.tree.next_order(target_folder_id, LINK),
        }
        target_depth = self.tree.depth_of(target_folder_id)
        left_unsorted = False
        for item in moving:
            if item.parent_id == UNSORTED_FOLDER_ID and target_folder_id != UNSORTED_FOLDER_ID:
                left_unsorted = True
            item.parent_id = target_folder_id
            item.order = next_orders[item.type]
            next_orders[item.type] += 1
            if isinstance(item, Folder):
                self._refresh_depths(item, target_depth + 1)
        return left_unsorted

    def _refresh_depths(self, folder: Folder, depth: int) -> None:
        folder.depth = depth
        for child in self.tree.siblings(folder.id, FOLDER):
            self._refresh_depths(child, depth + 1)

    # -- reorder --------------------------------------------------------

    def reorder(self, item_ids: Sequence[str], target_item_id: str, position: str) -> bool:
        """Place same-type siblings before/after `target_item_id` and renumber 0..n-1."""
        if position not in (BEFORE, AFTER):
            raise ValueError(f"position must be {BEFORE!r} or {AFTER!r}, got {position!r}")
        target = self.tree.get(target_item_id)
        if target is None or is_unsorted(target):
            return False
        dragged_set = set(item_ids)
        if target.id in dragged_set:
            return False
        dragged_items = [self.tree.get(i) for i in dragged_set]
        if any(i is not None and i.type != target.type for i in dragged_items):
            # Mixed drags are never reorders; callers treat them as move-into.
            return False

        siblings = [
            i for i in self.tree.siblings(target.parent_id, target.type) if not is_unsorted(i)
        ]
        dragged = [i for i in siblings if i.id in dragged_set]
        if not dragged:
            return False
        remaining = [i for i in siblings if i.id not in dragged_set]

        self.undo.snapshot()
        at = remaining.index(target) + (1 if position == AFTER else 0)
        remaining[at:at] = dragged
        for index, item in enumerate(remaining):
            item.order = index
        self._commit(immediate=False)
        return True

    # -- bulk -----------------------------------------------------------

    def create_folder_from_links(self, link_ids: Sequence[str], parent_id: str) -> Optional[Folder]:
        links = [self.tree.get(i) for i in dict.fromkeys(link_ids)]
        links = sorted((i for i in links if isinstance(i, Link)), key=lambda i: i.order)
        if not links:
            raise MutationRejected("Select at least one link")
        if not self.tree.folder_exists(parent_id):
            return None

        self.undo.snapshot()
        folder = self._insert_folder(parent_id, f"{len(links)} links")
        left_unsorted = False
        for order, link in enumerate(links):
            if link.parent_id == UNSORTED_FOLDER_ID:
                left_unsorted = True
            link.parent_id = folder.id
            link.order = order
        if left_unsorted:
            self._drop_unsorted_if_empty()
        self._commit()
        return folder

    def import_tree(self, nodes: Sequence, parent_id: str) -> int:
        """Insert parsed bookmark nodes (see `parse_netscape`) under one snapshot."""
        if not self.tree.folder_exists(parent_id):
            return 0
        self.undo.snapshot()
        count = self._import_nodes(nodes, parent_id)
        self._commit()
        log.info("Imported %d items into %s", count, parent_id)
        return count

    def _import_nodes(self, nodes: Sequence, parent_id: str) -> int:
        count = 0
        for node in nodes:
            children = getattr(node, "children", None)
            if children is not None:
                if getattr(node, "toolbar", False):
                    count += self._import_nodes(children, parent_id)
                    continue
                if not node.title:
                    continue
                folder = self._insert_folder(parent_id, node.title)
                count += 1 + self._import_nodes(children, folder.id)
                continue
            url = (node.url or "").strip()
            if not url or url.lower().startswith("javascript:"):
                continue
            link = Link(
                id=new_id(),
                title=node.title or url,
                url=url,
                parent_id=parent_id,
                order=self.tree.next_order(parent_id, LINK),
            )
            self.tree.items.append(link)
            count += 1
        return count

    # -- unsorted lifecycle ---------------------------------------------

    def _ensure_unsorted(self) -> Folder:
        folder = self.tree.get_folder(UNSORTED_FOLDER_ID)
        if folder is None:
            folder = make_unsorted_folder()
            self.tree.items.append(folder)
            log.debug("Created the Unsorted folder")
        return folder

    def _drop_unsorted_if_empty(self) -> bool:
        if self.tree.get(UNSORTED_FOLDER_ID) is None:
            return False
        if self.tree.direct_child_count(UNSORTED_FOLDER_ID) > 0:
            return False
        self.tree.items = [i for i in self.tree.items if i.id != UNSORTED_FOLDER_ID]
        if self.tree.active_folder_id == UNSORTED_FOLDER_ID:
            self.tree.active_folder_id = ROOT_ID
        log.debug("Removed the empty Unsorted folder")
        return True

    # -- helpers --------------------------------------------------------

    def _insert_link(self, parent_id: Optional[str], title: str, url: str) -> Link:
        if parent_id is None:
            parent_id = self._ensure_unsorted().id
        link = Link(
            id=new_id(),
            title=(title or "").strip() or title_from_url(url),
            url=url,
            parent_id=parent_id,
            order=self.tree.next_order(parent_id, LINK),
        )
        self.tree.items.append(link)
        return link

    def _insert_folder(self, parent_id: str, title: str) -> Folder:
        order = self.tree.next_order(parent_id, FOLDER)
        if parent_id == ROOT_ID:
            order = max(order, UNSORTED_ORDER + 1)
        folder = Folder(
            id=new_id(),
            title=title,
            parent_id=parent_id,
            order=order,
            depth=self.tree.depth_of(parent_id) + 1,
        )
        self.tree.items.append(folder)
        return folder

    def _normalize(self, url: str) -> str:
        return normalize_url(url, default_scheme=self.default_scheme, allowed_schemes=self.allowed_schemes)

    def _commit(self, immediate: bool = True) -> None:
        if self.storage is not None:
            self.storage.save(self.tree.items, immediate=immediate)
        self.tree.notify_changed()
