from __future__ import annotations

import copy
from typing import List

from .log import get_logger
from .model import ROOT_ID, Item
from .tree import TreeStore

log = get_logger(__name__)

MAX_UNDO_STACK_SIZE = 50


class UndoManager:
    """Bounded stack of whole-collection snapshots.

    One-directional: undoing pops a snapshot and there is no redo stack.
    Snapshots are deep copies, O(n) per mutation, which is fine for
    start-page sized trees.
    """

    def __init__(self, tree: TreeStore, storage=None, *, max_depth: int = MAX_UNDO_STACK_SIZE):
        self.tree = tree
        self.storage = storage
        self.max_depth = max(1, int(max_depth))
        self._stack: List[List[Item]] = []

    def __len__(self) -> int:
        return len(self._stack)

    @property
    def can_undo(self) -> bool:
        return bool(self._stack)

    def snapshot(self) -> None:
        self._stack.append(copy.deepcopy(self.tree.items))
        if len(self._stack) > self.max_depth:
            self._stack.pop(0)

    def clear(self) -> None:
        self._stack.clear()

    def undo(self) -> bool:
        if not self._stack:
            log.debug("Nothing to undo.")
            return False

        self.tree.replace(self._stack.pop())
        if not self.tree.folder_exists(self.tree.active_folder_id):
            self.tree.active_folder_id = ROOT_ID
        if self.storage is not None:
            self.storage.save(self.tree.items, immediate=True)
        self.tree.notify_changed()
        log.debug("Undo restored %d items (%d snapshots left).", len(self.tree.items), len(self._stack))
        return True
