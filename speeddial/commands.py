from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from .config import Settings
from .log import get_logger
from .model import ROOT_ID, UNSORTED_FOLDER_ID, UNSORTED_TITLE, Folder, Item, Link, is_unsorted
from .mutations import AFTER, BEFORE, MutationEngine, MutationRejected
from .parse_netscape import parse_bookmarks_file, parse_bookmarks_html
from .search import ResultsListener, SearchAggregator, SearchResults
from .search_history import SearchHistory
from .storage import ItemStorage
from .suggest import GoogleSuggest, PlacesHistory
from .tree import TreeStore
from .undo import UndoManager
from .writer_netscape import export_folder_html, export_selection_html, write_html

log = get_logger(__name__)


@dataclass
class CommandResult:
    ok: bool
    message: str = ""
    item: Optional[Item] = None
    count: int = 0


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'' if n == 1 else 's'}"


class SpeedDial:
    """User-facing commands over one bookmark tree.

    Owns the tree, the undo stack, the mutation engine, search and the
    storage handle. Every command answers with a `CommandResult`; rejected
    mutations come back as `ok=False` with the reason as message.
    """

    def __init__(
        self,
        storage: Optional[ItemStorage] = None,
        *,
        settings: Optional[Settings] = None,
        completions=None,
        visits=None,
    ):
        self.settings = settings or Settings()
        self.storage = storage
        self.tree = TreeStore()
        self.undo_manager = UndoManager(self.tree, storage, max_depth=self.settings.undo_max_depth)
        self.engine = MutationEngine(
            self.tree,
            self.undo_manager,
            storage,
            default_scheme=self.settings.default_scheme,
            allowed_schemes=self.settings.allowed_schemes,
        )
        self.history = SearchHistory(storage, max_entries=self.settings.search_history_max)
        self.searcher = SearchAggregator(
            self.tree,
            completions=completions,
            visits=visits,
            history=self.history,
            min_remote_query_length=self.settings.min_remote_query_length,
            max_suggestions=self.settings.max_suggestions,
            max_remote_suggestions=self.settings.max_remote_suggestions,
            history_matches=self.settings.search_history_matches,
        )
        self._selected: dict = {}
        self.moving_ids: Optional[List[str]] = None

    @classmethod
    def open(cls, settings: Settings) -> "SpeedDial":
        """Wire up storage and remote lookups from settings and load saved state."""
        storage = ItemStorage.in_dir(settings.state_path, debounce_ms=settings.storage_debounce_ms)
        completions = None
        if settings.suggest_enabled:
            completions = GoogleSuggest(url=settings.suggest_url, timeout_s=settings.suggest_timeout_s)
        visits = None
        if settings.history_places_path:
            visits = PlacesHistory(Path(settings.history_places_path).expanduser(), max_results=settings.history_max_results)
        dial = cls(storage, settings=settings, completions=completions, visits=visits)
        dial.load()
        return dial

    def load(self) -> None:
        if self.storage is None:
            return
        self.tree.replace(self.storage.load())
        self.tree.active_folder_id = ROOT_ID
        self.history.load()
        self.undo_manager.clear()

    def close(self) -> None:
        self.searcher.leave()
        if self.storage is not None:
            self.storage.close()

    # -- notifications --------------------------------------------------

    def on_tree_changed(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self.tree.subscribe(listener)

    def on_search_results(self, listener: ResultsListener) -> None:
        self.searcher.subscribe(listener)

    # -- views ----------------------------------------------------------

    @property
    def active_folder_id(self) -> str:
        return self.tree.active_folder_id

    def listing(self, folder_id: Optional[str] = None) -> List[Item]:
        return self.tree.children_of(folder_id or self.tree.active_folder_id)

    def navigate(self, folder_id: str) -> CommandResult:
        if not self.tree.folder_exists(folder_id):
            return CommandResult(False, "Folder not found")
        self.tree.active_folder_id = folder_id
        self.clear_selection()
        folder = self.tree.get_folder(folder_id)
        return CommandResult(True, folder.title if folder else "Home", item=folder)

    def breadcrumb(self) -> List[Tuple[str, str]]:
        """(folder id, label) pairs from root down to the active folder."""
        crumbs = [(ROOT_ID, _plural(self.tree.total_link_count(), "bookmark"))]
        for folder in self.tree.path_to(self.tree.active_folder_id):
            crumbs.append((folder.id, folder.title))
        return crumbs

    # -- create / edit --------------------------------------------------

    def create_link(self, url: str, title: str = "", folder_id: Optional[str] = None) -> CommandResult:
        try:
            link = self.engine.create_link(folder_id or self.tree.active_folder_id, title, url)
        except MutationRejected as e:
            return CommandResult(False, e.reason)
        if link is None:
            return CommandResult(False, "Folder not found")
        return CommandResult(True, f"Added {link.title}", item=link, count=1)

    def create_folder(self, title: str, parent_id: Optional[str] = None) -> CommandResult:
        try:
            folder = self.engine.create_folder(parent_id or self.tree.active_folder_id, title)
        except MutationRejected as e:
            return CommandResult(False, e.reason)
        if folder is None:
            return CommandResult(False, "Folder not found")
        return CommandResult(True, f"Created {folder.title}", item=folder, count=1)

    def save_link(self, url: str, title: str = "", folder_id: Optional[str] = None) -> CommandResult:
        """Save a page; without a folder it goes to Unsorted."""
        try:
            link = self.engine.save_link(url, title, folder_id)
        except MutationRejected as e:
            return CommandResult(False, e.reason)
        if link is None:
            return CommandResult(False, "This page cannot be saved")
        folder = self.tree.get_folder(link.parent_id)
        where = folder.title if folder else "Home"
        return CommandResult(True, f"Saved to {where}", item=link, count=1)

    def rename(self, item_id: str, title: str) -> CommandResult:
        try:
            changed = self.engine.rename(item_id, title)
        except MutationRejected as e:
            return CommandResult(False, e.reason)
        item = self.tree.get(item_id)
        if item is None:
            return CommandResult(False, "Item not found")
        return CommandResult(changed, "Renamed" if changed else "Nothing changed", item=item)

    def edit_link(self, item_id: str, title: str, url: str) -> CommandResult:
        item = self.tree.get(item_id)
        if not isinstance(item, Link):
            return CommandResult(False, "Link not found")
        changed = self.engine.edit_link(item_id, title, url)
        return CommandResult(changed, "Saved" if changed else "Nothing changed", item=item)

    # -- delete / move / reorder ----------------------------------------

    def delete(self, item_ids: Optional[Iterable[str]] = None) -> CommandResult:
        ids = list(item_ids) if item_ids is not None else self.selected_ids()
        if not ids:
            return CommandResult(False, "Nothing selected")
        try:
            count = self.engine.delete_items(ids)
        except MutationRejected as e:
            return CommandResult(False, e.reason)
        self._prune_selection()
        if count == 0:
            return CommandResult(False, "Item not found")
        return CommandResult(True, f"Deleted {_plural(count, 'item')}", count=count)

    def move(self, item_ids: Iterable[str], target_folder_id: str) -> CommandResult:
        ids = list(item_ids)
        try:
            moved = self.engine.move_items(ids, target_folder_id)
        except MutationRejected as e:
            return CommandResult(False, e.reason)
        if not moved:
            return CommandResult(False, "Nothing to move")
        self.clear_selection()
        self.moving_ids = None
        target = self.tree.get_folder(target_folder_id)
        where = target.title if target else "Home"
        return CommandResult(True, f"Moved {_plural(moved, 'item')} to {where}", item=target, count=moved)

    def reorder(self, item_ids: Iterable[str], target_id: str, position: str) -> CommandResult:
        try:
            done = self.engine.reorder(list(item_ids), target_id, position)
        except MutationRejected as e:
            return CommandResult(False, e.reason)
        if not done:
            return CommandResult(False, "Cannot reorder here")
        self.clear_selection()
        return CommandResult(True, "Reordered")

    def drop(self, item_ids: Iterable[str], target_id: str, position: Optional[str] = None) -> CommandResult:
        """Drag-and-drop: a before/after drop on a same-type item reorders, anything else moves into a folder."""
        ids = list(item_ids)
        target = self.tree.get(target_id)
        dragged = [self.tree.get(i) for i in ids]
        dragged = [i for i in dragged if i is not None]
        if not dragged:
            return CommandResult(False, "Nothing to drop")

        if position in (BEFORE, AFTER) and target is not None:
            if all(i.type == target.type for i in dragged):
                return self.reorder(ids, target_id, position)

        if target_id == ROOT_ID or isinstance(target, Folder):
            return self.move(ids, target_id)
        return CommandResult(False, "Drop target is not a folder")

    # -- undo -----------------------------------------------------------

    def undo(self) -> CommandResult:
        if not self.undo_manager.undo():
            return CommandResult(False, "Nothing to undo")
        self._prune_selection()
        return CommandResult(True, "Undone")

    # -- selection ------------------------------------------------------

    def select(self, item_ids: Iterable[str]) -> int:
        for item_id in item_ids:
            if self.tree.contains(item_id) and not is_unsorted(item_id):
                self._selected[item_id] = True
        return len(self._selected)

    def toggle(self, item_id: str) -> bool:
        """Flip one item's selection; returns whether it is now selected."""
        if item_id in self._selected:
            del self._selected[item_id]
            return False
        if not self.tree.contains(item_id) or is_unsorted(item_id):
            return False
        self._selected[item_id] = True
        return True

    def clear_selection(self) -> None:
        self._selected.clear()

    def select_all(self) -> int:
        self._selected = {i.id: True for i in self.listing() if not is_unsorted(i)}
        return len(self._selected)

    def selected_ids(self) -> List[str]:
        """Selected ids in display order of the active folder, others after."""
        shown = [i.id for i in self.listing() if i.id in self._selected]
        rest = [i for i in self._selected if i not in shown]
        return shown + rest

    def _prune_selection(self) -> None:
        self._selected = {i: True for i in self._selected if self.tree.contains(i)}

    # -- move mode ------------------------------------------------------

    def enter_move_mode(self, item_ids: Optional[Iterable[str]] = None) -> CommandResult:
        ids = list(item_ids) if item_ids is not None else self.selected_ids()
        ids = [i for i in ids if self.tree.contains(i) and not is_unsorted(i)]
        if not ids:
            return CommandResult(False, "Nothing selected")
        self.moving_ids = ids
        return CommandResult(True, f"Moving {_plural(len(ids), 'item')}", count=len(ids))

    def exit_move_mode(self) -> None:
        self.moving_ids = None
        self.searcher.leave()

    @property
    def in_move_mode(self) -> bool:
        return self.moving_ids is not None

    # -- bulk -----------------------------------------------------------

    def create_folder_from_selection(self) -> CommandResult:
        links = [i for i in self.selected_ids() if isinstance(self.tree.get(i), Link)]
        try:
            folder = self.engine.create_folder_from_links(links, self.tree.active_folder_id)
        except MutationRejected as e:
            return CommandResult(False, e.reason)
        if folder is None:
            return CommandResult(False, "Folder not found")
        self.clear_selection()
        return CommandResult(True, f"Created {folder.title}", item=folder, count=len(links))

    def import_html(self, source, folder_id: Optional[str] = None) -> CommandResult:
        """Import a Netscape bookmark file (a path, or the HTML text itself)."""
        target = folder_id or self.tree.active_folder_id
        if target == UNSORTED_FOLDER_ID:
            return CommandResult(False, f"Cannot import into {UNSORTED_TITLE}")
        try:
            if isinstance(source, Path):
                nodes = parse_bookmarks_file(source)
            else:
                nodes = parse_bookmarks_html(source)
        except (OSError, ValueError) as e:
            log.error("Failed to parse bookmarks HTML: %s", e)
            return CommandResult(False, f"Import failed: {e}")
        count = self.engine.import_tree(nodes, target)
        if count == 0:
            return CommandResult(False, "No bookmarks found")
        return CommandResult(True, f"Imported {_plural(count, 'item')}", count=count)

    def export_html(self, out_path: Path, *, folder_id: Optional[str] = None, selection: bool = False) -> CommandResult:
        if selection:
            ids = self.selected_ids()
            text = export_selection_html(self.tree, ids)
            if text is None:
                return CommandResult(False, "Nothing selected")
            count = len(ids)
        else:
            target = folder_id or self.tree.active_folder_id
            if not self.tree.folder_exists(target):
                return CommandResult(False, "Folder not found")
            text = export_folder_html(self.tree, target)
            count = self.tree.link_count_under(target)
        try:
            write_html(out_path, text)
        except OSError as e:
            log.error("Could not write %s: %s", out_path, e)
            return CommandResult(False, f"Export failed: {e}")
        return CommandResult(True, f"Exported to {out_path}", count=count)

    # -- search ---------------------------------------------------------

    async def search(self, query: str, on_results: Optional[ResultsListener] = None) -> Optional[SearchResults]:
        return await self.searcher.search(query, on_results, moving_ids=self.moving_ids)

    def leave_search(self) -> None:
        self.searcher.leave()

    def remember_search(self, query: str) -> bool:
        return self.history.add(query)

    def forget_search(self, query: str) -> bool:
        return self.history.remove(query)
