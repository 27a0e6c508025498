from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from typing import Callable, Collection, List, Optional, Sequence, Tuple

from .directory import BUILTIN_PAGES, DirectoryEntry, search_directory
from .log import get_logger
from .model import UNSORTED_FOLDER_ID, Folder, Link
from .suggest import CancellationToken, VisitedPage
from .tree import TreeStore
from .url_norm import is_url, normalize_url

log = get_logger(__name__)

# Remote lookups only start once the user typed a couple of characters.
MIN_REMOTE_QUERY_LENGTH = 2
MAX_SUGGESTIONS = 8
MAX_REMOTE_SUGGESTIONS = 7

URL_ROW = "url"
SUGGESTION_ROW = "suggestion"
HISTORY_ROW = "history"


@dataclass
class SuggestionRow:
    kind: str
    text: str
    url: Optional[str] = None


@dataclass
class SearchResults:
    query: str
    generation: int
    folders: List[Folder] = field(default_factory=list)
    links: List[Link] = field(default_factory=list)
    pages: List[DirectoryEntry] = field(default_factory=list)
    rows: List[SuggestionRow] = field(default_factory=list)
    visited: List[VisitedPage] = field(default_factory=list)
    complete: bool = False
    move_mode: bool = False

    @property
    def has_matches(self) -> bool:
        return bool(self.folders or self.links or self.pages)


ResultsListener = Callable[[SearchResults], None]


def merge_suggestions(query: str, remote: Sequence[str], max_total: int = MAX_SUGGESTIONS) -> List[str]:
    """The query first, then remote completions that differ from it."""
    q = (query or "").strip()
    out = [q]
    for s in remote:
        if len(out) >= max_total:
            break
        if s.lower() != q.lower():
            out.append(s)
    return out


def build_suggestion_rows(
    query: str,
    suggestions: Sequence[str],
    history_matches: Sequence[str] = (),
    *,
    max_remote: int = MAX_REMOTE_SUGGESTIONS,
) -> List[SuggestionRow]:
    """Turn merged suggestions into the rows shown under (or instead of) matches.

    `suggestions[0]` is the query itself. Navigate rows come first: one for a
    URL-like query, otherwise one for the first URL-like remote suggestion.
    Remote rows duplicating a history match, the URL query or the pulled-out
    URL suggestion are dropped.
    """
    q = (query or "").strip()
    query_is_url = is_url(q)
    history_keys = {h.lower() for h in history_matches}

    url_suggestion: Optional[str] = None
    filtered = list(suggestions)
    if not query_is_url:
        candidate = next((s for s in filtered[1:] if is_url(s)), None)
        if candidate is not None:
            url_suggestion = normalize_url(candidate)
            filtered.remove(candidate)

    rows: List[SuggestionRow] = []
    if query_is_url:
        rows.append(SuggestionRow(URL_ROW, q, normalize_url(q)))
    if url_suggestion:
        rows.append(SuggestionRow(URL_ROW, url_suggestion, url_suggestion))

    user_query = filtered[0] if filtered else None
    if user_query and not query_is_url:
        rows.append(SuggestionRow(SUGGESTION_ROW, user_query))

    remote_count = 0
    for s in filtered[0 if query_is_url else 1:]:
        if remote_count >= max_remote:
            break
        key = s.lower()
        if key in history_keys:
            continue
        if query_is_url and key == q.lower():
            continue
        if url_suggestion and key == url_suggestion.lower():
            continue
        rows.append(SuggestionRow(SUGGESTION_ROW, s))
        remote_count += 1

    for h in history_matches:
        if user_query is None or h.lower() != user_query.lower():
            rows.append(SuggestionRow(HISTORY_ROW, h))
    return rows


class SearchAggregator:
    """Merges instant local matches with slow remote lookups, race-safely.

    Every `begin()` bumps a generation counter; a remote response is only
    merged when its generation is still the current one and search is still
    active. Only one completion fetch is in flight at a time: starting a new
    one cancels the previous token.

    `completions` must provide `async fetch_completions(query, token)` and
    `visits` must provide `async fetch_visited(query)`; either may be None.
    """

    def __init__(
        self,
        tree: TreeStore,
        *,
        completions=None,
        visits=None,
        history=None,
        directory: Sequence[DirectoryEntry] = BUILTIN_PAGES,
        min_remote_query_length: int = MIN_REMOTE_QUERY_LENGTH,
        max_suggestions: int = MAX_SUGGESTIONS,
        max_remote_suggestions: int = MAX_REMOTE_SUGGESTIONS,
        history_matches: int = 5,
    ):
        self.tree = tree
        self.completions = completions
        self.visits = visits
        self.history = history
        self.directory = directory
        self.min_remote_query_length = min_remote_query_length
        self.max_suggestions = max_suggestions
        self.max_remote_suggestions = max_remote_suggestions
        self.history_matches = history_matches

        self.generation = 0
        self.active = False
        self._inflight: Optional[CancellationToken] = None
        self._listeners: List[ResultsListener] = []

    # -- listeners ------------------------------------------------------

    def subscribe(self, listener: ResultsListener) -> None:
        self._listeners.append(listener)

    def _publish(self, results: SearchResults, on_results: Optional[ResultsListener] = None) -> None:
        listeners = list(self._listeners)
        if on_results is not None:
            listeners.append(on_results)
        for listener in listeners:
            try:
                listener(results)
            except Exception as e:
                log.warning("Search results listener failed: %s", e)

    # -- state ----------------------------------------------------------

    def is_current(self, generation: int) -> bool:
        return self.active and generation == self.generation

    def leave(self) -> None:
        """Exit search; any response still in flight becomes stale."""
        self.generation += 1
        self.active = False
        if self._inflight is not None:
            self._inflight.cancel()
            self._inflight = None

    # -- local ----------------------------------------------------------

    def local_matches(
        self, query: str, moving_ids: Optional[Collection[str]] = None
    ) -> Tuple[List[Folder], List[Link], List[DirectoryEntry]]:
        q = (query or "").strip().lower()
        if not q:
            return [], [], []

        folders: List[Folder] = []
        links: List[Link] = []
        for item in self.tree.items:
            title_match = q in item.title.lower()
            url_match = isinstance(item, Link) and q in item.url.lower()
            if not (title_match or url_match):
                continue
            if isinstance(item, Folder):
                if moving_ids is not None and (item.id == UNSORTED_FOLDER_ID or item.id in moving_ids):
                    continue
                folders.append(item)
            elif moving_ids is None:
                links.append(item)

        folders.sort(key=lambda f: f.order)
        links.sort(key=lambda link: link.order)
        pages = [] if moving_ids is not None else search_directory(q, self.directory)
        return folders, links, pages

    # -- search ---------------------------------------------------------

    def begin(
        self,
        query: str,
        on_results: Optional[ResultsListener] = None,
        moving_ids: Optional[Collection[str]] = None,
    ) -> SearchResults:
        """Start a search and publish the local results synchronously."""
        self.generation += 1
        self.active = True
        q = (query or "").strip()
        folders, links, pages = self.local_matches(query, moving_ids)

        if moving_ids is not None:
            results = SearchResults(
                query=q, generation=self.generation, folders=folders, complete=True, move_mode=True
            )
            self._publish(results, on_results)
            return results

        history = self._history_matches(q)
        results = SearchResults(
            query=q,
            generation=self.generation,
            folders=folders,
            links=links,
            pages=pages,
            rows=build_suggestion_rows(q, [q] if q else [], history, max_remote=self.max_remote_suggestions),
            complete=not self._wants_remote(q),
        )
        self._publish(results, on_results)
        return results

    async def complete(
        self, initial: SearchResults, on_results: Optional[ResultsListener] = None
    ) -> Optional[SearchResults]:
        """Await remote lookups for `initial` and publish the merged results.

        Returns None when the search was superseded meanwhile.
        """
        if initial.complete:
            return initial if self.is_current(initial.generation) else None

        q = initial.query
        generation = initial.generation
        completions, visited = await asyncio.gather(self._fetch_completions(q), self._fetch_visited(q))

        if not self.is_current(generation):
            log.debug("Discarding stale remote results for %r (generation %d < %d)", q, generation, self.generation)
            return None

        folders, links, pages = self.local_matches(q)
        history = self._history_matches(q)
        suggestions = merge_suggestions(q, completions, self.max_suggestions)
        results = replace(
            initial,
            folders=folders,
            links=links,
            pages=pages,
            rows=build_suggestion_rows(q, suggestions, history, max_remote=self.max_remote_suggestions),
            visited=visited,
            complete=True,
        )
        self._publish(results, on_results)
        return results

    async def search(
        self,
        query: str,
        on_results: Optional[ResultsListener] = None,
        moving_ids: Optional[Collection[str]] = None,
    ) -> Optional[SearchResults]:
        """Publish local results now, then merged remote results if still current.

        Returns the last published results, or None when superseded.
        """
        initial = self.begin(query, on_results, moving_ids)
        return await self.complete(initial, on_results)

    # -- remote ---------------------------------------------------------

    def _wants_remote(self, q: str) -> bool:
        if len(q) < self.min_remote_query_length:
            return False
        return self.completions is not None or self.visits is not None

    def _history_matches(self, q: str) -> List[str]:
        if self.history is None:
            return []
        return self.history.matching(q, limit=self.history_matches)

    async def _fetch_completions(self, q: str) -> List[str]:
        if self.completions is None:
            return []
        if self._inflight is not None:
            self._inflight.cancel()
        token = CancellationToken()
        self._inflight = token
        try:
            found = await self.completions.fetch_completions(q, token)
        except Exception as e:
            log.warning("Completion lookup failed for %r: %s", q, e)
            return []
        finally:
            if self._inflight is token:
                self._inflight = None
        return [] if token.cancelled else list(found or [])

    async def _fetch_visited(self, q: str) -> List[VisitedPage]:
        if self.visits is None:
            return []
        try:
            found = await self.visits.fetch_visited(q)
        except Exception as e:
            log.warning("Visit history lookup failed for %r: %s", q, e)
            return []
        saved = self.tree.saved_urls()
        return [v for v in found or [] if v.url and v.url.lower() not in saved]
