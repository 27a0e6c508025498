import asyncio

from speeddial.model import Folder, Link, make_unsorted_folder
from speeddial.search import (
    HISTORY_ROW,
    SUGGESTION_ROW,
    URL_ROW,
    SearchAggregator,
    build_suggestion_rows,
    merge_suggestions,
)
from speeddial.search_history import SearchHistory
from speeddial.suggest import VisitedPage
from speeddial.tree import TreeStore


def _tree() -> TreeStore:
    return TreeStore(
        [
            make_unsorted_folder(),
            Folder(id="py", title="Python", order=1, depth=0),
            Folder(id="pyold", title="Python 2", parent_id="py", order=0, depth=1),
            Link(id="docs", title="Docs", url="https://docs.python.org", parent_id="py", order=1),
            Link(id="pypi", title="Package index", url="https://pypi.org", parent_id="py", order=0),
            Link(id="rust", title="Rust", url="https://rust-lang.org", order=0),
        ]
    )


async def _until(condition, steps=100):
    for _ in range(steps):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


class FakeCompletions:
    """Completion source whose answers are released by the test."""

    def __init__(self):
        self.pending = {}
        self.tokens = {}

    async def fetch_completions(self, query, token=None):
        fut = asyncio.get_running_loop().create_future()
        self.pending[query] = fut
        self.tokens[query] = token
        return await fut


class StaticCompletions:
    def __init__(self, answers):
        self.answers = answers

    async def fetch_completions(self, query, token=None):
        return list(self.answers)


class StaticVisits:
    def __init__(self, pages):
        self.pages = pages

    async def fetch_visited(self, query):
        return list(self.pages)


class FailingVisits:
    async def fetch_visited(self, query):
        raise RuntimeError("history database locked")


def test_local_matches_on_title_and_url_sorted_by_order():
    agg = SearchAggregator(_tree())
    folders, links, pages = agg.local_matches("PY")
    assert [f.id for f in folders] == ["pyold", "py"]
    assert [link.id for link in links] == ["pypi", "docs"]
    assert pages == []


def test_directory_pages_are_matched_by_keyword():
    agg = SearchAggregator(_tree())
    _, _, pages = agg.local_matches("passwords")
    assert [p.url for p in pages] == ["chrome://password-manager/"]


def test_first_publish_is_synchronous_with_query_row():
    agg = SearchAggregator(_tree(), completions=FakeCompletions())
    seen = []
    initial = agg.begin("rust", seen.append)
    assert seen == [initial]
    assert not initial.complete
    assert [link.id for link in initial.links] == ["rust"]
    assert [(r.kind, r.text) for r in initial.rows] == [(SUGGESTION_ROW, "rust")]


def test_short_queries_skip_remote_lookups():
    completions = FakeCompletions()
    agg = SearchAggregator(_tree(), completions=completions)
    result = asyncio.run(agg.search("r"))
    assert result.complete
    assert completions.pending == {}


def test_stale_remote_results_never_published():
    completions = FakeCompletions()
    agg = SearchAggregator(_tree(), completions=completions)
    published = []
    agg.subscribe(published.append)

    async def scenario():
        first = asyncio.ensure_future(agg.search("pyth"))
        await _until(lambda: "pyth" in completions.pending)
        second = asyncio.ensure_future(agg.search("rust"))
        await _until(lambda: "rust" in completions.pending)

        # The first fetch answers late, after the second query started.
        completions.pending["pyth"].set_result(["python tutorial"])
        completions.pending["rust"].set_result(["rust book"])
        return await first, await second

    first, second = asyncio.run(scenario())
    assert first is None
    assert second.complete and second.query == "rust"
    texts = [row.text for r in published for row in r.rows]
    assert "python tutorial" not in texts
    assert "rust book" in texts
    assert completions.tokens["pyth"].cancelled


def test_leave_discards_in_flight_results():
    completions = FakeCompletions()
    agg = SearchAggregator(_tree(), completions=completions)
    published = []

    async def scenario():
        task = asyncio.ensure_future(agg.search("rust", published.append))
        await _until(lambda: "rust" in completions.pending)
        agg.leave()
        completions.pending["rust"].set_result(["rust book"])
        return await task

    assert asyncio.run(scenario()) is None
    assert len(published) == 1
    assert completions.tokens["rust"].cancelled


def test_merged_results_include_suggestions_history_and_unsaved_visits():
    history = SearchHistory()
    for q in ("rust async", "rust", "python"):
        history.add(q)
    visits = StaticVisits(
        [
            VisitedPage(title="Rust", url="https://RUST-lang.org"),
            VisitedPage(title="Rust blog", url="https://blog.rust-lang.org"),
        ]
    )
    agg = SearchAggregator(
        _tree(), completions=StaticCompletions(["rust", "rust async", "rust book"]), visits=visits, history=history
    )
    result = asyncio.run(agg.search("rust"))
    assert result.complete
    assert [(r.kind, r.text) for r in result.rows] == [
        (SUGGESTION_ROW, "rust"),
        (SUGGESTION_ROW, "rust book"),
        (HISTORY_ROW, "rust async"),
    ]
    assert [v.url for v in result.visited] == ["https://blog.rust-lang.org"]


def test_remote_failures_degrade_to_local_results():
    agg = SearchAggregator(_tree(), visits=FailingVisits())
    result = asyncio.run(agg.search("rust"))
    assert result.complete
    assert [link.id for link in result.links] == ["rust"]
    assert result.visited == []


def test_move_mode_returns_folders_only():
    tree = _tree()
    agg = SearchAggregator(tree, completions=FakeCompletions())
    result = asyncio.run(agg.search("o", moving_ids=["pyold"]))
    assert result.move_mode and result.complete
    assert [f.id for f in result.folders] == ["py"]
    assert result.links == [] and result.pages == [] and result.rows == []

    result = asyncio.run(agg.search("unsorted", moving_ids=["rust"]))
    assert result.folders == []


def test_no_matches_leaves_only_rows():
    agg = SearchAggregator(_tree())
    result = asyncio.run(agg.search("zzzz"))
    assert not result.has_matches
    assert [r.text for r in result.rows] == ["zzzz"]


def test_merge_suggestions_drops_query_and_caps_total():
    remote = ["Rust", "a", "b", "c", "d", "e", "f", "g", "h"]
    merged = merge_suggestions("rust", remote)
    assert merged == ["rust", "a", "b", "c", "d", "e", "f", "g"]


def test_url_query_gets_navigate_row_first():
    rows = build_suggestion_rows("example.com", ["example.com", "example.com login"])
    assert [(r.kind, r.text, r.url) for r in rows] == [
        (URL_ROW, "example.com", "https://example.com"),
        (SUGGESTION_ROW, "example.com login", None),
    ]


def test_first_url_like_suggestion_is_pulled_out():
    rows = build_suggestion_rows("github", ["github", "github login", "github.com", "gitlab.com"])
    assert [(r.kind, r.text) for r in rows] == [
        (URL_ROW, "https://github.com"),
        (SUGGESTION_ROW, "github"),
        (SUGGESTION_ROW, "github login"),
        (SUGGESTION_ROW, "gitlab.com"),
    ]


def test_remote_rows_are_capped():
    suggestions = ["q"] + [f"q{n}" for n in range(10)]
    rows = build_suggestion_rows("q", suggestions, max_remote=7)
    assert len([r for r in rows if r.kind == SUGGESTION_ROW]) == 8
