from datetime import date
from pathlib import Path

import pytest

from speeddial.model import ROOT_ID, Folder, Link
from speeddial.parse_netscape import ImportedFolder, ImportedLink, count_nodes, parse_bookmarks_file, parse_bookmarks_html
from speeddial.tree import TreeStore
from speeddial.writer_netscape import export_filename, export_folder_html, export_selection_html

SAMPLE = """<!DOCTYPE NETSCAPE-Bookmark-file-1>
<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">
<TITLE>Bookmarks</TITLE>
<H1>Bookmarks</H1>
<DL><p>
    <DT><H3 ADD_DATE="1" PERSONAL_TOOLBAR_FOLDER="true">Bookmarks bar</H3>
    <DL><p>
        <DT><A HREF="https://news.example/" ADD_DATE="1700000000">News</A>
        <DT><H3>Work</H3>
        <DL><p>
            <DT><A HREF="https://jira.example/">  Jira
               board </A>
            <DT><A HREF="javascript:alert(1)">Bookmarklet</A>
        </DL><p>
    </DL><p>
    <DT><A HREF="https://loose.example/"></A>
</DL><p>
"""


def test_parse_builds_nested_nodes():
    nodes = parse_bookmarks_html(SAMPLE)
    assert len(nodes) == 2
    bar, loose = nodes
    assert isinstance(bar, ImportedFolder) and bar.toolbar
    assert bar.title == "Bookmarks bar"
    news, work = bar.children
    assert news == ImportedLink(title="News", url="https://news.example/", add_date=1700000000)
    assert isinstance(work, ImportedFolder) and not work.toolbar
    assert [c.title for c in work.children] == ["Jira board", "Bookmarklet"]
    assert loose == ImportedLink(title="https://loose.example/", url="https://loose.example/")
    assert count_nodes(nodes) == 6


def test_parse_file(tmp_path: Path):
    src = tmp_path / "bookmarks.html"
    src.write_text(SAMPLE, encoding="utf-8")
    assert count_nodes(parse_bookmarks_file(src)) == 6


def test_parse_without_list_raises():
    with pytest.raises(ValueError):
        parse_bookmarks_html("<html><body>no bookmarks</body></html>")


def _tree() -> TreeStore:
    return TreeStore(
        [
            Folder(id="work", title="Work & Play", order=0, depth=0),
            Folder(id="docs", title="Docs", parent_id="work", order=0, depth=1),
            Link(id="l1", title="Notes <draft>", url="https://ex.com/?a=1&b=2", parent_id="docs", order=0),
            Link(id="l2", title="Board", url="https://board.example", parent_id="work", order=0),
            Link(id="l3", title="Top", url="https://top.example", order=0),
        ]
    )


def test_export_root_marks_toolbar_folder():
    text = export_folder_html(_tree(), ROOT_ID, now=42)
    assert text.startswith("<!DOCTYPE NETSCAPE-Bookmark-file-1>")
    assert '<H3 ADD_DATE="42" LAST_MODIFIED="42" PERSONAL_TOOLBAR_FOLDER="true">Bookmarks Bar</H3>' in text
    assert "Work &amp; Play" in text
    assert 'HREF="https://ex.com/?a=1&amp;b=2"' in text
    assert "Notes &lt;draft&gt;" in text
    # Folders come before links at every level.
    assert text.index(">Docs<") < text.index(">Board<")
    assert text.index(">Work &amp; Play<") < text.index(">Top<")


def test_export_folder_uses_its_title_without_toolbar_flag():
    text = export_folder_html(_tree(), "work", now=1)
    assert ">Work &amp; Play</H3>" in text
    assert "PERSONAL_TOOLBAR_FOLDER" not in text
    assert ">Top<" not in text


def test_export_unknown_folder_raises():
    with pytest.raises(KeyError):
        export_folder_html(_tree(), "ghost")


def test_export_selection_puts_folders_first():
    text = export_selection_html(_tree(), ["l3", "docs"], now=1)
    assert ">Selected Bookmarks</H3>" in text
    assert text.index(">Docs<") < text.index(">Notes &lt;draft&gt;<") < text.index(">Top<")
    assert export_selection_html(_tree(), ["ghost"]) is None


def test_export_then_import_keeps_structure():
    nodes = parse_bookmarks_html(export_folder_html(_tree(), ROOT_ID))
    (bar,) = nodes
    assert bar.toolbar
    work, top = bar.children
    assert (work.title, top.title) == ("Work & Play", "Top")
    docs, board = work.children
    assert docs.children == [ImportedLink(title="Notes <draft>", url="https://ex.com/?a=1&b=2", add_date=docs.children[0].add_date)]
    assert board.url == "https://board.example"


def test_export_filename():
    d = date(2024, 3, 7)
    assert export_filename(_tree(), ROOT_ID, d) == "bookmarks_3_7_24.html"
    assert export_filename(_tree(), "work", d) == "bookmarks_work-play_3_7_24.html"
