from __future__ import annotations

import html
import re
import time
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional

from .log import get_logger
from .model import ROOT_ID, Folder, Link
from .tree import TreeStore

log = get_logger(__name__)

ROOT_EXPORT_TITLE = "Bookmarks Bar"
SELECTION_EXPORT_TITLE = "Selected Bookmarks"
_INDENT = "    "
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _header() -> List[str]:
    return [
        "<!DOCTYPE NETSCAPE-Bookmark-file-1>",
        "<!-- This is an automatically generated file.",
        "     It will be read and overwritten.",
        "     DO NOT EDIT! -->",
        '<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">',
        "<TITLE>Bookmarks</TITLE>",
        "<H1>Bookmarks</H1>",
        "<DL><p>",
    ]


def _folder_open(title: str, ts: int, indent: str, toolbar: bool = False) -> List[str]:
    flag = ' PERSONAL_TOOLBAR_FOLDER="true"' if toolbar else ""
    return [
        f'{indent}<DT><H3 ADD_DATE="{ts}" LAST_MODIFIED="{ts}"{flag}>{html.escape(title)}</H3>',
        f"{indent}<DL><p>",
    ]


def _link_line(link: Link, ts: int, indent: str) -> str:
    return f'{indent}<DT><A HREF="{html.escape(link.url, quote=True)}" ADD_DATE="{ts}">{html.escape(link.title)}</A>'


def _write_folder(lines: List[str], tree: TreeStore, folder_id: str, level: int, ts: int) -> None:
    indent = _INDENT * level
    for item in tree.children_of(folder_id):
        if isinstance(item, Folder):
            lines.extend(_folder_open(item.title, ts, indent))
            _write_folder(lines, tree, item.id, level + 1, ts)
            lines.append(f"{indent}</DL><p>")
        else:
            lines.append(_link_line(item, ts, indent))


def export_folder_html(tree: TreeStore, folder_id: str = ROOT_ID, *, now: Optional[int] = None) -> str:
    """Netscape bookmark file for one folder; root exports as the toolbar folder."""
    ts = int(time.time()) if now is None else now
    in_root = folder_id == ROOT_ID
    folder = None if in_root else tree.get_folder(folder_id)
    if not in_root and folder is None:
        raise KeyError(f"Unknown folder: {folder_id}")

    lines = _header()
    lines.extend(_folder_open(ROOT_EXPORT_TITLE if in_root else folder.title, ts, _INDENT, toolbar=in_root))
    _write_folder(lines, tree, folder_id, 2, ts)
    lines.append(f"{_INDENT}</DL><p>")
    lines.append("</DL><p>")
    return "\n".join(lines) + "\n"


def export_selection_html(tree: TreeStore, item_ids: Iterable[str], *, now: Optional[int] = None) -> Optional[str]:
    """Netscape bookmark file for selected items, folders (with contents) before links.

    Returns None when none of the ids exist.
    """
    ts = int(time.time()) if now is None else now
    wanted = set(item_ids)
    selected = [i for i in tree.items if i.id in wanted]
    if not selected:
        return None

    indent = _INDENT * 2
    lines = _header()
    lines.extend(_folder_open(SELECTION_EXPORT_TITLE, ts, _INDENT))
    for folder in (i for i in selected if isinstance(i, Folder)):
        lines.extend(_folder_open(folder.title, ts, indent))
        _write_folder(lines, tree, folder.id, 3, ts)
        lines.append(f"{indent}</DL><p>")
    for link in (i for i in selected if isinstance(i, Link)):
        lines.append(_link_line(link, ts, indent))
    lines.append(f"{_INDENT}</DL><p>")
    lines.append("</DL><p>")
    return "\n".join(lines) + "\n"


def export_filename(tree: TreeStore, folder_id: str = ROOT_ID, today: Optional[date] = None) -> str:
    """`bookmarks[_<folder-slug>]_<m>_<d>_<yy>.html`"""
    d = today or date.today()
    slug = ""
    folder = tree.get_folder(folder_id) if folder_id != ROOT_ID else None
    if folder is not None:
        slug = "_" + _SLUG_RE.sub("-", folder.title.lower())
    return f"bookmarks{slug}_{d.month}_{d.day}_{d.strftime('%y')}.html"


def write_html(out_path: Path, text: str) -> None:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(text, encoding="utf-8")
    log.info("Wrote bookmarks HTML: %s", out_path)
