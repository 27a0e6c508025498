from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from bs4 import BeautifulSoup  # type: ignore

from .log import get_logger

log = get_logger(__name__)
_WS_RE = re.compile(r"\s+")


@dataclass
class ImportedLink:
    title: str
    url: str
    add_date: Optional[int] = None


@dataclass
class ImportedFolder:
    title: str
    children: List["ImportedNode"] = field(default_factory=list)
    toolbar: bool = False


ImportedNode = Union[ImportedFolder, ImportedLink]


def parse_bookmarks_file(path: Path) -> List[ImportedNode]:
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    return parse_bookmarks_html(text)


def parse_bookmarks_html(text: str) -> List[ImportedNode]:
    """Parse a Netscape bookmark file into a folder/link node tree."""
    soup = BeautifulSoup(text, "lxml")
    dl = soup.find("dl")
    if dl is None:
        raise ValueError("Could not find <DL> root in bookmarks file")
    return _walk_dl(dl)


def count_nodes(nodes: List[ImportedNode]) -> int:
    total = 0
    for node in nodes:
        total += 1
        if isinstance(node, ImportedFolder):
            total += count_nodes(node.children)
    return total


def _walk_dl(dl) -> List[ImportedNode]:
    out: List[ImportedNode] = []
    for dt in _entries(dl):
        h3 = dt.find("h3", recursive=False)
        if h3 is not None:
            name = _WS_RE.sub(" ", h3.get_text(strip=True))
            sub_dl = _folder_list(dt)
            if sub_dl is None:
                log.warning("Folder without DL: %s", name)
            out.append(
                ImportedFolder(
                    title=name,
                    children=_walk_dl(sub_dl) if sub_dl is not None else [],
                    toolbar=h3.has_attr("personal_toolbar_folder"),
                )
            )
            continue

        a = dt.find("a", recursive=False)
        if a is not None and a.get("href"):
            url = a.get("href").strip()
            title = _WS_RE.sub(" ", a.get_text(strip=True))
            out.append(ImportedLink(title=title or url, url=url, add_date=_maybe_int(a.get("add_date"))))
    return out


def _entries(dl) -> list:
    # Parsers may wrap entries in stray <p> or nest <dt> tags; an entry
    # belongs to the nearest enclosing list.
    return [dt for dt in dl.find_all("dt") if dt.find_parent("dl") is dl]


def _folder_list(dt):
    for sub in dt.find_all("dl"):
        if sub.find_parent("dt") is dt:
            return sub
    sib = dt.find_next_sibling()
    while sib is not None and sib.name == "p":
        sib = sib.find_next_sibling()
    if sib is not None and sib.name == "dl":
        return sib
    return None


def _maybe_int(v):
    if v is None:
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None
