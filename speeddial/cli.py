from __future__ import annotations

import argparse
import asyncio
import shlex
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from . import __version__
from .commands import CommandResult, SpeedDial
from .config import Settings, load_settings
from .fetch import fetch_page_title
from .log import LogConfig, get_logger, setup_logging
from .model import ROOT_ID, Folder, Link
from .mutations import AFTER, BEFORE
from .search import HISTORY_ROW, URL_ROW, SearchResults
from .url_norm import normalize_url
from .writer_netscape import export_filename

log = get_logger(__name__)

SHORT_ID_LEN = 8


def _build_parser(prog: str = "speeddial", *, top_level: bool = True) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog=prog, description="Speed dial bookmark tree: folders, links, search and undo.")
    if top_level:
        p.add_argument("-V", "--version", action="version", version=f"speeddial {__version__}")
        p.add_argument("--config", default=None, help="YAML config file (optional). Env vars override defaults.")
        p.add_argument("--state-dir", default=None, help="Where the collection is stored (overrides env/config).")
        p.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides env/config).")
        p.add_argument("--no-color", action="store_true", help="Disable colored output.")
    sub = p.add_subparsers(dest="cmd", required=True)
    if top_level:
        sub.add_parser("shell", help="Interactive session (supports undo).")

    ls = sub.add_parser("ls", help="List a folder (default: current folder).")
    ls.add_argument("folder", nargs="?", help="Folder id, id prefix or title.")

    sub.add_parser("tree", help="Show the whole folder tree.")

    add = sub.add_parser("add", help="Add a link.")
    add.add_argument("url")
    add.add_argument("--title", default="")
    add.add_argument("--folder", default=None, help="Destination folder (default: current folder).")
    add.add_argument("--unsorted", action="store_true", help="Save to the Unsorted folder, reusing an existing entry.")
    add.add_argument("--no-fetch", action="store_true", help="Do not fetch the page title.")

    mkdir = sub.add_parser("mkdir", help="Create a folder.")
    mkdir.add_argument("title")
    mkdir.add_argument("--parent", default=None)

    rename = sub.add_parser("rename", help="Rename a folder or link.")
    rename.add_argument("item")
    rename.add_argument("title")

    edit = sub.add_parser("edit", help="Edit a link's title and/or url.")
    edit.add_argument("item")
    edit.add_argument("--title", default="")
    edit.add_argument("--url", default="")

    rm = sub.add_parser("rm", help="Delete items (folders with their contents).")
    rm.add_argument("items", nargs="+")

    mv = sub.add_parser("mv", help="Move items into a folder.")
    mv.add_argument("items", nargs="+")
    mv.add_argument("--to", required=True, help="Target folder ('root' for the top level).")

    reorder = sub.add_parser("reorder", help="Place items before or after a sibling.")
    reorder.add_argument("items", nargs="+")
    where = reorder.add_mutually_exclusive_group(required=True)
    where.add_argument("--before", default=None)
    where.add_argument("--after", default=None)

    search = sub.add_parser("search", help="Search bookmarks, built-in pages, suggestions and history.")
    search.add_argument("query", nargs="+")
    search.add_argument("--local", action="store_true", help="Skip remote suggestions and visit history.")

    imp = sub.add_parser("import", help="Import a Netscape bookmarks HTML file.")
    imp.add_argument("file")
    imp.add_argument("--into", default=None, help="Target folder (default: current folder).")

    exp = sub.add_parser("export", help="Export a folder (default: current folder) as Netscape HTML.")
    exp.add_argument("out", nargs="?", default=None, help="Output path (default: dated file name).")
    exp.add_argument("--folder", default=None)
    exp.add_argument("--items", nargs="+", default=None, help="Export only these items.")
    return p


def main(argv: List[str] | None = None) -> int:
    p = _build_parser()
    args = p.parse_args(argv)
    cfg = load_settings(args.config)
    if args.state_dir:
        cfg.state_dir = args.state_dir
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_color:
        cfg.no_color = True
    if getattr(args, "local", False):
        cfg.suggest_enabled = False
        cfg.history_places_path = ""
    setup_logging(LogConfig(level=cfg.log_level, no_color=cfg.no_color))

    console = Console(no_color=cfg.no_color, highlight=False, soft_wrap=True)
    dial = SpeedDial.open(cfg)
    try:
        if args.cmd == "shell":
            return _shell(dial, cfg, console)
        return _dispatch(args, dial, cfg, console)
    finally:
        dial.close()


def _dispatch(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    handler = _COMMANDS.get(args.cmd)
    if handler is None:
        return 2
    return handler(args, dial, cfg, console)


# -- id resolution ------------------------------------------------------


def _resolve(dial: SpeedDial, ref: Optional[str], *, folder: bool = False) -> Optional[str]:
    """Exact id, unique id prefix, or unique case-insensitive title."""
    if ref is None:
        return None
    if ref in ("root", "/", "~"):
        return ROOT_ID
    items = [i for i in dial.tree.items if not folder or isinstance(i, Folder)]
    for item in items:
        if item.id == ref:
            return item.id
    for matches in (
        [i for i in items if i.id.startswith(ref)],
        [i for i in items if i.title.lower() == ref.lower()],
    ):
        if len(matches) == 1:
            return matches[0].id
        if len(matches) > 1:
            log.error("%r is ambiguous (%d matches)", ref, len(matches))
            return None
    log.error("No %s matches %r", "folder" if folder else "item", ref)
    return None


def _resolve_many(dial: SpeedDial, refs: List[str]) -> Optional[List[str]]:
    out = []
    for ref in refs:
        item_id = _resolve(dial, ref)
        if item_id is None:
            return None
        out.append(item_id)
    return out


def _report(result: CommandResult, console: Console) -> int:
    if not result.ok:
        log.error("%s", result.message)
        return 2
    console.print(escape(result.message))
    return 0


# -- commands -----------------------------------------------------------


def _cmd_ls(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    folder_id = dial.active_folder_id
    if args.folder:
        folder_id = _resolve(dial, args.folder, folder=True)
        if folder_id is None:
            return 2
    console.print(escape(" / ".join(label for _, label in _crumbs(dial, folder_id))))
    for item in dial.tree.children_of(folder_id):
        short = item.id[:SHORT_ID_LEN]
        if isinstance(item, Folder):
            count = dial.tree.link_count_under(item.id)
            console.print(f"{escape(short)}  [bold]{escape(item.title)}/[/bold]  ({count})")
        else:
            console.print(f"{escape(short)}  {escape(item.title)}  [dim]{escape(item.url)}[/dim]")
    return 0


def _crumbs(dial: SpeedDial, folder_id: str):
    saved = dial.tree.active_folder_id
    dial.tree.active_folder_id = folder_id
    try:
        return dial.breadcrumb()
    finally:
        dial.tree.active_folder_id = saved


def _cmd_tree(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    root = Tree(escape(dial.breadcrumb()[0][1]))
    _add_branch(dial, root, ROOT_ID)
    console.print(root)
    return 0


def _add_branch(dial: SpeedDial, branch: Tree, folder_id: str) -> None:
    for item in dial.tree.children_of(folder_id):
        if isinstance(item, Folder):
            sub = branch.add(f"[bold]{escape(item.title)}/[/bold] [dim]{escape(item.id[:SHORT_ID_LEN])}[/dim]")
            _add_branch(dial, sub, item.id)
        else:
            branch.add(f"{escape(item.title)} [dim]{escape(item.url)}[/dim]")


def _cmd_add(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    folder_id = None
    if args.folder:
        folder_id = _resolve(dial, args.folder, folder=True)
        if folder_id is None:
            return 2

    title = args.title
    if not title and cfg.fetch_titles and not args.no_fetch:
        url = normalize_url(args.url, default_scheme=cfg.default_scheme, allowed_schemes=cfg.allowed_schemes)
        title = fetch_page_title(url, timeout_s=cfg.fetch_timeout_s, user_agent=cfg.fetch_user_agent) or ""

    if args.unsorted:
        result = dial.save_link(args.url, title, folder_id)
    else:
        result = dial.create_link(args.url, title, folder_id)
    return _report(result, console)


def _cmd_mkdir(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    parent_id = None
    if args.parent:
        parent_id = _resolve(dial, args.parent, folder=True)
        if parent_id is None:
            return 2
    return _report(dial.create_folder(args.title, parent_id), console)


def _cmd_rename(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    item_id = _resolve(dial, args.item)
    if item_id is None:
        return 2
    return _report(dial.rename(item_id, args.title), console)


def _cmd_edit(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    item_id = _resolve(dial, args.item)
    if item_id is None:
        return 2
    link = dial.tree.get(item_id)
    if not isinstance(link, Link):
        log.error("Only links can be edited; use rename for folders")
        return 2
    return _report(dial.edit_link(item_id, args.title or link.title, args.url or link.url), console)


def _cmd_rm(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    ids = _resolve_many(dial, args.items)
    if ids is None:
        return 2
    return _report(dial.delete(ids), console)


def _cmd_mv(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    ids = _resolve_many(dial, args.items)
    target = _resolve(dial, args.to, folder=True)
    if ids is None or target is None:
        return 2
    return _report(dial.move(ids, target), console)


def _cmd_reorder(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    ids = _resolve_many(dial, args.items)
    position = BEFORE if args.before else AFTER
    target = _resolve(dial, args.before or args.after)
    if ids is None or target is None:
        return 2
    return _report(dial.reorder(ids, target, position), console)


def _cmd_search(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    query = " ".join(args.query)
    results = asyncio.run(dial.search(query))
    dial.leave_search()
    if results is None:
        return 0
    _print_results(results, console)
    return 0


def _print_results(results: SearchResults, console: Console) -> None:
    for folder in results.folders:
        console.print(f"{escape(folder.id[:SHORT_ID_LEN])}  [bold]{escape(folder.title)}/[/bold]")
    for link in results.links:
        console.print(f"{escape(link.id[:SHORT_ID_LEN])}  {escape(link.title)}  [dim]{escape(link.url)}[/dim]")
    for page in results.pages:
        console.print(f"page      {escape(page.title)}  [dim]{escape(page.url)}[/dim]")
    if results.move_mode:
        return
    for row in results.rows:
        if row.kind == URL_ROW:
            console.print(f"go to     {escape(row.url or row.text)}")
        elif row.kind == HISTORY_ROW:
            console.print(f"recent    {escape(row.text)}")
        else:
            console.print(f"search    {escape(row.text)}")
    for visit in results.visited:
        console.print(f"visited   {escape(visit.title)}  [dim]{escape(visit.url)}[/dim]")


def _cmd_import(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    src = Path(args.file)
    if not src.exists():
        log.error("Input file not found: %s", src)
        return 2
    folder_id = None
    if args.into:
        folder_id = _resolve(dial, args.into, folder=True)
        if folder_id is None:
            return 2
    return _report(dial.import_html(src, folder_id), console)


def _cmd_export(args, dial: SpeedDial, cfg: Settings, console: Console) -> int:
    folder_id = dial.active_folder_id
    if args.folder:
        folder_id = _resolve(dial, args.folder, folder=True)
        if folder_id is None:
            return 2
    out = Path(args.out) if args.out else Path(export_filename(dial.tree, folder_id))
    if args.items:
        ids = _resolve_many(dial, args.items)
        if ids is None:
            return 2
        dial.clear_selection()
        dial.select(ids)
        result = dial.export_html(out, selection=True)
        dial.clear_selection()
        return _report(result, console)
    return _report(dial.export_html(out, folder_id=folder_id), console)


_COMMANDS = {
    "ls": _cmd_ls,
    "tree": _cmd_tree,
    "add": _cmd_add,
    "mkdir": _cmd_mkdir,
    "rename": _cmd_rename,
    "edit": _cmd_edit,
    "rm": _cmd_rm,
    "mv": _cmd_mv,
    "reorder": _cmd_reorder,
    "search": _cmd_search,
    "import": _cmd_import,
    "export": _cmd_export,
}


# -- interactive shell ----------------------------------------------------

SHELL_HELP = "Commands: ls tree add mkdir rename edit rm mv reorder search import export | cd pwd undo help quit"


def _shell(dial: SpeedDial, cfg: Settings, console: Console, read_line=input) -> int:
    """Interactive session; unlike one-shot commands, undo works here."""
    parser = _build_parser(prog="", top_level=False)
    console.print(escape(SHELL_HELP))
    while True:
        try:
            line = read_line(f"{_prompt(dial)}> ")
        except EOFError:
            break
        try:
            words = shlex.split(line)
        except ValueError as e:
            log.error("%s", e)
            continue
        if not words:
            continue
        cmd = words[0]
        if cmd in ("quit", "exit"):
            break
        if cmd == "help":
            console.print(escape(SHELL_HELP))
        elif cmd == "undo":
            _report(dial.undo(), console)
        elif cmd == "pwd":
            console.print(escape(" / ".join(label for _, label in dial.breadcrumb())))
        elif cmd == "cd":
            target = _resolve(dial, words[1] if len(words) > 1 else "root", folder=True)
            if target is not None:
                _report(dial.navigate(target), console)
        else:
            try:
                args = parser.parse_args(words)
            except SystemExit:
                continue
            _dispatch(args, dial, cfg, console)
        if dial.storage is not None:
            dial.storage.flush()
    return 0


def _prompt(dial: SpeedDial) -> str:
    path = dial.tree.path_to(dial.active_folder_id)
    return "/" + "/".join(f.title for f in path)
