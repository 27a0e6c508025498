from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

import httpx

from .log import get_logger

log = get_logger(__name__)

GOOGLE_SUGGEST_URL = "https://suggestqueries.google.com/complete/search"


class CancellationToken:
    """Cooperative cancel flag for one in-flight fetch.

    Cancelling does not abort the transport; whoever holds the token checks
    it and drops the response.
    """

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class VisitedPage:
    title: str
    url: str
    visit_count: int = 0
    last_visit_time: Optional[int] = None  # unix seconds


class GoogleSuggest:
    """Search completions from the Chrome suggest endpoint."""

    def __init__(
        self,
        *,
        url: str = GOOGLE_SUGGEST_URL,
        timeout_s: float = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout_s = timeout_s
        self.transport = transport

    async def fetch_completions(self, query: str, token: Optional[CancellationToken] = None) -> List[str]:
        q = (query or "").strip()
        if not q or (token is not None and token.cancelled):
            return []
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                resp = await client.get(self.url, params={"client": "chrome", "q": q})
                if resp.status_code != 200:
                    log.debug("Suggest endpoint returned HTTP %d for %r", resp.status_code, q)
                    return []
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            log.info("Could not fetch suggestions for %r: %s", q, e)
            return []

        if token is not None and token.cancelled:
            return []
        if not isinstance(data, list) or len(data) < 2 or not isinstance(data[1], list):
            return []
        return [str(s) for s in data[1] if isinstance(s, str) and s.strip()]


class PlacesHistory:
    """Visit history read from a Firefox profile's places.sqlite."""

    def __init__(self, profile_or_db_path: Path, *, max_results: int = 8):
        self.profile_or_db_path = Path(profile_or_db_path)
        self.max_results = max_results

    async def fetch_visited(self, query: str) -> List[VisitedPage]:
        q = (query or "").strip()
        if not q:
            return []
        try:
            return await asyncio.to_thread(self._query, q)
        except (sqlite3.Error, FileNotFoundError) as e:
            log.warning("Searching visit history in %s failed: %s", self.profile_or_db_path, e)
            return []

    def _query(self, q: str) -> List[VisitedPage]:
        db_path = _resolve_places_path(self.profile_or_db_path)
        uri = f"file:{db_path.as_posix()}?mode=ro"
        conn = sqlite3.connect(uri, uri=True)
        conn.row_factory = sqlite3.Row
        try:
            like = f"%{_escape_like(q)}%"
            rows = conn.execute(
                """
                SELECT url, title, visit_count, last_visit_date
                FROM moz_places
                WHERE hidden = 0
                  AND url NOT LIKE 'place:%'
                  AND (url LIKE ? ESCAPE '\\' OR title LIKE ? ESCAPE '\\')
                ORDER BY last_visit_date IS NULL, last_visit_date DESC
                LIMIT ?
                """,
                (like, like, int(self.max_results)),
            ).fetchall()
        finally:
            conn.close()

        out: List[VisitedPage] = []
        for r in rows:
            url = (r["url"] or "").strip()
            if not url:
                continue
            out.append(
                VisitedPage(
                    title=(r["title"] or "").strip() or (urlparse(url).hostname or url),
                    url=url,
                    visit_count=int(r["visit_count"] or 0),
                    last_visit_time=_moz_time_to_unix_s(r["last_visit_date"]),
                )
            )
        return out


def _resolve_places_path(profile_or_db_path: Path) -> Path:
    p = Path(profile_or_db_path)
    if p.is_file():
        return p
    db = p / "places.sqlite"
    if db.exists():
        return db
    raise FileNotFoundError(f"places.sqlite not found in {p}")


def _escape_like(s: str) -> str:
    return s.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _moz_time_to_unix_s(value) -> Optional[int]:
    if value is None:
        return None
    try:
        iv = int(value)
    except (TypeError, ValueError):
        return None
    # Firefox PRTime is microseconds since Unix epoch.
    if iv > 10_000_000_000:
        return iv // 1_000_000
    return iv
