from __future__ import annotations

from typing import Optional

import httpx
from bs4 import BeautifulSoup  # type: ignore

from .log import get_logger
from .url_norm import chrome_page_title

log = get_logger(__name__)

MAX_TITLE_BYTES = 256 * 1024


def fetch_page_title(
    url: str,
    *,
    timeout_s: float = 10,
    user_agent: str = "speeddial",
    max_bytes: int = MAX_TITLE_BYTES,
    transport: Optional[httpx.BaseTransport] = None,
) -> Optional[str]:
    """Best-effort `<title>` of a page; None when it cannot be had."""
    if url.lower().startswith("chrome://"):
        return chrome_page_title(url)

    timeout = httpx.Timeout(timeout_s, connect=timeout_s)
    headers = {"User-Agent": user_agent}
    try:
        with httpx.Client(follow_redirects=True, headers=headers, timeout=timeout, transport=transport) as client:
            r = client.get(url)
    except httpx.HTTPError as e:
        log.info("Could not fetch %s for its title: %s", url, e)
        return None
    if not (200 <= r.status_code < 400):
        log.debug("Title fetch for %s returned HTTP %d", url, r.status_code)
        return None
    return _extract_title(r.content[:max_bytes])


def _extract_title(content: bytes) -> Optional[str]:
    if not content:
        return None
    soup = BeautifulSoup(content, "lxml")
    if soup.title is None:
        return None
    title = " ".join(soup.title.get_text(" ", strip=True).split())
    return title or None
