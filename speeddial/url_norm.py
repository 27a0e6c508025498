from __future__ import annotations

import re
from typing import Iterable
from urllib.parse import urlparse

DEFAULT_SCHEME = "https"
ALLOWED_SCHEMES = ("http", "https", "chrome")

_SCHEME_RE = re.compile(r"^(https?|chrome)://", re.IGNORECASE)
_DOMAIN_LIKE_RE = re.compile(
    r"^(?:(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z]{2,}|localhost|\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})"
    r"(?::\d+)?(?:/\S*)?$",
    re.IGNORECASE,
)


def is_url(text: str) -> bool:
    """True when `text` should be offered as a "navigate directly" target.

    Either it carries a scheme we know, or it looks like a host name
    (dotted domain, localhost or IPv4) with an optional port and path.
    """
    s = (text or "").strip()
    if not s:
        return False
    if _SCHEME_RE.match(s):
        return True
    return _DOMAIN_LIKE_RE.match(s) is not None


def has_allowed_scheme(url: str, allowed_schemes: Iterable[str] = ALLOWED_SCHEMES) -> bool:
    s = (url or "").strip().lower()
    return any(s.startswith(f"{scheme.lower()}://") for scheme in allowed_schemes)


def normalize_url(
    url: str,
    *,
    default_scheme: str = DEFAULT_SCHEME,
    allowed_schemes: Iterable[str] = ALLOWED_SCHEMES,
) -> str:
    s = (url or "").strip()
    if not s:
        return s
    if has_allowed_scheme(s, allowed_schemes):
        return s
    return f"{default_scheme}://{s}"


def title_from_url(url: str) -> str:
    s = (url or "").strip()
    if s.lower().startswith("chrome://"):
        return _chrome_page_name(s) or "Chrome"
    if not _SCHEME_RE.match(s):
        s = f"{DEFAULT_SCHEME}://{s}"
    try:
        host = urlparse(s).hostname or ""
    except ValueError:
        return url
    if host.startswith("www."):
        host = host[4:]
    return host or url


def chrome_page_title(url: str) -> str:
    return "Chrome " + (_chrome_page_name(url) or "Page")


def _chrome_page_name(url: str) -> str:
    path = url.strip()[len("chrome://"):].rstrip("/")
    return path[:1].upper() + path[1:]
