from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import yaml


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_tuple(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return tuple(x.strip().lower() for x in v.split(",") if x.strip())


def _default_state_dir() -> str:
    base = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return str(Path(base) / "speeddial")


@dataclass
class Settings:
    # Storage
    state_dir: str = field(default_factory=_default_state_dir)
    storage_debounce_ms: int = 300
    undo_max_depth: int = 50

    # Links
    default_scheme: str = "https"
    allowed_schemes: Tuple[str, ...] = ("http", "https", "chrome")
    fetch_titles: bool = True
    fetch_timeout_s: int = 10
    fetch_user_agent: str = "speeddial/0.4 (+https://example.invalid)"

    # Search
    search_history_max: int = 50
    search_history_matches: int = 5
    min_remote_query_length: int = 2
    max_suggestions: int = 8
    max_remote_suggestions: int = 7
    suggest_enabled: bool = True
    suggest_url: str = "https://suggestqueries.google.com/complete/search"
    suggest_timeout_s: int = 5
    history_places_path: str = ""  # Firefox profile dir or places.sqlite; empty disables
    history_max_results: int = 8

    # Logging / UX
    log_level: str = "INFO"
    no_color: bool = False

    @staticmethod
    def from_env() -> "Settings":
        s = Settings()
        s.state_dir = _env_str("SPEEDDIAL_STATE_DIR", s.state_dir)
        s.storage_debounce_ms = _env_int("SPEEDDIAL_STORAGE_DEBOUNCE_MS", s.storage_debounce_ms)
        s.undo_max_depth = _env_int("SPEEDDIAL_UNDO_MAX_DEPTH", s.undo_max_depth)

        s.default_scheme = _env_str("SPEEDDIAL_DEFAULT_SCHEME", s.default_scheme)
        s.allowed_schemes = _env_tuple("SPEEDDIAL_ALLOWED_SCHEMES", s.allowed_schemes)
        s.fetch_titles = _env_bool("SPEEDDIAL_FETCH_TITLES", s.fetch_titles)
        s.fetch_timeout_s = _env_int("SPEEDDIAL_FETCH_TIMEOUT_S", s.fetch_timeout_s)
        s.fetch_user_agent = _env_str("SPEEDDIAL_FETCH_UA", s.fetch_user_agent)

        s.search_history_max = _env_int("SPEEDDIAL_SEARCH_HISTORY_MAX", s.search_history_max)
        s.search_history_matches = _env_int("SPEEDDIAL_SEARCH_HISTORY_MATCHES", s.search_history_matches)
        s.min_remote_query_length = _env_int("SPEEDDIAL_MIN_REMOTE_QUERY_LENGTH", s.min_remote_query_length)
        s.max_suggestions = _env_int("SPEEDDIAL_MAX_SUGGESTIONS", s.max_suggestions)
        s.max_remote_suggestions = _env_int("SPEEDDIAL_MAX_REMOTE_SUGGESTIONS", s.max_remote_suggestions)
        s.suggest_enabled = _env_bool("SPEEDDIAL_SUGGEST", s.suggest_enabled)
        s.suggest_url = _env_str("SPEEDDIAL_SUGGEST_URL", s.suggest_url)
        s.suggest_timeout_s = _env_int("SPEEDDIAL_SUGGEST_TIMEOUT_S", s.suggest_timeout_s)
        s.history_places_path = _env_str("SPEEDDIAL_HISTORY_PLACES", s.history_places_path)
        s.history_max_results = _env_int("SPEEDDIAL_HISTORY_MAX_RESULTS", s.history_max_results)

        s.log_level = _env_str("SPEEDDIAL_LOG_LEVEL", s.log_level)
        s.no_color = _env_bool("SPEEDDIAL_NO_COLOR", s.no_color)
        return s

    @staticmethod
    def from_file(path: Path) -> "Settings":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        s = Settings.from_env()
        for k, v in data.items():
            if not hasattr(s, k):
                continue
            if k == "allowed_schemes" and isinstance(v, (list, tuple)):
                v = tuple(str(x).strip().lower() for x in v)
            setattr(s, k, v)
        return s

    @property
    def state_path(self) -> Path:
        return Path(self.state_dir).expanduser()


def load_settings(config_path: Optional[str]) -> Settings:
    if config_path:
        return Settings.from_file(Path(config_path))
    return Settings.from_env()
