from pathlib import Path

from speeddial.config import Settings, load_settings


def test_defaults(monkeypatch):
    for name in ("SPEEDDIAL_UNDO_MAX_DEPTH", "SPEEDDIAL_STORAGE_DEBOUNCE_MS", "SPEEDDIAL_SUGGEST"):
        monkeypatch.delenv(name, raising=False)
    s = Settings.from_env()
    assert s.undo_max_depth == 50
    assert s.storage_debounce_ms == 300
    assert s.suggest_enabled is True
    assert s.allowed_schemes == ("http", "https", "chrome")


def test_env_overrides(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("SPEEDDIAL_STATE_DIR", str(tmp_path))
    monkeypatch.setenv("SPEEDDIAL_UNDO_MAX_DEPTH", "5")
    monkeypatch.setenv("SPEEDDIAL_SUGGEST", "no")
    monkeypatch.setenv("SPEEDDIAL_ALLOWED_SCHEMES", "HTTPS, chrome")
    s = Settings.from_env()
    assert s.state_path == tmp_path
    assert s.undo_max_depth == 5
    assert s.suggest_enabled is False
    assert s.allowed_schemes == ("https", "chrome")


def test_bad_int_env_keeps_default(monkeypatch):
    monkeypatch.setenv("SPEEDDIAL_UNDO_MAX_DEPTH", "lots")
    assert Settings.from_env().undo_max_depth == 50


def test_default_state_dir_follows_xdg(monkeypatch, tmp_path: Path):
    monkeypatch.delenv("SPEEDDIAL_STATE_DIR", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
    assert Settings.from_env().state_path == tmp_path / "speeddial"


def test_yaml_file_overrides_env(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("SPEEDDIAL_MAX_SUGGESTIONS", "4")
    monkeypatch.setenv("SPEEDDIAL_UNDO_MAX_DEPTH", "9")
    cfg = tmp_path / "speeddial.yaml"
    cfg.write_text("max_suggestions: 6\nallowed_schemes: [HTTP, https]\nunknown_key: 1\n", encoding="utf-8")
    s = load_settings(str(cfg))
    assert s.max_suggestions == 6
    assert s.undo_max_depth == 9
    assert s.allowed_schemes == ("http", "https")
    assert not hasattr(s, "unknown_key")
