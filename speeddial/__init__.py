"""speeddial: bookmark tree engine for a speed-dial start page."""

from pathlib import Path


def _read_version() -> str:
    p = Path(__file__).resolve().parents[1] / "VERSION"
    try:
        return p.read_text(encoding="utf-8").strip()
    except OSError:
        # Installed without the VERSION file next to the package.
        return "0.4.0"


__version__ = _read_version()
