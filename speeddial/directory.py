from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence


@dataclass(frozen=True)
class DirectoryEntry:
    title: str
    url: str
    keywords: Sequence[str] = field(default_factory=tuple)

    @property
    def id(self) -> str:
        return f"chrome-page-{self.url}"


BUILTIN_PAGES: List[DirectoryEntry] = [
    DirectoryEntry("Extensions", "chrome://extensions/", ("extensions", "addons", "plugins", "manage extensions")),
    DirectoryEntry("Settings", "chrome://settings/", ("settings", "preferences", "options", "config", "configuration")),
    DirectoryEntry("History", "chrome://history/", ("history", "browsing history", "visited pages")),
    DirectoryEntry("Downloads", "chrome://downloads/", ("downloads", "downloaded files")),
    DirectoryEntry("Bookmarks", "chrome://bookmarks/", ("bookmarks", "favorites", "saved pages")),
    DirectoryEntry(
        "Password Manager",
        "chrome://password-manager/",
        ("passwords", "password manager", "saved passwords", "credentials", "login"),
    ),
    DirectoryEntry("Flags", "chrome://flags/", ("flags", "experiments", "experimental features", "chrome flags")),
    DirectoryEntry("Apps", "chrome://apps/", ("apps", "applications", "chrome apps")),
    DirectoryEntry("About Chrome", "chrome://settings/help", ("about", "version", "chrome version", "update", "about chrome")),
    DirectoryEntry(
        "Privacy & Security",
        "chrome://settings/privacy",
        ("privacy", "security", "safe browsing", "cookies", "clear data"),
    ),
    DirectoryEntry("Appearance", "chrome://settings/appearance", ("appearance", "theme", "dark mode", "fonts", "customize")),
    DirectoryEntry("Search Engine", "chrome://settings/search", ("search engine", "default search", "google", "bing")),
    DirectoryEntry("On Startup", "chrome://settings/onStartup", ("startup", "on startup", "start page", "homepage")),
    DirectoryEntry("Autofill", "chrome://settings/autofill", ("autofill", "addresses", "payment methods", "credit cards")),
    DirectoryEntry("Languages", "chrome://settings/languages", ("languages", "translate", "spell check")),
    DirectoryEntry("Accessibility", "chrome://settings/accessibility", ("accessibility", "a11y", "screen reader")),
    DirectoryEntry("System", "chrome://settings/system", ("system", "proxy", "hardware acceleration")),
    DirectoryEntry("Reset Settings", "chrome://settings/reset", ("reset", "restore", "default settings")),
    DirectoryEntry(
        "Site Settings",
        "chrome://settings/content",
        ("site settings", "permissions", "notifications", "location", "camera", "microphone"),
    ),
    DirectoryEntry("Sync", "chrome://settings/syncSetup", ("sync", "google account", "sync data")),
    DirectoryEntry("GPU Info", "chrome://gpu/", ("gpu", "graphics", "hardware acceleration", "webgl")),
    DirectoryEntry("Network Internals", "chrome://net-internals/", ("network", "net internals", "dns", "sockets", "proxy")),
    DirectoryEntry("Inspect Devices", "chrome://inspect/", ("inspect", "devtools", "debug", "developer tools")),
    DirectoryEntry("Print", "chrome://print/", ("print", "printer")),
    DirectoryEntry("New Tab", "chrome://newtab/", ("new tab", "newtab")),
    DirectoryEntry("Components", "chrome://components/", ("components", "update components")),
    DirectoryEntry("Version", "chrome://version/", ("version", "chrome version", "build")),
    DirectoryEntry("Memory", "chrome://memory-internals/", ("memory", "ram", "memory usage")),
    DirectoryEntry("Crashes", "chrome://crashes/", ("crashes", "crash reports")),
    DirectoryEntry("Credits", "chrome://credits/", ("credits", "licenses", "open source")),
]


def search_directory(query: str, pages: Sequence[DirectoryEntry] = BUILTIN_PAGES) -> List[DirectoryEntry]:
    q = (query or "").strip().lower()
    if not q:
        return []
    out = []
    for page in pages:
        if q in page.title.lower() or q in page.url.lower() or any(q in kw.lower() for kw in page.keywords):
            out.append(page)
    return out
