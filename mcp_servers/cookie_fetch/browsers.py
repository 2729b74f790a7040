"""Browser identifiers, default-browser detection and resolution.

`detect_default_browser()` asks the OS for the user's default web browser and
returns a loose `{"id": ..., "name": ...}` record; `resolve_browser()` maps such
a record onto one of the supported `BrowserId` values.
"""

from __future__ import annotations

import logging
import plistlib
import subprocess
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

from .errors import CookieFetchError

logger = logging.getLogger("mcp.cookies.browsers")

BrowserId = Literal["chrome", "edge", "brave", "opera", "firefox", "safari"]

BROWSER_IDS: tuple[BrowserId, ...] = ("chrome", "edge", "brave", "opera", "firefox", "safari")
CHROMIUM_BROWSERS: frozenset[str] = frozenset({"chrome", "edge", "brave", "opera"})
FALLBACK_BROWSER: BrowserId = "chrome"

# Priority order matters: first match wins.
_BROWSER_TOKENS: tuple[tuple[BrowserId, tuple[str, ...]], ...] = (
    ("chrome", ("chrome",)),
    ("edge", ("msedge", "edge")),
    ("firefox", ("firefox",)),
    ("safari", ("safari",)),
    ("brave", ("brave",)),
    ("opera", ("opera",)),
)

_WINDOWS_USER_CHOICE = r"Software\Microsoft\Windows\Shell\Associations\UrlAssociations\https\UserChoice"
_MAC_LAUNCH_SERVICES = (
    "Library/Preferences/com.apple.LaunchServices/com.apple.launchservices.secure.plist"
)


class InvalidBrowserInfo(CookieFetchError):
    pass


def resolve_browser(raw_info: Any) -> BrowserId:
    """Map a detected `{id, name}` record to a supported browser.

    Unknown browsers resolve to chrome; only structurally invalid input raises.
    """
    if not isinstance(raw_info, Mapping):
        raise InvalidBrowserInfo("Invalid browser info")

    browser_id = str(raw_info.get("id") or "").lower()
    name = str(raw_info.get("name") or "").lower()
    for browser, tokens in _BROWSER_TOKENS:
        if any(token in browser_id or token in name for token in tokens):
            return browser
    return FALLBACK_BROWSER


def _detect_linux() -> dict[str, str] | None:
    try:
        proc = subprocess.run(
            ["xdg-settings", "get", "default-web-browser"],
            capture_output=True,
            text=True,
            timeout=5,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("xdg-settings unavailable: %s", exc)
        return None
    desktop = (proc.stdout or "").strip()
    if proc.returncode != 0 or not desktop:
        return None
    name = desktop[: -len(".desktop")] if desktop.endswith(".desktop") else desktop
    return {"id": desktop, "name": name}


_SAFARI_INFO = {"id": "com.apple.Safari", "name": "Safari"}


def _detect_macos(home: Path) -> dict[str, str] | None:
    plist_path = home / _MAC_LAUNCH_SERVICES
    if not plist_path.exists():
        # Safari is the system default until another handler is registered.
        return dict(_SAFARI_INFO)
    try:
        with plist_path.open("rb") as fp:
            data = plistlib.load(fp)
    except (OSError, plistlib.InvalidFileException) as exc:
        logger.debug("launch services plist unreadable: %s", exc)
        return None
    handlers = data.get("LSHandlers") if isinstance(data, dict) else None
    for entry in handlers or []:
        if not isinstance(entry, dict):
            continue
        if str(entry.get("LSHandlerURLScheme") or "").lower() not in {"https", "http"}:
            continue
        bundle_id = str(entry.get("LSHandlerRoleAll") or "")
        if bundle_id:
            return {"id": bundle_id, "name": bundle_id.rsplit(".", 1)[-1]}
    return dict(_SAFARI_INFO)


def _detect_windows() -> dict[str, str] | None:
    try:
        import winreg  # type: ignore[import-not-found]
    except ImportError:
        return None
    try:
        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, _WINDOWS_USER_CHOICE) as key_handle:
            prog_id, _ = winreg.QueryValueEx(key_handle, "ProgId")
    except OSError as exc:
        logger.debug("UserChoice lookup failed: %s", exc)
        return None
    prog_id = str(prog_id or "")
    return {"id": prog_id, "name": prog_id} if prog_id else None


def detect_default_browser(*, platform: str | None = None, home: Path | None = None) -> dict[str, str] | None:
    """Return the OS default browser as `{"id", "name"}`, or None when undetectable."""
    platform = platform or sys.platform
    home = home or Path.home()
    if platform == "darwin":
        return _detect_macos(home)
    if platform == "win32":
        return _detect_windows()
    return _detect_linux()
