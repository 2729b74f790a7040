"""Chromium-family cookie provider (Chrome, Edge, Brave, Opera).

Decryption is delegated to `browser_cookie3`. The cookie database of the
requested browser's own profile is passed explicitly (`cookie_file=`), so a
lookup for one browser never falls through to another installed Chromium
browser and no process-wide state is touched.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import browser_cookie3

from .base import Cookie, ExtractionFailed, filter_for_host, hostname_of, lookup_domain

logger = logging.getLogger("mcp.cookies.providers")

# Profile roots ("User Data" directories) relative to the home directory.
CHROMIUM_PROFILE_ROOTS: dict[str, dict[str, tuple[str, ...]]] = {
    "chrome": {
        "win32": ("AppData", "Local", "Google", "Chrome", "User Data"),
        "darwin": ("Library", "Application Support", "Google", "Chrome"),
        "linux": (".config", "google-chrome"),
    },
    "edge": {
        "win32": ("AppData", "Local", "Microsoft", "Edge", "User Data"),
        "darwin": ("Library", "Application Support", "Microsoft Edge"),
        "linux": (".config", "microsoft-edge"),
    },
    "brave": {
        "win32": ("AppData", "Local", "BraveSoftware", "Brave-Browser", "User Data"),
        "darwin": ("Library", "Application Support", "BraveSoftware", "Brave-Browser"),
        "linux": (".config", "BraveSoftware", "Brave-Browser"),
    },
    "opera": {
        "win32": ("AppData", "Roaming", "Opera Software", "Opera Stable"),
        "darwin": ("Library", "Application Support", "com.operasoftware.Opera"),
        "linux": (".config", "opera"),
    },
}

# Opera keeps its profile directly in the root; the others use a "Default" profile.
_PROFILE_SUBDIR: dict[str, tuple[str, ...]] = {"opera": ()}

CookieLoader = Callable[..., Any]


def _platform_key(platform: str) -> str:
    return "linux" if platform.startswith("linux") else platform


def profile_root(browser: str, *, platform: str | None = None, home: Path | None = None) -> Path | None:
    platform = _platform_key(platform or sys.platform)
    parts = CHROMIUM_PROFILE_ROOTS.get(browser, {}).get(platform)
    if parts is None:
        return None
    return (home or Path.home()).joinpath(*parts)


def find_cookie_file(browser: str, root: Path) -> Path | None:
    profile = root.joinpath(*_PROFILE_SUBDIR.get(browser, ("Default",)))
    for candidate in (profile / "Network" / "Cookies", profile / "Cookies"):
        if candidate.is_file():
            return candidate
    return None


class ChromiumCookieProvider:
    def __init__(
        self,
        browser: str,
        *,
        platform: str | None = None,
        home: Path | None = None,
        loader: CookieLoader | None = None,
    ) -> None:
        if browser not in CHROMIUM_PROFILE_ROOTS:
            raise ValueError(f"Not a Chromium browser: {browser}")
        self.browser = browser
        self.platform = _platform_key(platform or sys.platform)
        self.home = home
        self._loader = loader

    def _load(self, **kwargs: Any) -> Any:
        loader = self._loader or getattr(browser_cookie3, self.browser)
        return loader(**kwargs)

    def read_cookies(self, url: str) -> list[Cookie]:
        root = profile_root(self.browser, platform=self.platform, home=self.home)
        if root is None or not root.is_dir():
            logger.debug("browser=%s profile not found", self.browser)
            return []
        cookie_file = find_cookie_file(self.browser, root)
        if cookie_file is None:
            logger.debug("browser=%s no cookie database under %s", self.browser, root)
            return []

        host = hostname_of(url)
        kwargs: dict[str, Any] = {"cookie_file": str(cookie_file), "domain_name": lookup_domain(host)}
        key_file = root / "Local State"
        if self.platform == "win32" and key_file.is_file():
            kwargs["key_file"] = str(key_file)
        try:
            jar = self._load(**kwargs)
        except Exception as exc:  # noqa: BLE001
            raise ExtractionFailed(
                f"Failed to read {self.browser} cookies: {exc}",
                suggestion=f"Close {self.browser} or grant access to its profile, then retry",
            ) from exc
        return filter_for_host((Cookie.from_jar(c) for c in jar), host)
