"""Firefox cookie provider: reads `cookies.sqlite` of the default profile directly."""

from __future__ import annotations

import logging
import sqlite3
import sys
from contextlib import closing
from pathlib import Path

from .base import Cookie, ExtractionFailed, hostname_of, normalize_same_site

logger = logging.getLogger("mcp.cookies.providers")

FIREFOX_PROFILE_ROOTS: dict[str, tuple[str, ...]] = {
    "win32": ("AppData", "Roaming", "Mozilla", "Firefox", "Profiles"),
    "darwin": ("Library", "Application Support", "Firefox", "Profiles"),
    "linux": (".mozilla", "firefox"),
}

_QUERY = """
    SELECT name, value, host, path, expiry, isSecure, sameSite
    FROM moz_cookies
    WHERE host = ? OR host = ?
"""


def find_profile(*, platform: str | None = None, home: Path | None = None) -> Path | None:
    """Pick the profile whose name contains "default", else the first profile directory."""
    platform = platform or sys.platform
    if platform.startswith("linux"):
        platform = "linux"
    parts = FIREFOX_PROFILE_ROOTS.get(platform)
    if parts is None:
        return None
    root = (home or Path.home()).joinpath(*parts)
    try:
        profiles = sorted(p for p in root.iterdir() if p.is_dir())
    except OSError:
        return None
    for profile in profiles:
        if "default" in profile.name:
            return profile
    return profiles[0] if profiles else None


class FirefoxCookieProvider:
    def __init__(self, *, platform: str | None = None, home: Path | None = None) -> None:
        self.platform = platform
        self.home = home

    def read_cookies(self, url: str) -> list[Cookie]:
        profile = find_profile(platform=self.platform, home=self.home)
        if profile is None:
            logger.debug("browser=firefox profile not found")
            return []
        db_path = profile / "cookies.sqlite"
        if not db_path.is_file():
            logger.debug("browser=firefox cookies.sqlite not found in %s", profile)
            return []

        host = hostname_of(url)
        try:
            uri = f"{db_path.resolve().as_uri()}?mode=ro"
            with closing(sqlite3.connect(uri, uri=True)) as conn:
                rows = conn.execute(_QUERY, (host, f".{host}")).fetchall()
        except sqlite3.Error as exc:
            raise ExtractionFailed(
                f"Failed to read firefox cookies: {exc}",
                suggestion="Close Firefox if the cookie database is locked, then retry",
            ) from exc

        return [
            Cookie(
                name=name,
                value=value or "",
                domain=row_host,
                path=path or "/",
                expires=float(expiry) if expiry else None,
                secure=is_secure == 1,
                same_site=normalize_same_site(same_site),
            )
            for name, value, row_host, path, expiry, is_secure, same_site in rows
        ]
