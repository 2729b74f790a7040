"""Safari cookie provider (macOS only)."""

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import Any

import browser_cookie3

from .base import Cookie, ExtractionFailed, UnsupportedBrowser, filter_for_host, hostname_of, lookup_domain

# Resolved once at import time: older browser_cookie3 releases ship without a Safari reader.
SAFARI_LOADER: Callable[..., Any] | None = getattr(browser_cookie3, "safari", None)


class SafariCookieProvider:
    def __init__(self, *, platform: str | None = None, loader: Callable[..., Any] | None = None) -> None:
        self.platform = platform or sys.platform
        self._loader = loader or SAFARI_LOADER

    def read_cookies(self, url: str) -> list[Cookie]:
        if self.platform != "darwin":
            raise UnsupportedBrowser(
                f"Safari is not available on {self.platform}",
                suggestion='Use browser="chrome", "firefox" or another installed browser',
            )
        if self._loader is None:
            raise UnsupportedBrowser(
                "Safari cookie extraction is not available: browser_cookie3 has no Safari reader",
                suggestion="Upgrade browser-cookie3 or pick another browser",
            )
        host = hostname_of(url)
        try:
            jar = self._loader(domain_name=lookup_domain(host))
        except Exception as exc:  # noqa: BLE001
            raise ExtractionFailed(
                f"Failed to read safari cookies: {exc}",
                suggestion="Grant Full Disk Access to the terminal running the server",
            ) from exc
        return filter_for_host((Cookie.from_jar(c) for c in jar), host)
