"""Per-browser cookie providers behind one interface.

- base: Cookie value type, CookieProvider protocol, errors, header building
- chromium: Chrome / Edge / Brave / Opera via browser_cookie3
- firefox: direct read-only query of the profile's cookies.sqlite
- safari: macOS-only reader via browser_cookie3
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path

from ..browsers import CHROMIUM_BROWSERS
from .base import (
    Cookie,
    CookieProvider,
    ExtractionFailed,
    UnsupportedBrowser,
    cookie_header,
    domain_matches,
    hostname_of,
)
from .chromium import ChromiumCookieProvider
from .firefox import FirefoxCookieProvider
from .safari import SafariCookieProvider

logger = logging.getLogger("mcp.cookies.providers")


def default_providers(*, platform: str | None = None, home: Path | None = None) -> dict[str, CookieProvider]:
    providers: dict[str, CookieProvider] = {
        browser: ChromiumCookieProvider(browser, platform=platform, home=home)
        for browser in sorted(CHROMIUM_BROWSERS)
    }
    providers["firefox"] = FirefoxCookieProvider(platform=platform, home=home)
    providers["safari"] = SafariCookieProvider(platform=platform)
    return providers


class BrowserCookies:
    """Selects the provider for a concrete browser and reads off the event loop."""

    def __init__(self, providers: Mapping[str, CookieProvider] | None = None) -> None:
        self._providers = dict(providers) if providers is not None else default_providers()

    def provider_for(self, browser: str) -> CookieProvider | None:
        return self._providers.get(browser)

    async def get_cookies(self, browser: str, url: str) -> list[Cookie]:
        provider = self.provider_for(browser)
        if provider is None:
            logger.warning("browser=%s has no cookie provider; sending no cookies", browser)
            return []
        cookies = await asyncio.to_thread(provider.read_cookies, url)
        logger.debug("browser=%s host=%s cookies=%d", browser, hostname_of(url), len(cookies))
        return cookies


__all__ = [
    "BrowserCookies",
    "ChromiumCookieProvider",
    "Cookie",
    "CookieProvider",
    "ExtractionFailed",
    "FirefoxCookieProvider",
    "SafariCookieProvider",
    "UnsupportedBrowser",
    "cookie_header",
    "default_providers",
    "domain_matches",
]
