"""Cookie value type, provider protocol and errors."""

from __future__ import annotations

import ipaddress
import urllib.parse
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from http.cookiejar import Cookie as JarCookie
from typing import Protocol

from ..errors import CookieFetchError

_SAME_SITE_VALUES = {"none", "lax", "strict"}


class ExtractionFailed(CookieFetchError):
    """The cookie store exists but could not be read (permissions, locked, decrypt failure)."""

    kind = "extraction_failed"


class UnsupportedBrowser(CookieFetchError):
    kind = "unsupported_browser"


@dataclass(frozen=True, slots=True)
class Cookie:
    name: str
    value: str
    domain: str
    path: str = "/"
    expires: float | None = None
    secure: bool = False
    same_site: str | None = None

    @classmethod
    def from_jar(cls, jar_cookie: JarCookie) -> Cookie:
        same_site = None
        # http.cookiejar keeps non-standard attributes in the private `_rest` dict.
        rest = getattr(jar_cookie, "_rest", None) or {}
        for key, value in rest.items():
            if str(key).lower() == "samesite":
                same_site = normalize_same_site(value)
        return cls(
            name=jar_cookie.name,
            value=jar_cookie.value or "",
            domain=jar_cookie.domain,
            path=jar_cookie.path or "/",
            expires=float(jar_cookie.expires) if jar_cookie.expires else None,
            secure=bool(jar_cookie.secure),
            same_site=same_site,
        )


class CookieProvider(Protocol):
    """Reads the cookies one browser holds for a URL.

    Returns an empty list when the browser, profile or store is absent.
    Raises ExtractionFailed when the store exists but cannot be read.
    """

    def read_cookies(self, url: str) -> list[Cookie]: ...


def normalize_same_site(raw: object) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, int):
        # Firefox / Chromium integer encodings.
        return {0: "none", 1: "lax", 2: "strict"}.get(raw)
    value = str(raw).strip().lower()
    return value if value in _SAME_SITE_VALUES else None


def hostname_of(url: str) -> str:
    return (urllib.parse.urlsplit(url).hostname or "").lower()


def lookup_domain(host: str) -> str:
    """Coarse domain for store-side filtering; callers narrow the result with `filter_for_host`."""
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        pass
    labels = host.split(".")
    return ".".join(labels[-2:]) if len(labels) > 2 else host


def domain_matches(cookie_domain: str, host: str) -> bool:
    """True when a cookie set for `cookie_domain` is sent to `host` (host or parent domain)."""
    domain = (cookie_domain or "").strip().lower().lstrip(".")
    host = (host or "").strip().lower()
    if not domain or not host:
        return False
    return host == domain or host.endswith("." + domain)


def filter_for_host(cookies: Iterable[Cookie], host: str) -> list[Cookie]:
    return [cookie for cookie in cookies if domain_matches(cookie.domain, host)]


def cookie_header(cookies: Sequence[Cookie]) -> str:
    """Serialize cookies as a Cookie header, keeping provider order."""
    return "; ".join(f"{cookie.name}={cookie.value}" for cookie in cookies)
