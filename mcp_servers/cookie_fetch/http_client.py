from __future__ import annotations

import urllib.parse
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from .config import CookieFetchConfig


class HttpClientError(Exception):
    pass


def ensure_allowed(url: str, config: CookieFetchConfig, *, redirect: bool = False) -> None:
    suffix = " (redirect)" if redirect else ""
    parsed = urllib.parse.urlsplit(url)
    if parsed.scheme not in ("http", "https"):
        raise HttpClientError(f"Only http/https are supported{suffix}")
    if not config.is_host_allowed(parsed.hostname or ""):
        raise HttpClientError(f"Host {parsed.hostname} is not in allowlist{suffix}")


def _same_site(host: str, origin: str | None) -> bool:
    """True for the original host and any of its subdomains."""
    if not origin:
        return False
    return host == origin or host.endswith("." + origin)


class HttpClient:
    """GET with browser cookies, following redirects.

    A fresh `httpx.AsyncClient` is built per request so no response cookies
    leak from one request into another. The Cookie header is only attached to
    hops on the original host or its subdomains; unrelated redirect targets
    such as identity providers never see it.
    """

    def __init__(self, config: CookieFetchConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._transport = transport

    @asynccontextmanager
    async def open(self, url: str, *, cookie_header: str = "") -> AsyncIterator[httpx.Response]:
        """Yield the final response with its body still unread."""
        ensure_allowed(url, self._config)
        origin_host = urllib.parse.urlsplit(url).hostname

        async def _on_request(request: httpx.Request) -> None:
            if str(request.url) != url:
                ensure_allowed(str(request.url), self._config, redirect=True)
            if cookie_header and _same_site(request.url.host, origin_host):
                request.headers["Cookie"] = cookie_header

        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=httpx.Timeout(self._config.http_timeout),
                headers={"User-Agent": self._config.user_agent},
                transport=self._transport,
                event_hooks={"request": [_on_request]},
            ) as client:
                async with client.stream("GET", url) as response:
                    yield response
        except httpx.HTTPError as exc:
            raise HttpClientError(str(exc) or exc.__class__.__name__) from exc
