"""Login challenge detection and the bounded wait-for-login loop."""

from __future__ import annotations

import asyncio
import enum
import logging
import time
import urllib.parse
from collections.abc import Awaitable, Callable

from .http_client import HttpClientError

logger = logging.getLogger("mcp.cookies.login")

# Substrings of a post-redirect URL that point at an identity provider or sign-in page.
LOGIN_URL_INDICATORS: tuple[str, ...] = (
    "okta",
    "auth0",
    "login",
    "signin",
    "sign-in",
    "authenticate",
    "sso",
    "saml",
    "oauth",
    "identity",
    "accounts.google",
    "login.microsoftonline",
    "github.com/login",
)

_FORM_FIELD_MARKERS: tuple[str, ...] = ("password", "username", "email")


def _host(url: str) -> str:
    try:
        return (urllib.parse.urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_login_page(original_url: str, final_url: str, body_text: str) -> bool:
    """Heuristic: cross-domain redirect to an auth-looking URL, or a page with a credential form.

    The form check is plain substring matching, so any page with an input and
    the word "email" anywhere counts as a login page.
    """
    final_lower = (final_url or "").lower()
    redirected_to_login = _host(original_url) != _host(final_url) and any(
        indicator in final_lower for indicator in LOGIN_URL_INDICATORS
    )

    text = (body_text or "").lower()
    has_login_form = "<input" in text and any(marker in text for marker in _FORM_FIELD_MARKERS)

    return redirected_to_login or has_login_form


class LoginWaitOutcome(enum.Enum):
    AUTHENTICATED = "authenticated"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


Probe = Callable[[], Awaitable[bool]]


class LoginWaiter:
    """Polls `probe` every `interval` seconds until it reports success or `timeout` elapses.

    Clock and sleep are injectable so tests can drive the loop tick by tick.
    """

    def __init__(
        self,
        *,
        interval: float = 5.0,
        timeout: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.interval = interval
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep

    async def _pause(self, cancel: asyncio.Event | None) -> None:
        if cancel is None:
            await self._sleep(self.interval)
            return
        sleeper = asyncio.ensure_future(self._sleep(self.interval))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                task.cancel()

    async def wait(self, probe: Probe, *, cancel: asyncio.Event | None = None) -> LoginWaitOutcome:
        started = self._clock()
        ticks = 0
        while self._clock() - started < self.timeout:
            await self._pause(cancel)
            if cancel is not None and cancel.is_set():
                logger.info("login wait cancelled after %d tick(s)", ticks)
                return LoginWaitOutcome.CANCELLED
            ticks += 1
            try:
                if await probe():
                    logger.info("login detected after %d tick(s)", ticks)
                    return LoginWaitOutcome.AUTHENTICATED
            except HttpClientError as exc:
                logger.debug("login probe failed on tick %d: %s", ticks, exc)
        logger.info("login wait timed out after %d tick(s)", ticks)
        return LoginWaitOutcome.TIMED_OUT
