"""Authenticated resource access: fetch or download with browser cookies.

One request moves through:

    Initial -> CookiesFetched -> Requested -> Delivered
                                           -> LoginChallenge (auto_login=False)
                                           -> AutoLoginWait -> Retried -> Delivered | Failed

A 403 is always a login challenge (its body is never read); any other response
is read once and passed to `is_login_page`. With auto_login the user's browser
is opened on the original URL and `LoginWaiter` re-issues the request until it
stops looking like a login page; the final retry is delivered without another
check.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
import urllib.parse
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

import httpx

from .browsers import InvalidBrowserInfo, detect_default_browser, resolve_browser
from .config import DEFAULT_BROWSER_SELECTOR, CookieFetchConfig
from .cookies import BrowserCookies, Cookie, ExtractionFailed, cookie_header
from .errors import CookieFetchError, LoginCancelled, LoginTimeout, ValidationError
from .http_client import HttpClient, HttpClientError
from .launcher import BrowserLauncher
from .login import LoginWaiter, LoginWaitOutcome, is_login_page
from .server.redaction import redact_url

logger = logging.getLogger("mcp.cookies.orchestrator")

FALLBACK_FILENAME = "download"
_MB = 1024 * 1024


# ─── Request / result types ──────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class AccessRequest:
    url: str
    browser: str = DEFAULT_BROWSER_SELECTOR
    auto_login: bool = True
    output_path: str | None = None


@dataclass(frozen=True, slots=True)
class FetchSuccess:
    status: int
    status_text: str
    headers: dict[str, str]
    body: str
    final_url: str
    cookies_used: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "statusText": self.status_text,
            "headers": self.headers,
            "body": self.body,
            "cookiesUsed": self.cookies_used,
            "finalUrl": self.final_url,
        }


@dataclass(frozen=True, slots=True)
class DownloadSuccess:
    filename: str
    size: int
    duration: float
    cookies_used: int

    def to_dict(self) -> dict[str, Any]:
        size_mb = self.size / _MB
        speed = size_mb / max(self.duration, 0.001)
        return {
            "status": "success",
            "filename": self.filename,
            "size": self.size,
            "sizeFormatted": f"{size_mb:.2f} MB",
            "duration": f"{self.duration:.2f} seconds",
            "averageSpeed": f"{speed:.2f} MB/s",
            "cookiesUsed": self.cookies_used,
        }


@dataclass(frozen=True, slots=True)
class LoginRequired:
    login_url: str
    original_url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "login_required",
            "message": "Authentication required. The cookies may have expired.",
            "loginUrl": self.login_url,
            "originalUrl": self.original_url,
            "note": "Set auto_login to true to automatically open browser for authentication.",
        }


@dataclass(frozen=True, slots=True)
class AccessError:
    message: str
    kind: str = "error"
    suggestion: str | None = None


AccessResult = Union[FetchSuccess, DownloadSuccess, LoginRequired, AccessError]


# ─── Validation & filenames ──────────────────────────────────────────────────


def validate_url(url: Any) -> str:
    """Accept only well-formed absolute http(s) URLs."""
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("Invalid URL", suggestion='Provide an absolute URL like "https://example.com/path"')
    url = url.strip()
    try:
        parts = urllib.parse.urlsplit(url)
        parts.port  # noqa: B018 - raises ValueError on a malformed port
    except ValueError as exc:
        raise ValidationError("Invalid URL") from exc
    # Whitespace is only tolerated outside the authority; httpx encodes it.
    if any(ch.isspace() for ch in parts.netloc):
        raise ValidationError("Invalid URL")
    if not parts.scheme or not re.fullmatch(r"[A-Za-z][A-Za-z0-9+.-]*", parts.scheme):
        raise ValidationError("Invalid URL", suggestion='Provide an absolute URL like "https://example.com/path"')
    if parts.scheme.lower() not in ("http", "https"):
        raise ValidationError("Only HTTP and HTTPS protocols are allowed")
    if not parts.hostname:
        raise ValidationError("Invalid URL")
    return url


def resolve_output_path(output_path: str, cwd: Path) -> Path:
    """Resolve a caller-supplied path, refusing anything outside `cwd`."""
    root = cwd.resolve()
    target = (root / Path(output_path).expanduser()).resolve()
    if root not in target.parents:
        raise ValidationError(
            "Output path must be within the current working directory",
            suggestion="Use a relative path such as downloads/file.pdf",
        )
    return target


def safe_filename(name: str) -> str:
    base = re.split(r"[\\/]", name or "")[-1]
    cleaned = re.sub(r"[:*?\"<>|\x00-\x1f]+", "_", base).strip().strip(".")
    return cleaned or FALLBACK_FILENAME


def filename_from_content_disposition(header: str | None) -> str | None:
    if not isinstance(header, str) or not header:
        return None
    # RFC 5987 filename*=UTF-8''... takes precedence.
    m = re.search(r"filename\*=([^;]+)", header, flags=re.IGNORECASE)
    if m:
        raw = m.group(1).strip().strip("\"'")
        if "''" in raw:
            raw = raw.split("''", 1)[1]
        return urllib.parse.unquote(raw) or None
    m = re.search(r"filename=(\"[^\"]*\"|'[^']*'|[^;]*)", header, flags=re.IGNORECASE)
    if m:
        return m.group(1).strip().strip("\"'") or None
    return None


def filename_from_url(url: str) -> str | None:
    path = urllib.parse.urlsplit(url).path
    if not path:
        return None
    name = urllib.parse.unquote(path).rstrip("/").rsplit("/", 1)[-1]
    return name or None


def _describe_timeout(seconds: float) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"{minutes} minute" + ("" if minutes == 1 else "s")
    return f"{seconds:g} seconds"


# ─── Orchestrator ────────────────────────────────────────────────────────────


class ResourceAccessOrchestrator:
    def __init__(
        self,
        config: CookieFetchConfig | None = None,
        *,
        cookies: BrowserCookies | None = None,
        http: HttpClient | None = None,
        launcher: BrowserLauncher | None = None,
        waiter: LoginWaiter | None = None,
        detector: Callable[[], Mapping[str, Any] | None] = detect_default_browser,
        cwd: Path | None = None,
    ) -> None:
        self.config = config or CookieFetchConfig.from_env()
        self._cookies = cookies or BrowserCookies()
        self._http = http or HttpClient(self.config)
        self._launcher = launcher or BrowserLauncher()
        self._waiter = waiter or LoginWaiter(
            interval=self.config.login_poll_interval,
            timeout=self.config.login_timeout,
        )
        self._detector = detector
        self._cwd = cwd

    # Public operations never raise (except on task cancellation).

    async def fetch(self, request: AccessRequest, *, cancel: asyncio.Event | None = None) -> AccessResult:
        return await self._guard("fetch", request, self._fetch(request, cancel))

    async def download(self, request: AccessRequest, *, cancel: asyncio.Event | None = None) -> AccessResult:
        return await self._guard("download", request, self._download(request, cancel))

    async def _guard(self, operation: str, request: AccessRequest, work: Any) -> AccessResult:
        try:
            return await work
        except CookieFetchError as exc:
            logger.info("%s_failed kind=%s url=%s reason=%s", operation, exc.kind, redact_url(request.url), exc.message)
            return AccessError(exc.message, kind=exc.kind, suggestion=exc.suggestion)
        except HttpClientError as exc:
            logger.info("%s_http_error url=%s reason=%s", operation, redact_url(request.url), exc)
            return AccessError(str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("%s_failed url=%s", operation, redact_url(request.url))
            return AccessError(str(exc) or exc.__class__.__name__)

    # Browser & cookies

    async def resolve_browser(self, selector: str | None) -> str:
        selector = (selector or DEFAULT_BROWSER_SELECTOR).strip().lower()
        if selector != DEFAULT_BROWSER_SELECTOR:
            return selector
        info = await asyncio.to_thread(self._detector)
        try:
            browser = resolve_browser(info)
        except InvalidBrowserInfo as exc:
            raise InvalidBrowserInfo(
                f"Failed to detect default browser: {exc.message}",
                suggestion='Pass browser="chrome" (or another installed browser) explicitly',
            ) from exc
        logger.info("default browser resolved to %s", browser)
        return browser

    async def _collect_cookies(self, browser: str, url: str) -> list[Cookie]:
        try:
            return await self._cookies.get_cookies(browser, url)
        except ExtractionFailed as exc:
            logger.warning("cookie extraction failed browser=%s: %s", browser, exc.message)
            return []

    # HTTP helpers

    @staticmethod
    async def _read_text(response: httpx.Response) -> str:
        await response.aread()
        return response.text

    async def _probe(self, url: str, browser: str) -> bool:
        cookies = await self._collect_cookies(browser, url)
        if not cookies:
            return False
        async with self._http.open(url, cookie_header=cookie_header(cookies)) as response:
            if response.status_code == 403:
                return False
            text = await self._read_text(response)
            return not is_login_page(url, str(response.url), text)

    async def _await_login(self, url: str, browser: str, cancel: asyncio.Event | None) -> None:
        try:
            self._launcher.open(url, browser)
        except Exception as exc:  # noqa: BLE001
            # The wait loop below is the real gate; a failed launch only makes it time out.
            logger.warning("browser launch failed browser=%s: %s", browser, exc)

        outcome = await self._waiter.wait(lambda: self._probe(url, browser), cancel=cancel)
        if outcome is LoginWaitOutcome.CANCELLED:
            raise LoginCancelled("Login wait cancelled")
        if outcome is LoginWaitOutcome.TIMED_OUT:
            raise LoginTimeout(
                "Login timeout - user did not complete authentication within "
                f"{_describe_timeout(self._waiter.timeout)}",
                suggestion="Sign in within the browser window that was opened, then retry",
            )

    # Fetch

    @staticmethod
    def _fetch_success(response: httpx.Response, text: str, cookies: list[Cookie]) -> FetchSuccess:
        return FetchSuccess(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers.items()),
            body=text,
            final_url=str(response.url),
            cookies_used=len(cookies),
        )

    async def _fetch(self, request: AccessRequest, cancel: asyncio.Event | None) -> AccessResult:
        url = validate_url(request.url)
        browser = await self.resolve_browser(request.browser)
        cookies = await self._collect_cookies(browser, url)

        async with self._http.open(url, cookie_header=cookie_header(cookies)) as response:
            login_url = str(response.url)
            challenged = response.status_code == 403
            if not challenged:
                text = await self._read_text(response)
                challenged = is_login_page(url, login_url, text)
            if not challenged:
                return self._fetch_success(response, text, cookies)

        logger.info("login challenge url=%s auto_login=%s", redact_url(url), request.auto_login)
        if not request.auto_login:
            return LoginRequired(login_url=login_url, original_url=url)

        await self._await_login(url, browser, cancel)
        cookies = await self._collect_cookies(browser, url)
        async with self._http.open(url, cookie_header=cookie_header(cookies)) as response:
            text = await self._read_text(response)
            return self._fetch_success(response, text, cookies)

    # Download

    def _working_dir(self) -> Path:
        return (self._cwd or Path(os.getcwd())).resolve()

    def _default_target(self, response: httpx.Response, url: str) -> Path:
        name = (
            filename_from_content_disposition(response.headers.get("content-disposition"))
            or filename_from_url(url)
            or FALLBACK_FILENAME
        )
        return self._working_dir() / safe_filename(name)

    async def _save(
        self,
        response: httpx.Response,
        *,
        url: str,
        target: Path | None,
        cookies: list[Cookie],
        prefetched: bytes | None = None,
    ) -> DownloadSuccess:
        if not response.is_success:
            raise CookieFetchError(f"HTTP {response.status_code}: {response.reason_phrase}")

        target = target or self._default_target(response, url)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            total = int(response.headers.get("content-length") or 0)
        except ValueError:
            total = 0

        size = 0
        started = time.monotonic()
        created = False
        try:
            with target.open("wb") as fp:
                created = True
                if prefetched is not None:
                    fp.write(prefetched)
                    size = len(prefetched)
                else:
                    async for chunk in response.aiter_bytes():
                        fp.write(chunk)
                        size += len(chunk)
                        if total and logger.isEnabledFor(logging.DEBUG):
                            elapsed = max(time.monotonic() - started, 0.001)
                            logger.debug(
                                "download progress: %.2f%% (%.2f MB/s)",
                                size / total * 100,
                                size / elapsed / _MB,
                            )
        except BaseException:
            if created:
                target.unlink(missing_ok=True)
            raise

        duration = time.monotonic() - started
        logger.info("downloaded %d bytes to %s in %.2fs", size, target, duration)
        return DownloadSuccess(filename=str(target), size=size, duration=duration, cookies_used=len(cookies))

    async def _download(self, request: AccessRequest, cancel: asyncio.Event | None) -> AccessResult:
        url = validate_url(request.url)
        target = resolve_output_path(request.output_path, self._working_dir()) if request.output_path else None
        browser = await self.resolve_browser(request.browser)
        cookies = await self._collect_cookies(browser, url)

        async with self._http.open(url, cookie_header=cookie_header(cookies)) as response:
            login_url = str(response.url)
            prefetched: bytes | None = None
            challenged = response.status_code == 403
            # Only HTML can be a login page; binary bodies stream straight to disk.
            if not challenged and "text/html" in response.headers.get("content-type", "").lower():
                prefetched = await response.aread()
                challenged = is_login_page(url, login_url, response.text)
            if not challenged:
                return await self._save(response, url=url, target=target, cookies=cookies, prefetched=prefetched)

        logger.info("login challenge url=%s auto_login=%s", redact_url(url), request.auto_login)
        if not request.auto_login:
            return LoginRequired(login_url=login_url, original_url=url)

        await self._await_login(url, browser, cancel)
        cookies = await self._collect_cookies(browser, url)
        async with self._http.open(url, cookie_header=cookie_header(cookies)) as response:
            return await self._save(response, url=url, target=target, cookies=cookies)
