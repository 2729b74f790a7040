"""
Tests for the fetch/download state machine.

HTTP is served by httpx.MockTransport, cookies by in-memory providers and the
login wait runs on a manual clock, so nothing touches the network, a real
browser profile or wall-clock time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from mcp_servers.cookie_fetch.config import CookieFetchConfig
from mcp_servers.cookie_fetch.cookies import BrowserCookies, Cookie, ExtractionFailed, UnsupportedBrowser
from mcp_servers.cookie_fetch.errors import ValidationError
from mcp_servers.cookie_fetch.http_client import HttpClient
from mcp_servers.cookie_fetch.launcher import LaunchResult
from mcp_servers.cookie_fetch.login import LoginWaiter
from mcp_servers.cookie_fetch.orchestrator import (
    AccessError,
    AccessRequest,
    DownloadSuccess,
    FetchSuccess,
    LoginRequired,
    ResourceAccessOrchestrator,
    filename_from_content_disposition,
    filename_from_url,
    resolve_output_path,
    safe_filename,
    validate_url,
)

COOKIES = [Cookie("sid", "s1", ".example.com"), Cookie("theme", "dark", "example.com")]


class StaticProvider:
    def __init__(self, cookies: list[Cookie] | None = None, error: Exception | None = None) -> None:
        self.cookies = cookies or []
        self.error = error

    def read_cookies(self, url: str) -> list[Cookie]:
        if self.error is not None:
            raise self.error
        return list(self.cookies)


class RecordingLauncher:
    def __init__(self) -> None:
        self.opened: list[tuple[str, str]] = []

    def open(self, url: str, browser: str) -> LaunchResult:
        self.opened.append((url, browser))
        return LaunchResult(["fake"], True, "opened")


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


class ExplodingStream(httpx.AsyncByteStream):
    async def __aiter__(self):  # noqa: ANN204
        raise AssertionError("body must not be read")
        yield b""  # pragma: no cover


def make_orchestrator(
    handler: Callable[[httpx.Request], httpx.Response],
    tmp_path: Path,
    *,
    provider: StaticProvider | None = None,
    config: CookieFetchConfig | None = None,
    launcher: RecordingLauncher | None = None,
    timeout: float = 120.0,
    detector: Callable[[], Any] = lambda: {"id": "com.google.Chrome", "name": "Google Chrome"},
) -> ResourceAccessOrchestrator:
    config = config or CookieFetchConfig()
    clock = FakeClock()
    return ResourceAccessOrchestrator(
        config,
        cookies=BrowserCookies({"chrome": provider or StaticProvider(COOKIES)}),
        http=HttpClient(config, transport=httpx.MockTransport(handler)),
        launcher=launcher or RecordingLauncher(),
        waiter=LoginWaiter(interval=5, timeout=timeout, clock=clock, sleep=clock.sleep),
        detector=detector,
        cwd=tmp_path,
    )


def _no_network(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


# ═══════════════════════════════════════════════════════════════════════════════
# FETCH
# ═══════════════════════════════════════════════════════════════════════════════


def test_fetch_returns_body_verbatim_with_cookie_count(tmp_path: Path) -> None:
    body = "<html><body>Quarterly numbers</body></html>"
    seen: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("cookie"))
        assert "Chrome/" in request.headers["user-agent"]
        return httpx.Response(200, text=body, headers={"content-type": "text/html; charset=utf-8"})

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/report", browser="chrome")))

    assert isinstance(result, FetchSuccess)
    assert result.body == body
    assert result.status == 200
    assert result.cookies_used == 2
    assert result.final_url == "https://example.com/report"
    assert seen == ["sid=s1; theme=dark"]
    payload = result.to_dict()
    assert payload["statusText"] == "OK"
    assert payload["headers"]["content-type"].startswith("text/html")


def test_fetch_is_idempotent(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="stable")

    orch = make_orchestrator(handler, tmp_path)
    request = AccessRequest(url="https://example.com/", browser="chrome")

    async def twice() -> tuple[Any, Any]:
        return await orch.fetch(request), await orch.fetch(request)

    first, second = asyncio.run(twice())
    assert first.to_dict() == second.to_dict()


def test_fetch_403_without_auto_login_never_reads_body(tmp_path: Path) -> None:
    launcher = RecordingLauncher()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, stream=ExplodingStream())

    orch = make_orchestrator(handler, tmp_path, launcher=launcher)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/private", browser="chrome", auto_login=False)))

    assert isinstance(result, LoginRequired)
    assert result.login_url == "https://example.com/private"
    assert result.original_url == "https://example.com/private"
    assert result.to_dict()["status"] == "login_required"
    assert launcher.opened == []


def test_fetch_cross_domain_login_redirect_drops_cookies(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "example.com":
            assert request.headers.get("cookie") == "sid=s1; theme=dark"
            return httpx.Response(302, headers={"location": "https://corp.okta.com/login?app=wiki"})
        assert "cookie" not in request.headers
        return httpx.Response(200, text="<p>Sign in to continue</p>")

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/wiki", browser="chrome", auto_login=False)))

    assert isinstance(result, LoginRequired)
    assert result.login_url == "https://corp.okta.com/login?app=wiki"


def test_fetch_keeps_cookies_across_redirect_to_subdomain(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "example.com":
            return httpx.Response(301, headers={"location": "https://www.example.com/doc"})
        if request.headers.get("cookie") == "sid=s1; theme=dark":
            return httpx.Response(200, text="the document")
        return httpx.Response(403)

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/doc", browser="chrome", auto_login=False)))

    assert isinstance(result, FetchSuccess)
    assert result.body == "the document"
    assert result.final_url == "https://www.example.com/doc"


def test_fetch_lookalike_redirect_host_gets_no_cookies(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "example.com":
            return httpx.Response(302, headers={"location": "https://notexample.com/"})
        assert "cookie" not in request.headers
        return httpx.Response(200, text="elsewhere")

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/", browser="chrome", auto_login=False)))

    assert isinstance(result, FetchSuccess)


def test_fetch_auto_login_retries_after_user_signs_in(tmp_path: Path) -> None:
    launcher = RecordingLauncher()
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        # initial + first probe see 403; second probe and the final retry succeed
        if len(calls) <= 2:
            return httpx.Response(403)
        return httpx.Response(200, text="welcome back")

    orch = make_orchestrator(handler, tmp_path, launcher=launcher)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/app", browser="chrome")))

    assert isinstance(result, FetchSuccess)
    assert result.body == "welcome back"
    assert launcher.opened == [("https://example.com/app", "chrome")]
    assert len(calls) == 4


def test_fetch_auto_login_times_out(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403)

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/app", browser="chrome")))

    assert isinstance(result, AccessError)
    assert result.kind == "login_timeout"
    assert result.message == "Login timeout - user did not complete authentication within 2 minutes"


def test_fetch_login_form_on_same_domain_is_challenge(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text='<form><input type="password"></form>')

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/", browser="chrome", auto_login=False)))
    assert isinstance(result, LoginRequired)


@pytest.mark.parametrize(
    ("url", "message"),
    [
        ("", "Invalid URL"),
        ("not a url", "Invalid URL"),
        ("example.com/path", "Invalid URL"),
        ("http://", "Invalid URL"),
        ("https://example.com:notaport/", "Invalid URL"),
        ("ftp://example.com/file", "Only HTTP and HTTPS protocols are allowed"),
        ("file:///etc/passwd", "Only HTTP and HTTPS protocols are allowed"),
        ("javascript:alert(1)", "Only HTTP and HTTPS protocols are allowed"),
    ],
)
def test_fetch_rejects_invalid_urls_before_network(tmp_path: Path, url: str, message: str) -> None:
    orch = make_orchestrator(_no_network, tmp_path)
    result = asyncio.run(orch.fetch(AccessRequest(url=url, browser="chrome")))

    assert isinstance(result, AccessError)
    assert result.kind == "validation"
    assert result.message == message


@pytest.mark.parametrize(
    "url",
    [
        "http://127.0.0.1:8080/a?b=c#d",
        "https://[::1]/x",
        "https://bücher.example/katalog",
        "https://example.com/search?q=a b",
        "HTTPS://Example.COM/Path;params?x=1&y=2#frag",
    ],
)
def test_validate_url_accepts_any_http_url(url: str) -> None:
    assert validate_url(f"  {url}\n") == url


@pytest.mark.parametrize("url", ["https://exa mple.com/", "https:// /path"])
def test_validate_url_rejects_whitespace_in_host(url: str) -> None:
    with pytest.raises(ValidationError):
        validate_url(url)


def test_fetch_sends_space_in_query_encoded(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["q"] == "a b"
        assert b" " not in request.url.raw_path
        return httpx.Response(200, text="results")

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/search?q=a b", browser="chrome")))

    assert isinstance(result, FetchSuccess)
    assert result.body == "results"


def test_fetch_with_unreadable_store_sends_no_cookies(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "cookie" not in request.headers
        return httpx.Response(200, text="public")

    provider = StaticProvider(error=ExtractionFailed("database is locked"))
    orch = make_orchestrator(handler, tmp_path, provider=provider)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/", browser="chrome")))

    assert isinstance(result, FetchSuccess)
    assert result.cookies_used == 0


def test_fetch_unsupported_browser_is_an_error(tmp_path: Path) -> None:
    provider = StaticProvider(error=UnsupportedBrowser("Safari is not available on linux"))
    orch = make_orchestrator(_no_network, tmp_path, provider=provider)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/", browser="chrome")))

    assert isinstance(result, AccessError)
    assert result.kind == "unsupported_browser"


def test_fetch_unknown_browser_sends_no_cookies(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "cookie" not in request.headers
        return httpx.Response(200, text="ok")

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/", browser="netscape")))
    assert isinstance(result, FetchSuccess)
    assert result.cookies_used == 0


def test_fetch_default_browser_uses_detector(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="ok")

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/")))
    assert isinstance(result, FetchSuccess)
    assert result.cookies_used == 2


def test_fetch_default_browser_detection_failure(tmp_path: Path) -> None:
    orch = make_orchestrator(_no_network, tmp_path, detector=lambda: None)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/")))

    assert isinstance(result, AccessError)
    assert result.message.startswith("Failed to detect default browser")


def test_fetch_network_failure_is_an_error(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/", browser="chrome")))

    assert isinstance(result, AccessError)
    assert result.kind == "error"
    assert "connection refused" in result.message


def test_fetch_redirect_outside_allowlist_is_refused(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "example.com":
            return httpx.Response(302, headers={"location": "https://evil.test/"})
        raise AssertionError("redirect target must not be contacted")

    config = CookieFetchConfig(allow_hosts=["example.com"])
    orch = make_orchestrator(handler, tmp_path, config=config)
    result = asyncio.run(orch.fetch(AccessRequest(url="https://example.com/", browser="chrome")))

    assert isinstance(result, AccessError)
    assert "not in allowlist" in result.message


# ═══════════════════════════════════════════════════════════════════════════════
# DOWNLOAD
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("output_path", ["../escape.bin", "../../etc/cron.d/job", "/etc/passwd"])
def test_download_rejects_paths_outside_cwd_before_network(tmp_path: Path, output_path: str) -> None:
    orch = make_orchestrator(_no_network, tmp_path)
    result = asyncio.run(
        orch.download(AccessRequest(url="https://example.com/file.bin", browser="chrome", output_path=output_path))
    )

    assert isinstance(result, AccessError)
    assert result.kind == "validation"
    assert result.message == "Output path must be within the current working directory"


def test_download_streams_binary_to_content_disposition_name(tmp_path: Path) -> None:
    payload = bytes(range(256)) * 64

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            content=payload,
            headers={
                "content-type": "application/pdf",
                "content-disposition": 'attachment; filename="Q3 report.pdf"',
            },
        )

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.download(AccessRequest(url="https://example.com/dl?id=7", browser="chrome")))

    assert isinstance(result, DownloadSuccess)
    target = tmp_path / "Q3 report.pdf"
    assert result.filename == str(target)
    assert target.read_bytes() == payload
    assert result.size == len(payload)
    assert result.cookies_used == 2
    data = result.to_dict()
    assert data["status"] == "success"
    assert data["sizeFormatted"] == "0.02 MB"
    assert data["duration"].endswith(" seconds")
    assert data["averageSpeed"].endswith(" MB/s")


def test_download_explicit_path_wins(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            content=b"zip-bytes",
            headers={"content-type": "application/zip", "content-disposition": "attachment; filename=ignored.zip"},
        )

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(
        orch.download(
            AccessRequest(url="https://example.com/a.zip", browser="chrome", output_path="out/nested/data.zip")
        )
    )

    assert isinstance(result, DownloadSuccess)
    assert (tmp_path / "out" / "nested" / "data.zip").read_bytes() == b"zip-bytes"
    assert not (tmp_path / "ignored.zip").exists()


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://example.com/files/archive.tar.gz", "archive.tar.gz"),
        ("https://example.com/", "download"),
        ("https://example.com", "download"),
    ],
)
def test_download_name_falls_back_to_url_then_default(tmp_path: Path, url: str, expected: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"data", headers={"content-type": "application/octet-stream"})

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.download(AccessRequest(url=url, browser="chrome")))

    assert isinstance(result, DownloadSuccess)
    assert Path(result.filename) == tmp_path / expected
    assert (tmp_path / expected).read_bytes() == b"data"


def test_download_html_that_is_not_login_is_saved(tmp_path: Path) -> None:
    html = "<html><body>export ready</body></html>"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=html, headers={"content-type": "text/html"})

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.download(AccessRequest(url="https://example.com/export.html", browser="chrome")))

    assert isinstance(result, DownloadSuccess)
    assert (tmp_path / "export.html").read_text() == html


def test_download_login_page_without_auto_login(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text='<input name="email">', headers={"content-type": "text/html"})

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(
        orch.download(AccessRequest(url="https://example.com/file.pdf", browser="chrome", auto_login=False))
    )

    assert isinstance(result, LoginRequired)
    assert not (tmp_path / "file.pdf").exists()


def test_download_into_existing_directory_reports_open_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "report.pdf").mkdir()
    unlinked: list[Path] = []
    monkeypatch.setattr(Path, "unlink", lambda self, missing_ok=False: unlinked.append(self))

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"})

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(
        orch.download(AccessRequest(url="https://example.com/x", browser="chrome", output_path="report.pdf"))
    )

    assert isinstance(result, AccessError)
    assert "directory" in result.message.lower()
    assert unlinked == []
    assert (tmp_path / "report.pdf").is_dir()


def test_download_http_error_writes_nothing(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, content=b"missing", headers={"content-type": "text/plain"})

    orch = make_orchestrator(handler, tmp_path)
    result = asyncio.run(orch.download(AccessRequest(url="https://example.com/gone.bin", browser="chrome")))

    assert isinstance(result, AccessError)
    assert result.message == "HTTP 404: Not Found"
    assert not (tmp_path / "gone.bin").exists()


def test_download_auto_login_then_saves(tmp_path: Path) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 1:
            return httpx.Response(403)
        return httpx.Response(200, content=b"%PDF-1.7", headers={"content-type": "application/pdf"})

    launcher = RecordingLauncher()
    orch = make_orchestrator(handler, tmp_path, launcher=launcher)
    result = asyncio.run(orch.download(AccessRequest(url="https://example.com/doc.pdf", browser="chrome")))

    assert isinstance(result, DownloadSuccess)
    assert (tmp_path / "doc.pdf").read_bytes() == b"%PDF-1.7"
    assert launcher.opened == [("https://example.com/doc.pdf", "chrome")]


# ═══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════════


def test_resolve_output_path_accepts_nested_relative(tmp_path: Path) -> None:
    assert resolve_output_path("a/b/c.txt", tmp_path) == (tmp_path / "a" / "b" / "c.txt").resolve()


def test_resolve_output_path_rejects_sibling_with_shared_prefix(tmp_path: Path) -> None:
    root = tmp_path / "work"
    root.mkdir()

    with pytest.raises(ValidationError):
        resolve_output_path("../work-evil/file", root)


def test_content_disposition_parsing() -> None:
    assert filename_from_content_disposition('attachment; filename="a b.pdf"') == "a b.pdf"
    assert filename_from_content_disposition("attachment; filename=plain.txt") == "plain.txt"
    assert filename_from_content_disposition("attachment; filename*=UTF-8''na%C3%AFve.txt") == "naïve.txt"
    assert filename_from_content_disposition("inline") is None
    assert filename_from_content_disposition(None) is None


def test_filename_helpers_strip_paths() -> None:
    assert filename_from_url("https://example.com/dir/file%20name.csv?x=1") == "file name.csv"
    assert filename_from_url("https://example.com/") is None
    assert safe_filename("../../etc/passwd") == "passwd"
    assert safe_filename("a:b?.txt") == "a_b_.txt"
    assert safe_filename("..") == "download"
