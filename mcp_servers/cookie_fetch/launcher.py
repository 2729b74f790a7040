from __future__ import annotations

import logging
import shutil
import subprocess
import sys
import webbrowser
from dataclasses import dataclass, field

logger = logging.getLogger("mcp.cookies.launcher")

# macOS application names for `open -a`.
MAC_APP_NAMES: dict[str, str] = {
    "chrome": "Google Chrome",
    "edge": "Microsoft Edge",
    "firefox": "Firefox",
    "safari": "Safari",
    "brave": "Brave Browser",
    "opera": "Opera",
}

# Executables tried in order on Linux.
LINUX_EXECUTABLES: dict[str, tuple[str, ...]] = {
    "chrome": ("google-chrome", "google-chrome-stable"),
    "edge": ("microsoft-edge", "microsoft-edge-stable"),
    "firefox": ("firefox",),
    "brave": ("brave-browser", "brave"),
    "opera": ("opera",),
}

# App Paths names understood by `start` on Windows.
WINDOWS_EXECUTABLES: dict[str, str] = {
    "chrome": "chrome",
    "edge": "msedge",
    "firefox": "firefox",
    "brave": "brave",
    "opera": "opera",
}


@dataclass
class LaunchResult:
    command: list[str] = field(default_factory=list)
    started: bool = False
    message: str = ""


class BrowserLauncher:
    """Opens a URL in the user's own browser so they can sign in. Fire and forget."""

    def __init__(self, *, platform: str | None = None) -> None:
        self.platform = platform or sys.platform

    def build_open_command(self, url: str, browser: str) -> list[str] | None:
        if self.platform == "darwin":
            app = MAC_APP_NAMES.get(browser)
            return ["open", "-a", app, url] if app else ["open", url]
        if self.platform == "win32":
            exe = WINDOWS_EXECUTABLES.get(browser)
            return ["cmd", "/c", "start", "", exe, url] if exe else None
        for candidate in LINUX_EXECUTABLES.get(browser, ()):
            path = shutil.which(candidate)
            if path:
                return [path, url]
        return None

    def open(self, url: str, browser: str) -> LaunchResult:
        cmd = self.build_open_command(url, browser)
        if cmd:
            popen_kwargs: dict[str, object] = {
                "stdin": subprocess.DEVNULL,
                "stdout": subprocess.DEVNULL,
                "stderr": subprocess.DEVNULL,
            }
            if self.platform != "win32":
                popen_kwargs["start_new_session"] = True
            try:
                subprocess.Popen(cmd, **popen_kwargs)  # type: ignore[arg-type]  # noqa: S603
                logger.info("opened browser=%s for login", browser)
                return LaunchResult(cmd, True, f"Opened {browser}")
            except OSError as exc:
                logger.warning("launch failed browser=%s: %s", browser, exc)

        try:
            opened = webbrowser.open(url, new=2)
        except webbrowser.Error as exc:
            logger.warning("webbrowser fallback failed: %s", exc)
            return LaunchResult(cmd or [], False, str(exc))
        message = "Opened system default browser" if opened else "No browser could be opened"
        return LaunchResult(cmd or [], bool(opened), message)
