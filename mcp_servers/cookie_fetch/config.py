from __future__ import annotations

import os
from dataclasses import dataclass, field

# Current Chrome desktop User-Agent (Dec 2024).
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

DEFAULT_BROWSER_SELECTOR = "default"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass
class CookieFetchConfig:
    user_agent: str = DEFAULT_USER_AGENT
    default_browser: str = DEFAULT_BROWSER_SELECTOR
    http_timeout: float = 30.0
    login_timeout: float = 120.0
    login_poll_interval: float = 5.0
    allow_hosts: list[str] = field(default_factory=list)

    @staticmethod
    def normalize_browser(raw: str | None) -> str:
        browser = (raw or "").strip().lower()
        return browser or DEFAULT_BROWSER_SELECTOR

    @classmethod
    def from_env(cls) -> CookieFetchConfig:
        allow_raw = os.environ.get("MCP_ALLOW_HOSTS", "")
        allow_hosts = [host.strip().lower() for host in allow_raw.split(",") if host.strip() and host.strip() != "*"]
        user_agent = (os.environ.get("MCP_USER_AGENT") or "").strip() or DEFAULT_USER_AGENT
        return cls(
            user_agent=user_agent,
            default_browser=cls.normalize_browser(os.environ.get("MCP_COOKIES_BROWSER")),
            http_timeout=_env_float("MCP_HTTP_TIMEOUT", 30.0),
            login_timeout=_env_float("MCP_LOGIN_TIMEOUT", 120.0),
            login_poll_interval=_env_float("MCP_LOGIN_POLL_INTERVAL", 5.0),
            allow_hosts=allow_hosts,
        )

    def is_host_allowed(self, host: str) -> bool:
        host = (host or "").strip().lower().rstrip(".")
        if not self.allow_hosts:
            return True
        for raw_allowed in self.allow_hosts:
            allowed = (raw_allowed or "").strip().lower().lstrip(".").rstrip(".")
            if not allowed:
                continue
            if host == allowed:
                return True
            if host.endswith("." + allowed):
                return True
        return False
