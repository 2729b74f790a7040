"""Error taxonomy shared by the orchestrator, providers and tool handlers."""

from __future__ import annotations


class CookieFetchError(Exception):
    """Base error; `kind` is reported to the caller, `suggestion` is a hint for agents."""

    kind = "error"

    def __init__(self, message: str, *, suggestion: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion


class ValidationError(CookieFetchError):
    """Bad URL, bad scheme or an output path escaping the working directory."""

    kind = "validation"


class LoginTimeout(CookieFetchError):
    kind = "login_timeout"


class LoginCancelled(CookieFetchError):
    kind = "cancelled"
