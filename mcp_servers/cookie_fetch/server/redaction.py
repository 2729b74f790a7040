"""Redaction utilities for logging.

Tool arguments and traced JSON-RPC frames may carry session-bearing URLs,
cookie headers and page bodies; none of those reach the log verbatim.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SENSITIVE_SUBSTRINGS = (
    "token",
    "secret",
    "password",
    "passwd",
    "pwd",
    "authorization",
    "cookie",
    "session",
    "jwt",
    "bearer",
    "api-key",
    "api_key",
    "apikey",
    "saml",
    "ticket",
)

# Avoid false-positives like "author" while still protecting the obvious key.
_SENSITIVE_EXACT = {"auth", "code", "state", "sig", "signature"}

_TRACE_TEXT_LIMIT = 512


def is_sensitive_key(key: str) -> bool:
    k = (key or "").strip().lower()
    if not k:
        return False
    if k in _SENSITIVE_EXACT:
        return True
    return any(s in k for s in _SENSITIVE_SUBSTRINGS)


def _redact_pairs(raw: str) -> tuple[str, bool]:
    pairs = parse_qsl(raw, keep_blank_values=True)
    out: list[tuple[str, str]] = []
    redacted_any = False
    for k, v in pairs:
        if v and is_sensitive_key(k):
            out.append((k, "<redacted>"))
            redacted_any = True
        else:
            out.append((k, v))
    return (urlencode(out, doseq=True) if redacted_any else raw), redacted_any


def redact_url(url: str) -> str:
    """Redact sensitive URL parameters and userinfo, leaving ordinary queries intact.

    Returns the original URL unchanged when no redaction is needed.
    """
    if not isinstance(url, str) or not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    changed = False
    netloc = parts.netloc
    if "@" in netloc:
        netloc = netloc.rsplit("@", 1)[1]
        changed = True

    query, hit = _redact_pairs(parts.query) if parts.query else ("", False)
    changed = changed or hit

    fragment = parts.fragment
    if fragment and "=" in fragment:
        fragment, hit = _redact_pairs(fragment)
        changed = changed or hit

    if not changed:
        return url
    return urlunsplit((parts.scheme, netloc, parts.path, query, fragment))


def _redacted_summary(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, str, list, tuple)):
        return f"<redacted len={len(value)}>"
    if isinstance(value, dict):
        return f"<redacted dict keys={len(value)}>"
    return "<redacted>"


def redact_headers(headers: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in (headers or {}).items():
        lk = str(k).lower()
        if lk in {"cookie", "set-cookie", "authorization", "proxy-authorization"} or is_sensitive_key(lk):
            out[k] = _redacted_summary(v)
        else:
            out[k] = v
    return out


def _redact_any(value: Any, key: str | None) -> Any:
    if isinstance(value, dict):
        lk = (key or "").lower()
        if lk == "headers":
            return redact_headers(value)
        return {k: _redact_any(v, str(k)) for k, v in value.items()}
    if isinstance(value, list):
        return [_redact_any(v, key) for v in value]

    lk = (key or "").lower()
    if isinstance(value, str) and lk in {"url", "finalurl", "loginurl", "originalurl"}:
        return redact_url(value)
    if lk == "body":
        return _redacted_summary(value)
    # Counts such as cookiesUsed stay visible.
    if is_sensitive_key(lk) and not isinstance(value, (bool, int, float)):
        return _redacted_summary(value)
    return value


def redact_tool_arguments(tool: str, args: dict[str, Any]) -> dict[str, Any]:
    """Redact tool arguments for safe logging."""
    if not isinstance(args, dict):
        return {}
    return _redact_any(args, key=None)


def _redact_text_content(text: str) -> str:
    try:
        obj = json.loads(text)
    except ValueError:
        return text if len(text) <= _TRACE_TEXT_LIMIT else text[:_TRACE_TEXT_LIMIT] + f"… <truncated len={len(text)}>"
    return json.dumps(_redact_any(obj, key=None), ensure_ascii=False)


def redact_jsonrpc_for_log(payload: dict[str, Any]) -> dict[str, Any]:
    """Redact a JSON-RPC frame for MCP_TRACE logging."""
    msg = dict(payload) if isinstance(payload, dict) else {}

    params = msg.get("params")
    if msg.get("method") == "tools/call" and isinstance(params, dict):
        params = dict(params)
        name = params.get("name")
        args = params.get("arguments")
        if isinstance(args, dict):
            params["arguments"] = redact_tool_arguments(str(name or ""), args)
        msg["params"] = params

    result = msg.get("result")
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        content = []
        for item in result["content"]:
            if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
                item = {**item, "text": _redact_text_content(item["text"])}
            content.append(item)
        msg["result"] = {**result, "content": content}

    return msg
