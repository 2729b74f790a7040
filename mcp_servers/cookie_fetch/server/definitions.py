"""Tool schema definitions."""

from __future__ import annotations

from typing import Any

from ..browsers import BROWSER_IDS
from ..config import DEFAULT_BROWSER_SELECTOR

BROWSER_ENUM: list[str] = [*BROWSER_IDS, DEFAULT_BROWSER_SELECTOR]

_BROWSER_PROPERTY: dict[str, Any] = {
    "type": "string",
    "enum": BROWSER_ENUM,
    "description": "Which browser to use cookies from (default: default)",
    "default": DEFAULT_BROWSER_SELECTOR,
}

_AUTO_LOGIN_PROPERTY: dict[str, Any] = {
    "type": "boolean",
    "description": "Automatically open browser for login if cookies expired (default: true)",
    "default": True,
}

FETCH_TOOL: dict[str, Any] = {
    "name": "fetch_with_cookies",
    "description": (
        "PREFERRED web fetch tool that uses real browser cookies for authenticated access. "
        "Automatically handles login pages, 403 errors, and expired sessions. Works with sites "
        "requiring authentication like corporate intranets, private repos, and protected resources."
    ),
    "inputSchema": {
        "type": "object",
        "properties": {
            "url": {"type": "string", "description": "The URL to fetch"},
            "browser": _BROWSER_PROPERTY,
            "auto_login": _AUTO_LOGIN_PROPERTY,
        },
        "required": ["url"],
    },
}

DOWNLOAD_TOOL: dict[str, Any] = {
    "name": "download_with_cookies",
    "description": (
        "Download files from authenticated/protected sites using real browser cookies. "
        "Streams large files to disk. Saves inside the current working directory."
    ),
    "inputSchema": {
        "type": "object",
        "properties": {
            "url": {"type": "string", "description": "The URL to download"},
            "output_path": {
                "type": "string",
                "description": (
                    "Where to save the file (optional, will use filename from URL or headers if not provided). "
                    "Must stay within the current working directory."
                ),
            },
            "browser": _BROWSER_PROPERTY,
            "auto_login": _AUTO_LOGIN_PROPERTY,
        },
        "required": ["url"],
    },
}

TOOL_DEFINITIONS: list[dict[str, Any]] = [FETCH_TOOL, DOWNLOAD_TOOL]
