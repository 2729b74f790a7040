"""Protocol and tool contract definitions.

This is the single source of truth for:
- supported MCP protocol versions
- server identity
- capabilities advertised by initialize
- tool list
"""

from __future__ import annotations

from typing import Any

from .definitions import TOOL_DEFINITIONS

SERVER_INFO: dict[str, str] = {"name": "mcp-cookies", "version": "1.0.0"}

SUPPORTED_PROTOCOL_VERSIONS = ["2025-06-18", "2024-11-05"]
LATEST_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[0]
DEFAULT_PROTOCOL_VERSION = LATEST_PROTOCOL_VERSION

CAPABILITIES: dict[str, Any] = {
    "tools": {"listChanged": False},
}


def select_protocol(requested: Any) -> str:
    if isinstance(requested, str) and requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return DEFAULT_PROTOCOL_VERSION


def initialize_result(protocol: str) -> dict[str, Any]:
    return {
        "protocolVersion": protocol,
        "serverInfo": SERVER_INFO,
        "capabilities": CAPABILITIES,
    }


def tools_list() -> list[dict[str, Any]]:
    return TOOL_DEFINITIONS
