"""Server package for the cookie-aware fetch MCP server.

Keep this package import light: the orchestrator imports `server.redaction`,
so the registry (which imports the orchestrator) is only loaded on demand.
"""

from __future__ import annotations

from typing import Any

__all__ = ["ToolRegistry", "create_default_registry"]


def __getattr__(name: str) -> Any:  # pragma: no cover
    if name in {"ToolRegistry", "create_default_registry"}:
        from .registry import ToolRegistry, create_default_registry

        return {"ToolRegistry": ToolRegistry, "create_default_registry": create_default_registry}[name]
    raise AttributeError(name)
