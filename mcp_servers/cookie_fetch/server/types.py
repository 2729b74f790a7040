"""
Type definitions for MCP tool results.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class ToolContent:
    """Single content item in tool response."""

    type: str
    text: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP content format."""
        return {"type": self.type, "text": self.text}


@dataclass(slots=True)
class ToolResult:
    """Result of a tool execution."""

    content: list[ToolContent] = field(default_factory=list)
    is_error: bool = False
    # Raw payload kept for tests and logging; not part of the MCP wire format.
    data: Any | None = None

    @classmethod
    def json(cls, data: Any) -> ToolResult:
        """Create result with pretty-printed JSON text content."""
        return cls(content=[ToolContent(type="text", text=json.dumps(data, indent=2, ensure_ascii=False))], data=data)

    @classmethod
    def error(
        cls,
        message: str,
        *,
        tool: str | None = None,
        kind: str | None = None,
        suggestion: str | None = None,
    ) -> ToolResult:
        """Create error result: `Error: <message>` text with isError set."""
        payload: dict[str, Any] = {"ok": False, "error": message}
        if tool:
            payload["tool"] = tool
        if kind:
            payload["kind"] = kind
        if suggestion:
            payload["suggestion"] = suggestion
        return cls(content=[ToolContent(type="text", text=f"Error: {message}")], is_error=True, data=payload)

    def to_content_list(self) -> list[dict[str, Any]]:
        """Convert to MCP content list format."""
        return [c.to_dict() for c in self.content]

