"""
Tool registry with dispatch table for MCP server.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from .types import ToolResult

if TYPE_CHECKING:
    from ..orchestrator import ResourceAccessOrchestrator

logger = logging.getLogger("mcp.cookies.registry")

HandlerFunc = Callable[["ResourceAccessOrchestrator", dict[str, Any]], Awaitable[ToolResult]]


class ToolRegistry:
    """Registry for async tool handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, HandlerFunc] = {}

    def register_many(self, handlers: dict[str, HandlerFunc]) -> None:
        """Register multiple handlers at once."""
        self._handlers.update(handlers)

    def has(self, name: str) -> bool:
        """Check if handler exists."""
        return name in self._handlers

    async def dispatch(
        self,
        name: str,
        orchestrator: ResourceAccessOrchestrator,
        arguments: dict[str, Any],
    ) -> ToolResult:
        """Dispatch tool call to appropriate handler."""
        handler = self._handlers.get(name)
        if handler is None:
            raise KeyError(f"Unknown tool: {name}")
        return await handler(orchestrator, arguments)

    def __len__(self) -> int:
        return len(self._handlers)


def create_default_registry() -> ToolRegistry:
    from .handlers import ALL_HANDLERS

    registry = ToolRegistry()
    registry.register_many(ALL_HANDLERS)  # type: ignore[arg-type]
    logger.info("Registered %d tool handlers", len(registry))
    return registry


__all__ = ["HandlerFunc", "ToolRegistry", "create_default_registry"]
