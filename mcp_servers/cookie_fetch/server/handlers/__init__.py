"""
Tool handlers.

All handlers follow the signature: async (orchestrator, arguments) -> ToolResult
"""

from .access import ACCESS_HANDLERS

ALL_HANDLERS: dict[str, object] = {
    **ACCESS_HANDLERS,
}

__all__ = ["ALL_HANDLERS", "ACCESS_HANDLERS"]
