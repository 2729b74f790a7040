"""Fetch/download handlers for the tool registry."""

from __future__ import annotations

from typing import Any

from ...orchestrator import AccessError, AccessRequest, AccessResult, ResourceAccessOrchestrator
from ..types import ToolResult


def _flag(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in {"false", "0", "no", "off", ""}
    return bool(value)


def _request_from(orchestrator: ResourceAccessOrchestrator, args: dict[str, Any]) -> AccessRequest:
    output_path = args.get("output_path")
    if not isinstance(output_path, str) or not output_path.strip():
        output_path = None
    browser = args.get("browser")
    return AccessRequest(
        url=args.get("url") or "",
        browser=browser if isinstance(browser, str) and browser.strip() else orchestrator.config.default_browser,
        auto_login=_flag(args.get("auto_login")),
        output_path=output_path,
    )


def _to_tool_result(result: AccessResult, tool: str) -> ToolResult:
    if isinstance(result, AccessError):
        return ToolResult.error(result.message, tool=tool, kind=result.kind, suggestion=result.suggestion)
    return ToolResult.json(result.to_dict())


async def handle_fetch(orchestrator: ResourceAccessOrchestrator, args: dict[str, Any]) -> ToolResult:
    """Fetch a page with browser cookies."""
    result = await orchestrator.fetch(_request_from(orchestrator, args))
    return _to_tool_result(result, "fetch_with_cookies")


async def handle_download(orchestrator: ResourceAccessOrchestrator, args: dict[str, Any]) -> ToolResult:
    """Download a file with browser cookies."""
    result = await orchestrator.download(_request_from(orchestrator, args))
    return _to_tool_result(result, "download_with_cookies")


ACCESS_HANDLERS: dict[str, Any] = {
    "fetch_with_cookies": handle_fetch,
    "download_with_cookies": handle_download,
}
