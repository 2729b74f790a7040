"""
MCP server that fetches and downloads URLs with the user's browser cookies.

This module provides the main entry point and protocol handling.
Tool dispatch is handled via registry pattern in server/registry.py.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from collections.abc import Callable
from typing import Any

from .config import CookieFetchConfig
from .errors import CookieFetchError
from .orchestrator import ResourceAccessOrchestrator
from .server.contract import (
    DEFAULT_PROTOCOL_VERSION,
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    initialize_result,
    select_protocol,
    tools_list,
)
from .server.redaction import redact_jsonrpc_for_log, redact_tool_arguments
from .server.registry import ToolRegistry, create_default_registry
from .server.types import ToolResult

logger = logging.getLogger("mcp.cookies")

__all__ = [
    "SUPPORTED_PROTOCOL_VERSIONS",
    "LATEST_PROTOCOL_VERSION",
    "DEFAULT_PROTOCOL_VERSION",
    "McpServer",
    "main",
]

PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602


def _write_message(payload: dict[str, Any]) -> None:
    """Write JSON-RPC message to stdout."""
    if os.environ.get("MCP_TRACE"):
        logger.info("send %s", redact_jsonrpc_for_log(payload))
    line = (json.dumps(payload, ensure_ascii=False) + "\n").encode()
    sys.stdout.buffer.write(line)
    sys.stdout.buffer.flush()


def _parse_message(line: bytes) -> dict[str, Any] | None:
    """Decode one JSON-RPC line; None for blank lines."""
    line = line.strip()
    if not line:
        return None
    msg = json.loads(line.decode())
    if os.environ.get("MCP_TRACE"):
        logger.info("recv %s", redact_jsonrpc_for_log(msg))
    return msg if isinstance(msg, dict) else {}


class McpServer:
    """MCP Server with registry-based tool dispatch.

    Every tools/call runs as its own asyncio task, so a call waiting for the
    user to log in does not hold up other calls. A `notifications/cancelled`
    for an in-flight request cancels its task; no response is sent for it.
    """

    def __init__(
        self,
        *,
        config: CookieFetchConfig | None = None,
        orchestrator: ResourceAccessOrchestrator | None = None,
        registry: ToolRegistry | None = None,
        writer: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.config = config or CookieFetchConfig.from_env()
        self.orchestrator = orchestrator or ResourceAccessOrchestrator(self.config)
        self.registry = registry or create_default_registry()
        self._write = writer or _write_message
        self._in_flight: dict[Any, asyncio.Task[None]] = {}

    def _reply(self, request_id: Any, result: dict[str, Any]) -> None:
        self._write({"jsonrpc": "2.0", "id": request_id, "result": result})

    def _reply_error(self, request_id: Any, code: int, message: str) -> None:
        self._write({"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}})

    def handle_initialize(self, request_id: Any, params: dict[str, Any] | None = None) -> None:
        """Handle initialize request."""
        requested = params.get("protocolVersion") if isinstance(params, dict) else None
        self._reply(request_id, initialize_result(select_protocol(requested)))

    def handle_list_tools(self, request_id: Any) -> None:
        """Handle tools/list request."""
        self._reply(request_id, {"tools": tools_list()})

    def _log_call(self, name: str, arguments: dict[str, Any]) -> None:
        """Log tool call with sanitized arguments."""
        logger.info("tool=%s args=%s", name, redact_tool_arguments(name, arguments))

    async def handle_call_tool(self, request_id: Any, name: str, arguments: dict[str, Any]) -> None:
        """Run one tool call and write its result."""
        self._log_call(name, arguments)
        try:
            result = await self.registry.dispatch(name, self.orchestrator, arguments)
        except asyncio.CancelledError:
            logger.info("tool=%s id=%s cancelled", name, request_id)
            raise
        except CookieFetchError as e:
            logger.info("tool_error tool=%s kind=%s reason=%s", name, e.kind, e.message)
            result = ToolResult.error(e.message, tool=name, kind=e.kind, suggestion=e.suggestion)
        except Exception as exc:
            logger.exception("tool_call_failed")
            result = ToolResult.error(str(exc), tool=name)

        self._reply(request_id, {"content": result.to_content_list(), "isError": result.is_error})

    def handle_cancelled(self, params: dict[str, Any]) -> None:
        request_id = params.get("requestId")
        task = self._in_flight.get(request_id)
        if task is None:
            return
        logger.info("cancelling request id=%s reason=%s", request_id, params.get("reason") or "-")
        task.cancel()

    def _spawn_call(self, request_id: Any, name: str, arguments: dict[str, Any]) -> asyncio.Task[None]:
        task = asyncio.create_task(self.handle_call_tool(request_id, name, arguments))
        key = request_id if request_id is not None else task
        self._in_flight[key] = task
        task.add_done_callback(lambda _t: self._in_flight.pop(key, None))
        return task

    def dispatch(self, message: dict[str, Any]) -> asyncio.Task[None] | None:
        """Dispatch incoming JSON-RPC message; tools/call returns the spawned task.

        Must be called from a running event loop.
        """
        if not message:
            return None

        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") or {}
        if not isinstance(params, dict):
            params = {}

        if method == "initialize":
            self.handle_initialize(request_id, params)
        elif method in ("notifications/initialized", "initialized"):
            return None
        elif method == "notifications/cancelled":
            self.handle_cancelled(params)
        elif method == "tools/list":
            self.handle_list_tools(request_id)
        elif method == "tools/call":
            name = params.get("name")
            arguments = params.get("arguments")
            if not isinstance(arguments, dict):
                arguments = {}
            if not isinstance(name, str) or not self.registry.has(name):
                self._reply_error(request_id, INVALID_PARAMS, f"Unknown tool: {name}")
                return None
            return self._spawn_call(request_id, name, arguments)
        elif method == "ping":
            self._reply(request_id, {})
        elif request_id is None:
            # Unknown notification: nothing to answer.
            return None
        else:
            self._reply_error(request_id, METHOD_NOT_FOUND, f"Method {method} not found")
        return None

    async def serve(self, readline: Callable[[], bytes] | None = None) -> None:
        """Read stdin line by line until EOF, then let in-flight calls finish."""
        readline = readline or sys.stdin.buffer.readline
        loop = asyncio.get_running_loop()
        while True:
            raw = await loop.run_in_executor(None, readline)
            if not raw:
                break
            try:
                message = _parse_message(raw)
            except ValueError as exc:
                logger.warning("invalid frame: %s", exc)
                self._reply_error(None, PARSE_ERROR, "Parse error")
                continue
            if message is None:
                continue
            self.dispatch(message)

        pending = list(self._in_flight.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


def main() -> None:
    """Main entry point for MCP server."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    server = McpServer()
    try:
        asyncio.run(server.serve())
    except KeyboardInterrupt:
        logger.info("interrupted")


if __name__ == "__main__":
    main()
