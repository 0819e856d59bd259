"""Model Context Protocol front end served on stdin/stdout.

The ``mcp`` SDK owns framing, initialization and argument validation.  Tool
calls are handed to the registry on one dedicated worker thread, the same
arrangement the HTTP app uses, so the Access COM object never changes thread.
"""
from __future__ import annotations

import asyncio
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Dict, List, Optional

from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from access_mcp import __version__
from access_mcp.session.manager import AccessSession
from access_mcp.tools import call_tool, list_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "access-mcp"


def tool_definitions() -> List[types.Tool]:
    return [
        types.Tool(name=entry["name"], description=entry["description"], inputSchema=entry["inputSchema"])
        for entry in list_tools()
    ]


def call_result(payload: Dict[str, Any]) -> types.CallToolResult:
    """Wrap a registry payload; ``success: false`` payloads become tool errors."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=json.dumps(payload, default=str))],
        structuredContent=payload,
        isError=payload.get("success") is False,
    )


def build_server(session: AccessSession, executor: Optional[ThreadPoolExecutor] = None) -> Server:
    worker = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="access-session")
    server: Server = Server(SERVER_NAME, version=__version__)

    @server.list_tools()
    async def _list_tools() -> List[types.Tool]:
        return tool_definitions()

    @server.call_tool()
    async def _call_tool(name: str, arguments: Dict[str, Any]) -> types.CallToolResult:
        logger.debug("MCP tools/call %s", name, extra={"event": "mcp_call", "tool": name})
        loop = asyncio.get_running_loop()
        payload = await loop.run_in_executor(worker, partial(call_tool, session, name, arguments or {}))
        return call_result(payload)

    return server


async def serve_stdio(session: AccessSession) -> None:
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="access-session")
    server = build_server(session, executor)
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(executor, session.close)
        finally:
            executor.shutdown(wait=True)
        logger.info("Access session closed", extra={"event": "shutdown"})


__all__ = ["SERVER_NAME", "build_server", "call_result", "serve_stdio", "tool_definitions"]
