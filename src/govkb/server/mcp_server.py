"""GOVKB MCP Server -- stdio MCP server exposing the knowledgebase tools."""

import asyncio
import collections
import logging
import os
import sys
import time

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from govkb.server.handlers import HANDLERS
from govkb.server.tool_schemas import TOOL_SCHEMAS

logger = logging.getLogger("govkb.server")

server = Server("govkb")

# ---------------------------------------------------------------------------
# Rate limiting -- one sliding window for all calls, one for writes
# ---------------------------------------------------------------------------
_GLOBAL_RATE_LIMIT = int(os.environ.get("GOVKB_RATE_LIMIT_GLOBAL", "300"))  # per minute
_WRITE_RATE_LIMIT = int(os.environ.get("GOVKB_RATE_LIMIT_WRITE", "60"))  # per minute

_WRITE_TOOLS = frozenset({"kb_learn", "kb_import", "kb_remove", "kb_clear"})


class _SlidingWindow:
    """Call timestamps seen in the last ``window_s`` seconds."""

    def __init__(self, window_s: float = 60.0):
        self.window_s = window_s
        self._calls: collections.deque = collections.deque()

    def admit(self, limit: int) -> bool:
        """Record a call and return True, or False if limit is already reached."""
        now = time.monotonic()
        while self._calls and now - self._calls[0] > self.window_s:
            self._calls.popleft()
        if len(self._calls) >= limit:
            return False
        self._calls.append(now)
        return True

    def clear(self) -> None:
        self._calls.clear()


_all_calls = _SlidingWindow()
_write_calls = _SlidingWindow()


def _check_rate_limit(tool_name: str) -> str | None:
    """Error text when tool_name would exceed a rate limit, else None."""
    if not _all_calls.admit(_GLOBAL_RATE_LIMIT):
        return f"Rate limit exceeded: {_GLOBAL_RATE_LIMIT} calls/min. Try again shortly."
    if tool_name in _WRITE_TOOLS and not _write_calls.admit(_WRITE_RATE_LIMIT):
        return f"Rate limit exceeded: {_WRITE_RATE_LIMIT} write calls/min. Try again shortly."
    return None


def reset_rate_limits() -> None:
    _all_calls.clear()
    _write_calls.clear()


@server.list_tools()
async def list_tools() -> list[Tool]:
    """Return all knowledgebase tools."""
    return [
        Tool(
            name=schema["name"],
            description=schema["description"],
            inputSchema=schema["inputSchema"],
        )
        for schema in TOOL_SCHEMAS
    ]


async def dispatch(name: str, arguments: dict) -> str:
    """Run one tool call and return its text payload."""
    rate_err = _check_rate_limit(name)
    if rate_err:
        return rate_err

    handler = HANDLERS.get(name)
    if not handler:
        return f"Unknown tool: {name}"

    try:
        result = await handler(arguments or {})
    except Exception as e:
        logger.error("Tool %s failed: %s", name, e)
        return f"Error in {name}: {e}"
    content_list = result.get("content", [{}])
    return content_list[0].get("text", str(result)) if content_list else str(result)


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Dispatch tool call to the appropriate handler."""
    return [TextContent(type="text", text=await dispatch(name, arguments))]


async def main():
    """Entry point for the GOVKB MCP server."""
    logging.basicConfig(
        level=os.environ.get("GOVKB_LOG_LEVEL", "WARNING").upper(),
        stream=sys.stderr,
    )
    logger.info("Starting GOVKB MCP server...")

    from govkb.bridge import get_store, reset_store

    # Load the persisted knowledgebase before the first tool call
    get_store()
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        reset_store()


if __name__ == "__main__":
    asyncio.run(main())
