"""MCP tool definitions for process sessions."""

import functools
import json
import logging
from typing import Any, Awaitable, Callable

from mcp.server import Server
from mcp.types import Tool, TextContent

from .errors import SessionError
from .keys import describe_keys, encode_keys
from .manager import SessionManager

logger = logging.getLogger(__name__)

SEND_KEYS_HELP = """Keys to send using tmux-style encoding:
- Literal text: typed as-is
- C-c, C-d: Ctrl+C, Ctrl+D
- M-x: Alt+X
- S-Tab: Shift+Tab
- Enter, Tab, Escape, Space, Backspace, Delete, Insert
- Up, Down, Left, Right (arrow keys), Home, End, PageUp, PageDown
- F1-F12 (function keys)
Examples: "ls -la Enter", "C-c", "vim file.txt Enter :wq Enter\""""

_SESSION_ID = {
    "type": "string",
    "description": "Session ID from process_spawn",
}


def _result(payload: dict) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload))]


def ok(data: dict) -> list[TextContent]:
    return _result({"success": True, "data": data})


def error(message: str, code: str) -> list[TextContent]:
    return _result({"success": False, "error": message, "code": code})


def tool_handler(
    func: Callable[..., Awaitable[list[TextContent]]]
) -> Callable[..., Awaitable[list[TextContent]]]:
    """Turn exceptions raised by a tool into structured error results."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> list[TextContent]:
        try:
            return await func(*args, **kwargs)
        except SessionError as e:
            return error(str(e), e.code)
        except KeyError as e:
            return error(f"Missing required argument: {e.args[0]}", "INVALID_ARGUMENT")
        except (ValueError, TypeError) as e:
            return error(str(e), "INVALID_ARGUMENT")
        except Exception as e:
            logger.exception("Tool %s failed", func.__name__)
            return error(f"Error: {e}", "INTERNAL_ERROR")

    return wrapper


def register_tools(server: Server, session_manager: SessionManager) -> None:
    """Register all process tools with the MCP server."""

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(
                name="process_spawn",
                description="Start a new interactive terminal session. Use for running interactive CLI tools like vim, a python REPL, etc. Returns a sessionId for subsequent operations.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "command": {
                            "type": "string",
                            "description": 'Command to execute (e.g., "bash", "vim", "python")',
                        },
                        "cwd": {
                            "type": "string",
                            "description": "Working directory",
                        },
                        "env": {
                            "type": "object",
                            "additionalProperties": {"type": "string"},
                            "description": "Additional environment variables",
                        },
                        "cols": {
                            "type": "integer",
                            "description": "Terminal columns (default: 80)",
                        },
                        "rows": {
                            "type": "integer",
                            "description": "Terminal rows (default: 24)",
                        },
                    },
                    "required": ["command"],
                },
            ),
            Tool(
                name="process_send_keys",
                description="Send keystrokes to an interactive terminal session. Supports tmux-style key encoding (C-c for Ctrl+C, M-x for Alt+X, Enter, Tab, arrow keys, etc.).",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "sessionId": _SESSION_ID,
                        "keys": {"type": "string", "description": SEND_KEYS_HELP},
                    },
                    "required": ["sessionId", "keys"],
                },
            ),
            Tool(
                name="process_read",
                description="Read the current output buffer from an interactive terminal session. Use after sending commands to see results.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "sessionId": _SESSION_ID,
                        "wait": {
                            "type": "number",
                            "description": "Wait time in ms for new output (0 = immediate return, default: 100)",
                        },
                        "clear": {
                            "type": "boolean",
                            "description": "Clear the output buffer after reading (default: true)",
                        },
                    },
                    "required": ["sessionId"],
                },
            ),
            Tool(
                name="process_kill",
                description="Terminate an interactive terminal session. Use SIGTERM for graceful shutdown, SIGKILL for force kill.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "sessionId": _SESSION_ID,
                        "signal": {
                            "type": "string",
                            "enum": ["SIGTERM", "SIGKILL", "SIGINT"],
                            "description": "Signal to send (default: SIGTERM)",
                        },
                    },
                    "required": ["sessionId"],
                },
            ),
            Tool(
                name="process_list",
                description="List all active interactive terminal sessions.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "verbose": {
                            "type": "boolean",
                            "description": "Include detailed session information",
                        },
                    },
                },
            ),
            Tool(
                name="process_resize",
                description="Resize the terminal dimensions of an interactive session.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "sessionId": _SESSION_ID,
                        "cols": {
                            "type": "integer",
                            "description": "New terminal width in columns",
                        },
                        "rows": {
                            "type": "integer",
                            "description": "New terminal height in rows",
                        },
                    },
                    "required": ["sessionId", "cols", "rows"],
                },
            ),
            Tool(
                name="process_describe_keys",
                description="Preview how a send-keys string will be interpreted, without sending it.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "keys": {"type": "string", "description": SEND_KEYS_HELP},
                    },
                    "required": ["keys"],
                },
            ),
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[TextContent]:
        handler = TOOL_HANDLERS.get(name)
        if handler is None:
            return error(f"Unknown tool: {name}", "INVALID_ARGUMENT")
        return await handler(session_manager, arguments or {})


@tool_handler
async def _spawn(manager: SessionManager, args: dict) -> list[TextContent]:
    result = await manager.spawn(
        command=args["command"],
        cwd=args.get("cwd"),
        env=args.get("env"),
        cols=int(args.get("cols", 80)),
        rows=int(args.get("rows", 24)),
    )
    return ok(result.to_dict())


@tool_handler
async def _send_keys(manager: SessionManager, args: dict) -> list[TextContent]:
    success = await manager.send_keys(args["sessionId"], args["keys"])
    return ok({"success": success})


@tool_handler
async def _read(manager: SessionManager, args: dict) -> list[TextContent]:
    result = await manager.read(
        args["sessionId"],
        wait=float(args.get("wait", 100)),
        clear=bool(args.get("clear", True)),
    )
    return ok(result.to_dict())


@tool_handler
async def _kill(manager: SessionManager, args: dict) -> list[TextContent]:
    result = await manager.kill(args["sessionId"], args.get("signal", "SIGTERM"))
    return ok(result.to_dict())


@tool_handler
async def _resize(manager: SessionManager, args: dict) -> list[TextContent]:
    success = manager.resize(args["sessionId"], int(args["cols"]), int(args["rows"]))
    return ok({"success": success})


@tool_handler
async def _list(manager: SessionManager, args: dict) -> list[TextContent]:
    sessions = manager.list_sessions(verbose=bool(args.get("verbose", False)))
    return ok({"sessions": sessions})


@tool_handler
async def _describe_keys(manager: SessionManager, args: dict) -> list[TextContent]:
    keys = args["keys"]
    return ok({"description": describe_keys(keys), "bytes": encode_keys(keys).hex()})


TOOL_HANDLERS = {
    "process_spawn": _spawn,
    "process_send_keys": _send_keys,
    "process_read": _read,
    "process_kill": _kill,
    "process_resize": _resize,
    "process_list": _list,
    "process_describe_keys": _describe_keys,
}
