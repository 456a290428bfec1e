"""Integration tests for MCP tools."""

import asyncio
import json

import pytest

from process_mcp.tools import (
    TOOL_HANDLERS,
    _describe_keys,
    _kill,
    _list,
    _read,
    _resize,
    _send_keys,
    _spawn,
)


def parse(result):
    assert len(result) == 1
    assert result[0].type == "text"
    return json.loads(result[0].text)


async def spawn_session(manager, **args):
    payload = parse(await _spawn(manager, {"command": "sh", **args}))
    assert payload["success"], payload
    return payload["data"]["sessionId"]


async def read_text(manager, session_id, needle, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    collected = ""
    while loop.time() < deadline:
        payload = parse(await _read(manager, {"sessionId": session_id, "wait": 100}))
        assert payload["success"], payload
        collected += payload["data"]["content"] + "\n"
        if needle in collected:
            return collected
    raise AssertionError(f"{needle!r} not in {collected!r}")


def test_all_operations_registered():
    assert set(TOOL_HANDLERS) == {
        "process_spawn",
        "process_send_keys",
        "process_read",
        "process_kill",
        "process_resize",
        "process_list",
        "process_describe_keys",
    }


@pytest.mark.asyncio
async def test_spawn_tool(manager):
    """Test process_spawn tool."""
    payload = parse(await _spawn(manager, {"command": "sh"}))

    assert payload["success"] is True
    assert payload["data"]["sessionId"].startswith("proc-")
    assert payload["data"]["pid"] > 0


@pytest.mark.asyncio
async def test_spawn_missing_command(manager):
    payload = parse(await _spawn(manager, {}))

    assert payload["success"] is False
    assert payload["code"] == "INVALID_ARGUMENT"
    assert "command" in payload["error"]


@pytest.mark.asyncio
async def test_spawn_bad_cwd(manager):
    payload = parse(await _spawn(manager, {"command": "sh", "cwd": "/nonexistent/dir"}))

    assert payload["success"] is False
    assert payload["code"] == "SPAWN_ERROR"


@pytest.mark.asyncio
async def test_send_keys_and_read_tools(manager):
    session_id = await spawn_session(manager)

    payload = parse(
        await _send_keys(manager, {"sessionId": session_id, "keys": "echo tool_test Enter"})
    )
    assert payload == {"success": True, "data": {"success": True}}

    output = await read_text(manager, session_id, "tool_test")
    assert "tool_test" in output


@pytest.mark.asyncio
async def test_read_shape_after_drain(manager):
    session_id = await spawn_session(manager)
    await asyncio.sleep(0.3)
    parse(await _read(manager, {"sessionId": session_id, "wait": 0}))

    payload = parse(await _read(manager, {"sessionId": session_id, "wait": 0}))
    assert payload["data"] == {"content": "", "lines": 0, "hasMore": False}


@pytest.mark.asyncio
async def test_send_keys_not_found(manager):
    """Test send_keys with invalid session."""
    payload = parse(
        await _send_keys(manager, {"sessionId": "invalid123", "keys": "echo test"})
    )

    assert payload["success"] is False
    assert payload["code"] == "SESSION_NOT_FOUND"
    assert "Session not found" in payload["error"]


@pytest.mark.asyncio
async def test_kill_tool(manager):
    """Test process_kill tool."""
    session_id = await spawn_session(manager)

    payload = parse(await _kill(manager, {"sessionId": session_id}))
    assert payload["success"] is True
    assert payload["data"]["success"] is True

    # Verify session is gone
    payload = parse(await _kill(manager, {"sessionId": session_id}))
    assert payload["code"] == "SESSION_NOT_FOUND"

    payload = parse(await _read(manager, {"sessionId": session_id}))
    assert payload["code"] == "SESSION_NOT_FOUND"


@pytest.mark.asyncio
async def test_kill_invalid_signal(manager):
    session_id = await spawn_session(manager)

    payload = parse(await _kill(manager, {"sessionId": session_id, "signal": "SIGUSR1"}))
    assert payload["success"] is False
    assert payload["code"] == "INVALID_ARGUMENT"


@pytest.mark.asyncio
async def test_resize_tool(manager):
    session_id = await spawn_session(manager)

    payload = parse(await _resize(manager, {"sessionId": session_id, "cols": 120, "rows": 40}))
    assert payload["data"] == {"success": True}

    payload = parse(await _resize(manager, {"sessionId": "missing", "cols": 120, "rows": 40}))
    assert payload["code"] == "SESSION_NOT_FOUND"


@pytest.mark.asyncio
async def test_list_tool(manager):
    """Test process_list tool."""
    payload = parse(await _list(manager, {}))
    assert payload["data"] == {"sessions": []}

    first = await spawn_session(manager)
    second = await spawn_session(manager, cwd="/")

    payload = parse(await _list(manager, {"verbose": False}))
    sessions = payload["data"]["sessions"]
    assert {s["id"] for s in sessions} == {first, second}
    by_id = {s["id"]: s for s in sessions}
    assert by_id[second]["cwd"] == "/"
    assert by_id[first]["command"] == "sh"


@pytest.mark.asyncio
async def test_describe_keys_tool(manager):
    payload = parse(await _describe_keys(manager, {"keys": "C-c"}))
    assert payload["data"] == {"description": "Ctrl+C", "bytes": "03"}
