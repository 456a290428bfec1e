"""Pytest configuration and fixtures."""

import asyncio

import pytest
import pytest_asyncio

from process_mcp.config import ServerConfig, SessionConfig
from process_mcp.manager import SessionManager


@pytest.fixture
def shell_config(tmp_path):
    """Interactive /bin/sh in a scratch directory."""
    return SessionConfig(shell="/bin/sh", shell_args=["-i"], cwd=str(tmp_path))


@pytest.fixture
def server_config():
    return ServerConfig(
        max_sessions=8,
        log_dir=None,
        kill_grace_period=0.1,
        kill_escalation_timeout=1.0,
    )


@pytest_asyncio.fixture
async def manager(server_config, shell_config):
    """Create and start a session manager."""
    mgr = SessionManager(server_config, session_defaults=shell_config)
    await mgr.start()
    yield mgr
    await mgr.stop()


@pytest.fixture
def read_until():
    """Drain a session until ``needle`` shows up in its output."""

    async def _read_until(manager, session_id, needle, timeout=5.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        collected = ""
        while loop.time() < deadline:
            result = await manager.read(session_id, wait=100)
            if result.content:
                collected += result.content + "\n"
            if needle in collected:
                return collected
        raise AssertionError(f"{needle!r} not in output: {collected!r}")

    return _read_until
