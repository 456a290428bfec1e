"""process-mcp: MCP server exposing interactive process sessions for AI agents."""

from .buffer import OutputBuffer
from .config import SessionConfig, ServerConfig
from .errors import SessionError, SessionNotFound, SpawnError
from .keys import describe_keys, encode_keys
from .manager import KillResult, ReadResult, SessionManager, SpawnResult
from .session import ProcessSession, SessionState
from .server import main, run_server

__all__ = [
    "SessionConfig",
    "ServerConfig",
    "OutputBuffer",
    "ProcessSession",
    "SessionState",
    "SessionManager",
    "SpawnResult",
    "ReadResult",
    "KillResult",
    "SessionError",
    "SessionNotFound",
    "SpawnError",
    "encode_keys",
    "describe_keys",
    "main",
    "run_server",
]
