"""Configuration for the process-session MCP server."""

from dataclasses import dataclass, field
import os
from typing import Optional


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.environ.get(name)
    if not value:
        return default
    return int(value)


@dataclass
class SessionConfig:
    """Configuration for a single process session."""

    shell: str = field(default_factory=lambda: os.environ.get("SHELL", "/bin/bash"))
    shell_args: list[str] = field(default_factory=lambda: ["-i"])
    cwd: str = field(default_factory=os.getcwd)
    env: dict[str, str] = field(default_factory=dict)  # overlaid on os.environ
    cols: int = 80
    rows: int = 24
    max_buffer_lines: int = 10000
    use_pty: bool = False  # allocate a real terminal instead of plain pipes
    strip_ansi: bool = False


@dataclass
class ServerConfig:
    """Configuration for the MCP server."""

    max_sessions: Optional[int] = field(
        default_factory=lambda: _env_int("PROCESS_MCP_MAX_SESSIONS", 32)
    )
    log_dir: Optional[str] = field(
        default_factory=lambda: os.environ.get("PROCESS_MCP_LOG_DIR") or None
    )
    log_level: str = field(
        default_factory=lambda: os.environ.get("PROCESS_MCP_LOG_LEVEL", "INFO").upper()
    )
    default_cwd: str = field(default_factory=os.getcwd)
    use_pty: bool = False
    kill_grace_period: float = 0.1  # seconds between signal and deregistration
    kill_escalation_timeout: float = 5.0  # seconds before a lingering child gets SIGKILL
    idle_timeout: Optional[float] = None  # seconds; None disables idle reaping
