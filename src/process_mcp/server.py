"""MCP server for interactive process sessions."""

import argparse
import asyncio
import logging

from mcp.server import Server
from mcp.server.stdio import stdio_server

from .config import ServerConfig
from .logging_config import setup_logging
from .manager import SessionManager
from .tools import register_tools

logger = logging.getLogger(__name__)


async def run_server(config: ServerConfig) -> None:
    """Run the MCP server."""
    server = Server("process-mcp")
    session_manager = SessionManager(config)

    await session_manager.start()
    register_tools(server, session_manager)
    logger.info("process-mcp serving on stdio (max_sessions=%s)", config.max_sessions)

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        await session_manager.stop()


def main() -> None:
    """CLI entry point."""
    defaults = ServerConfig()
    parser = argparse.ArgumentParser(
        description="MCP server for interactive process sessions",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--max-sessions",
        type=int,
        default=defaults.max_sessions,
        help="Maximum concurrent sessions",
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=defaults.log_dir,
        help="Directory for server logs and session transcripts (must exist)",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=defaults.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level",
    )
    parser.add_argument(
        "--cwd",
        type=str,
        default=defaults.default_cwd,
        help="Default working directory for new sessions",
    )
    parser.add_argument(
        "--pty",
        action="store_true",
        help="Allocate a pseudo-terminal for each session instead of plain pipes",
    )
    parser.add_argument(
        "--idle-timeout",
        type=float,
        default=None,
        help="Stop sessions idle for this many seconds",
    )
    parser.add_argument(
        "--kill-grace-period",
        type=float,
        default=defaults.kill_grace_period,
        help="Seconds to wait after signalling before a session is removed",
    )

    args = parser.parse_args()

    config = ServerConfig(
        max_sessions=args.max_sessions,
        log_dir=args.log_dir,
        log_level=args.log_level,
        default_cwd=args.cwd,
        use_pty=args.pty,
        idle_timeout=args.idle_timeout,
        kill_grace_period=args.kill_grace_period,
    )
    setup_logging(config.log_level, config.log_dir)

    asyncio.run(run_server(config))


if __name__ == "__main__":
    main()
