"""Logging setup for the server.

stdout carries the MCP stdio transport, so log records go to stderr and,
optionally, to a timestamped file in the log directory.
"""

import logging
import os
import sys
from datetime import datetime
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> Optional[str]:
    """Configure root logging. Returns the server log file path, if any."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    log_file = None
    if log_dir:
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        log_file = os.path.join(log_dir, f"process_mcp_{timestamp}.log")
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    if log_file:
        logging.getLogger(__name__).info("Logging to: %s", log_file)
    return log_file
