"""Logging setup.

The TUI owns stdout/stderr while it runs, so all log output goes to a file.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from loguru import logger

from squadron.paths import LOG_PATH

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def configure_logging(level: str | None = None, log_path: Path | None = None, *, to_stderr: bool = False) -> Path:
    """Route loguru output to the squadron log file.

    Args:
        level: Minimum level; falls back to SQUADRON_LOG_LEVEL, then INFO
        log_path: Override for the log file location
        to_stderr: Also log to stderr (non-TUI subcommands only)

    Returns:
        Path of the active log file
    """
    resolved_level = (level or os.getenv("SQUADRON_LOG_LEVEL") or "INFO").upper()
    path = log_path or LOG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        path,
        level=resolved_level,
        format=LOG_FORMAT,
        rotation="5 MB",
        retention=3,
        enqueue=True,
    )
    if to_stderr:
        logger.add(sys.stderr, level=resolved_level)
    logger.debug(f"Logging configured: level={resolved_level} path={path}")
    return path
