"""Loguru setup for mcplink, including capture of stdlib logging from the MCP SDK."""

import logging
import os
import sys
from loguru import logger
from typing import Optional

from mcplink.utils import get_project_root

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}"

# Libraries whose stdlib records are forwarded into loguru
FORWARDED_LOGGERS = ("mcp", "httpx", "httpcore", "websockets")

_log_file_path: Optional[str] = None


class _LoguruForwarder(logging.Handler):
    """Re-emits stdlib logging records through loguru, keeping the caller location."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(name=record.name).opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _resolve_log_file(log_file: Optional[str]) -> str:
    global _log_file_path

    if log_file is None:
        log_file = _log_file_path or os.getenv("MCPLINK_LOG_FILE") or "mcplink.log"
    if not os.path.isabs(log_file):
        log_file = os.path.join(get_project_root(), log_file)
    _log_file_path = log_file
    return log_file


def setup_logger(
    log_file: Optional[str] = None,
    log_level: Optional[str] = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
    compression: str = "zip",
    console_output: bool = False,
) -> str:
    """
    Configure loguru with a rotating file sink and an optional stderr sink.

    Args:
        log_file: Path to the log file. Relative paths are resolved against the
            project root. Defaults to the previously configured file, then
            MCPLINK_LOG_FILE, then ``mcplink.log``.
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
            Falls back to MCPLINK_LOG_LEVEL, then INFO.
        rotation: Size at which the file is rotated
        retention: How long rotated files are kept
        compression: Compression format for rotated files
        console_output: Whether to log to stderr as well

    Returns:
        The absolute path of the log file in use
    """
    level = (log_level or os.getenv("MCPLINK_LOG_LEVEL") or "INFO").upper()
    path = _resolve_log_file(log_file)

    logger.remove()
    if console_output:
        logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)
    logger.add(
        path,
        level=level,
        format=FILE_FORMAT,
        rotation=rotation,
        retention=retention,
        compression=compression,
        encoding="utf-8",
    )

    forwarder = _LoguruForwarder()
    for name in FORWARDED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [forwarder]
        std_logger.propagate = False

    return path


def get_logger(name: Optional[str] = None):
    """Return the shared loguru logger bound to a component name."""
    return logger.bind(name=name or "mcplink")


# Records emitted through the bare loguru logger still need the name field
logger.configure(extra={"name": "mcplink"})
setup_logger()
