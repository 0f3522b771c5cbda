"""Logging configuration for the proxy server.

This module provides centralized logging configuration using Loguru.
It sets up logging to both console and file with proper formatting
and log rotation. Nothing is configured on import; the command line
calls ``configure_logging`` once at startup.
"""

import sys
from pathlib import Path

from loguru import logger

# Logs directory in user's home directory
LOG_DIR = Path.home() / ".gnet-proxy" / "logs"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def configure_logging(debug: bool = False, log_dir: Path | None = None) -> Path:
    """Replace Loguru's default handler with console and file handlers.

    Args:
        debug: Log DEBUG messages to the console as well
        log_dir: Directory for ``proxy.log``, defaults to LOG_DIR

    Returns:
        Path: The log file path
    """
    log_dir = log_dir or LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "proxy.log"

    logger.remove()
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level="DEBUG" if debug else "INFO",
        backtrace=True,
        diagnose=debug,
    )
    logger.add(
        log_file,
        rotation="10 MB",
        retention="1 week",
        compression="zip",
        format=FILE_FORMAT,
        level="DEBUG",
        backtrace=True,
        enqueue=True,
    )
    return log_file


__all__ = ["LOG_DIR", "configure_logging", "logger"]
