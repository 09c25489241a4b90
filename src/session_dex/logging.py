"""Logging configuration for session-dex.

Provides centralized logging setup with file output to ~/.session-dex/logs/.
"""

import logging
import sys
from pathlib import Path

DEFAULT_LOG_DIR = Path.home() / ".session-dex" / "logs"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    name: str,
    log_dir: Path | None = None,
    level: int = logging.INFO,
    console: bool = True,
) -> logging.Logger:
    """Configure logging for a session-dex component.

    Log files are written to <log_dir>/<name>.log. Calling this twice for
    the same component keeps the handlers of the first call.

    Args:
        name: Logger name (used for log filename)
        log_dir: Directory for log files (defaults to ~/.session-dex/logs/)
        level: Logging level (defaults to INFO)
        console: Whether to also log to stderr (defaults to True)

    Returns:
        Configured logger instance
    """
    if log_dir is None:
        log_dir = DEFAULT_LOG_DIR

    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(f"session_dex.{name}")
    logger.setLevel(level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = logging.FileHandler(log_dir / f"{name}.log", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a session-dex component.

    Dotted names nest: records from get_logger("parsers.codex") reach the
    handlers installed by setup_logging("parsers").

    Args:
        name: Logger name (will be prefixed with 'session_dex.')

    Returns:
        Logger instance
    """
    return logging.getLogger(f"session_dex.{name}")
