"""
Dual-sink logging for the reality interface server.

Logs to stdout AND a log file. Hardware interface debug output goes through
the ``reality_interfaces`` logger at DEBUG level; it is shown when the server
runs verbose or the registry config has ``debug: true``.
"""

import sys
import logging
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "reality_interfaces"

# Log file paths (in order of preference)
LOG_FILE_PATHS = [
    "/var/log/reality_interfaces.log",
    "/tmp/reality_interfaces.log",
]

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _writable_log_path() -> Optional[str]:
    for path in LOG_FILE_PATHS:
        try:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'a'):
                pass
            return path
        except (PermissionError, OSError):
            continue
    return None


def setup_logging(verbose: bool = False,
                  log_file: Optional[str] = None,
                  log_format: Optional[str] = None) -> logging.Logger:
    """
    Setup dual-sink logging.

    Args:
        verbose: If True, set log level to DEBUG. Otherwise INFO.
        log_file: Override log file path. If None, the first writable default is used.
        log_format: Override log format string.

    Returns:
        The package logger
    """
    level = logging.DEBUG if verbose else logging.INFO
    log_format = log_format or DEFAULT_LOG_FORMAT

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(log_format))
    handlers = [console_handler]

    file_path = log_file or _writable_log_path()
    if file_path:
        try:
            file_handler = logging.FileHandler(file_path, mode='a')
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(log_format))
            handlers.append(file_handler)
        except OSError as e:
            print(f"Warning: Could not setup file logging at {file_path}: {e}",
                  file=sys.stderr)

    logging.basicConfig(level=level, format=log_format, handlers=handlers)

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    return logger


def set_debug(enabled: bool) -> None:
    """Raise the package logger to DEBUG (or back to INFO)."""
    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if enabled else logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)
    """
    return logging.getLogger(name)
