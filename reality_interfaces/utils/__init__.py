"""Utility components for reality interfaces."""

from reality_interfaces.utils.logging import setup_logging, get_logger, set_debug

__all__ = [
    "setup_logging",
    "get_logger",
    "set_debug",
]
