"""
Command system for the reality interface server.

Commands are registered using the @register_command decorator and loaded
from the prebuilt/ submodule on import.
"""

from reality_interfaces.commands.base import (
    CommandRegistry,
    register_command,
    get_registry,
)

# Import prebuilt commands to register them
from reality_interfaces.commands import prebuilt

__all__ = [
    "CommandRegistry",
    "register_command",
    "get_registry",
]
