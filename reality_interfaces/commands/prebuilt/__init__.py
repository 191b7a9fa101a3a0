"""
Prebuilt commands for the reality interface server.

Node commands expose the hardware interface API to remote drivers; screen
commands carry touch events between the editor and screen drivers.
"""

# Import all command modules to trigger registration
from reality_interfaces.commands.prebuilt import node_commands
from reality_interfaces.commands.prebuilt import screen_commands

__all__ = [
    "node_commands",
    "screen_commands",
]
