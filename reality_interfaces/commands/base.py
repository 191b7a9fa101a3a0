"""
Command table for the reality interface server.

A request line names a command and its keyword arguments:

    {"action": "write", "object": "lamp", "frame": "controls", "node": "brightness", "value": 0.5}

The handler registered under ``action`` is called as ``handler(api, **params)``
with the process-wide HardwareInterfaceAPI. Every reply carries ``status``:

    success  the handler ran; unknown objects/frames/nodes also land here,
             since the interface API treats them as silent no-ops
    error    unknown action, parameters that do not fit the handler's
             signature, or a payload the handler rejected with ValueError

Any other exception leaves the table and is reported by the server.
"""

from typing import Dict, Callable, Any, List, Optional
import logging

logger = logging.getLogger(__name__)

CommandHandler = Callable[..., Optional[dict]]


class CommandRegistry:
    """
    Maps action names to handlers.

    Handlers usually join the shared table through ``@register_command`` when
    ``reality_interfaces.commands.prebuilt`` is imported.
    """

    def __init__(self):
        self._commands: Dict[str, CommandHandler] = {}

    def register(self, name: str, handler: CommandHandler) -> None:
        if name in self._commands:
            logger.warning(f"Command '{name}' is being re-registered")
        self._commands[name] = handler
        logger.debug(f"Registered command: {name}")

    def get(self, name: str) -> Optional[CommandHandler]:
        return self._commands.get(name)

    def execute(self, action: str, api: Any, **params) -> Dict[str, Any]:
        """
        Run one request against the interface API.

        Args:
            action: Registered command name
            api: HardwareInterfaceAPI the handler operates on
            **params: Request fields other than ``action``

        Returns:
            Reply dict; ``status`` is filled in when the handler leaves it out
        """
        handler = self._commands.get(action)
        if handler is None:
            return {
                "status": "error",
                "message": f"Unknown command: {action}",
                "available_commands": self.list_commands(),
            }

        try:
            result = handler(api, **params)
        except TypeError as e:
            return {"status": "error", "message": f"Invalid parameters for '{action}': {e}"}
        except ValueError as e:
            return {"status": "error", "message": str(e)}

        if result is None:
            return {"status": "success"}
        result.setdefault("status", "success")
        return result

    def list_commands(self) -> List[str]:
        """Registered command names, in registration order."""
        return list(self._commands)


# Shared by the server and every prebuilt command module
_registry = CommandRegistry()


def get_registry() -> CommandRegistry:
    return _registry


def register_command(func: CommandHandler = None, *, name: str = None):
    """
    Add a handler to the shared command table.

    Usage:
        @register_command
        def declare_node(api, object: str, frame: str, node: str, node_type: str = "node"):
            record = api.declare_node(object, frame, node, node_type)
            return {"status": "success", "id": record.id}

        @register_command(name="add_node")
        def declare_node_alias(api, object: str, frame: str, node: str):
            ...

    The action name defaults to the function name. The function itself is
    returned unchanged, so handlers stay directly callable in tests.
    """
    def decorator(fn: CommandHandler) -> CommandHandler:
        _registry.register(name if name is not None else fn.__name__, fn)
        return fn

    if func is not None:
        return decorator(func)
    return decorator
