"""
Screen commands for the reality interface server.

Carry projected touch events from the editor to screen drivers, and
resolved touch data from screen drivers back out.
"""

from typing import Any, Optional

from reality_interfaces.commands.base import register_command


@register_command
def screen_object(api, target_object: Optional[str] = None, **payload) -> dict:
    """
    Deliver a touch/projection event to screen drivers.

    Args:
        api: HardwareInterfaceAPI instance
        target_object: Object id of the screen to deliver to. If omitted,
            every registered screen driver receives the event.
        **payload: The screenObject event fields

    Returns:
        Response with the number of drivers reached
    """
    if target_object:
        delivered = 1 if api.screens.dispatch_to_screen_driver(target_object, payload) else 0
    else:
        delivered = api.screens.broadcast(payload)
    return {"status": "success", "delivered": delivered}


@register_command
def write_screen_object(api, object: Optional[str] = None, frame: Optional[str] = None,
                        node: Optional[str] = None, touch_offset_x: Any = None,
                        touch_offset_y: Any = None) -> dict:
    """Forward resolved touch data from a screen driver to the outbound consumer."""
    api.write_screen_objects(object, frame, node, touch_offset_x, touch_offset_y)
    return {"status": "success"}


@register_command
def activate_screen(api, object: str, port: int) -> dict:
    """
    Record the port a screen for an object is served on.

    Returns:
        Response with the object id
    """
    object_id = api.screens.register_port(object, port)
    return {"status": "success", "object_id": object_id, "port": port}


@register_command
def get_screen_port(api, object_id: str) -> dict:
    port = api.get_screen_port(object_id)
    if port is None:
        return {"status": "error", "message": f"No screen port for '{object_id}'"}
    return {"status": "success", "port": port}
