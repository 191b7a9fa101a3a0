"""
Node commands for the reality interface server.

Remote hardware interfaces use these to declare nodes, write values and
public data, and query the registry. Objects, frames and nodes are addressed
by name; dispatch commands (sent by the object engine) use ids.
"""

from typing import Any, Optional

from reality_interfaces.commands.base import register_command


@register_command
def declare_node(api, object: str, frame: str, node: str,
                 node_type: str = "node", position: Optional[dict] = None) -> dict:
    """
    Declare a node on an object's frame.

    Args:
        api: HardwareInterfaceAPI instance
        object: Object name
        frame: Frame name
        node: Node name
        node_type: Driver-defined node type
        position: Optional {"x", "y"} starting position for a new node

    Returns:
        Response with the node id and position
    """
    record = api.declare_node(object, frame, node, node_type, position)
    return {"status": "success", "id": record.id, "x": record.x, "y": record.y}


@register_command
def reconcile(api, object: str, frame: str) -> dict:
    """
    Remove nodes of a frame that were not declared since the last reconcile.

    Returns:
        Response with removed node ids
    """
    removed = api.reconcile(object, frame)
    return {"status": "success", "removed": removed}


@register_command
def write(api, object: str, frame: str, node: str, value: Any,
          mode: str = "f", unit: Any = False, unit_min: float = 0,
          unit_max: float = 1) -> dict:
    """Write a value into a node. Unknown nodes are ignored."""
    api.write(object, frame, node, value, mode, unit, unit_min, unit_max)
    return {"status": "success"}


@register_command
def write_public_data(api, object: str, frame: str, node: str,
                      key: str, value: Any) -> dict:
    """Write one public-data field of a node. Unknown nodes are ignored."""
    api.write_public_data(object, frame, node, key, value)
    return {"status": "success"}


@register_command
def rename_node(api, object: str, frame: str, node: str, new_name: str) -> dict:
    api.rename_node(object, frame, node, new_name)
    return {"status": "success"}


@register_command
def move_node(api, object: str, frame: str, node: str, x: float, y: float) -> dict:
    api.move_node(object, frame, node, x, y)
    return {"status": "success"}


@register_command
def remove_node(api, object: str, frame: str, node: str) -> dict:
    api.remove_node(object, frame, node)
    return {"status": "success"}


@register_command
def remove_all_nodes(api, object: str, frame: str) -> dict:
    api.remove_all_nodes(object, frame)
    return {"status": "success"}


@register_command
def reset(api) -> dict:
    """
    Re-declare all driver nodes, prune undeclared ones and run reset listeners.

    Returns:
        Response with status
    """
    api.reset_all()
    return {"status": "success", "message": "Interfaces reset"}


@register_command
def activate(api, object: str) -> dict:
    api.activate(object)
    return {"status": "success"}


@register_command
def deactivate(api, object: str) -> dict:
    api.deactivate(object)
    return {"status": "success"}


@register_command
def advertise_connection(api, object: str, frame: str, node: str,
                         logic: Any = False) -> dict:
    api.advertise_connection(object, frame, node, logic)
    return {"status": "success"}


@register_command
def get_all_frames(api, object: str) -> dict:
    """
    Get every frame of an object.

    Returns:
        Response with frames keyed by frame id (empty if the object is unknown)
    """
    frames = api.get_all_frames(object)
    return {"status": "success",
            "frames": {fid: f.to_dict() for fid, f in frames.items()}}


@register_command
def get_all_nodes(api, object: str, frame: str) -> dict:
    nodes = api.get_all_nodes(object, frame)
    return {"status": "success",
            "nodes": {nid: n.to_dict() for nid, n in nodes.items()}}


@register_command
def get_node(api, object: str, frame: str, node: str) -> dict:
    """
    Get one node's state.

    Returns:
        Response with node data, or error if not found
    """
    keys = api.resolver.keys(object, frame, node)
    handle = api.registry.resolve(keys)
    if handle is None:
        return {"status": "error", "message": f"Node '{object}/{frame}/{node}' not found"}
    return {"status": "success", "node": handle.node.to_dict()}


# --- Dispatch from the object engine (ids, not names) ---

@register_command
def dispatch_value(api, object_id: str, frame_id: str, node_id: str, data: Any) -> dict:
    api.dispatch_value(object_id, frame_id, node_id, data)
    return {"status": "success"}


@register_command
def dispatch_public_data(api, object_id: str, frame_id: str, node_id: str,
                         data: dict) -> dict:
    if not isinstance(data, dict):
        raise ValueError("Public data must be an object")
    api.dispatch_public_data(object_id, frame_id, node_id, data)
    return {"status": "success"}


@register_command
def dispatch_connection(api, object_id: str, frame_id: str, node_id: str, data: Any) -> dict:
    api.dispatch_connection(object_id, frame_id, node_id, data)
    return {"status": "success"}


@register_command
def notify_frame_added(api, object_id: str, frame: dict) -> dict:
    api.notify_frame_added(object_id, frame)
    return {"status": "success"}


@register_command
def notify_object_reset(api, object_id: str) -> dict:
    api.notify_object_reset(object_id)
    return {"status": "success"}


@register_command
def status(api) -> dict:
    """
    Get server status.

    Returns:
        Response with registry summary
    """
    objects = api.registry.list_objects()
    return {
        "status": "success",
        "objects": objects,
        "object_count": len(objects),
        "node_count": len(api.registry.node_snapshot()),
        "developer": api.config.developer,
        "debug": api.get_debug(),
    }


@register_command
def poll_events(api) -> dict:
    """
    Drain events the registry emitted since the last poll.

    Returns:
        Response with a list of events (empty when not hosted by a server)
    """
    return {"status": "success", "events": api.poll_events()}
