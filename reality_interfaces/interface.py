"""
Hardware interface API.

This is the surface hardware interface drivers program against. A driver
declares the nodes it wants on an object's frame, writes values and public
data into them, and subscribes to value, public-data, connection and
lifecycle events:

    api = HardwareInterfaceAPI(bindings)
    api.declare_node("lamp", "controls", "brightness", "node")
    api.reconcile("lamp", "controls")
    api.subscribe_value("lamp", "controls", "brightness", on_brightness)
    api.write("lamp", "controls", "brightness", 0.5)

Every lookup miss (unknown object, frame or node) is a silent no-op. Drivers
routinely run ahead of registry state, so calls are best-effort and never
signal errors.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from reality_interfaces.config import RegistryConfig, default_objects_path
from reality_interfaces.core.callbacks import CallbackRegistry, invoke_isolated
from reality_interfaces.core.declarations import DeclarationTree
from reality_interfaces.core.identifiers import (
    IdentifierResolver,
    NodeKeys,
    frame_key,
    node_key,
)
from reality_interfaces.core.records import FrameRecord, NodeRecord, ObjectRecord
from reality_interfaces.core.registry import NodeHandle, NodeRegistry
from reality_interfaces.screen.bridge import ScreenBridge
from reality_interfaces.utils.logging import set_debug

logger = logging.getLogger(__name__)

# Node type owned by the logic-block subsystem, never re-declared on reset
LOGIC_NODE_TYPE = "logic"

LISTENER_RESET = "reset"
LISTENER_SHUTDOWN = "shutdown"


def _noop(*args, **kwargs):
    pass


def map_range(x: float, in_min: float, in_max: float,
              out_min: float, out_max: float) -> float:
    """Linearly map ``x`` from [in_min, in_max] to [out_min, out_max], clamping the input."""
    if x > in_max:
        x = in_max
    if x < in_min:
        x = in_min
    return (x - in_min) * (out_max - out_min) / (in_max - in_min) + out_min


@dataclass
class HostBindings:
    """
    Everything the hosting server hands to the interface layer, once.

    Callbacks:
        on_value_changed(object_id, frame_id, node_id, data, objects, node_type_modules)
            The object engine; decides which linked nodes a write fans out to.
        on_public_data_changed(object_id, frame_id, node_id)
            Subscribers re-read the public data from the registry.
        on_action(message)
            Broadcast of ``reloadObject`` / ``advertiseConnection`` messages.
        on_persist(object_id)
            Write the object to disk.
        on_driver_event(message)
            Copy of every event dispatched to drivers (``dispatch_value``,
            ``dispatch_public_data``, ``dispatch_connection``, ``frame_added``,
            ``object_reset``, ``reset``) as a JSON-ready dict, for drivers that
            live outside this process.

    ``event_source`` returns and clears the events queued for those drivers.
    """
    object_lookup: Dict[str, Any] = field(default_factory=dict)
    config: RegistryConfig = field(default_factory=RegistryConfig)
    objects_path: Path = field(default_factory=default_objects_path)
    node_type_modules: Dict[str, Any] = field(default_factory=dict)
    block_modules: Dict[str, Any] = field(default_factory=dict)
    node_factory: Callable[[], NodeRecord] = NodeRecord
    objects: Optional[Dict[str, ObjectRecord]] = None
    target_resolver: Optional[Callable[[str], Optional[str]]] = None

    on_value_changed: Callable = _noop
    on_public_data_changed: Callable = _noop
    on_action: Callable = _noop
    on_persist: Callable = _noop
    on_driver_event: Callable = _noop
    event_source: Optional[Callable[[], List[dict]]] = None


class HardwareInterfaceAPI:
    """
    Registry facade for hardware interface drivers.

    Architecture:
        HardwareInterfaceAPI (one per server process)
        ├── IdentifierResolver   name -> object id, composite frame/node ids
        ├── NodeRegistry         live object -> frame -> node state
        ├── DeclarationTree      what drivers currently declare (by name)
        ├── CallbackRegistry     driver subscriptions and lifecycle lists
        └── ScreenBridge         touch events to/from screen drivers
    """

    def __init__(self, bindings: Optional[HostBindings] = None):
        self.bindings = bindings or HostBindings()
        self.config = self.bindings.config
        self.resolver = IdentifierResolver(self.bindings.object_lookup,
                                           self.bindings.target_resolver)
        self.registry = NodeRegistry(self.bindings.objects, self.bindings.node_factory)
        self.declarations = DeclarationTree()
        self.callbacks = CallbackRegistry()
        self.screens = ScreenBridge(self.resolver)

        if self.config.debug:
            set_debug(True)

    # --- Resolution ---

    def _keys(self, object_name: str, frame_name: str, node_name: str) -> Optional[NodeKeys]:
        return self.resolver.keys(object_name, frame_name, node_name)

    def _resolve(self, object_name: str, frame_name: str,
                 node_name: str) -> Optional[NodeHandle]:
        """Resolve a name triple to a live node, or None on any miss."""
        handle = self.registry.resolve(self._keys(object_name, frame_name, node_name))
        if handle is None:
            logger.debug(f"No node {object_name}/{frame_name}/{node_name}")
        return handle

    def get_object_id(self, object_name: str) -> Optional[str]:
        return self.resolver.object_id(object_name)

    # --- Declaration ---

    def declare_node(self, object_name: str, frame_name: str, node_name: str,
                     node_type: str, position: Optional[dict] = None) -> Optional[NodeRecord]:
        """
        Declare a node on an object's frame, creating object and frame on demand.

        Re-declaring an existing node refreshes its type and display alias but
        never moves it.

        Args:
            object_name: Object name
            frame_name: Frame name
            node_name: Node name
            node_type: Driver-defined node type ("node" for plain IO points)
            position: Optional {"x": ..., "y": ...} starting position (new nodes only)

        Returns:
            The declared node
        """
        object_id = self.resolver.ensure_object_id(object_name)
        keys = NodeKeys(object_id=object_id,
                        frame_id=frame_key(object_id, frame_name),
                        node_id=node_key(object_id, frame_name, node_name))
        return self._declare(keys, object_name, frame_name, node_name, node_type, position)

    add_node = declare_node

    def _declare(self, keys: NodeKeys, object_name: str, frame_name: str,
                 node_name: str, node_type: str,
                 position: Optional[dict] = None) -> NodeRecord:
        logger.debug(f"Declaring {object_name}/{frame_name}/{node_name} ({node_type})")
        node, frame_created = self.registry.declare_node(
            keys, object_name, frame_name, node_name, node_type,
            position=position, developer=self.config.developer)
        self.declarations.declare(object_name, keys.frame_id, frame_name,
                                  keys.node_id, node_name, node_type)
        if frame_created:
            logger.debug(f"Created frame {keys.frame_id}")
        return node

    def reconcile(self, object_name: str, frame_name: str) -> list:
        """
        Delete every live node in a frame that is no longer declared.

        Call after finishing a declaration pass: every node declared in the
        latest pass for this frame is kept, the rest is removed. Reconciling
        again without new declarations keeps the same nodes. Nodes
        owned by other subsystems (logic nodes, nodes referencing a peer
        frame) are always kept.

        Returns:
            Ids of removed nodes
        """
        object_id = self.resolver.object_id(object_name)
        if object_id is None:
            return []
        frame_id = frame_key(object_id, frame_name)
        frame = self.registry.get_frame(object_id, frame_id)
        if frame is None:
            return []

        keep = self.declarations.close_pass(object_name, frame_id)
        keep.update(nid for nid, node in list(frame.nodes.items())
                    if self._owned_elsewhere(node))
        removed = self.registry.prune_nodes(object_id, frame_id, keep)
        for node_id in removed:
            logger.debug(f"Deleting undeclared node {node_id}")
        return removed

    clear_object = reconcile

    @staticmethod
    def _owned_elsewhere(node: NodeRecord) -> bool:
        return node.type == LOGIC_NODE_TYPE or bool(node.frame)

    def reset_all(self) -> None:
        """
        Re-declare every live node and prune what is no longer declared.

        Logic nodes and peer-frame nodes are skipped. Global reset listeners
        run afterwards, in registration order.
        """
        for obj, frame in self.registry.frame_snapshot():
            if self.resolver.object_id(obj.name) is None:
                self.resolver.lookup[obj.name] = {"id": obj.id}

            for node in list(frame.nodes.values()):
                if self._owned_elsewhere(node):
                    continue
                keys = NodeKeys(object_id=obj.id,
                                frame_id=frame_key(obj.id, frame.name),
                                node_id=node_key(obj.id, frame.name, node.name))
                self._declare(keys, obj.name, frame.name, node.name, node.type)

            self.reconcile(obj.name, frame.name)

        logger.debug("Sending reset")
        self.run_global_reset()

    reset = reset_all

    # --- Writes ---

    def write(self, object_name: str, frame_name: str, node_name: str, value: Any,
              mode: str = "f", unit: Any = False, unit_min: float = 0,
              unit_max: float = 1) -> None:
        """Write a value into a node and notify the object engine."""
        handle = self._resolve(object_name, frame_name, node_name)
        if handle is None:
            return

        data = handle.node.data
        data.value = value
        data.mode = mode
        data.unit = unit
        data.unit_min = unit_min
        data.unit_max = unit_max

        invoke_isolated(self.bindings.on_value_changed,
                        handle.object.id, handle.frame.id, handle.node.id,
                        data, self.registry.objects, self.bindings.node_type_modules,
                        description="on_value_changed")

    def write_public_data(self, object_name: str, frame_name: str, node_name: str,
                          key: str, value: Any) -> None:
        """Store ``value`` under ``public_data[key]`` of a node and notify subscribers."""
        handle = self._resolve(object_name, frame_name, node_name)
        if handle is None:
            return

        handle.node.public_data[key] = value
        invoke_isolated(self.bindings.on_public_data_changed,
                        handle.object.id, handle.frame.id, handle.node.id,
                        description="on_public_data_changed")

    # --- Node mutations ---

    def rename_node(self, object_name: str, frame_name: str,
                    old_node_name: str, new_node_name: str) -> None:
        """Set the display alias of a node and ask editors to reload the object."""
        handle = self._resolve(object_name, frame_name, old_node_name)
        if handle is None:
            return
        handle.node.text = new_node_name
        invoke_isolated(self.bindings.on_action,
                        {"reloadObject": {"object": handle.object.id,
                                          "frame": handle.frame.id}},
                        description="on_action")

    def move_node(self, object_name: str, frame_name: str, node_name: str,
                  x: float, y: float) -> None:
        handle = self._resolve(object_name, frame_name, node_name)
        if handle is None:
            return
        handle.node.x = x
        handle.node.y = y
        logger.debug(f"Moved node {node_name} to ({x}, {y})")

    def remove_node(self, object_name: str, frame_name: str, node_name: str) -> None:
        keys = self._keys(object_name, frame_name, node_name)
        if keys is None:
            return
        self.declarations.undeclare(object_name, keys.frame_id, keys.node_id)
        if self.registry.remove_node(keys):
            logger.debug(f"Deleted node {keys.node_id}")

    def remove_all_nodes(self, object_name: str, frame_name: str) -> None:
        object_id = self.resolver.object_id(object_name)
        if object_id is None:
            return
        frame_id = frame_key(object_id, frame_name)
        self.declarations.undeclare(object_name, frame_id)
        count = self.registry.remove_all_nodes(object_id, frame_id)
        if count:
            logger.debug(f"Deleted {count} nodes from {object_id}{frame_name}")

    # --- Object state ---

    def activate(self, object_name: str) -> None:
        obj = self.registry.get_object(self.resolver.object_id(object_name))
        if obj is not None:
            obj.deactivated = False

    def deactivate(self, object_name: str) -> None:
        obj = self.registry.get_object(self.resolver.object_id(object_name))
        if obj is not None:
            obj.deactivated = True
            logger.debug(f"Deactivated {obj.id}")

    def enable_developer_ui(self, developer: bool) -> None:
        """Switch developer mode for the whole server and every object."""
        self.config.developer = developer
        for object_id in self.registry.list_objects():
            obj = self.registry.get_object(object_id)
            if obj is not None:
                obj.developer = developer

    def get_debug(self) -> bool:
        return self.config.debug

    def reload_node_ui(self, object_name: str) -> None:
        object_id = self.resolver.object_id(object_name)
        if object_id is None:
            return
        invoke_isolated(self.bindings.on_action, {"reloadObject": {"object": object_id}},
                        description="on_action")
        invoke_isolated(self.bindings.on_persist, object_id, description="on_persist")

    def advertise_connection(self, object_name: str, frame_name: str, node_name: str,
                             logic: Any = False) -> None:
        """Announce a node that editors may offer as a connection endpoint."""
        keys = self._keys(object_name, frame_name, node_name)
        if keys is None:
            return
        message = {"advertiseConnection": {
            "object": keys.object_id,
            "frame": keys.frame_id,
            "node": keys.node_id,
            "logic": logic,
            "names": [object_name, node_name],
        }}
        invoke_isolated(self.bindings.on_action, message, description="on_action")

    # --- Queries ---

    def get_all_frames(self, object_name: str) -> Dict[str, FrameRecord]:
        obj = self.registry.get_object(self.resolver.object_id(object_name))
        return obj.frames if obj is not None else {}

    def get_all_nodes(self, object_name: str, frame_name: str) -> Dict[str, NodeRecord]:
        object_id = self.resolver.object_id(object_name)
        if object_id is None:
            return {}
        frame = self.registry.get_frame(object_id, frame_key(object_id, frame_name))
        return frame.nodes if frame is not None else {}

    def get_all_links_to_nodes(self, object_name: str, frame_name: str) -> Dict[str, Any]:
        """Links stored on the frame itself; links owned by other objects are not searched."""
        object_id = self.resolver.object_id(object_name)
        if object_id is None:
            return {}
        frame = self.registry.get_frame(object_id, frame_key(object_id, frame_name))
        return frame.links if frame is not None else {}

    def get_marker_size(self, object_name: str) -> Optional[Dict[str, float]]:
        obj = self.registry.get_object(self.resolver.object_id(object_name))
        return obj.target_size if obj is not None else None

    # --- Node subscriptions ---

    def subscribe_value(self, object_name: str, frame_name: str, node_name: str,
                        callback: Callable[[Any], None]) -> None:
        """Set the value callback of a node, replacing any previous one."""
        keys = self._keys(object_name, frame_name, node_name)
        if keys is None:
            return
        logger.debug(f"Add read listener for {keys.node_id}")
        self.callbacks.set_value_callback(keys, frame_name, node_name, callback)

    add_read_listener = subscribe_value

    def subscribe_public_data(self, object_name: str, frame_name: str, node_name: str,
                              key: str, callback: Callable[[Any], None]) -> None:
        """Add a subscriber for one public-data field of a node."""
        keys = self._keys(object_name, frame_name, node_name)
        if keys is None:
            return
        logger.debug(f"Add publicData listener for {keys.node_id}.{key}")
        self.callbacks.add_public_data_callback(keys, frame_name, node_name, key, callback)

    add_public_data_listener = subscribe_public_data

    def subscribe_connection(self, object_name: str, frame_name: str, node_name: str,
                             callback: Callable[[Any], None]) -> None:
        """Set the connection callback of a node, replacing any previous one."""
        keys = self._keys(object_name, frame_name, node_name)
        if keys is None:
            return
        logger.debug(f"Add connection listener for {keys.node_id}")
        self.callbacks.set_connection_callback(keys, frame_name, node_name, callback)

    add_connection_listener = subscribe_connection

    def remove_read_listeners(self, object_name: str, frame_name: str) -> None:
        object_id = self.resolver.object_id(object_name)
        if object_id is None:
            return
        self.callbacks.remove_frame(object_id, frame_key(object_id, frame_name))

    # --- Node dispatch (called by the server with ids) ---

    def _driver_event(self, event: str, object_id: str, **payload) -> None:
        message = {"event": event, "object": object_id,
                   "object_name": self.resolver.object_name(object_id)}
        message.update(payload)
        invoke_isolated(self.bindings.on_driver_event, message, description="on_driver_event")

    def dispatch_value(self, object_id: str, frame_id: str, node_id: str, data: Any) -> None:
        self.callbacks.dispatch_value(object_id, frame_id, node_id, data)
        if hasattr(data, "to_dict"):
            data = data.to_dict()
        self._driver_event("dispatch_value", object_id, frame=frame_id, node=node_id, data=data)

    read_call = dispatch_value

    def dispatch_public_data(self, object_id: str, frame_id: str, node_id: str,
                             data: Dict[str, Any]) -> None:
        self.callbacks.dispatch_public_data(object_id, frame_id, node_id, data)
        self._driver_event("dispatch_public_data", object_id, frame=frame_id, node=node_id,
                           public_data=dict(data))

    read_public_data_call = dispatch_public_data

    def dispatch_connection(self, object_id: str, frame_id: str, node_id: str,
                            data: Any) -> None:
        self.callbacks.dispatch_connection(object_id, frame_id, node_id, data)
        self._driver_event("dispatch_connection", object_id, frame=frame_id, node=node_id, data=data)

    connect_call = dispatch_connection

    # --- Per-object lifecycle ---

    def subscribe_frame_added(self, object_name: str, callback: Callable[[Any], None]) -> None:
        self.callbacks.add_frame_added_callback(self.resolver.object_id(object_name), callback)

    def subscribe_reset(self, object_name: str, callback: Callable[[], None]) -> None:
        self.callbacks.add_object_reset_callback(self.resolver.object_id(object_name), callback)

    def notify_frame_added(self, object_id: str, frame: Any) -> None:
        logger.debug(f"Running frame-added callbacks for {object_id}")
        self.callbacks.dispatch_frame_added(object_id, frame)
        self._driver_event("frame_added", object_id, frame=frame)

    def notify_object_reset(self, object_id: str) -> None:
        logger.debug(f"Running reset callbacks for {object_id}")
        self.callbacks.dispatch_object_reset(object_id)
        self._driver_event("object_reset", object_id)

    # --- Global lifecycle ---

    def add_global_listener(self, kind: str, callback: Callable[[], Any]) -> None:
        """
        Register a process-wide lifecycle listener.

        Args:
            kind: "reset" or "shutdown"
            callback: Called with no arguments
        """
        if kind == LISTENER_RESET:
            self.callbacks.add_global_reset_callback(callback)
        elif kind == LISTENER_SHUTDOWN:
            self.callbacks.add_global_shutdown_callback(callback)
        else:
            logger.warning(f"Unknown lifecycle event '{kind}', listener ignored")

    add_event_listener = add_global_listener

    def run_global_reset(self) -> None:
        self.callbacks.dispatch_global_reset()
        invoke_isolated(self.bindings.on_driver_event, {"event": "reset"},
                        description="on_driver_event")

    def run_global_shutdown(self) -> None:
        logger.debug("Calling shutdown listeners")
        self.callbacks.dispatch_global_shutdown()

    shutdown = run_global_shutdown

    def poll_events(self) -> List[dict]:
        """Events queued for out-of-process drivers (empty without an event source)."""
        if self.bindings.event_source is None:
            return []
        return self.bindings.event_source()

    # --- Streams ---

    def subscribe_matrix_stream(self, callback: Callable[[Any], None]) -> None:
        self.callbacks.add_matrix_stream_callback(callback)

    def trigger_matrix_callbacks(self, visible_objects: Any) -> None:
        self.callbacks.dispatch_matrix_stream(visible_objects)

    def subscribe_udp_messages(self, callback: Callable[[Any], None]) -> None:
        self.callbacks.add_udp_message_callback(callback)

    def trigger_udp_callbacks(self, message: Any) -> None:
        self.callbacks.dispatch_udp_message(message)

    # --- Screens ---

    def add_screen_object_listener(self, object_name: str,
                                   callback: Callable[[Any], None]) -> None:
        self.screens.register_screen_driver(object_name, callback)

    def screen_object_call(self, payload: Any) -> None:
        self.screens.broadcast(payload)

    def screen_object_server_callback(self, callback: Callable) -> None:
        self.screens.set_outbound_callback(callback)

    def write_screen_objects(self, object_name: Optional[str], frame: Optional[str],
                             node: Optional[str], touch_offset_x: Any = None,
                             touch_offset_y: Any = None) -> None:
        self.screens.forward_outbound(object_name, frame, node, touch_offset_x, touch_offset_y)

    def activate_screen(self, object_name: str, port: int) -> None:
        self.screens.register_port(object_name, port)

    def get_screen_port(self, object_id: str) -> Optional[int]:
        return self.screens.get_port(object_id)
