"""
Subscriber callbacks for node events and interface lifecycle events.

The node part mirrors the registry tree (object id -> frame id -> node id) but
is populated independently: a driver may subscribe before the node exists.
Dispatch to an absent path is a no-op.

Every dispatch iterates over a snapshot of its subscriber list taken when the
dispatch starts, and isolates subscriber failures: an exception raised by one
callback is logged and the remaining callbacks still run.
"""

import threading
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from reality_interfaces.core.identifiers import NodeKeys

logger = logging.getLogger(__name__)


def invoke_isolated(callback: Callable, *args, description: str = "callback") -> Any:
    """
    Call a subscriber, logging instead of propagating any exception.

    Returns:
        The callback's return value, or None if it raised
    """
    try:
        return callback(*args)
    except Exception:
        logger.exception(f"Subscriber {description} raised; continuing dispatch")
        return None


@dataclass
class PublicDataSubscription:
    callback: Callable[[Any], None]
    key: str


@dataclass
class NodeCallbacks:
    name: str
    value_callback: Optional[Callable[[Any], None]] = None
    connection_callback: Optional[Callable[[Any], None]] = None
    public_data_callbacks: List[PublicDataSubscription] = field(default_factory=list)


@dataclass
class FrameCallbacks:
    name: str
    nodes: Dict[str, NodeCallbacks] = field(default_factory=dict)


@dataclass
class ObjectCallbacks:
    object_id: str
    frames: Dict[str, FrameCallbacks] = field(default_factory=dict)


class CallbackRegistry:
    """
    Holds every subscriber known to the interface layer.

    Architecture:
        CallbackRegistry
        ├── node tree: Dict[object_id, ObjectCallbacks]
        │     └── frames -> nodes -> NodeCallbacks
        │           ├── value_callback        (single, overwritten)
        │           ├── connection_callback   (single, overwritten)
        │           └── public_data_callbacks (list of (callback, key))
        ├── frame_added:   [(object_id, callback)]
        ├── object_reset:  [(object_id, callback)]
        ├── global reset / shutdown: [callback]
        └── matrix stream / udp message: [callback]
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._objects: Dict[str, ObjectCallbacks] = {}

        self._frame_added: List[Tuple[str, Callable]] = []
        self._object_reset: List[Tuple[str, Callable]] = []
        self._global_reset: List[Callable] = []
        self._global_shutdown: List[Callable] = []
        self._matrix_stream: List[Callable] = []
        self._udp_message: List[Callable] = []

    # --- Node tree ---

    def _vivify(self, keys: NodeKeys, frame_name: str, node_name: str) -> NodeCallbacks:
        obj = self._objects.get(keys.object_id)
        if obj is None:
            obj = self._objects[keys.object_id] = ObjectCallbacks(keys.object_id)
        frame = obj.frames.get(keys.frame_id)
        if frame is None:
            frame = obj.frames[keys.frame_id] = FrameCallbacks(frame_name)
        node = frame.nodes.get(keys.node_id)
        if node is None:
            node = frame.nodes[keys.node_id] = NodeCallbacks(node_name)
        return node

    def _lookup(self, object_id: str, frame_id: str, node_id: str) -> Optional[NodeCallbacks]:
        obj = self._objects.get(object_id)
        if obj is None:
            return None
        frame = obj.frames.get(frame_id)
        if frame is None:
            return None
        return frame.nodes.get(node_id)

    def set_value_callback(self, keys: NodeKeys, frame_name: str, node_name: str,
                           callback: Callable[[Any], None]) -> None:
        with self._lock:
            self._vivify(keys, frame_name, node_name).value_callback = callback

    def set_connection_callback(self, keys: NodeKeys, frame_name: str, node_name: str,
                                callback: Callable[[Any], None]) -> None:
        with self._lock:
            self._vivify(keys, frame_name, node_name).connection_callback = callback

    def add_public_data_callback(self, keys: NodeKeys, frame_name: str, node_name: str,
                                 key: str, callback: Callable[[Any], None]) -> None:
        with self._lock:
            node = self._vivify(keys, frame_name, node_name)
            node.public_data_callbacks.append(PublicDataSubscription(callback, key))

    def get_node(self, object_id: str, frame_id: str, node_id: str) -> Optional[NodeCallbacks]:
        with self._lock:
            return self._lookup(object_id, frame_id, node_id)

    def remove_frame(self, object_id: str, frame_id: str) -> bool:
        """Drop every node subscription under a frame."""
        with self._lock:
            obj = self._objects.get(object_id)
            if obj is None or frame_id not in obj.frames:
                return False
            del obj.frames[frame_id]
            return True

    # --- Node dispatch ---

    def dispatch_value(self, object_id: str, frame_id: str, node_id: str, data: Any) -> bool:
        """Invoke the node's value callback. Returns True if one was invoked."""
        with self._lock:
            node = self._lookup(object_id, frame_id, node_id)
            callback = node.value_callback if node else None
        if callback is None:
            return False
        invoke_isolated(callback, data, description=f"value[{node_id}]")
        return True

    def dispatch_connection(self, object_id: str, frame_id: str, node_id: str, data: Any) -> bool:
        """Invoke the node's connection callback. Returns True if one was invoked."""
        with self._lock:
            node = self._lookup(object_id, frame_id, node_id)
            callback = node.connection_callback if node else None
        if callback is None:
            logger.debug(f"No connection callback for {node_id}")
            return False
        invoke_isolated(callback, data, description=f"connection[{node_id}]")
        return True

    def dispatch_public_data(self, object_id: str, frame_id: str, node_id: str,
                             data: Dict[str, Any]) -> int:
        """
        Invoke every public-data subscriber whose key is present in ``data``.

        Returns:
            Number of subscribers invoked
        """
        with self._lock:
            node = self._lookup(object_id, frame_id, node_id)
            subscriptions = list(node.public_data_callbacks) if node else []

        invoked = 0
        for sub in subscriptions:
            if sub.key in data:
                invoke_isolated(sub.callback, data[sub.key],
                                description=f"publicData[{node_id}.{sub.key}]")
                invoked += 1
        return invoked

    # --- Per-object lifecycle lists ---

    def add_frame_added_callback(self, object_id: Optional[str], callback: Callable) -> None:
        with self._lock:
            self._frame_added.append((object_id, callback))

    def add_object_reset_callback(self, object_id: Optional[str], callback: Callable) -> None:
        with self._lock:
            self._object_reset.append((object_id, callback))

    def dispatch_frame_added(self, object_id: str, frame: Any) -> int:
        with self._lock:
            subscribers = [cb for oid, cb in self._frame_added if oid == object_id]
        for callback in subscribers:
            invoke_isolated(callback, frame, description=f"frameAdded[{object_id}]")
        return len(subscribers)

    def dispatch_object_reset(self, object_id: str) -> int:
        with self._lock:
            subscribers = [cb for oid, cb in self._object_reset if oid == object_id]
        for callback in subscribers:
            invoke_isolated(callback, description=f"reset[{object_id}]")
        return len(subscribers)

    # --- Global lists ---

    def add_global_reset_callback(self, callback: Callable[[], Any]) -> None:
        with self._lock:
            self._global_reset.append(callback)

    def add_global_shutdown_callback(self, callback: Callable[[], Any]) -> None:
        with self._lock:
            self._global_shutdown.append(callback)

    def dispatch_global_reset(self) -> int:
        with self._lock:
            subscribers = list(self._global_reset)
        for callback in subscribers:
            invoke_isolated(callback, description="global reset")
        return len(subscribers)

    def dispatch_global_shutdown(self) -> int:
        with self._lock:
            subscribers = list(self._global_shutdown)
        for callback in subscribers:
            invoke_isolated(callback, description="global shutdown")
        return len(subscribers)

    def add_matrix_stream_callback(self, callback: Callable[[Any], None]) -> None:
        with self._lock:
            self._matrix_stream.append(callback)

    def dispatch_matrix_stream(self, visible_objects: Any) -> int:
        with self._lock:
            subscribers = list(self._matrix_stream)
        for callback in subscribers:
            invoke_isolated(callback, visible_objects, description="matrix stream")
        return len(subscribers)

    def add_udp_message_callback(self, callback: Callable[[Any], None]) -> None:
        with self._lock:
            self._udp_message.append(callback)

    def dispatch_udp_message(self, message: Any) -> int:
        with self._lock:
            subscribers = list(self._udp_message)
        for callback in subscribers:
            invoke_isolated(callback, message, description="udp message")
        return len(subscribers)
