"""
Server-side bridge between projected touch events and screen drivers.

Inbound touch/projection events from the editor are routed to the screen
driver registered for the target object. Screen drivers send resolved touch
data back through a single outbound slot.

The outbound slot is single-tenant: registering a new outbound callback
replaces the previous one, so only the most recent consumer receives
forwarded events.
"""

import threading
import logging
from typing import Any, Callable, Dict, Optional

from reality_interfaces.core.callbacks import invoke_isolated
from reality_interfaces.core.identifiers import IdentifierResolver, frame_key, node_key

logger = logging.getLogger(__name__)

OutboundCallback = Callable[[Optional[str], Optional[str], Optional[str], Any, Any], None]


def _noop_outbound(object_id, frame_id, node_id, touch_offset_x, touch_offset_y):
    pass


class ScreenBridge:
    """Routes touch events between the server and screen drivers."""

    def __init__(self, resolver: IdentifierResolver):
        self._resolver = resolver
        self._lock = threading.RLock()
        self._screen_callbacks: Dict[str, Callable[[Any], None]] = {}
        self._outbound: OutboundCallback = _noop_outbound
        self._ports: Dict[str, int] = {}

    # --- Inbound ---

    def _object_id(self, object_ref: str) -> str:
        """Resolve an object name; anything unknown is taken as an id already."""
        return self._resolver.object_id(object_ref) or object_ref

    def register_screen_driver(self, object_ref: str, callback: Callable[[Any], None]) -> str:
        """
        Register the screen driver for an object, replacing any previous one.

        Args:
            object_ref: Object name or object id

        Returns:
            The object id the driver was registered under
        """
        object_id = self._object_id(object_ref)
        with self._lock:
            if object_id in self._screen_callbacks:
                logger.info(f"Replacing screen driver for {object_id}")
            self._screen_callbacks[object_id] = callback
        return object_id

    def dispatch_to_screen_driver(self, object_id: str, payload: Any) -> bool:
        """Invoke the screen driver registered for ``object_id``, if any."""
        with self._lock:
            callback = self._screen_callbacks.get(object_id)
        if callback is None:
            return False
        invoke_isolated(callback, payload, description=f"screen[{object_id}]")
        return True

    def broadcast(self, payload: Any) -> int:
        """Deliver a touch payload to every registered screen driver."""
        with self._lock:
            callbacks = list(self._screen_callbacks.items())
        for object_id, callback in callbacks:
            invoke_isolated(callback, payload, description=f"screen[{object_id}]")
        return len(callbacks)

    # --- Outbound ---

    def set_outbound_callback(self, callback: OutboundCallback) -> None:
        """Set the single outbound consumer. Replaces any previous one."""
        with self._lock:
            self._outbound = callback

    def forward_outbound(self, object_ref: Optional[str], frame: Optional[str],
                         node: Optional[str], touch_offset_x: Any = None,
                         touch_offset_y: Any = None) -> None:
        """
        Normalize names to ids and hand them to the outbound consumer.

        ``frame`` and ``node`` may be plain names or already-resolved ids; an
        id already containing the object id is passed through unchanged, so
        forwarding the same values twice yields the same ids.
        """
        object_ref = object_ref or None
        frame = frame or None
        if not node or node == "null":
            node = None

        object_id = self._resolver.object_id(object_ref) if object_ref else None
        if object_id:
            object_ref = object_id

        if node and object_ref and object_ref not in node:
            node = node_key(object_ref, frame or "", node)
        if frame and object_ref and object_ref not in frame:
            frame = frame_key(object_ref, frame)

        with self._lock:
            callback = self._outbound
        invoke_isolated(callback, object_ref, frame, node, touch_offset_x, touch_offset_y,
                        description="screen outbound")

    # --- Ports ---

    def register_port(self, object_ref: str, port: int) -> str:
        """Record the port the screen for an object listens on. Returns the object id."""
        object_id = self._object_id(object_ref)
        with self._lock:
            self._ports[object_id] = port
        return object_id

    def get_port(self, object_id: str) -> Optional[int]:
        with self._lock:
            return self._ports.get(object_id)
