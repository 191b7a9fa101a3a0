"""
Live object/frame/node registry.

Holds the runtime state (poses, values, public data) of every object the
server knows about. The registry does not know about names or drivers; the
facade resolves names to ids and calls in here with ids only.
"""

import threading
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

from reality_interfaces.core.identifiers import NodeKeys
from reality_interfaces.core.records import (
    FrameRecord,
    NodeRecord,
    ObjectRecord,
    random_node_position,
)

logger = logging.getLogger(__name__)


@dataclass
class NodeHandle:
    """A node resolved together with its owning object and frame."""
    object: ObjectRecord
    frame: FrameRecord
    node: NodeRecord


class NodeRegistry:
    """
    Object -> frame -> node tree.

    Architecture:
        NodeRegistry
        └── objects: Dict[object_id, ObjectRecord]
              └── frames: Dict[frame_id, FrameRecord]
                    └── nodes: Dict[node_id, NodeRecord]

    All mutations hold a reentrant lock, so a callback that re-enters the
    registry from the same thread cannot deadlock.
    """

    def __init__(self, objects: Optional[Dict[str, ObjectRecord]] = None,
                 node_factory: Callable[[], NodeRecord] = NodeRecord):
        self._lock = threading.RLock()
        self._objects: Dict[str, ObjectRecord] = objects if objects is not None else {}
        self._node_factory = node_factory

    @property
    def objects(self) -> Dict[str, ObjectRecord]:
        """Live objects dict (shared with the object engine)."""
        return self._objects

    # --- Lookups ---

    def get_object(self, object_id: Optional[str]) -> Optional[ObjectRecord]:
        with self._lock:
            return self._objects.get(object_id) if object_id else None

    def get_frame(self, object_id: str, frame_id: str) -> Optional[FrameRecord]:
        with self._lock:
            obj = self._objects.get(object_id)
            if obj is None:
                return None
            return obj.frames.get(frame_id)

    def resolve(self, keys: Optional[NodeKeys]) -> Optional[NodeHandle]:
        """
        Resolve an id triple to a handle.

        Returns:
            NodeHandle, or None if the object, frame or node is absent
        """
        if keys is None:
            return None
        with self._lock:
            obj = self._objects.get(keys.object_id)
            if obj is None:
                return None
            frame = obj.frames.get(keys.frame_id)
            if frame is None:
                return None
            node = frame.nodes.get(keys.node_id)
            if node is None:
                return None
            return NodeHandle(object=obj, frame=frame, node=node)

    def list_objects(self) -> List[str]:
        with self._lock:
            return list(self._objects.keys())

    def node_snapshot(self) -> List[Tuple[ObjectRecord, FrameRecord, NodeRecord]]:
        """Flat list of every (object, frame, node) currently live, for safe iteration."""
        with self._lock:
            return [(obj, frame, node)
                    for obj in list(self._objects.values())
                    for frame in list(obj.frames.values())
                    for node in list(frame.nodes.values())]

    def frame_snapshot(self) -> List[Tuple[ObjectRecord, FrameRecord]]:
        with self._lock:
            return [(obj, frame)
                    for obj in list(self._objects.values())
                    for frame in list(obj.frames.values())]

    # --- Declaration ---

    def ensure_object(self, object_id: str, object_name: str) -> ObjectRecord:
        with self._lock:
            obj = self._objects.get(object_id)
            if obj is None:
                obj = ObjectRecord(id=object_id, name=object_name)
                self._objects[object_id] = obj
                logger.debug(f"Created object {object_id}")
            return obj

    def declare_node(self, keys: NodeKeys, object_name: str, frame_name: str,
                     node_name: str, node_type: str,
                     position: Optional[dict] = None,
                     developer: bool = True) -> Tuple[NodeRecord, bool]:
        """
        Create or refresh a node, creating its object and frame on demand.

        A new node gets a random position in [-100, 100]^2 unless ``position``
        supplies x and/or y. An existing node keeps its position and size.

        Returns:
            (node, frame_created)
        """
        with self._lock:
            obj = self.ensure_object(keys.object_id, object_name)
            obj.developer = developer
            obj.name = object_name

            frame = obj.frames.get(keys.frame_id)
            frame_created = frame is None
            if frame_created:
                frame = FrameRecord(id=keys.frame_id)
                obj.frames[keys.frame_id] = frame
            frame.name = frame_name
            frame.object_id = keys.object_id

            node = frame.nodes.get(keys.node_id)
            if node is None:
                node = self._node_factory()
                node.x = random_node_position()
                node.y = random_node_position()
                if position:
                    if position.get('x') is not None:
                        node.x = position['x']
                    if position.get('y') is not None:
                        node.y = position['y']
                frame.nodes[keys.node_id] = node

            node.id = keys.node_id
            node.name = node_name
            node.frame_id = keys.frame_id
            node.object_id = keys.object_id
            node.text = None
            node.type = node_type
            return node, frame_created

    # --- Removal ---

    def remove_node(self, keys: NodeKeys) -> bool:
        """Returns True if removed, False if not found."""
        with self._lock:
            frame = self.get_frame(keys.object_id, keys.frame_id)
            if frame is None or keys.node_id not in frame.nodes:
                return False
            del frame.nodes[keys.node_id]
            return True

    def remove_all_nodes(self, object_id: str, frame_id: str) -> int:
        """Remove every node of a frame. Returns the number removed."""
        with self._lock:
            frame = self.get_frame(object_id, frame_id)
            if frame is None:
                return 0
            count = len(frame.nodes)
            frame.nodes.clear()
            return count

    def prune_nodes(self, object_id: str, frame_id: str, keep: Set[str]) -> List[str]:
        """
        Remove every node of a frame whose id is not in ``keep``.

        Returns:
            Ids of removed nodes
        """
        with self._lock:
            frame = self.get_frame(object_id, frame_id)
            if frame is None:
                return []
            removed = [nid for nid in frame.nodes if nid not in keep]
            for nid in removed:
                del frame.nodes[nid]
            return removed

    def to_dict(self) -> dict:
        with self._lock:
            return {oid: obj.to_dict() for oid, obj in self._objects.items()}
