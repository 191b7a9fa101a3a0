"""
Shadow tree of the nodes drivers have declared.

Mirrors what hardware interfaces asked for, keyed by object *name*, so that a
reconcile pass can find live nodes no driver declares any more without
touching the live registry's records.

A frame's declared set belongs to the last declaration pass. Reconcile closes
the pass; the next ``declare`` for that frame opens a fresh one. Reconciling a
closed frame again sees the same set.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Set


@dataclass
class DeclaredNode:
    name: str
    type: str


@dataclass
class DeclaredFrame:
    name: str
    nodes: Dict[str, DeclaredNode] = field(default_factory=dict)
    # Set by reconcile; the next declaration starts a new pass
    closed: bool = False


@dataclass
class DeclaredObject:
    name: str
    frames: Dict[str, DeclaredFrame] = field(default_factory=dict)


class DeclarationTree:
    """object name -> frame id -> node id -> (name, type)."""

    def __init__(self):
        self._lock = threading.RLock()
        self._objects: Dict[str, DeclaredObject] = {}

    def declare(self, object_name: str, frame_id: str, frame_name: str,
                node_id: str, node_name: str, node_type: str) -> None:
        """Record a declaration, overwriting the type of an existing entry."""
        with self._lock:
            obj = self._objects.get(object_name)
            if obj is None:
                obj = self._objects[object_name] = DeclaredObject(object_name)
            frame = obj.frames.get(frame_id)
            if frame is None:
                frame = obj.frames[frame_id] = DeclaredFrame(frame_name)
            if frame.closed:
                frame.nodes.clear()
                frame.closed = False
            node = frame.nodes.get(node_id)
            if node is None:
                frame.nodes[node_id] = DeclaredNode(node_name, node_type)
            else:
                node.type = node_type

    def undeclare(self, object_name: str, frame_id: str, node_id: Optional[str] = None) -> bool:
        """Forget one declared node, or every node of the frame if ``node_id`` is None."""
        with self._lock:
            frame = self.get_frame(object_name, frame_id)
            if frame is None:
                return False
            if node_id is None:
                frame.nodes.clear()
                return True
            if node_id not in frame.nodes:
                return False
            del frame.nodes[node_id]
            return True

    def get_frame(self, object_name: str, frame_id: str) -> Optional[DeclaredFrame]:
        with self._lock:
            obj = self._objects.get(object_name)
            if obj is None:
                return None
            return obj.frames.get(frame_id)

    def close_pass(self, object_name: str, frame_id: str) -> Set[str]:
        """
        Return the ids declared in the frame's current pass and close it.

        The set is kept until the next declaration for the frame, so closing
        twice in a row returns the same ids.
        """
        with self._lock:
            frame = self.get_frame(object_name, frame_id)
            if frame is None:
                return set()
            frame.closed = True
            return set(frame.nodes)
