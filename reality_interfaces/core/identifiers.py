"""
Identifier resolution for reality objects.

Objects are addressed by a human-readable name. The server keys them by a
globally unique id, which is the name with a 12 character random suffix.
Frames and nodes are keyed by composite ids derived from that object id:

    frame id = object_id + frame_name
    node id  = object_id + frame_name + node_name

The composite ids travel over the wire (screen events, HTTP pose posts), so
they stay plain strings. All concatenation happens here and nowhere else.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

# Length of the random suffix appended to an object name to form its id
OBJECT_ID_SUFFIX_LENGTH = 12

_SUFFIX_ALPHABET = string.ascii_letters + string.digits


@dataclass(frozen=True)
class NodeKeys:
    """Resolved (object, frame, node) id triple."""
    object_id: str
    frame_id: str
    node_id: str


def generate_object_id(object_name: str) -> str:
    """Create a new globally unique object id for a name."""
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET)
                     for _ in range(OBJECT_ID_SUFFIX_LENGTH))
    return object_name + suffix


def frame_key(object_id: str, frame_name: str) -> str:
    return object_id + frame_name


def node_key(object_id: str, frame_name: str, node_name: str) -> str:
    return object_id + frame_name + node_name


class IdentifierResolver:
    """
    Maps object names to object ids using the host's shared lookup table.

    The lookup table is owned by the hosting process and shared by reference;
    entries look like ``{"my_object": {"id": "my_objectAbC123..."}}``. A plain
    string value is accepted as the id as well.

    An optional target resolver (object name -> id via the object's target
    files on disk) is consulted first when given. It is an external
    collaborator; without one the lookup table is authoritative.
    """

    def __init__(self, lookup: Optional[Dict[str, object]] = None,
                 target_resolver: Optional[Callable[[str], Optional[str]]] = None):
        self.lookup: Dict[str, object] = lookup if lookup is not None else {}
        self._target_resolver = target_resolver

    def object_id(self, object_name: Optional[str]) -> Optional[str]:
        """Return the object id for a name, or None if the name is unknown."""
        if not object_name:
            return None

        if self._target_resolver is not None:
            object_id = self._target_resolver(object_name)
            if object_id:
                return object_id

        entry = self.lookup.get(object_name)
        if entry is None:
            return None
        if isinstance(entry, dict):
            return entry.get("id")
        return str(entry)

    def ensure_object_id(self, object_name: str) -> str:
        """Return the object id for a name, minting and recording one if unknown."""
        object_id = self.object_id(object_name)
        if object_id is None:
            object_id = generate_object_id(object_name)
            self.lookup[object_name] = {"id": object_id}
            logger.debug(f"Registered new object id {object_id} for '{object_name}'")
        return object_id

    def keys(self, object_name: str, frame_name: str,
             node_name: str) -> Optional[NodeKeys]:
        """Resolve a name triple to its id triple, or None if the object is unknown."""
        object_id = self.object_id(object_name)
        if object_id is None:
            return None
        return NodeKeys(
            object_id=object_id,
            frame_id=frame_key(object_id, frame_name),
            node_id=node_key(object_id, frame_name, node_name),
        )

    def object_name(self, object_id: str) -> Optional[str]:
        """Reverse lookup: object id -> name."""
        for name, entry in self.lookup.items():
            entry_id = entry.get("id") if isinstance(entry, dict) else entry
            if entry_id == object_id:
                return name
        return None
