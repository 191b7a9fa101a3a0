"""
Object, frame and node records for the reality interface registry.

An object owns frames, a frame owns nodes:

    ObjectRecord (id = name + random suffix)
    └── frames: Dict[frame_id, FrameRecord]   (frame_id = object_id + frame name)
          └── nodes: Dict[node_id, NodeRecord] (node_id = frame_id + node name)

Records serialize to the camelCase dict layout used on the wire
(``framesForScreen``, ``newFrameAdded``) and in persisted object files.
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

# Default node frame size in pixels
DEFAULT_NODE_FRAME_SIZE = 100

# Range for the random starting position of a newly declared node
NODE_POSITION_RANGE = 100


class Visualization(Enum):
    """Where a frame is currently rendered."""
    AR = "ar"
    SCREEN = "screen"


class FrameLocation(Enum):
    """Local frames expose node names to hardware interfaces."""
    LOCAL = "local"
    GLOBAL = "global"


def _enum_value(enum_cls, value, default):
    """Enum member for a wire value, or the default for a missing or unknown one."""
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        return default


@dataclass
class ArPose:
    """Position of a frame in AR space, relative to the marker origin."""
    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0
    matrix: List[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {'x': self.x, 'y': self.y, 'scale': self.scale,
                'matrix': list(self.matrix)}

    @classmethod
    def from_dict(cls, data: dict) -> "ArPose":
        return cls(
            x=data.get('x', 0.0),
            y=data.get('y', 0.0),
            scale=data.get('scale', 1.0),
            matrix=list(data.get('matrix') or []),
        )


@dataclass
class ScreenPose:
    """Position of a frame on the 2D screen."""
    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0

    def to_dict(self) -> dict:
        return {'x': self.x, 'y': self.y, 'scale': self.scale}

    @classmethod
    def from_dict(cls, data: dict) -> "ScreenPose":
        return cls(
            x=data.get('x', 0.0),
            y=data.get('y', 0.0),
            scale=data.get('scale', 1.0),
        )


@dataclass
class NodeData:
    """Value carried by a node. ``mode`` is driver-defined ("f" = float)."""
    value: Any = 0
    mode: str = "f"
    unit: Any = False
    unit_min: float = 0
    unit_max: float = 1

    def to_dict(self) -> dict:
        return {
            'value': self.value,
            'mode': self.mode,
            'unit': self.unit,
            'unitMin': self.unit_min,
            'unitMax': self.unit_max,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NodeData":
        return cls(
            value=data.get('value', 0),
            mode=data.get('mode', 'f'),
            unit=data.get('unit', False),
            unit_min=data.get('unitMin', 0),
            unit_max=data.get('unitMax', 1),
        )


def random_node_position() -> int:
    """Random integer coordinate in [-100, 100]."""
    return random.randint(0, 2 * NODE_POSITION_RANGE) - NODE_POSITION_RANGE


@dataclass
class NodeRecord:
    """An IO point on a frame."""
    id: str = ""
    name: str = ""
    type: str = "node"
    frame_id: str = ""
    object_id: str = ""
    # Display alias; None means the name is shown
    text: Optional[str] = None
    x: float = 0
    y: float = 0
    frame_size_x: int = DEFAULT_NODE_FRAME_SIZE
    frame_size_y: int = DEFAULT_NODE_FRAME_SIZE
    data: NodeData = field(default_factory=NodeData)
    public_data: Dict[str, Any] = field(default_factory=dict)
    # Back-reference set when the node belongs to another frame (peer-frame node)
    frame: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.text if self.text is not None else self.name

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'type': self.type,
            'frameId': self.frame_id,
            'objectId': self.object_id,
            'text': self.text,
            'x': self.x,
            'y': self.y,
            'frameSizeX': self.frame_size_x,
            'frameSizeY': self.frame_size_y,
            'data': self.data.to_dict(),
            'publicData': dict(self.public_data),
            'frame': self.frame,
        }

    @classmethod
    def from_dict(cls, node_id: str, data: dict) -> "NodeRecord":
        return cls(
            id=node_id,
            name=data.get('name', ''),
            type=data.get('type', 'node'),
            frame_id=data.get('frameId', ''),
            object_id=data.get('objectId', ''),
            text=data.get('text'),
            x=data.get('x', 0),
            y=data.get('y', 0),
            frame_size_x=data.get('frameSizeX', DEFAULT_NODE_FRAME_SIZE),
            frame_size_y=data.get('frameSizeY', DEFAULT_NODE_FRAME_SIZE),
            data=NodeData.from_dict(data.get('data', {})),
            public_data=dict(data.get('publicData', {})),
            frame=data.get('frame'),
        )


@dataclass
class FrameRecord:
    """A visual element of an object, rendered either in AR or on a screen."""
    id: str = ""
    object_id: Optional[str] = None
    name: str = ""
    visualization: Visualization = Visualization.AR
    ar: ArPose = field(default_factory=ArPose)
    screen: ScreenPose = field(default_factory=ScreenPose)
    # Pixel size of the frame content
    width: float = 0
    height: float = 0
    visible: bool = False
    visible_text: bool = False
    visible_editing: bool = False
    developer: bool = True
    location: FrameLocation = FrameLocation.LOCAL
    src: str = "editor"
    nodes: Dict[str, NodeRecord] = field(default_factory=dict)
    # Opaque to the registry; owned by the object engine
    links: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'uuid': self.id,
            'objectId': self.object_id,
            'name': self.name,
            'visualization': self.visualization.value,
            'ar': self.ar.to_dict(),
            'screen': self.screen.to_dict(),
            'width': self.width,
            'height': self.height,
            'visible': self.visible,
            'visibleText': self.visible_text,
            'visibleEditing': self.visible_editing,
            'developer': self.developer,
            'location': self.location.value,
            'src': self.src,
            'nodes': {nid: node.to_dict() for nid, node in self.nodes.items()},
            'links': dict(self.links),
        }

    @classmethod
    def from_dict(cls, data: dict, frame_id: Optional[str] = None) -> "FrameRecord":
        if frame_id is None:
            frame_id = data.get('uuid') or ((data.get('objectId') or '') + data.get('name', ''))
        return cls(
            id=frame_id,
            object_id=data.get('objectId'),
            name=data.get('name', ''),
            visualization=_enum_value(Visualization, data.get('visualization'), Visualization.AR),
            ar=ArPose.from_dict(data.get('ar') or {}),
            screen=ScreenPose.from_dict(data.get('screen') or {}),
            width=data.get('width', 0),
            height=data.get('height', 0),
            visible=data.get('visible', False),
            visible_text=data.get('visibleText', False),
            visible_editing=data.get('visibleEditing', False),
            developer=data.get('developer', True),
            location=_enum_value(FrameLocation, data.get('location'), FrameLocation.LOCAL),
            src=data.get('src', 'editor'),
            nodes={nid: NodeRecord.from_dict(nid, nd)
                   for nid, nd in (data.get('nodes') or {}).items()},
            links=dict(data.get('links') or {}),
        )


@dataclass
class ObjectRecord:
    """Top-level AR entity."""
    id: str = ""
    name: str = ""
    developer: bool = True
    deactivated: bool = False
    # Marker size as reported by the target resolver, if known
    target_size: Optional[Dict[str, float]] = None
    frames: Dict[str, FrameRecord] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'objectId': self.id,
            'name': self.name,
            'developer': self.developer,
            'deactivated': self.deactivated,
            'targetSize': self.target_size,
            'frames': {fid: frame.to_dict() for fid, frame in self.frames.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ObjectRecord":
        return cls(
            id=data.get('objectId', ''),
            name=data.get('name', ''),
            developer=data.get('developer', True),
            deactivated=data.get('deactivated', False),
            target_size=data.get('targetSize'),
            frames={fid: FrameRecord.from_dict(fd, fid)
                    for fid, fd in data.get('frames', {}).items()},
        )
