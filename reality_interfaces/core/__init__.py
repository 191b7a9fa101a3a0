"""Core registry components for reality interfaces."""

from reality_interfaces.core.identifiers import IdentifierResolver, NodeKeys
from reality_interfaces.core.records import (
    ArPose,
    ScreenPose,
    NodeData,
    NodeRecord,
    FrameRecord,
    ObjectRecord,
    Visualization,
    FrameLocation,
)
from reality_interfaces.core.registry import NodeRegistry, NodeHandle
from reality_interfaces.core.declarations import DeclarationTree
from reality_interfaces.core.callbacks import CallbackRegistry, invoke_isolated

__all__ = [
    "IdentifierResolver",
    "NodeKeys",
    "ArPose",
    "ScreenPose",
    "NodeData",
    "NodeRecord",
    "FrameRecord",
    "ObjectRecord",
    "Visualization",
    "FrameLocation",
    "NodeRegistry",
    "NodeHandle",
    "DeclarationTree",
    "CallbackRegistry",
    "invoke_isolated",
]
