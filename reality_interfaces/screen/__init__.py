"""Touch screen bridge (server side) and visualization client."""

from reality_interfaces.screen.bridge import ScreenBridge
from reality_interfaces.screen.visualization import (
    VisualizationStateMachine,
    PointerPipeline,
    PointerEvent,
    ScreenGeometry,
    TouchState,
)
from reality_interfaces.screen.network import ScreenClient

__all__ = [
    "ScreenBridge",
    "VisualizationStateMachine",
    "PointerPipeline",
    "PointerEvent",
    "ScreenGeometry",
    "TouchState",
    "ScreenClient",
]
