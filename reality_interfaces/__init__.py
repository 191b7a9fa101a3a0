"""
Reality Interfaces - hardware interface registry and screen synchronization.

This package provides:
- A registry of reality objects, their frames and the nodes (IO points)
  hardware interface drivers declare on them
- Subscriber dispatch for node values, public data, connections and
  lifecycle events
- A touch screen client that pushes frames between AR and screen view
  while replaying projected touch gestures
"""

from reality_interfaces.config import HostConfig, RegistryConfig, ScreenConfig
from reality_interfaces.core.records import (
    FrameRecord,
    NodeRecord,
    ObjectRecord,
    Visualization,
)
from reality_interfaces.interface import HardwareInterfaceAPI, HostBindings
from reality_interfaces.screen.bridge import ScreenBridge
from reality_interfaces.screen.network import ScreenClient
from reality_interfaces.screen.visualization import VisualizationStateMachine
from reality_interfaces.client import InterfaceClient

__version__ = "1.0.0"
__all__ = [
    "HostConfig",
    "RegistryConfig",
    "ScreenConfig",
    "FrameRecord",
    "NodeRecord",
    "ObjectRecord",
    "Visualization",
    "HardwareInterfaceAPI",
    "HostBindings",
    "ScreenBridge",
    "ScreenClient",
    "VisualizationStateMachine",
    "InterfaceClient",
]
