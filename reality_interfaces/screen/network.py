"""
Message handling for a touch screen client.

The server pushes these events to every screen client:

    objectName        {"objectName": "stage"}
    objectTargetSize  {"targetSize": {"width": .., "height": ..}}
    framesForScreen   {"<frameId>": {...frame...}, ...}
    newFrameAdded     {"frame": {...frame...}}
    screenObject      {"object", "frame", "x", "y", "touchState", "touchOffsetX",
                       "touchOffsetY", "scale", "isScreenVisible", "touches"}

Any event may carry ``targetScreen: {"object": ...}``; events addressed to
another screen are dropped before they touch any state.

When a drag on the screen ends, the frame's screen pose is posted back to the
server over HTTP.
"""

import logging
from typing import Any, Callable, Dict, Optional

import requests

from reality_interfaces.config import ScreenConfig
from reality_interfaces.screen.visualization import (
    PointerPipeline,
    ScreenGeometry,
    VisualizationStateMachine,
)

logger = logging.getLogger(__name__)


class ScreenClient:
    """
    Routes server events into the visualization state machine.

    Usage:
        client = ScreenClient(ScreenConfig(object_name="stage"), pipeline)
        client.handle_message("screenObject", msg)
    """

    def __init__(self, config: ScreenConfig, pipeline: PointerPipeline,
                 geometry: Optional[ScreenGeometry] = None,
                 session: Optional[requests.Session] = None):
        self.config = config
        self.object_name = config.object_name
        self.target_size: Optional[Dict[str, float]] = None
        self.session = session or requests.Session()
        self.state = VisualizationStateMachine(
            pipeline,
            scale_ratio=config.scale_ratio,
            geometry=geometry,
            on_drag_finished=self.post_position_and_size,
            triple_tap_window=config.triple_tap_window,
        )

        self._handlers: Dict[str, Callable[[dict], None]] = {
            "objectName": self.on_object_name,
            "objectTargetSize": self.on_object_target_size,
            "framesForScreen": self.on_frames_for_screen,
            "newFrameAdded": self.on_new_frame_added,
            "screenObject": self.on_screen_object,
        }

    @property
    def frames(self):
        return self.state.frames

    # --- Routing ---

    def is_message_for_me(self, msg: Any) -> bool:
        """
        False if the message targets a screen whose object id does not contain ours.

        Until ``objectName`` arrives, every targeted message is foreign.
        """
        if not isinstance(msg, dict):
            return False
        target = msg.get("targetScreen")
        if target:
            if not isinstance(target, dict):
                logger.debug(f"Dropping message with malformed targetScreen {target!r}")
                return False
            target_object = str(target.get("object") or "")
            if not self.object_name or self.object_name not in target_object:
                logger.debug(f"Message for {target_object}, not for {self.object_name}")
                return False
        return True

    def handle_message(self, event: str, msg: Any) -> bool:
        """
        Dispatch one server event.

        Returns:
            True if the event was handled, False if unknown or not for this screen
        """
        handler = self._handlers.get(event)
        if handler is None:
            logger.debug(f"Ignoring unknown event '{event}'")
            return False
        if not self.is_message_for_me(msg):
            return False
        handler(msg)
        return True

    # --- Handlers ---

    def on_object_name(self, msg: dict) -> None:
        self.object_name = msg.get("objectName", self.object_name)
        logger.info(f"Screen object name: {self.object_name}")

    def on_object_target_size(self, msg: dict) -> None:
        self.target_size = msg.get("targetSize")
        logger.info(f"Got target size {self.target_size}")
        width = (self.target_size or {}).get("width")
        if self.config.screen_width and width:
            self.state.scale_ratio = self.config.screen_width / width

    def on_frames_for_screen(self, msg: dict) -> None:
        frames = {key: data for key, data in msg.items()
                  if key != "targetScreen" and isinstance(data, dict)}
        self.state.set_frames(frames)
        logger.info(f"Loaded {len(self.state.frames)} of {len(frames)} frames for screen")

    def on_new_frame_added(self, msg: dict) -> None:
        frame = msg.get("frame")
        if not isinstance(frame, dict):
            return
        frame_key = self.state.upsert_frame(frame)
        if frame_key is None:
            return
        logger.info(f"New frame added for {self.object_name}: {frame_key}")

    def on_screen_object(self, msg: dict) -> None:
        self.state.handle_screen_object(msg)

    # --- Outbound ---

    def pose_url(self, object_key: str, frame_key: str) -> str:
        return (f"http://{self.config.server_ip}:{self.config.server_port}"
                f"/object/{object_key}/frame/{frame_key}/size/")

    def post_position_and_size(self, object_key: Optional[str],
                               frame_key: Optional[str]) -> Optional[dict]:
        """
        Post a frame's screen pose to the server.

        The receiver is told to skip its own AR position update, since the AR
        pose is kept in sync another way.

        Returns:
            Parsed JSON response, or None if nothing was posted or the post failed
        """
        if not object_key or not frame_key:
            return None
        frame = self.state.frames.get(frame_key)
        if frame is None:
            return None

        content = frame.screen.to_dict()
        content["scaleARFactor"] = self.state.scale_ratio
        content["ignoreActionSender"] = True
        return self.post_data(self.pose_url(object_key, frame_key), content)

    def post_data(self, url: str, body: dict) -> Optional[dict]:
        """POST ``body`` as JSON. Failures are logged and not retried."""
        try:
            response = self.session.post(url, json=body, timeout=self.config.post_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"POST {url} failed: {e}")
            return None
        try:
            return response.json()
        except ValueError:
            return {}
