#!/usr/bin/env python3
"""
Touch screen client example.

Feeds a scripted gesture through ScreenClient: the frame is pushed from AR
onto the screen, dragged, and released, which posts its new screen pose to
the server. The pointer pipeline here just prints what a real screen would
render.

Prerequisites:
- Object server accepting pose posts on http://127.0.0.1:8080
"""

import logging

from reality_interfaces import ScreenClient, ScreenConfig
from reality_interfaces.utils.logging import setup_logging

OBJECT_ID = "stageAbCdEfGhIjKl"
FRAME_ID = OBJECT_ID + "slider"


class PrintingPipeline:
    """Pointer pipeline that logs every call."""

    def __init__(self):
        self.logger = logging.getLogger("screen_driver")

    def simulate_pointer_event(self, x, y, event):
        self.logger.info(f"{event.value} at ({x:.0f}, {y:.0f})")

    def begin_touch_editing(self, object_key, frame_key):
        self.logger.info(f"Editing {frame_key}")

    def reset_editing_state(self):
        self.logger.info("Editing stopped")

    def hide_touch_overlay(self):
        pass

    def scale_editing_frame(self, center, outer, distance):
        self.logger.info(f"Scaling by finger distance {distance:.1f}")

    def reset_frames(self):
        self.logger.info("Frames reset")


def main():
    setup_logging(verbose=True)
    client = ScreenClient(ScreenConfig(object_name="stage"), PrintingPipeline())

    client.handle_message("framesForScreen", {FRAME_ID: {
        "uuid": FRAME_ID, "objectId": OBJECT_ID, "name": "slider",
        "width": 300, "height": 120, "ar": {"scale": 1.0},
    }})

    gesture = [
        ("touchstart", 400, 300, False),
        ("touchmove", 420, 310, True),
        ("touchmove", 480, 330, True),
        ("touchend", 500, 340, True),
    ]
    for touch_state, x, y, visible in gesture:
        client.handle_message("screenObject", {
            "object": OBJECT_ID, "frame": FRAME_ID, "x": x, "y": y,
            "touchState": touch_state, "isScreenVisible": visible,
            "touchOffsetX": 0.5, "touchOffsetY": 0.5, "scale": 1.2,
        })


if __name__ == "__main__":
    main()
