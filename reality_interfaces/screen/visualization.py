"""
Screen/AR visualization state machine for a touch screen client.

Each frame shown on the screen is either rendered in AR (on the phone running
the editor) or on the screen. The editor projects touches on the marker into
``screenObject`` events; this module decides when a frame is pushed into the
screen or pulled back out into AR, and replays the projected touches as local
pointer events so a drag continues seamlessly across the transition.

Per-message order:
    1. transition side effects (AR -> SCREEN entry, SCREEN -> AR exit)
    2. pointer-move right after a push, so the frame lands under the finger
    3. pointer replay for the message's touch state
"""

import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import numpy as np

from reality_interfaces.core.records import FrameRecord, Visualization

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

# Number of touchstarts inside the window that count as a triple tap
TRIPLE_TAP_COUNT = 3


def _parse_frame(data: Any, key: Optional[str] = None) -> Optional[FrameRecord]:
    try:
        return FrameRecord.from_dict(data, key)
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning(f"Skipping malformed frame {key or ''}: {e}")
        return None


class TouchState(Enum):
    """Touch phase carried by a screenObject event."""
    NONE = "none"
    START = "start"
    MOVE = "move"
    END = "end"

    @classmethod
    def parse(cls, value: Any) -> "TouchState":
        """Accept both "start" and DOM-style "touchstart" spellings."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return cls.NONE
        name = value[len("touch"):] if value.startswith("touch") else value
        try:
            return cls(name)
        except ValueError:
            return cls.NONE


class PointerEvent(Enum):
    DOWN = "pointerdown"
    MOVE = "pointermove"
    UP = "pointerup"


class PointerPipeline(Protocol):
    """Local pointer/editing layer the replayed touches are fed into."""

    def simulate_pointer_event(self, x: float, y: float, event: PointerEvent) -> None:
        """Inject a synthetic pointer event at screen pixel (x, y)."""
        ...

    def begin_touch_editing(self, object_key: str, frame_key: str) -> None:
        """Show the edit overlay and start dragging the frame."""
        ...

    def reset_editing_state(self) -> None:
        """Stop dragging the current frame."""
        ...

    def hide_touch_overlay(self) -> None:
        ...

    def scale_editing_frame(self, center: Point, outer: Point, distance: float) -> None:
        """Two-finger scale of the frame being edited."""
        ...

    def reset_frames(self) -> None:
        """Triple tap: return all frames to their default layout."""
        ...


class ScreenGeometry:
    """
    Maps projected touch positions (marker coordinates) to screen pixels.

    Uses a 3x3 homogeneous transform; the default is the identity.
    """

    def __init__(self, matrix: Optional[np.ndarray] = None):
        self.matrix = np.eye(3, dtype=np.float64) if matrix is None else np.asarray(matrix, dtype=np.float64)
        if self.matrix.shape != (3, 3):
            raise ValueError("Screen transform must be a 3x3 matrix")

    @classmethod
    def from_scale(cls, sx: float, sy: float,
                   offset: Point = (0.0, 0.0)) -> "ScreenGeometry":
        return cls(np.array([[sx, 0.0, offset[0]],
                             [0.0, sy, offset[1]],
                             [0.0, 0.0, 1.0]]))

    def to_screen(self, x: float, y: float) -> Point:
        p = self.matrix @ np.array([x, y, 1.0])
        return float(p[0] / p[2]), float(p[1] / p[2])


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def numeric_touches(touches: Any) -> List[Point]:
    """Keep only touches whose x and y are numbers."""
    if not isinstance(touches, list):
        return []
    return [(t["x"], t["y"]) for t in touches
            if isinstance(t, dict) and _is_number(t.get("x")) and _is_number(t.get("y"))]


@dataclass
class EditingState:
    """The frame currently being dragged on the screen, if any."""
    object_key: Optional[str] = None
    frame_key: Optional[str] = None
    touch_offset: List[float] = field(default_factory=lambda: [0.0, 0.0])
    dragging: bool = False

    def clear(self):
        self.object_key = None
        self.frame_key = None
        self.touch_offset = [0.0, 0.0]
        self.dragging = False


class VisualizationStateMachine:
    """
    Tracks AR/screen visualization per frame and replays projected touches.

    Args:
        pipeline: Local pointer pipeline (see PointerPipeline)
        scale_ratio: Screen scale per unit of AR scale
        geometry: Projected-touch to pixel mapping
        on_drag_finished: Called with (object_key, frame_key) when a drag of a
            screen frame ends, so the new screen pose can be posted upstream
        triple_tap_window: Seconds in which three touchstarts form a triple tap
        clock: Monotonic time source
    """

    def __init__(self, pipeline: PointerPipeline, scale_ratio: float = 1.0,
                 geometry: Optional[ScreenGeometry] = None,
                 on_drag_finished: Optional[Callable[[str, str], None]] = None,
                 triple_tap_window: float = 0.5,
                 clock: Callable[[], float] = time.monotonic):
        self.pipeline = pipeline
        self.scale_ratio = scale_ratio
        self.geometry = geometry or ScreenGeometry()
        self.frames: Dict[str, FrameRecord] = {}
        self.editing = EditingState()
        self._on_drag_finished = on_drag_finished
        self._triple_tap_window = triple_tap_window
        self._clock = clock
        self._tap_times: List[float] = []

    # --- Frame shadows ---

    def set_frames(self, frames: Dict[str, dict]) -> None:
        """Replace all frame shadows (``framesForScreen``). Malformed frames are skipped."""
        parsed = {}
        for key, data in frames.items():
            frame = _parse_frame(data, key)
            if frame is not None:
                parsed[key] = frame
        self.frames = parsed

    def upsert_frame(self, frame_data: dict) -> Optional[str]:
        """
        Add or replace one frame shadow (``newFrameAdded``).

        The screen scale is derived from the AR scale the same way as on push.

        Returns:
            The frame key, or None if the frame could not be parsed
        """
        frame = _parse_frame(frame_data)
        if frame is None:
            return None
        frame.screen.scale = frame.ar.scale * self.scale_ratio
        self.frames[frame.id] = frame
        return frame.id

    # --- Transitions ---

    def update_frame_visualization(self, object_key: Optional[str], frame_key: Optional[str],
                                   is_screen_visible: bool, touch_offset_x: Any = None,
                                   touch_offset_y: Any = None, scale: Any = None) -> bool:
        """
        Push a frame into the screen or pull it back out into AR.

        Setting the state a frame already has changes nothing.

        Returns:
            True if the frame changed visualization
        """
        if not object_key or not frame_key:
            return False
        frame = self.frames.get(frame_key)
        if frame is None:
            return False

        old = frame.visualization
        new = Visualization.SCREEN if is_screen_visible else Visualization.AR
        if old == new:
            return False
        frame.visualization = new
        logger.debug(f"Frame {frame_key} of {object_key}: {old.value} -> {new.value}")

        if new == Visualization.SCREEN:
            self._enter_screen(object_key, frame_key, frame, touch_offset_x, touch_offset_y, scale)
        else:
            self._exit_screen()
        return True

    def _enter_screen(self, object_key: str, frame_key: str, frame: FrameRecord,
                      touch_offset_x: Any, touch_offset_y: Any, scale: Any) -> None:
        self.editing.object_key = object_key
        self.editing.frame_key = frame_key
        self.pipeline.begin_touch_editing(object_key, frame_key)

        if _is_number(scale):
            frame.ar.scale = scale
        frame.screen.scale = frame.ar.scale * self.scale_ratio

        # Keep dragging from the same relative point the finger had in AR
        self.editing.touch_offset = [
            -touch_offset_x * frame.width * frame.screen.scale if touch_offset_x and _is_number(touch_offset_x) else 0.0,
            -touch_offset_y * frame.height * frame.screen.scale if touch_offset_y and _is_number(touch_offset_y) else 0.0,
        ]
        logger.debug(f"Pushed {frame_key} to screen: scale={frame.screen.scale}, "
                     f"touch_offset={self.editing.touch_offset}")

    def _exit_screen(self) -> None:
        # The AR side owns the pose after a pull-out; nothing is posted back.
        self.editing.clear()
        self.pipeline.reset_editing_state()
        self.pipeline.hide_touch_overlay()

    # --- Touch replay ---

    def handle_screen_object(self, msg: dict) -> bool:
        """
        Process one ``screenObject`` event.

        Returns:
            True if the event changed a frame's visualization
        """
        touches = numeric_touches(msg.get("touches"))
        screen_pos = self._screen_pos(msg.get("x"), msg.get("y"))

        state_changed = self.update_frame_visualization(
            msg.get("object"), msg.get("frame"), bool(msg.get("isScreenVisible")),
            msg.get("touchOffsetX"), msg.get("touchOffsetY"), msg.get("scale"))

        if state_changed and self.editing.frame_key and screen_pos is not None:
            self.pipeline.simulate_pointer_event(*screen_pos, PointerEvent.MOVE)

        if screen_pos is not None:
            self._replay(TouchState.parse(msg.get("touchState")), screen_pos, touches)

        return state_changed

    def _screen_pos(self, x: Any, y: Any) -> Optional[Point]:
        if not (_is_number(x) and _is_number(y)):
            return None
        return self.geometry.to_screen(x, y)

    def _replay(self, touch_state: TouchState, screen_pos: Point,
                touches: List[Point]) -> None:
        if touch_state == TouchState.START:
            if self.editing.dragging:
                # The previous gesture's touchend never arrived
                logger.warning("touchstart during an open drag; closing the stale drag")
                self.pipeline.simulate_pointer_event(*screen_pos, PointerEvent.UP)
            if self._register_tap():
                self.reset_frames()
            self.editing.dragging = True
            self.pipeline.simulate_pointer_event(*screen_pos, PointerEvent.DOWN)

        elif touch_state == TouchState.MOVE:
            self.pipeline.simulate_pointer_event(*screen_pos, PointerEvent.MOVE)
            if len(touches) > 1:
                outer = self.geometry.to_screen(*touches[1])
                distance = float(np.hypot(outer[0] - screen_pos[0], outer[1] - screen_pos[1]))
                self.pipeline.scale_editing_frame(screen_pos, outer, distance)

        elif touch_state == TouchState.END:
            self.pipeline.simulate_pointer_event(*screen_pos, PointerEvent.UP)
            self.editing.dragging = False
            self._drag_finished()

    def _drag_finished(self) -> None:
        object_key, frame_key = self.editing.object_key, self.editing.frame_key
        if not object_key or not frame_key or self._on_drag_finished is None:
            return
        frame = self.frames.get(frame_key)
        if frame is not None and frame.visualization == Visualization.SCREEN:
            self._on_drag_finished(object_key, frame_key)

    # --- Triple tap ---

    def _register_tap(self) -> bool:
        now = self._clock()
        self._tap_times = [t for t in self._tap_times if now - t <= self._triple_tap_window]
        self._tap_times.append(now)
        if len(self._tap_times) >= TRIPLE_TAP_COUNT:
            self._tap_times.clear()
            return True
        return False

    def reset_frames(self) -> None:
        """Return every frame to AR and drop the editing state."""
        logger.info("Triple tap: resetting frames")
        for frame in self.frames.values():
            frame.visualization = Visualization.AR
        self.editing.clear()
        self.pipeline.reset_frames()
