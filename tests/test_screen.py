"""
Screen synchronization tests: the server-side bridge, the AR/screen state
machine and the screen client's message routing and pose posting.
"""

from unittest.mock import Mock

import pytest
import requests

from reality_interfaces.config import ScreenConfig
from reality_interfaces.core.identifiers import IdentifierResolver
from reality_interfaces.core.records import Visualization
from reality_interfaces.screen.bridge import ScreenBridge
from reality_interfaces.screen.network import ScreenClient
from reality_interfaces.screen.visualization import (
    PointerEvent,
    ScreenGeometry,
    TouchState,
    VisualizationStateMachine,
    numeric_touches,
)

OBJECT_KEY = "stageID"
FRAME_KEY = "stageIDslider"


def frame_data(width=200, height=100, scale=1.0, visualization="ar"):
    return {
        "uuid": FRAME_KEY,
        "objectId": OBJECT_KEY,
        "name": "slider",
        "visualization": visualization,
        "ar": {"x": 0, "y": 0, "scale": scale},
        "screen": {"x": 0, "y": 0, "scale": scale},
        "width": width,
        "height": height,
    }


def touch(state, x=10, y=20, visible=False, **extra):
    msg = {"object": OBJECT_KEY, "frame": FRAME_KEY, "x": x, "y": y,
           "touchState": state, "isScreenVisible": visible}
    msg.update(extra)
    return msg


def pointer_events(pipeline):
    return [c.args[2] for c in pipeline.simulate_pointer_event.call_args_list]


class TestScreenBridge:

    @pytest.fixture
    def bridge(self):
        return ScreenBridge(IdentifierResolver({"stage": {"id": OBJECT_KEY}}))

    def test_screen_driver_is_replaced(self, bridge):
        old, new = Mock(), Mock()
        bridge.register_screen_driver(OBJECT_KEY, old)
        bridge.register_screen_driver(OBJECT_KEY, new)

        assert bridge.dispatch_to_screen_driver(OBJECT_KEY, {"x": 1}) is True

        old.assert_not_called()
        new.assert_called_once_with({"x": 1})

    def test_register_by_name_resolves_id(self, bridge):
        driver = Mock()
        assert bridge.register_screen_driver("stage", driver) == OBJECT_KEY
        assert bridge.dispatch_to_screen_driver(OBJECT_KEY, {"x": 1}) is True
        driver.assert_called_once_with({"x": 1})

    def test_dispatch_without_driver_is_noop(self, bridge):
        assert bridge.dispatch_to_screen_driver("nobody", {}) is False

    def test_broadcast(self, bridge):
        a, b = Mock(), Mock()
        bridge.register_screen_driver("a", a)
        bridge.register_screen_driver("b", b)
        assert bridge.broadcast({"touch": 1}) == 2
        a.assert_called_once_with({"touch": 1})
        b.assert_called_once_with({"touch": 1})

    def test_outbound_callback_is_replaced_not_appended(self, bridge):
        first, second = Mock(), Mock()
        bridge.set_outbound_callback(first)
        bridge.set_outbound_callback(second)

        bridge.forward_outbound("stage", "slider", "knob", 0.1, 0.2)

        first.assert_not_called()
        second.assert_called_once_with(OBJECT_KEY, FRAME_KEY, FRAME_KEY + "knob", 0.1, 0.2)

    def test_forward_outbound_is_idempotent_on_ids(self, bridge):
        outbound = Mock()
        bridge.set_outbound_callback(outbound)

        bridge.forward_outbound(OBJECT_KEY, FRAME_KEY, FRAME_KEY + "knob", 1, 2)

        outbound.assert_called_once_with(OBJECT_KEY, FRAME_KEY, FRAME_KEY + "knob", 1, 2)

    def test_forward_outbound_null_values(self, bridge):
        outbound = Mock()
        bridge.set_outbound_callback(outbound)

        bridge.forward_outbound("stage", "", "null")

        outbound.assert_called_once_with(OBJECT_KEY, None, None, None, None)

    def test_failing_outbound_consumer_is_isolated(self, bridge):
        bridge.set_outbound_callback(Mock(side_effect=OSError("socket gone")))
        bridge.forward_outbound("stage", "slider", "knob")

    def test_ports(self, bridge):
        assert bridge.get_port(OBJECT_KEY) is None
        bridge.register_port("stage", 5000)
        bridge.register_port(OBJECT_KEY, 5001)
        assert bridge.get_port(OBJECT_KEY) == 5001


class TestTouchParsing:

    def test_touch_state_spellings(self):
        assert TouchState.parse("touchstart") == TouchState.START
        assert TouchState.parse("move") == TouchState.MOVE
        assert TouchState.parse("touchend") == TouchState.END
        assert TouchState.parse("wiggle") == TouchState.NONE
        assert TouchState.parse(None) == TouchState.NONE

    def test_numeric_touches_filters_malformed(self):
        touches = [{"x": 1, "y": 2}, {"x": "3", "y": 4}, {"x": True, "y": 1}, "junk", {"x": 5.5, "y": 6}]
        assert numeric_touches(touches) == [(1, 2), (5.5, 6)]
        assert numeric_touches(None) == []

    def test_geometry(self):
        geometry = ScreenGeometry.from_scale(2.0, 3.0, offset=(10.0, 0.0))
        assert geometry.to_screen(1, 1) == (12.0, 3.0)
        with pytest.raises(ValueError):
            ScreenGeometry([[1, 0], [0, 1]])


class TestVisualizationStateMachine:

    @pytest.fixture
    def machine(self, pipeline, clock):
        machine = VisualizationStateMachine(pipeline, clock=clock, on_drag_finished=Mock())
        machine.set_frames({FRAME_KEY: frame_data()})
        return machine

    def test_push_computes_offset_before_pointer_replay(self, machine, pipeline):
        offsets_seen = []
        pipeline.simulate_pointer_event.side_effect = (
            lambda x, y, event: offsets_seen.append(list(machine.editing.touch_offset)))

        changed = machine.handle_screen_object(touch(
            "touchstart", visible=True, touchOffsetX=0.5, touchOffsetY=0.25, scale=2))

        assert changed is True
        assert offsets_seen[0] == [-200, -50]
        frame = machine.frames[FRAME_KEY]
        assert frame.visualization == Visualization.SCREEN
        assert frame.ar.scale == 2
        assert frame.screen.scale == 2

    def test_push_side_effects_precede_replay(self, machine, pipeline):
        machine.handle_screen_object(touch("touchmove", visible=True))

        names = [c[0] for c in pipeline.mock_calls]
        assert names == ["begin_touch_editing", "simulate_pointer_event", "simulate_pointer_event"]
        pipeline.begin_touch_editing.assert_called_once_with(OBJECT_KEY, FRAME_KEY)
        assert pointer_events(pipeline) == [PointerEvent.MOVE, PointerEvent.MOVE]

    def test_push_uses_scale_ratio(self, pipeline):
        machine = VisualizationStateMachine(pipeline, scale_ratio=1.5)
        machine.set_frames({FRAME_KEY: frame_data()})

        machine.update_frame_visualization(OBJECT_KEY, FRAME_KEY, True, scale=2)

        assert machine.frames[FRAME_KEY].screen.scale == 3.0

    def test_non_numeric_scale_keeps_ar_scale(self, machine):
        machine.update_frame_visualization(OBJECT_KEY, FRAME_KEY, True, 0.5, 0.5, scale="big")
        frame = machine.frames[FRAME_KEY]
        assert frame.ar.scale == 1.0
        assert machine.editing.touch_offset == [-100, -50]

    def test_same_state_is_idempotent(self, machine, pipeline):
        assert machine.update_frame_visualization(OBJECT_KEY, FRAME_KEY, False) is False
        assert machine.update_frame_visualization(OBJECT_KEY, FRAME_KEY, True) is True
        assert machine.update_frame_visualization(OBJECT_KEY, FRAME_KEY, True) is False
        pipeline.begin_touch_editing.assert_called_once()

    def test_unknown_frame_is_ignored(self, machine, pipeline):
        assert machine.update_frame_visualization(OBJECT_KEY, "nope", True) is False
        assert machine.update_frame_visualization(None, FRAME_KEY, True) is False
        pipeline.begin_touch_editing.assert_not_called()

    def test_pull_out_clears_overlay_without_posting(self, machine, pipeline):
        machine.update_frame_visualization(OBJECT_KEY, FRAME_KEY, True)

        machine.update_frame_visualization(OBJECT_KEY, FRAME_KEY, False)

        pipeline.reset_editing_state.assert_called_once_with()
        pipeline.hide_touch_overlay.assert_called_once_with()
        assert machine.editing.frame_key is None
        machine._on_drag_finished.assert_not_called()

    def test_gesture_replay_order(self, machine, pipeline):
        for state in ("touchstart", "touchmove", "touchmove", "touchend"):
            machine.handle_screen_object(touch(state))

        assert pointer_events(pipeline) == [
            PointerEvent.DOWN, PointerEvent.MOVE, PointerEvent.MOVE, PointerEvent.UP]

    def test_replay_uses_geometry(self, pipeline):
        machine = VisualizationStateMachine(pipeline, geometry=ScreenGeometry.from_scale(2, 2))
        machine.handle_screen_object(touch("touchstart", x=5, y=7))
        pipeline.simulate_pointer_event.assert_called_once_with(10.0, 14.0, PointerEvent.DOWN)

    def test_non_numeric_position_skips_replay(self, machine, pipeline):
        machine.handle_screen_object(touch("touchstart", x="left", y=None))
        pipeline.simulate_pointer_event.assert_not_called()

    def test_two_finger_move_scales(self, machine, pipeline):
        machine.handle_screen_object(touch("touchmove", x=0, y=0,
                                           touches=[{"x": 0, "y": 0}, {"x": 3, "y": 4}]))
        pipeline.scale_editing_frame.assert_called_once_with((0.0, 0.0), (3.0, 4.0), 5.0)

    def test_malformed_second_touch_is_ignored(self, machine, pipeline):
        machine.handle_screen_object(touch("touchmove", x=0, y=0,
                                           touches=[{"x": 0, "y": 0}, {"x": "3", "y": 4}]))
        pipeline.scale_editing_frame.assert_not_called()
        assert pointer_events(pipeline) == [PointerEvent.MOVE]

    def test_stale_drag_closed_on_next_touchstart(self, machine, pipeline):
        machine.handle_screen_object(touch("touchstart"))
        machine.handle_screen_object(touch("touchstart"))

        assert pointer_events(pipeline) == [PointerEvent.DOWN, PointerEvent.UP, PointerEvent.DOWN]
        assert machine.editing.dragging is True

    def test_drag_end_on_screen_frame_reports(self, machine):
        machine.handle_screen_object(touch("touchstart", visible=True))
        machine.handle_screen_object(touch("touchend", visible=True))

        machine._on_drag_finished.assert_called_once_with(OBJECT_KEY, FRAME_KEY)
        assert machine.editing.dragging is False

    def test_drag_end_in_ar_does_not_report(self, machine):
        machine.handle_screen_object(touch("touchstart"))
        machine.handle_screen_object(touch("touchend"))
        machine._on_drag_finished.assert_not_called()

    def test_triple_tap_resets_frames(self, machine, pipeline, clock):
        machine.update_frame_visualization(OBJECT_KEY, FRAME_KEY, True)
        for _ in range(3):
            machine.handle_screen_object(touch("touchstart", visible=True))
            clock.advance(0.1)

        pipeline.reset_frames.assert_called_once_with()
        assert machine.frames[FRAME_KEY].visualization == Visualization.AR
        assert machine.editing.frame_key is None

    def test_slow_taps_do_not_reset(self, machine, pipeline, clock):
        for _ in range(3):
            machine.handle_screen_object(touch("touchstart"))
            machine.handle_screen_object(touch("touchend"))
            clock.advance(0.4)
        pipeline.reset_frames.assert_not_called()

    def test_upsert_frame_derives_screen_scale(self, pipeline):
        machine = VisualizationStateMachine(pipeline, scale_ratio=1.5)
        key = machine.upsert_frame(frame_data(scale=2))
        assert key == FRAME_KEY
        assert machine.frames[key].screen.scale == 3.0


class TestScreenClient:

    @pytest.fixture
    def session(self):
        session = Mock(spec=requests.Session)
        response = Mock()
        response.json.return_value = {"success": True}
        session.post.return_value = response
        return session

    @pytest.fixture
    def client(self, pipeline, session):
        config = ScreenConfig(object_name="stage", server_ip="10.0.0.2", server_port=8080)
        client = ScreenClient(config, pipeline, session=session)
        client.handle_message("framesForScreen", {FRAME_KEY: frame_data()})
        return client

    def test_message_for_other_screen_has_no_side_effects(self, client, pipeline, session):
        msg = touch("touchstart", visible=True, targetScreen={"object": "X"})

        assert client.handle_message("screenObject", msg) is False

        assert pipeline.mock_calls == []
        session.post.assert_not_called()
        assert client.frames[FRAME_KEY].visualization == Visualization.AR

    def test_message_for_this_screen_is_handled(self, client, pipeline):
        msg = touch("touchstart", targetScreen={"object": OBJECT_KEY})
        assert client.handle_message("screenObject", msg) is True
        pipeline.simulate_pointer_event.assert_called_once()

    def test_unnamed_screen_drops_targeted_messages(self, pipeline, session):
        client = ScreenClient(ScreenConfig(), pipeline, session=session)
        client.handle_message("framesForScreen", {FRAME_KEY: frame_data()})

        msg = touch("touchstart", visible=True, targetScreen={"object": "OTHER"})
        assert client.handle_message("screenObject", msg) is False

        pipeline.simulate_pointer_event.assert_not_called()
        assert client.handle_message("screenObject", touch("touchstart")) is True

    def test_malformed_target_screen_is_dropped(self, client, pipeline):
        assert client.handle_message("screenObject", touch("touchstart", targetScreen="stage")) is False
        assert client.is_message_for_me({"targetScreen": {"object": None}}) is False
        pipeline.simulate_pointer_event.assert_not_called()

    def test_frames_with_null_fields_use_defaults(self, client):
        data = frame_data()
        data.update(ar=None, screen=None, visualization=None, location="elsewhere")

        client.handle_message("framesForScreen", {FRAME_KEY: data, "broken": {"nodes": "x"}})

        assert list(client.frames) == [FRAME_KEY]
        frame = client.frames[FRAME_KEY]
        assert frame.visualization == Visualization.AR
        assert frame.ar.scale == 1.0

    def test_malformed_new_frame_is_skipped(self, client):
        assert client.handle_message("newFrameAdded", {"frame": {"uuid": "x", "ar": "bad"}}) is True
        assert "x" not in client.frames
        assert FRAME_KEY in client.frames

    def test_non_dict_and_unknown_events(self, client):
        assert client.is_message_for_me("junk") is False
        assert client.handle_message("screenObject", None) is False
        assert client.handle_message("somethingElse", {}) is False

    def test_object_name_and_target_size(self, pipeline, session):
        config = ScreenConfig(object_name="", screen_width=1000)
        client = ScreenClient(config, pipeline, session=session)

        client.handle_message("objectName", {"objectName": "stage"})
        client.handle_message("objectTargetSize", {"targetSize": {"width": 0.25, "height": 0.2}})

        assert client.object_name == "stage"
        assert client.target_size == {"width": 0.25, "height": 0.2}
        assert client.state.scale_ratio == 4000

    def test_target_size_without_screen_width_keeps_ratio(self, client):
        client.handle_message("objectTargetSize", {"targetSize": {"width": 0.25}})
        assert client.state.scale_ratio == 1.0

    def test_frames_for_screen_skips_routing_keys(self, client):
        client.handle_message("framesForScreen", {
            FRAME_KEY: frame_data(), "targetScreen": {"object": OBJECT_KEY}, "bogus": 3})
        assert list(client.frames) == [FRAME_KEY]

    def test_new_frame_added(self, client):
        data = frame_data()
        data["uuid"] = "stageIDlabel"
        client.handle_message("newFrameAdded", {"frame": data})
        assert "stageIDlabel" in client.frames

    def test_drag_end_posts_screen_pose(self, client, session):
        client.handle_message("screenObject", touch("touchstart", visible=True, scale=2))
        client.handle_message("screenObject", touch("touchend", visible=True))

        session.post.assert_called_once_with(
            f"http://10.0.0.2:8080/object/{OBJECT_KEY}/frame/{FRAME_KEY}/size/",
            json={"x": 0, "y": 0, "scale": 2, "scaleARFactor": 1.0, "ignoreActionSender": True},
            timeout=client.config.post_timeout,
        )

    def test_pull_out_posts_nothing(self, client, session):
        client.handle_message("screenObject", touch("touchmove", visible=True))
        client.handle_message("screenObject", touch("touchmove", visible=False))
        session.post.assert_not_called()

    def test_post_failure_is_logged_not_raised(self, client, session):
        session.post.side_effect = requests.ConnectionError("unreachable")
        client.state.update_frame_visualization(OBJECT_KEY, FRAME_KEY, True)

        assert client.post_position_and_size(OBJECT_KEY, FRAME_KEY) is None

    def test_post_http_error(self, client, session):
        session.post.return_value.raise_for_status.side_effect = requests.HTTPError("500")
        assert client.post_data("http://x/", {}) is None

    def test_post_non_json_response(self, client, session):
        session.post.return_value.json.side_effect = ValueError("not json")
        assert client.post_data("http://x/", {}) == {}

    def test_post_unknown_frame(self, client, session):
        assert client.post_position_and_size(OBJECT_KEY, "nope") is None
        assert client.post_position_and_size(None, FRAME_KEY) is None
        session.post.assert_not_called()
