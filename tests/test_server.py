"""
Command layer, server request handling and the socket client.

The server is exercised through ``handle_line``/``process_command``; no
sockets are opened.
"""

import json
from unittest.mock import Mock

import pytest

from reality_interfaces.client import InterfaceClient
from reality_interfaces.commands import get_registry, register_command
from reality_interfaces.commands.base import CommandRegistry
from reality_interfaces.config import HostConfig
from reality_interfaces.server import InterfaceServer


@pytest.fixture
def server(tmp_path):
    return InterfaceServer(HostConfig(objects_path=tmp_path))


def send(server, action, **params):
    return server.process_command({"action": action, **params})


class TestCommandRegistry:

    def test_prebuilt_commands_registered(self):
        commands = get_registry().list_commands()
        for name in ("declare_node", "reconcile", "write", "write_public_data", "reset",
                     "screen_object", "write_screen_object", "activate_screen",
                     "get_screen_port", "poll_events", "status"):
            assert name in commands

    def test_unknown_command(self):
        result = CommandRegistry().execute("nope", api=None)
        assert result["status"] == "error"
        assert "Unknown command" in result["message"]

    def test_missing_parameters(self, server):
        result = send(server, "declare_node", object="lamp")
        assert result["status"] == "error"
        assert "Invalid parameters" in result["message"]

    def test_none_result_becomes_success(self):
        registry = CommandRegistry()
        registry.register("noop", lambda api: None)
        assert registry.execute("noop", api=None) == {"status": "success"}

    def test_decorator_with_name(self):
        @register_command(name="test_echo_command")
        def echo(api, value):
            return {"value": value}

        result = get_registry().execute("test_echo_command", api=None, value=3)
        assert result == {"value": 3, "status": "success"}

    def test_decorated_handler_stays_callable(self):
        @register_command(name="test_double_command")
        def double(api, value):
            return {"value": value * 2}

        assert double(None, 4) == {"value": 8}
        assert get_registry().get("test_double_command") is double

    def test_handler_status_is_kept(self):
        registry = CommandRegistry()
        registry.register("fail", lambda api: {"status": "error", "message": "no"})
        assert registry.execute("fail", api=None)["status"] == "error"
        assert registry.execute("nope", api=None)["available_commands"] == ["fail"]


class TestServerCommands:

    def test_invalid_json(self, server):
        result = server.handle_line("{not json")
        assert result["status"] == "error"
        assert "Invalid JSON" in result["message"]

    def test_non_object_json(self, server):
        assert server.handle_line("[1, 2]")["status"] == "error"

    def test_missing_action(self, server):
        assert send(server, "")["message"] == "Missing 'action' field"

    def test_declare_reconcile_and_query(self, server):
        declared = server.handle_line(json.dumps(
            {"action": "declare_node", "object": "lamp", "frame": "controls",
             "node": "brightness", "position": {"x": 5, "y": 6}}))
        assert declared["status"] == "success"
        assert (declared["x"], declared["y"]) == (5, 6)

        send(server, "declare_node", object="lamp", frame="controls", node="color")
        send(server, "reconcile", object="lamp", frame="controls")
        send(server, "declare_node", object="lamp", frame="controls", node="brightness")
        result = send(server, "reconcile", object="lamp", frame="controls")
        assert len(result["removed"]) == 1
        assert result["removed"][0].endswith("controlscolor")

        nodes = send(server, "get_all_nodes", object="lamp", frame="controls")["nodes"]
        assert [n["name"] for n in nodes.values()] == ["brightness"]
        node = send(server, "get_node", object="lamp", frame="controls", node="brightness")
        assert node["node"]["x"] == 5
        missing = send(server, "get_node", object="lamp", frame="controls", node="color")
        assert missing["status"] == "error"

    def test_write_emits_value_event(self, server):
        send(server, "declare_node", object="lamp", frame="controls", node="brightness")
        send(server, "write", object="lamp", frame="controls", node="brightness", value=0.5)

        events = send(server, "poll_events")["events"]

        assert len(events) == 1
        assert events[0]["event"] == "value"
        assert events[0]["data"]["value"] == 0.5
        assert send(server, "poll_events")["events"] == []

    def test_write_public_data_emits_current_public_data(self, server):
        send(server, "declare_node", object="lamp", frame="controls", node="brightness")
        send(server, "write_public_data", object="lamp", frame="controls",
             node="brightness", key="color", value="red")

        events = send(server, "poll_events")["events"]

        assert events[0]["event"] == "public_data"
        assert events[0]["public_data"] == {"color": "red"}

    def test_write_unknown_node_succeeds_silently(self, server):
        result = send(server, "write", object="ghost", frame="f", node="n", value=1)
        assert result["status"] == "success"
        assert send(server, "poll_events")["events"] == []

    def test_dispatch_public_data_requires_mapping(self, server):
        result = send(server, "dispatch_public_data", object_id="a", frame_id="b",
                      node_id="c", data=[1])
        assert result["status"] == "error"

    def test_dispatch_value_reaches_driver(self, server):
        node = server.api.declare_node("lamp", "controls", "brightness", "node")
        callback = Mock()
        server.api.subscribe_value("lamp", "controls", "brightness", callback)

        send(server, "dispatch_value", object_id=node.object_id, frame_id=node.frame_id,
             node_id=node.id, data={"value": 1})

        callback.assert_called_once_with({"value": 1})

    def test_dispatched_events_queued_for_remote_drivers(self, server):
        declared = send(server, "declare_node", object="lamp", frame="controls", node="brightness")
        node = send(server, "get_node", object="lamp", frame="controls", node="brightness")["node"]
        object_id, frame_id, node_id = node["objectId"], node["frameId"], declared["id"]

        send(server, "dispatch_value", object_id=object_id, frame_id=frame_id,
             node_id=node_id, data={"value": 0.7})
        send(server, "dispatch_public_data", object_id=object_id, frame_id=frame_id,
             node_id=node_id, data={"color": "blue"})
        send(server, "dispatch_connection", object_id=object_id, frame_id=frame_id,
             node_id=node_id, data={"linked": True})
        send(server, "notify_frame_added", object_id=object_id, frame={"name": "extra"})
        send(server, "notify_object_reset", object_id=object_id)
        send(server, "reset")

        events = send(server, "poll_events")["events"]

        assert [e["event"] for e in events] == [
            "dispatch_value", "dispatch_public_data", "dispatch_connection",
            "frame_added", "object_reset", "reset"]
        assert events[0]["object_name"] == "lamp"
        assert events[0]["node"] == node_id
        assert events[0]["data"] == {"value": 0.7}
        assert events[1]["public_data"] == {"color": "blue"}
        assert json.loads(json.dumps(events)) == events

    def test_screen_commands(self, server):
        driver = Mock()
        server.api.declare_node("stage", "slider", "knob", "node")
        object_id = server.api.get_object_id("stage")
        server.api.add_screen_object_listener("stage", driver)

        result = send(server, "screen_object", target_object=object_id, x=1, y=2,
                      touchState="touchstart")
        assert result["delivered"] == 1
        driver.assert_called_once_with({"x": 1, "y": 2, "touchState": "touchstart"})
        assert send(server, "screen_object", target_object="nobody")["delivered"] == 0

        send(server, "write_screen_object", object="stage", frame="slider", node="knob",
             touch_offset_x=0.1, touch_offset_y=0.2)
        events = send(server, "poll_events")["events"]
        assert events == [{"event": "screen_object", "object": object_id,
                           "frame": object_id + "slider", "node": object_id + "sliderknob",
                           "touch_offset_x": 0.1, "touch_offset_y": 0.2}]

        assert send(server, "activate_screen", object="stage", port=5000)["object_id"] == object_id
        assert send(server, "get_screen_port", object_id=object_id)["port"] == 5000
        assert send(server, "get_screen_port", object_id="nobody")["status"] == "error"

    def test_rename_emits_action_event(self, server):
        send(server, "declare_node", object="lamp", frame="controls", node="brightness")
        send(server, "rename_node", object="lamp", frame="controls", node="brightness",
             new_name="Dimmer")

        events = send(server, "poll_events")["events"]

        assert events[0]["event"] == "action"
        assert "reloadObject" in events[0]["message"]

    def test_status(self, server):
        send(server, "declare_node", object="lamp", frame="controls", node="brightness")
        status = send(server, "status")
        assert status["object_count"] == 1
        assert status["node_count"] == 1
        assert status["developer"] is True

    def test_persist_object(self, server, tmp_path):
        node = server.api.declare_node("lamp", "controls", "brightness", "node")

        server.api.reload_node_ui("lamp")

        path = tmp_path / "lamp" / "object.json"
        data = json.loads(path.read_text())
        assert data["objectId"] == node.object_id
        assert server.persist_object("unknown") is None

    def test_shutdown_runs_listeners(self, server):
        listener = Mock()
        server.api.add_global_listener("shutdown", listener)

        server.shutdown()

        listener.assert_called_once_with()
        assert server.running is False


class TestInterfaceClient:

    @pytest.fixture
    def client(self):
        client = InterfaceClient("127.0.0.1")
        client.socket = Mock()
        client._connected = True
        return client

    def test_sends_json_line_and_parses_reply(self, client):
        client.socket.recv.return_value = b'{"status": "success", "id": "n1"}\n'

        result = client.declare_node("lamp", "controls", "brightness")

        sent = client.socket.sendall.call_args.args[0].decode("utf-8")
        assert sent.endswith("\n")
        assert json.loads(sent) == {"action": "declare_node", "object": "lamp",
                                    "frame": "controls", "node": "brightness",
                                    "node_type": "node"}
        assert result == {"status": "success", "id": "n1"}

    def test_split_reply(self, client):
        client.socket.recv.side_effect = [b'{"status": ', b'"success"}\n']
        assert client.status() == {"status": "success"}

    def test_closed_connection_returns_none(self, client):
        client.socket.recv.return_value = b""
        assert client.reset() is None
        assert client.is_connected is False

    def test_not_connected(self):
        client = InterfaceClient("127.0.0.1")
        assert client.status() is None

    def test_dispatch_events_routes_by_name(self, client):
        client.socket.recv.return_value = (
            b'{"status": "success", "events": [{"event": "dispatch_value", "data": 1}, '
            b'{"event": "reset"}, {"event": "dispatch_value", "data": 2}]}\n')
        on_value, on_reset = Mock(), Mock(side_effect=RuntimeError("driver bug"))
        client.on("dispatch_value", on_value)
        client.on("reset", on_reset)

        assert client.dispatch_events() == 3

        assert [c.args[0]["data"] for c in on_value.call_args_list] == [1, 2]
        on_reset.assert_called_once_with({"event": "reset"})
        sent = json.loads(client.socket.sendall.call_args.args[0])
        assert sent == {"action": "poll_events"}

    def test_dispatch_events_without_reply(self, client):
        client.socket.recv.return_value = b""
        client.on("reset", Mock())
        assert client.dispatch_events() == 0

    def test_screen_object_target(self, client):
        client.socket.recv.return_value = b'{"status": "success", "delivered": 1}\n'

        client.screen_object("stageID", x=1, touchState="touchend")

        sent = json.loads(client.socket.sendall.call_args.args[0])
        assert sent == {"action": "screen_object", "x": 1, "touchState": "touchend",
                        "target_object": "stageID"}
