#!/usr/bin/env python3
"""
Client for the reality interface server.

Provides a simple Python API for hardware interfaces running in another
process than the server.
"""

import json
import time
import socket
import logging
from typing import Callable, Dict, Any, List, Optional

from reality_interfaces.config import DEFAULT_SOCKET_PORT
from reality_interfaces.core.callbacks import invoke_isolated

logger = logging.getLogger(__name__)


class InterfaceClient:
    """
    Socket client for the reality interface server.

    Objects, frames and nodes are addressed by name; the server resolves them
    to ids.

    Usage:
        # Basic usage
        client = InterfaceClient("192.168.0.100")
        client.connect()
        client.declare_node("lamp", "controls", "brightness")
        client.reconcile("lamp", "controls")
        client.write("lamp", "controls", "brightness", 0.5)
        client.disconnect()

        # Context manager
        with InterfaceClient("192.168.0.100") as client:
            client.write("lamp", "controls", "brightness", 0.5)

        # With auto-reconnect
        client = InterfaceClient("192.168.0.100", auto_reconnect=True)
    """

    def __init__(self, host: str, port: int = DEFAULT_SOCKET_PORT, timeout: float = 5.0,
                 auto_reconnect: bool = False, max_reconnect_attempts: int = 3):
        """
        Initialize interface client.

        Args:
            host: Server IP address
            port: Server port
            timeout: Socket timeout in seconds
            auto_reconnect: Automatically reconnect on connection loss
            max_reconnect_attempts: Maximum reconnection attempts
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self.auto_reconnect = auto_reconnect
        self.max_reconnect_attempts = max_reconnect_attempts
        self.socket: Optional[socket.socket] = None
        self._connected = False
        self._recv_buffer = ""
        self._listeners: Dict[str, List[Callable[[dict], None]]] = {}

    def connect(self) -> bool:
        """
        Connect to the server.

        Returns:
            True if connection successful
        """
        self._close_socket()

        try:
            self.socket = socket.create_connection((self.host, self.port), timeout=self.timeout)
            self._connected = True
            self._recv_buffer = ""
            logger.info(f"Connected to interface server at {self.host}:{self.port}")
            return True
        except OSError as e:
            logger.error(f"Failed to connect to interface server: {e}")
            self._close_socket()
            return False

    def _close_socket(self):
        if self.socket:
            try:
                self.socket.close()
            except OSError:
                pass
            self.socket = None
        self._connected = False
        self._recv_buffer = ""

    def disconnect(self):
        """Disconnect from the server."""
        self._close_socket()
        logger.info("Disconnected from interface server")

    def _try_reconnect(self) -> bool:
        if not self.auto_reconnect:
            return False

        for attempt in range(self.max_reconnect_attempts):
            logger.info(f"Reconnection attempt {attempt + 1}/{self.max_reconnect_attempts}")
            if self.connect():
                return True
            time.sleep(0.5 * (attempt + 1))

        logger.error("Failed to reconnect after maximum attempts")
        return False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _exchange(self, cmd: Dict[str, Any]) -> Dict[str, Any]:
        self.socket.sendall((json.dumps(cmd) + '\n').encode('utf-8'))
        while "\n" not in self._recv_buffer:
            data = self.socket.recv(4096)
            if not data:
                raise ConnectionError("Server closed connection")
            self._recv_buffer += data.decode('utf-8')
        line, self._recv_buffer = self._recv_buffer.split("\n", 1)
        return json.loads(line.strip())

    def _send_command(self, cmd: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Send command to the server and get response.

        Args:
            cmd: Command dictionary

        Returns:
            Response dictionary or None on error
        """
        if not self._connected and not self._try_reconnect():
            logger.warning("Not connected to interface server")
            return None

        try:
            return self._exchange(cmd)
        except (OSError, ValueError) as e:
            logger.error(f"Command failed: {e}")
            self._close_socket()

            if self._try_reconnect():
                try:
                    return self._exchange(cmd)
                except (OSError, ValueError) as retry_error:
                    logger.error(f"Retry failed: {retry_error}")
                    self._close_socket()

            return None

    # --- Node Commands ---

    def declare_node(self, object: str, frame: str, node: str,
                     node_type: str = "node", position: dict = None) -> Optional[Dict]:
        """
        Declare a node on an object's frame.

        Args:
            object: Object name
            frame: Frame name
            node: Node name
            node_type: Driver-defined node type
            position: Optional {"x", "y"} starting position

        Returns:
            Response dictionary with node id and position
        """
        cmd = {"action": "declare_node", "object": object, "frame": frame,
               "node": node, "node_type": node_type}
        if position is not None:
            cmd["position"] = position
        return self._send_command(cmd)

    def reconcile(self, object: str, frame: str) -> Optional[Dict]:
        """Remove nodes of a frame not declared since the last reconcile."""
        return self._send_command({"action": "reconcile", "object": object, "frame": frame})

    def write(self, object: str, frame: str, node: str, value: Any,
              mode: str = "f", unit: Any = False, unit_min: float = 0,
              unit_max: float = 1) -> Optional[Dict]:
        return self._send_command({
            "action": "write", "object": object, "frame": frame, "node": node,
            "value": value, "mode": mode, "unit": unit,
            "unit_min": unit_min, "unit_max": unit_max,
        })

    def write_public_data(self, object: str, frame: str, node: str,
                          key: str, value: Any) -> Optional[Dict]:
        return self._send_command({
            "action": "write_public_data", "object": object, "frame": frame,
            "node": node, "key": key, "value": value,
        })

    def rename_node(self, object: str, frame: str, node: str, new_name: str) -> Optional[Dict]:
        return self._send_command({"action": "rename_node", "object": object, "frame": frame,
                                   "node": node, "new_name": new_name})

    def move_node(self, object: str, frame: str, node: str, x: float, y: float) -> Optional[Dict]:
        return self._send_command({"action": "move_node", "object": object, "frame": frame,
                                   "node": node, "x": x, "y": y})

    def remove_node(self, object: str, frame: str, node: str) -> Optional[Dict]:
        return self._send_command({"action": "remove_node", "object": object,
                                   "frame": frame, "node": node})

    def remove_all_nodes(self, object: str, frame: str) -> Optional[Dict]:
        return self._send_command({"action": "remove_all_nodes", "object": object, "frame": frame})

    def reset(self) -> Optional[Dict]:
        return self._send_command({"action": "reset"})

    def activate(self, object: str) -> Optional[Dict]:
        return self._send_command({"action": "activate", "object": object})

    def deactivate(self, object: str) -> Optional[Dict]:
        return self._send_command({"action": "deactivate", "object": object})

    def advertise_connection(self, object: str, frame: str, node: str,
                             logic: Any = False) -> Optional[Dict]:
        return self._send_command({"action": "advertise_connection", "object": object,
                                   "frame": frame, "node": node, "logic": logic})

    def get_all_frames(self, object: str) -> Optional[Dict]:
        return self._send_command({"action": "get_all_frames", "object": object})

    def get_all_nodes(self, object: str, frame: str) -> Optional[Dict]:
        return self._send_command({"action": "get_all_nodes", "object": object, "frame": frame})

    def get_node(self, object: str, frame: str, node: str) -> Optional[Dict]:
        return self._send_command({"action": "get_node", "object": object,
                                   "frame": frame, "node": node})

    def poll_events(self) -> Optional[Dict]:
        """Fetch registry events emitted since the last poll."""
        return self._send_command({"action": "poll_events"})

    def on(self, event: str, callback: Callable[[dict], None]) -> None:
        """
        Subscribe to a server event by name.

        Callbacks run from ``dispatch_events`` with the event dict, e.g.
        ``client.on("dispatch_value", lambda e: print(e["node"], e["data"]))``.
        """
        self._listeners.setdefault(event, []).append(callback)

    def dispatch_events(self) -> int:
        """
        Poll the server once and hand each event to its subscribers.

        Returns:
            Number of events received
        """
        response = self.poll_events()
        if not response or response.get("status") != "success":
            return 0
        events = response.get("events", [])
        for event in events:
            for callback in list(self._listeners.get(event.get("event"), [])):
                invoke_isolated(callback, event, description=f"client[{event.get('event')}]")
        return len(events)

    def status(self) -> Optional[Dict]:
        return self._send_command({"action": "status"})

    # --- Screen Commands ---

    def screen_object(self, target_object: str = None, **payload) -> Optional[Dict]:
        """
        Deliver a touch event to screen drivers.

        Args:
            target_object: Object id of one screen, or None for all screens
            **payload: screenObject event fields

        Returns:
            Response dictionary with number of drivers reached
        """
        cmd = {"action": "screen_object", **payload}
        if target_object:
            cmd["target_object"] = target_object
        return self._send_command(cmd)

    def write_screen_object(self, object: str = None, frame: str = None, node: str = None,
                            touch_offset_x: float = None,
                            touch_offset_y: float = None) -> Optional[Dict]:
        return self._send_command({
            "action": "write_screen_object", "object": object, "frame": frame, "node": node,
            "touch_offset_x": touch_offset_x, "touch_offset_y": touch_offset_y,
        })

    def activate_screen(self, object: str, port: int) -> Optional[Dict]:
        return self._send_command({"action": "activate_screen", "object": object, "port": port})

    def get_screen_port(self, object_id: str) -> Optional[Dict]:
        return self._send_command({"action": "get_screen_port", "object_id": object_id})

    # --- Context Manager ---

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
