#!/usr/bin/env python3
"""
Reality Interface Server - hosts the hardware interface registry.

This server provides:
1. One HardwareInterfaceAPI shared by every connected hardware interface
2. JSON/TCP command interface (one JSON object per line)
3. YAML configuration
4. An event queue for messages the registry emits (reload/advertise actions,
   value writes, outbound screen touches) and for events dispatched to
   drivers (values, public data, connections, frame-added, resets), drained
   with ``poll_events``
"""

import os
import sys
import json
import time
import signal
import socket
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from reality_interfaces.commands import get_registry
from reality_interfaces.config import HostConfig, load_config
from reality_interfaces.interface import HardwareInterfaceAPI, HostBindings
from reality_interfaces.utils.logging import setup_logging, get_logger

MAX_PENDING_EVENTS = 1000
OBJECT_FILE_NAME = "object.json"


class InterfaceServer:
    """
    Socket server for hardware interfaces.

    Architecture:
        Server (single instance)
        ├── HardwareInterfaceAPI
        │   ├── NodeRegistry
        │   ├── CallbackRegistry
        │   └── ScreenBridge
        └── Event queue (registry -> remote clients)
    """

    def __init__(self, config: Optional[HostConfig] = None, verbose: bool = False):
        """
        Initialize the interface server.

        Args:
            config: Host configuration (defaults if None)
            verbose: Enable verbose logging
        """
        self.config = config or HostConfig()
        self.verbose = verbose
        self.logger = get_logger(__name__)

        self._running = threading.Event()
        self._running.set()

        self.socket_host = self.config.server.socket_host
        self.socket_port = self.config.server.socket_port

        self.server_socket: Optional[socket.socket] = None
        self.socket_thread: Optional[threading.Thread] = None
        self._client_executor: Optional[ThreadPoolExecutor] = None

        self._events: deque = deque(maxlen=MAX_PENDING_EVENTS)
        self._events_lock = threading.Lock()

        bindings = HostBindings(
            config=self.config.registry,
            objects_path=self.config.objects_path,
            on_value_changed=self._on_value_changed,
            on_public_data_changed=self._on_public_data_changed,
            on_action=self._on_action,
            on_persist=self.persist_object,
            on_driver_event=self._on_driver_event,
            event_source=self.drain_events,
        )
        self.api = HardwareInterfaceAPI(bindings)
        self.api.screen_object_server_callback(self._on_screen_touch)

    @property
    def running(self) -> bool:
        """Check if server is running (thread-safe)."""
        return self._running.is_set()

    @running.setter
    def running(self, value: bool):
        if value:
            self._running.set()
        else:
            self._running.clear()

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals. Second signal forces immediate exit."""
        signal_names = {signal.SIGTERM: "SIGTERM", signal.SIGINT: "SIGINT (Ctrl+C)"}
        signal_name = signal_names.get(signum, f"signal {signum}")

        if not self._running.is_set():
            self.logger.info(f"Force exit: Received {signal_name} during shutdown")
            os._exit(1)

        self.logger.info(f"Shutdown initiated: Received {signal_name}")
        self._running.clear()

    # --- Registry events ---

    def _emit(self, event: str, **payload) -> None:
        with self._events_lock:
            self._events.append({"event": event, **payload})

    def drain_events(self) -> List[Dict[str, Any]]:
        """Return and clear every pending event, oldest first."""
        with self._events_lock:
            events = list(self._events)
            self._events.clear()
        return events

    def _on_value_changed(self, object_id, frame_id, node_id, data, objects, node_type_modules):
        self._emit("value", object=object_id, frame=frame_id, node=node_id, data=data.to_dict())

    def _on_public_data_changed(self, object_id, frame_id, node_id):
        node = None
        frame = self.api.registry.get_frame(object_id, frame_id)
        if frame is not None:
            node = frame.nodes.get(node_id)
        public_data = dict(node.public_data) if node else {}
        self._emit("public_data", object=object_id, frame=frame_id, node=node_id,
                   public_data=public_data)

    def _on_action(self, message: dict) -> None:
        self._emit("action", message=message)

    def _on_driver_event(self, message: dict) -> None:
        with self._events_lock:
            self._events.append(dict(message))

    def _on_screen_touch(self, object_id, frame_id, node_id, touch_offset_x, touch_offset_y):
        self._emit("screen_object", object=object_id, frame=frame_id, node=node_id,
                   touch_offset_x=touch_offset_x, touch_offset_y=touch_offset_y)

    def persist_object(self, object_id: str) -> Optional[Path]:
        """
        Write an object's state to ``<objects_path>/<object name>/object.json``.

        Returns:
            Path written, or None if the object is unknown or the write failed
        """
        obj = self.api.registry.get_object(object_id)
        if obj is None:
            return None

        path = Path(self.config.objects_path) / obj.name / OBJECT_FILE_NAME
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w') as f:
                json.dump(obj.to_dict(), f, indent=2)
        except OSError as e:
            self.logger.error(f"Failed to persist object {object_id}: {e}")
            return None
        self.logger.debug(f"Persisted object {object_id} to {path}")
        return path

    # --- Socket server ---

    def start_socket_server(self):
        """Start the socket server in a separate thread."""
        self._client_executor = ThreadPoolExecutor(max_workers=10, thread_name_prefix="client")
        self.socket_thread = threading.Thread(target=self._socket_server_loop, daemon=True)
        self.socket_thread.start()
        self.logger.info(f"Socket server started on {self.socket_host}:{self.socket_port}")

    def _socket_server_loop(self):
        try:
            self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self.server_socket.bind((self.socket_host, self.socket_port))
            self.server_socket.listen(5)
            self.server_socket.settimeout(1.0)

            while self.running:
                try:
                    client_socket, addr = self.server_socket.accept()
                    self.logger.info(f"Client connected from {addr}")
                    self._client_executor.submit(self._handle_client, client_socket, addr)
                except socket.timeout:
                    continue
                except OSError as e:
                    if self.running:
                        self.logger.error(f"Socket accept error: {e}")

        except OSError as e:
            self.logger.error(f"Socket server error: {e}")
        finally:
            if self.server_socket:
                self.server_socket.close()

    def _handle_client(self, client_socket: socket.socket, addr):
        """Handle one client connection, one JSON command per line."""
        buffer = ""
        try:
            client_socket.settimeout(5.0)
            while self.running:
                try:
                    data = client_socket.recv(4096)
                    if not data:
                        break

                    buffer += data.decode("utf-8")
                    while "\n" in buffer:
                        line, buffer = buffer.split("\n", 1)
                        line = line.strip()
                        if not line:
                            continue
                        response = self.handle_line(line)
                        client_socket.send((json.dumps(response) + "\n").encode("utf-8"))

                except socket.timeout:
                    continue
                except (OSError, UnicodeDecodeError) as e:
                    if self.running:
                        self.logger.error(f"Client handling error: {e}")
                    break

        finally:
            client_socket.close()
            self.logger.info(f"Client disconnected from {addr}")

    def handle_line(self, line: str) -> Dict[str, Any]:
        """Decode one JSON line and process it."""
        try:
            cmd = json.loads(line)
        except json.JSONDecodeError as e:
            return {"status": "error", "message": f"Invalid JSON: {e}"}
        if not isinstance(cmd, dict):
            return {"status": "error", "message": "Command must be a JSON object"}
        return self.process_command(cmd)

    def process_command(self, cmd: Dict[str, Any]) -> Dict[str, Any]:
        """
        Process a command and return response.

        Command format: {"action": "command_name", "param1": value1, ...}

        Never crashes on bad commands - returns error response instead.
        """
        action = cmd.get("action", cmd.get("cmd", ""))
        if not action:
            return {"status": "error", "message": "Missing 'action' field"}

        params = {k: v for k, v in cmd.items() if k not in ("action", "cmd")}
        try:
            result = get_registry().execute(action, self.api, **params)
        except Exception as e:
            # Log but don't crash
            self.logger.exception(f"Command error in '{action}': {e}")
            return {"status": "error", "message": str(e)}

        if self.verbose:
            self.logger.debug(f"Command: {action}, Result: {result.get('status')}")
        return result

    # --- Lifecycle ---

    def run(self):
        """Serve until a shutdown signal arrives."""
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)
        self.logger.info("Serving hardware interfaces...")

        try:
            while self.running:
                time.sleep(0.5)
        except KeyboardInterrupt:
            self.logger.info("Keyboard interrupt received")
        finally:
            self.shutdown()

    def shutdown(self):
        """Clean shutdown: run interface shutdown listeners, then close sockets."""
        self.logger.info("Shutting down...")
        self._running.clear()

        self.api.run_global_shutdown()

        if self.server_socket:
            try:
                self.server_socket.close()
            except OSError:
                pass

        if self._client_executor:
            self._client_executor.shutdown(wait=False)

        self.logger.info("Shutdown complete")


def main():
    """Entry point for the interface server."""
    parser = argparse.ArgumentParser(
        description="Reality Interface Server - hardware interface registry"
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to server configuration YAML"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        help="Socket port (default from config)"
    )
    parser.add_argument(
        "--host",
        help="Socket host (default from config)"
    )

    args = parser.parse_args()

    setup_logging(verbose=args.verbose)
    logger = get_logger(__name__)

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    if args.port:
        config.server.socket_port = args.port
    if args.host:
        config.server.socket_host = args.host

    server = InterfaceServer(config, verbose=args.verbose)
    server.start_socket_server()
    server.run()


if __name__ == "__main__":
    main()
